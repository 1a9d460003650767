import json
import re
from types import SimpleNamespace

import pytest

from ussycode.arena import (
    ArenaScenario,
    calculate_elo,
    cmd_arena,
    color_match_status,
    color_participant_status,
    expected_score,
    generate_match_id,
    list_available_scenarios,
    load_arena_scenario,
    update_elo_after_match,
)
from ussycode.shell import CommandError


class FakeDB:
    def __init__(self):
        self.users = {}
        self.matches = {}
        self.participants = {}
        self.elo = {}

    def add_user(self, user_id, handle):
        self.users[user_id] = SimpleNamespace(id=user_id, handle=handle)

    def user_by_id(self, user_id):
        return self.users.get(user_id)

    def create_arena_match(self, match_id, scenario, max_agents, created_by):
        m = SimpleNamespace(match_id=match_id, scenario=scenario, max_agents=max_agents,
                            created_by=created_by, status="waiting", created_at=None)
        self.matches[match_id] = m
        self.participants[match_id] = []
        return m

    def join_arena_match(self, match_id, user_id):
        plist = self.participants[match_id]
        if any(p.user_id == user_id for p in plist):
            raise ValueError("UNIQUE constraint failed")
        p = SimpleNamespace(user_id=user_id, status="joined", score=0)
        plist.append(p)
        return p

    def get_arena_match(self, match_id):
        return self.matches.get(match_id)

    def is_arena_participant(self, match_id, user_id):
        return any(p.user_id == user_id for p in self.participants.get(match_id, []))

    def arena_participant_count(self, match_id):
        return len(self.participants.get(match_id, []))

    def update_arena_match_status(self, match_id, status):
        self.matches[match_id].status = status

    def list_arena_participants(self, match_id):
        return sorted(self.participants.get(match_id, []), key=lambda p: -p.score)

    def get_arena_elo(self, user_id):
        return self.elo.get(user_id, SimpleNamespace(user_id=user_id, rating=1200,
                                                     wins=0, losses=0, draws=0))

    def update_arena_elo(self, user_id, rating, wins, losses, draws):
        self.elo[user_id] = SimpleNamespace(user_id=user_id, rating=rating, wins=wins,
                                            losses=losses, draws=draws)

    def get_arena_leaderboard(self, limit):
        return sorted(self.elo.values(), key=lambda e: -e.rating)[:limit]

    def list_arena_matches(self):
        return [m for m in self.matches.values() if m.status in ("waiting", "running")]

    def list_arena_match_history(self, user_id):
        return [m for mid, m in self.matches.items() if self.is_arena_participant(mid, user_id)]


class FakeShell:
    def __init__(self, db, user_id=1, handle="player1"):
        self.db = db
        self.user = SimpleNamespace(id=user_id, handle=handle, trust_level="citizen")
        self.domain = "example.com"
        self.out = []

    def write(self, text):
        self.out.append(text)

    def writeln(self, msg):
        self.out.append(msg + "\n")

    def write_json(self, value):
        self.out.append(json.dumps(value) + "\n")

    @property
    def text(self):
        return "".join(self.out)


@pytest.fixture
def db():
    d = FakeDB()
    d.add_user(1, "player1")
    d.add_user(2, "player2")
    d.add_user(3, "player3")
    return d


def write_scenario(base, name, data):
    d = base / name
    d.mkdir(parents=True)
    (d / "scenario.json").write_text(json.dumps(data))


# ── ELO ──────────────────────────────────────────────────────────────

def test_equal_ratings_winner_gains():
    assert calculate_elo(1200, 1200, 1.0) == (1216, 1184)


def test_equal_ratings_draw():
    assert calculate_elo(1200, 1200, 0.5) == (1200, 1200)


def test_upset_win():
    new_a, new_b = calculate_elo(1000, 1400, 1.0)
    assert new_a - 1000 >= 25
    assert 1400 - new_b >= 25


def test_expected_win():
    new_a, new_b = calculate_elo(1400, 1000, 1.0)
    assert new_a - 1400 <= 10
    assert 1000 - new_b <= 10


@pytest.mark.parametrize("ra,rb,result", [
    (1200, 1200, 1.0), (1200, 1200, 0.0), (1200, 1200, 0.5),
    (1400, 1000, 1.0), (1400, 1000, 0.0), (800, 1600, 0.5),
])
def test_sum_is_conserved(ra, rb, result):
    new_a, new_b = calculate_elo(ra, rb, result)
    assert abs((ra + rb) - (new_a + new_b)) <= 1


def test_expected_score_formula():
    assert abs(expected_score(1200, 1600) - 0.0909) <= 0.001


# ── helpers ──────────────────────────────────────────────────────────

def test_color_statuses():
    assert color_match_status("running") == "\033[32mrunning\033[0m"
    assert color_match_status("weird") == "weird"
    assert color_participant_status("disconnected") == "\033[31mdisconnected\033[0m"
    assert color_participant_status("other") == "other"


def test_generate_match_id():
    ids = {generate_match_id() for _ in range(20)}
    assert len(ids) == 20
    assert all(re.fullmatch(r"m-[0-9a-f]{12}", i) for i in ids)


def test_load_scenario(tmp_path):
    write_scenario(tmp_path, "web-exploit",
                   {"name": "Web Exploit", "description": "d", "duration_minutes": 30,
                    "max_agents": 4, "ports": [80], "extra": True})
    sc = load_arena_scenario("web-exploit", [str(tmp_path / "missing"), str(tmp_path)])
    assert sc == ArenaScenario("Web Exploit", "d", 30, 4, [80])


def test_load_scenario_missing(tmp_path):
    with pytest.raises(FileNotFoundError, match="not found"):
        load_arena_scenario("nope", [str(tmp_path)])


def test_load_scenario_bad_json(tmp_path):
    d = tmp_path / "bad"
    d.mkdir()
    (d / "scenario.json").write_text("{not json")
    with pytest.raises(ValueError, match="parse scenario bad"):
        load_arena_scenario("bad", [str(tmp_path)])


def test_list_available_scenarios(tmp_path):
    first = tmp_path / "first"
    first.mkdir()
    second = tmp_path / "second"
    write_scenario(second, "zeta", {})
    write_scenario(second, "alpha", {})
    (second / "empty").mkdir()
    assert list_available_scenarios([str(first), str(second)]) == ["alpha", "zeta"]


# ── commands ─────────────────────────────────────────────────────────

def test_unknown_subcommand(db):
    with pytest.raises(CommandError, match='unknown arena subcommand "bogus"'):
        cmd_arena(FakeShell(db), ["bogus"])


def test_create_match_caps_agents(db, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    write_scenario(tmp_path / "templates" / "arena", "web-exploit",
                   {"name": "Web", "description": "hack", "duration_minutes": 15, "max_agents": 3})
    shell = FakeShell(db)
    cmd_arena(shell, ["create-match", "--scenario=web-exploit", "--agents=5"])
    (match,) = db.matches.values()
    assert match.max_agents == 3
    assert db.is_arena_participant(match.match_id, 1)
    assert "1/3 (waiting for opponents)" in shell.text


def test_create_match_bad_agents(db):
    with pytest.raises(CommandError, match="--agents must be between 2 and 10"):
        cmd_arena(FakeShell(db), ["create-match", "--agents=11", "--scenario=x"])


def test_create_match_requires_scenario(db, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    write_scenario(tmp_path / "templates" / "arena", "code-review", {})
    with pytest.raises(CommandError, match="available scenarios: code-review"):
        cmd_arena(FakeShell(db), ["create-match"])


def test_create_match_unknown_scenario(db, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(CommandError, match="load scenario"):
        cmd_arena(FakeShell(db), ["create-match", "--scenario=ghost"])


def test_join_not_found(db):
    with pytest.raises(CommandError, match='match "m-x" not found'):
        cmd_arena(FakeShell(db), ["join", "m-x"])


def test_join_fills_and_starts(db):
    db.create_arena_match("m-test123", "web-exploit", 2, 1)
    db.join_arena_match("m-test123", 1)
    shell = FakeShell(db, 2, "player2")
    cmd_arena(shell, ["join", "m-test123"])
    assert db.arena_participant_count("m-test123") == 2
    assert db.matches["m-test123"].status == "running"
    assert "match is full" in shell.text


def test_join_waiting_message(db):
    db.create_arena_match("m-big", "web-exploit", 4, 1)
    db.join_arena_match("m-big", 1)
    shell = FakeShell(db, 2, "player2")
    cmd_arena(shell, ["join", "m-big"])
    assert "waiting for 2 more agents..." in shell.text
    assert db.matches["m-big"].status == "waiting"


def test_join_rejects_duplicate_and_full_and_running(db):
    db.create_arena_match("m-cap", "web-exploit", 2, 1)
    db.join_arena_match("m-cap", 1)
    with pytest.raises(CommandError, match="already joined"):
        cmd_arena(FakeShell(db, 1), ["join", "m-cap"])
    db.join_arena_match("m-cap", 2)
    with pytest.raises(CommandError, match=r"is full \(2/2 agents\)"):
        cmd_arena(FakeShell(db, 3), ["join", "m-cap"])
    db.update_arena_match_status("m-cap", "running")
    with pytest.raises(CommandError, match="is running"):
        cmd_arena(FakeShell(db, 3), ["join", "m-cap"])


def test_spectate_lists_handles(db):
    db.create_arena_match("m-s", "web-exploit", 2, 1)
    db.join_arena_match("m-s", 1)
    db.join_arena_match("m-s", 2)
    shell = FakeShell(db)
    cmd_arena(shell, ["spectate", "m-s"])
    assert "player1" in shell.text and "player2" in shell.text
    assert "SPECTATING: m-s" in shell.text


def test_leaderboard_json(db):
    db.update_arena_elo(1, 1500, 10, 2, 1)
    db.update_arena_elo(2, 1300, 5, 5, 0)
    db.update_arena_elo(3, 1400, 8, 4, 0)
    shell = FakeShell(db)
    cmd_arena(shell, ["leaderboard", "--json"])
    data = json.loads(shell.text)
    assert [e["rating"] for e in data] == [1500, 1400, 1300]


def test_list_json_only_active(db):
    db.create_arena_match("m-wait1", "web-exploit", 2, 1)
    db.create_arena_match("m-run1", "web-exploit", 2, 1)
    db.update_arena_match_status("m-run1", "running")
    db.create_arena_match("m-done1", "web-exploit", 2, 1)
    db.update_arena_match_status("m-done1", "completed")
    shell = FakeShell(db)
    cmd_arena(shell, ["list", "--json"])
    ids = sorted(m["match_id"] for m in json.loads(shell.text))
    assert ids == ["m-run1", "m-wait1"]


# ── rating updates ───────────────────────────────────────────────────

def test_update_elo_winner_and_loser(db):
    db.create_arena_match("m-e", "web-exploit", 2, 1)
    db.join_arena_match("m-e", 1).score = 100
    db.join_arena_match("m-e", 2).score = 75
    update_elo_after_match(FakeShell(db), "m-e")
    assert (db.elo[1].rating, db.elo[1].wins) == (1216, 1)
    assert (db.elo[2].rating, db.elo[2].losses) == (1184, 1)


def test_update_elo_draw(db):
    db.create_arena_match("m-d", "web-exploit", 2, 1)
    db.join_arena_match("m-d", 1).score = 50
    db.join_arena_match("m-d", 2).score = 50
    update_elo_after_match(FakeShell(db), "m-d")
    assert (db.elo[1].rating, db.elo[1].draws) == (1200, 1)
    assert (db.elo[2].rating, db.elo[2].draws) == (1200, 1)


def test_update_elo_single_player_noop(db):
    db.create_arena_match("m-1", "web-exploit", 2, 1)
    db.join_arena_match("m-1", 1).score = 10
    update_elo_after_match(FakeShell(db), "m-1")
    assert db.elo == {}