"""The ``arena`` command: CTF and agent matches with ELO ratings."""

from __future__ import annotations

import json
import logging
import math
import os
import re
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from .shell import CommandError, Shell, has_flag, plural, register_command, relative_time

__all__ = [
    "ArenaScenario",
    "ELO_START_RATING",
    "ELO_K_FACTOR",
    "SCENARIO_DIRS",
    "calculate_elo",
    "expected_score",
    "generate_match_id",
    "load_arena_scenario",
    "list_available_scenarios",
    "update_elo_after_match",
    "color_match_status",
    "color_participant_status",
    "cmd_arena",
]

log = logging.getLogger(__name__)

ELO_START_RATING = 1200
ELO_K_FACTOR = 32
LEADERBOARD_SIZE = 25
MIN_AGENTS = 2
MAX_AGENTS = 10
DEFAULT_AGENTS = 2

SCENARIO_DIRS: tuple[str, ...] = (
    os.path.join("templates", "arena"),
    "/etc/ussycode/templates/arena",
)

_SCENARIO_FILE = "scenario.json"
_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")


@dataclass
class ArenaScenario:
    """A scenario definition read from ``<dir>/<name>/scenario.json``."""

    name: str = ""
    description: str = ""
    duration_minutes: int = 0
    max_agents: int = 0
    ports: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "ArenaScenario":
        """Build a scenario from decoded JSON, checking field types."""
        if not isinstance(data, dict):
            raise ValueError("scenario must be a JSON object")

        def _str(key: str) -> str:
            value = data.get(key, "")
            if value is None:
                return ""
            if not isinstance(value, str):
                raise ValueError(f"field {key!r} must be a string")
            return value

        def _int(key: str) -> int:
            value = data.get(key, 0)
            if value is None:
                return 0
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"field {key!r} must be an integer")
            return value

        ports = data.get("ports") or []
        if not isinstance(ports, list) or any(
            isinstance(p, bool) or not isinstance(p, int) for p in ports
        ):
            raise ValueError("field 'ports' must be a list of integers")

        return cls(
            name=_str("name"),
            description=_str("description"),
            duration_minutes=_int("duration_minutes"),
            max_agents=_int("max_agents"),
            ports=list(ports),
        )


# ── ELO ───────────────────────────────────────────────────────────────

def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def expected_score(rating_a: int, rating_b: int) -> float:
    """Return player A's expected score against player B."""
    return 1.0 / (1.0 + math.pow(10.0, (rating_b - rating_a) / 400.0))


def calculate_elo(rating_a: int, rating_b: int, result: float) -> tuple[int, int]:
    """Return the new ratings of A and B; ``result`` is 1.0 (A wins), 0.0 (B wins) or 0.5."""
    exp_a = expected_score(rating_a, rating_b)
    exp_b = expected_score(rating_b, rating_a)
    new_a = rating_a + ELO_K_FACTOR * (result - exp_a)
    new_b = rating_b + ELO_K_FACTOR * ((1.0 - result) - exp_b)
    return _round_half_away(new_a), _round_half_away(new_b)


def update_elo_after_match(shell: Shell, match_id: str) -> None:
    """Update ratings after a match: the top scorer beats every lower scorer in turn."""
    participants = _guard("list participants", shell.db.list_arena_participants, match_id)
    participants = list(participants)
    if len(participants) < 2:
        return

    winner = participants[0]
    others = participants[1:]

    if all(p.score == winner.score for p in others):
        for p in participants:
            try:
                elo = shell.db.get_arena_elo(p.user_id)
            except Exception as exc:
                log.error("arena: failed to get ELO for user %s: %s", p.user_id, exc)
                continue
            try:
                shell.db.update_arena_elo(p.user_id, elo.rating, elo.wins, elo.losses, elo.draws + 1)
            except Exception as exc:
                log.error("arena: failed to update ELO for user %s: %s", p.user_id, exc)
        return

    winner_elo = _guard("get winner ELO", shell.db.get_arena_elo, winner.user_id)
    rating = winner_elo.rating
    for loser in others:
        if loser.score == winner.score:
            continue
        try:
            loser_elo = shell.db.get_arena_elo(loser.user_id)
        except Exception as exc:
            log.error("arena: failed to get loser ELO for user %s: %s", loser.user_id, exc)
            continue
        new_winner, new_loser = calculate_elo(rating, loser_elo.rating, 1.0)
        try:
            shell.db.update_arena_elo(
                loser.user_id, new_loser, loser_elo.wins, loser_elo.losses + 1, loser_elo.draws
            )
        except Exception as exc:
            log.error("arena: failed to update loser ELO for user %s: %s", loser.user_id, exc)
        rating = new_winner

    _guard(
        "update winner ELO",
        shell.db.update_arena_elo,
        winner.user_id, rating, winner_elo.wins + 1, winner_elo.losses, winner_elo.draws,
    )
    log.info("arena: ELO updated after match %s: winner %s now %d", match_id, winner.user_id, rating)


# ── scenarios ─────────────────────────────────────────────────────────

def generate_match_id() -> str:
    """Return a short random match ID such as ``m-0a1b2c3d4e5f``."""
    return "m-" + secrets.token_hex(6)


def load_arena_scenario(name: str, search_dirs: Optional[Iterable[str]] = None) -> ArenaScenario:
    """Read the named scenario from the first search directory that has it."""
    for directory in SCENARIO_DIRS if search_dirs is None else search_dirs:
        path = Path(directory) / name / _SCENARIO_FILE
        try:
            text = path.read_text(encoding="utf-8")
        except OSError:
            continue
        try:
            return ArenaScenario.from_dict(json.loads(text))
        except ValueError as exc:
            raise ValueError(f"parse scenario {name}: {exc}") from exc
    raise FileNotFoundError(f"scenario {json.dumps(name)} not found")


def list_available_scenarios(search_dirs: Optional[Iterable[str]] = None) -> list:
    """Return the scenario names in the first search directory that holds any."""
    for directory in SCENARIO_DIRS if search_dirs is None else search_dirs:
        base = Path(directory)
        try:
            entries = sorted(base.iterdir(), key=lambda p: p.name)
        except OSError:
            continue
        names = [e.name for e in entries if e.is_dir() and (e / _SCENARIO_FILE).exists()]
        if names:
            return names
    return []


# ── helpers ───────────────────────────────────────────────────────────

_MATCH_COLORS = {"waiting": "33", "running": "32", "completed": "36", "cancelled": "31"}
_PARTICIPANT_COLORS = {
    "joined": "33",
    "ready": "36",
    "playing": "32",
    "finished": "35",
    "disconnected": "31",
}


def _colorize(status: str, colors: dict) -> str:
    code = colors.get(status)
    return status if code is None else f"\033[{code}m{status}\033[0m"


def color_match_status(status: str) -> str:
    """Wrap a match status in its terminal colour."""
    return _colorize(status, _MATCH_COLORS)


def color_participant_status(status: str) -> str:
    """Wrap a participant status in its terminal colour."""
    return _colorize(status, _PARTICIPANT_COLORS)


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _guard(context: str, func: Callable[..., Any], *args: Any) -> Any:
    try:
        return func(*args)
    except CommandError:
        raise
    except Exception as exc:
        raise CommandError(f"{context}: {exc}") from exc


def _when(record: Any) -> str:
    created = getattr(record, "created_at", None)
    return "unknown" if created is None else relative_time(created)


def _iso(value: Any) -> Any:
    return value.isoformat() if hasattr(value, "isoformat") else value


def _match_json(m: Any) -> dict:
    return {
        "match_id": m.match_id,
        "scenario": m.scenario,
        "status": m.status,
        "max_agents": m.max_agents,
        "created_by": getattr(m, "created_by", None),
        "created_at": _iso(getattr(m, "created_at", None)),
    }


def _elo_json(e: Any) -> dict:
    return {
        "user_id": e.user_id,
        "rating": e.rating,
        "wins": e.wins,
        "losses": e.losses,
        "draws": e.draws,
    }


def _handle_of(shell: Shell, user_id: Any) -> str:
    try:
        user = shell.db.user_by_id(user_id)
    except Exception:
        return "unknown"
    return "unknown" if user is None else user.handle


def _lookup_match(shell: Shell, match_id: str) -> Any:
    match = _guard("lookup match", shell.db.get_arena_match, match_id)
    if match is None:
        raise CommandError(f"match {_quote(match_id)} not found")
    return match


# ── command ───────────────────────────────────────────────────────────

def cmd_arena(shell: Shell, args: list) -> None:
    """CTF and agent competitions."""
    if not args:
        _help(shell)
        return
    sub, rest = args[0], args[1:]
    handlers = {
        "create-match": _create_match,
        "join": _join,
        "spectate": _spectate,
        "leaderboard": _leaderboard,
        "list": _list,
        "history": _history,
    }
    if sub == "help":
        _help(shell)
    elif sub in handlers:
        handlers[sub](shell, rest)
    else:
        raise CommandError(f"unknown arena subcommand {_quote(sub)}. try: arena help")


def _help(shell: Shell) -> None:
    shell.writeln("")
    shell.writeln("  \033[1marena\033[0m -- CTF & agent competition")
    shell.writeln("")
    shell.writeln("    arena create-match --agents=<n> --scenario=<name>")
    shell.writeln("                       create a new match")
    shell.writeln("    arena join <match-id>")
    shell.writeln("                       join an existing match")
    shell.writeln("    arena spectate <match-id>")
    shell.writeln("                       watch a match (read-only)")
    shell.writeln("    arena leaderboard  show ELO rankings")
    shell.writeln("    arena list         list active matches")
    shell.writeln("    arena history      show your past match results")
    shell.writeln("")
    shell.writeln("  \033[33mscenarios:\033[0m web-exploit, code-review")
    shell.writeln("")


def _create_match(shell: Shell, args: list) -> None:
    agents = DEFAULT_AGENTS
    scenario = ""
    for arg in args:
        if arg.startswith("--agents="):
            match = _INT_PREFIX.match(arg[len("--agents="):])
            n = int(match.group(1)) if match else 0
            if not MIN_AGENTS <= n <= MAX_AGENTS:
                raise CommandError("--agents must be between 2 and 10")
            agents = n
        elif arg.startswith("--scenario="):
            scenario = arg[len("--scenario="):]

    if not scenario:
        raise CommandError(
            "usage: arena create-match --scenario=<name> [--agents=<n>]\n"
            f"  available scenarios: {', '.join(list_available_scenarios())}"
        )

    try:
        sc = load_arena_scenario(scenario)
    except (OSError, ValueError) as exc:
        raise CommandError(f"load scenario: {exc}") from exc

    if sc.max_agents > 0 and agents > sc.max_agents:
        agents = sc.max_agents

    match_id = generate_match_id()
    log.info("arena: creating match %s (scenario=%s, max_agents=%d, created_by=%s)",
             match_id, scenario, agents, shell.user.handle)

    match = _guard("create match", shell.db.create_arena_match,
                   match_id, scenario, agents, shell.user.id)
    _guard("auto-join match", shell.db.join_arena_match, match_id, shell.user.id)

    shell.writeln("")
    shell.write("  \033[32mmatch created!\033[0m\n")
    shell.writeln("")
    shell.write(f"  match id:  {match.match_id}\n")
    shell.write(f"  scenario:  {sc.name} ({sc.description})\n")
    shell.write(f"  agents:    1/{agents} (waiting for opponents)\n")
    shell.write(f"  duration:  {sc.duration_minutes} min\n")
    shell.writeln("")
    shell.write("  share this to invite others:\n")
    shell.write(f"    arena join {match.match_id}\n")
    shell.writeln("")


def _join(shell: Shell, args: list) -> None:
    if not args:
        raise CommandError("usage: arena join <match-id>")
    match_id = args[0]
    match = _lookup_match(shell, match_id)

    if match.status != "waiting":
        raise CommandError(
            f"match {match_id} is {match.status} (can only join 'waiting' matches)"
        )

    if _guard("check participation", shell.db.is_arena_participant, match_id, shell.user.id):
        raise CommandError(f"you already joined match {match_id}")

    count = _guard("count participants", shell.db.arena_participant_count, match_id)
    if count >= match.max_agents:
        raise CommandError(f"match {match_id} is full ({count}/{match.max_agents} agents)")

    _guard("join match", shell.db.join_arena_match, match_id, shell.user.id)
    log.info("arena: user %s joined match %s", shell.user.handle, match_id)

    count += 1
    shell.writeln("")
    shell.write(f"  \033[32mjoined match {match_id}!\033[0m\n")
    shell.write(f"  scenario:  {match.scenario}\n")
    shell.write(f"  agents:    {count}/{match.max_agents}\n")

    if count >= match.max_agents:
        shell.writeln("  \033[33mmatch is full -- starting soon!\033[0m")
        try:
            shell.db.update_arena_match_status(match_id, "running")
        except Exception as exc:
            log.error("arena: failed to auto-start match %s: %s", match_id, exc)
        else:
            log.info("arena: match %s auto-started (full)", match_id)
    else:
        remaining = match.max_agents - count
        shell.write(f"  waiting for {remaining} more agent{plural(remaining)}...\n")

    shell.writeln("")


def _spectate(shell: Shell, args: list) -> None:
    if not args:
        raise CommandError("usage: arena spectate <match-id>")
    match_id = args[0]
    match = _lookup_match(shell, match_id)
    participants = _guard("list participants", shell.db.list_arena_participants, match_id)

    shell.writeln("")
    shell.write(f"  \033[1m=== SPECTATING: {match_id} ===\033[0m\n")
    shell.writeln("")
    shell.write(f"  scenario: {match.scenario}\n")
    shell.write(f"  status:   {color_match_status(match.status)}\n")
    shell.writeln("")

    if participants:
        shell.write(f"  {'AGENT':<16} {'STATUS':<10} {'SCORE':>6}\n")
        shell.write(f"  {'─────':<16} {'──────':<10} {'─────':>6}\n")
        for p in participants:
            handle = _handle_of(shell, p.user_id)
            shell.write(f"  {handle:<16} {color_participant_status(p.status):<10} {p.score:>6}\n")
    else:
        shell.writeln("  no participants yet.")

    shell.writeln("")
    shell.writeln("  (spectate mode is read-only)")
    shell.writeln("")


_RANK_COLORS = ("\033[33m#1\033[0m", "\033[37m#2\033[0m", "\033[31m#3\033[0m")


def _leaderboard(shell: Shell, args: list) -> None:
    json_out, _ = has_flag(args, "--json")
    entries = _guard("get leaderboard", shell.db.get_arena_leaderboard, LEADERBOARD_SIZE)

    if json_out:
        shell.write_json([_elo_json(e) for e in entries])
        return

    shell.writeln("")
    shell.writeln("  \033[1m=== ARENA LEADERBOARD ===\033[0m")
    shell.writeln("")

    if not entries:
        shell.writeln("  no matches played yet. be the first!")
        shell.writeln("  type 'arena create-match --scenario=web-exploit' to start.")
        shell.writeln("")
        return

    row = "  {:<4}  {:<16}  {:>6}  {:>4}  {:>4}  {:>4}\n"
    shell.write(row.format("RANK", "PLAYER", "ELO", "W", "L", "D"))
    shell.write(row.format("────", "──────", "───", "─", "─", "─"))
    for i, e in enumerate(entries):
        rank = _RANK_COLORS[i] if i < len(_RANK_COLORS) else f"#{i + 1}"
        shell.write(row.format(rank, _handle_of(shell, e.user_id), e.rating, e.wins, e.losses, e.draws))
    shell.writeln("")


def _list(shell: Shell, args: list) -> None:
    json_out, _ = has_flag(args, "--json")
    matches = _guard("list matches", shell.db.list_arena_matches)

    if json_out:
        shell.write_json([_match_json(m) for m in matches])
        return

    shell.writeln("")
    shell.writeln("  \033[1m=== ACTIVE MATCHES ===\033[0m")
    shell.writeln("")

    if not matches:
        shell.writeln("  no active matches. create one:")
        shell.writeln("    arena create-match --scenario=web-exploit")
        shell.writeln("")
        return

    row = "  {:<14}  {:<14}  {:<10}  {:>7}  {}\n"
    shell.write(row.format("MATCH ID", "SCENARIO", "STATUS", "AGENTS", "CREATED"))
    shell.write(row.format("────────", "────────", "──────", "──────", "───────"))
    for m in matches:
        try:
            count = shell.db.arena_participant_count(m.match_id)
        except Exception:
            count = 0
        shell.write(
            f"  {m.match_id:<14}  {m.scenario:<14}  {color_match_status(m.status):<10}  "
            f"{count:>3}/{m.max_agents:<3}  {_when(m)}\n"
        )
    shell.writeln("")


def _history(shell: Shell, args: list) -> None:
    json_out, _ = has_flag(args, "--json")
    matches = _guard("list history", shell.db.list_arena_match_history, shell.user.id)

    if json_out:
        shell.write_json([_match_json(m) for m in matches])
        return

    shell.writeln("")
    shell.writeln("  \033[1m=== MATCH HISTORY ===\033[0m")
    shell.writeln("")

    if not matches:
        shell.writeln("  no match history yet.")
        shell.writeln("")
        return

    row = "  {:<14}  {:<14}  {:<10}  {}\n"
    shell.write(row.format("MATCH ID", "SCENARIO", "RESULT", "PLAYED"))
    shell.write(row.format("────────", "────────", "──────", "──────"))
    for m in matches:
        shell.write(row.format(m.match_id, m.scenario, color_match_status(m.status), _when(m)))
    shell.writeln("")


register_command("arena", cmd_arena)