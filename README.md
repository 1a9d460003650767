# ussycode

The command side of a self-hosted dev-environment gateway: a text shell in
which a user manages lightweight VMs, shares them with other users or by
link, attaches custom domains verified by DNS TXT record, stores SSH and LLM
keys, and takes part in an arena of matches with ELO ratings.

## Modules

- `ussycode.shell` – the `Shell` that commands read from and write to, the
  `User` it acts for, `CommandError`, the command registry
  (`register_command`, `lookup_command`) and helpers: `is_valid_vm_name`,
  `is_valid_domain`, `normalize_share_link_token`, `has_flag`,
  `relative_time`, `color_status`, `random_name`, `generate_link_token`,
  `plural`.
- `ussycode.vmcommands` – `cmd_help`, `cmd_whoami`, `cmd_ls`, `cmd_new`,
  `cmd_start`, `cmd_stop`, `cmd_restart`, `cmd_rm`, `cmd_cp`, `cmd_tag`,
  `cmd_rename`.
- `ussycode.accesscommands` – `cmd_ssh_key`, `cmd_share` (users, links,
  public/private, custom domains), `cmd_llm_key`, `cmd_admin`, and the
  helpers `parse_authorized_key`, `fingerprint_sha256` and
  `is_valid_trust_level`.
- `ussycode.arena` – `cmd_arena`, `ArenaScenario`, `calculate_elo`,
  `expected_score`, `update_elo_after_match`, `load_arena_scenario`,
  `list_available_scenarios`, `generate_match_id`.

Importing a command module registers its commands under their shell names
(`new`, `ls`, `share`, `ssh-key`, `arena`, …), so `Shell.dispatch` can find
them.

## Running a command

```python
import io

import ussycode.vmcommands  # registers help, ls, new, ...
from ussycode.shell import CommandError, Shell, User

out = io.StringIO()
shell = Shell(user=User(id=1, handle="alice"), output=out)
shell.dispatch("help")
print(out.getvalue())

try:
    shell.dispatch("nosuch")
except CommandError as exc:
    print(exc)   # unknown command: nosuch
```

`Shell` takes the services the commands use as plain attributes: `db`,
`vm`, `proxy`, `metadata` and `llm_gateway`, plus `domain` (default
`ussy.host`) and `host_public_key`. Commands call methods on these objects,
such as `shell.db.vm_by_user_and_name(user_id, name)` or
`shell.vm.create_and_start(...)`; where `vm` is `None`, the lifecycle
commands only update the recorded status. Input for prompts (the `rm`
confirmation, `ssh-key add`) comes from the iterable given as `input`;
`Shell.read_line` raises `EOFError` when it runs out.

## Examples

ELO ratings, with a K-factor of 32:

```python
from ussycode.arena import calculate_elo

calculate_elo(1200, 1200, 1.0)   # (1216, 1184)
calculate_elo(1200, 1200, 0.5)   # (1200, 1200)
```

Input checks used by the commands:

```python
from ussycode.shell import is_valid_domain, is_valid_vm_name, normalize_share_link_token

is_valid_vm_name("swift-fox")                 # True
is_valid_vm_name("Fox")                       # False
is_valid_domain("app.example.com")            # True
normalize_share_link_token("https://box.example.com/?ussy_share=abc")   # "abc"
```

Arena scenarios are read from `<dir>/<name>/scenario.json`, searching
`templates/arena` and then `/etc/ussycode/templates/arena` unless other
directories are passed.

## Errors

Commands raise `ussycode.shell.CommandError` with a message meant for the
user. `load_arena_scenario` raises `FileNotFoundError` for an unknown
scenario and `ValueError` for a malformed one.

## What this package does not do

- It has no SSH server, no interactive read-eval loop and no `ssh` command
  that connects into a VM; a caller builds a `Shell` and calls `dispatch`.
- It has no database and no VM, proxy or metadata services of its own; the
  objects set on `Shell` must provide them.
- It has no tutorial, no browser sign-in links and no disk storage backend.

## Tests

The test suite uses pytest and is installed with the `test` extra.