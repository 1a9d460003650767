"""Core of the interactive command shell: I/O, the command registry and helpers."""

from __future__ import annotations

import dataclasses
import json
import random
import re
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable, Iterator, Optional, TextIO

__all__ = [
    "CommandError",
    "User",
    "Shell",
    "register_command",
    "lookup_command",
    "is_valid_domain",
    "is_valid_vm_name",
    "normalize_share_link_token",
    "has_flag",
    "relative_time",
    "color_status",
    "random_name",
    "generate_link_token",
    "plural",
]


class CommandError(Exception):
    """Raised by a command handler when the command cannot be carried out."""


@dataclass
class User:
    """An authenticated account using the shell."""

    id: int
    handle: str
    trust_level: str = "newbie"
    created_at: Optional[datetime] = None


CommandHandler = Callable[["Shell", list], None]

_COMMANDS: dict[str, CommandHandler] = {}


def register_command(name: str, handler: CommandHandler) -> None:
    """Add or replace the handler for a command name."""
    _COMMANDS[name] = handler


def lookup_command(name: str) -> Optional[CommandHandler]:
    """Return the handler registered for ``name``, or None."""
    return _COMMANDS.get(name)


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


@dataclass
class Shell:
    """A user's session: where output goes, where input comes from, and the services behind it."""

    user: User
    output: TextIO
    input: Optional[Iterable[str]] = None
    db: Any = None
    vm: Any = None
    proxy: Any = None
    metadata: Any = None
    llm_gateway: Any = None
    domain: str = "ussy.host"
    host_key_path: str = ""
    host_public_key: str = ""
    fingerprint: str = ""
    _lines: Optional[Iterator[str]] = field(default=None, init=False, repr=False)

    def write(self, text: str) -> None:
        """Write text to the session without a trailing newline."""
        self.output.write(text)

    def writeln(self, msg: str) -> None:
        """Write a line to the session."""
        self.output.write(msg + "\n")

    def write_json(self, value: Any) -> None:
        """Write ``value`` as indented JSON."""
        self.writeln(json.dumps(value, indent=2, default=_json_default))

    def read_line(self) -> str:
        """Read one line of input; raises EOFError when input is exhausted."""
        if self.input is None:
            raise EOFError("no input")
        if self._lines is None:
            self._lines = iter(self.input)
        try:
            line = next(self._lines)
        except StopIteration:
            raise EOFError("end of input") from None
        return line.rstrip("\r\n")

    def dispatch(self, line: str) -> None:
        """Parse a command line and run its handler."""
        parts = line.split()
        if not parts:
            return
        name, args = parts[0], parts[1:]
        handler = lookup_command(name)
        if handler is None:
            raise CommandError(f"unknown command: {name}")
        handler(self, args)


_VALID_NAME = re.compile(r"[a-z][a-z0-9-]{1,28}[a-z0-9]")
_LABEL_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789-")


def is_valid_vm_name(name: str) -> bool:
    """Names are 3-30 chars of lowercase letters, digits and hyphens, starting with a letter."""
    return _VALID_NAME.fullmatch(name) is not None


def is_valid_domain(domain: str) -> bool:
    """Basic validation of a custom domain name."""
    if not 3 <= len(domain) <= 253:
        return False
    if "." not in domain:
        return False
    if domain.startswith((".", "-")) or domain.endswith((".", "-")):
        return False
    return all(
        0 < len(label) <= 63 and set(label) <= _LABEL_CHARS
        for label in domain.split(".")
    )


def normalize_share_link_token(value: str) -> str:
    """Extract a share-link token from a bare token or a full share URL."""
    value = value.strip()
    if not value:
        return ""
    marker = "ussy_share="
    idx = value.find(marker)
    if idx >= 0:
        return value[idx + len(marker):].strip()
    idx = value.rfind("/")
    if 0 <= idx < len(value) - 1 and "://" in value:
        return value[idx + 1:].strip()
    return value


def has_flag(args: list, *flags: str) -> tuple[bool, list]:
    """Report whether any of ``flags`` is in ``args`` and return the args without them."""
    filtered = [a for a in args if a not in flags]
    return len(filtered) != len(args), filtered


def relative_time(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Describe how long ago ``when`` was, in the shell's short style."""
    if when is None:
        return "unknown"
    if now is None:
        now = datetime.now(when.tzinfo)
    delta = now - when
    if delta < timedelta(minutes=1):
        return "just now"
    if delta < timedelta(hours=1):
        return f"{int(delta.total_seconds() // 60)}m ago"
    if delta < timedelta(hours=24):
        return f"{int(delta.total_seconds() // 3600)}h ago"
    if delta < timedelta(days=30):
        return f"{int(delta.total_seconds() // 86400)}d ago"
    return f"{when:%b} {when.day}"


_STATUS_COLORS = {
    "running": "\033[32m",
    "stopped": "\033[33m",
    "creating": "\033[36m",
    "error": "\033[31m",
}


def color_status(status: str) -> str:
    """Wrap a VM status in its terminal colour."""
    color = _STATUS_COLORS.get(status)
    return f"{color}{status}\033[0m" if color else status


ADJECTIVES = (
    "swift", "bold", "calm", "dark", "eager",
    "fair", "glad", "keen", "live", "mild",
    "neat", "pale", "rare", "safe", "vast",
    "warm", "wise", "cool", "free", "pure",
)

NOUNS = (
    "fox", "owl", "bee", "elk", "jay",
    "ant", "bat", "cat", "dog", "emu",
    "gnu", "hen", "ape", "yak", "ram",
    "cod", "doe", "ewe", "kit", "pup",
)


def random_name(rng: Optional[random.Random] = None) -> str:
    """Pick an adjective-noun name for a new environment."""
    chooser = rng if rng is not None else random
    return f"{chooser.choice(ADJECTIVES)}-{chooser.choice(NOUNS)}"


def generate_link_token() -> str:
    """Return a random URL-safe token from 18 random bytes."""
    return secrets.token_urlsafe(18)


def plural(n: int) -> str:
    """Return the plural suffix for a count."""
    return "" if n == 1 else "s"