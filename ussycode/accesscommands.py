"""Shell commands for identity and access: SSH keys, sharing, LLM keys and admin."""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import re
import struct
from datetime import datetime
from typing import Any, Callable, Optional

import dns.exception
import dns.resolver
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from .shell import (
    CommandError,
    Shell,
    generate_link_token,
    has_flag,
    is_valid_domain,
    normalize_share_link_token,
    register_command,
    relative_time,
)

__all__ = [
    "parse_authorized_key",
    "fingerprint_sha256",
    "is_valid_trust_level",
    "cmd_ssh_key",
    "cmd_share",
    "cmd_llm_key",
    "cmd_admin",
]

log = logging.getLogger(__name__)

TRUST_LEVELS = ("newbie", "citizen", "operator", "admin")
BYOK_PROVIDERS = ("anthropic", "openai", "fireworks")
VERIFY_PREFIX = "_ussycode-verify."


# ── key parsing ───────────────────────────────────────────────────────

def _read_string(data: bytes, offset: int) -> tuple[bytes, int]:
    if offset + 4 > len(data):
        raise ValueError("short key data")
    (length,) = struct.unpack(">I", data[offset:offset + 4])
    end = offset + 4 + length
    if end > len(data):
        raise ValueError("short key data")
    return data[offset + 4:end], end


def _parse_key_fields(text: str) -> tuple[bytes, str]:
    fields = text.split(None, 2)
    if len(fields) < 2:
        raise ValueError("no key found")
    key_type, encoded = fields[0], fields[1]
    comment = fields[2].strip() if len(fields) > 2 else ""
    try:
        blob = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"illegal base64 data: {exc}") from exc
    algo, _ = _read_string(blob, 0)
    if algo.decode("ascii", "replace") != key_type:
        raise ValueError(f"key type {key_type!r} does not match key data")
    try:
        serialization.load_ssh_public_key(f"{key_type} {encoded}".encode("ascii"))
    except UnsupportedAlgorithm:
        pass
    except ValueError as exc:
        raise ValueError(f"invalid key: {exc}") from exc
    return blob, comment


def _split_options(text: str) -> tuple[str, str]:
    in_quote = False
    escaped = False
    for i, ch in enumerate(text):
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            in_quote = not in_quote
        elif ch in " \t" and not in_quote:
            return text[:i], text[i + 1:].lstrip()
    return text, ""


def parse_authorized_key(line: str) -> tuple[bytes, str]:
    """Parse one authorized_keys line; return the key's wire blob and its comment."""
    text = line.strip()
    if not text or text.startswith("#"):
        raise ValueError("no key found")
    try:
        return _parse_key_fields(text)
    except ValueError as first:
        _, rest = _split_options(text)
        if not rest:
            raise
        try:
            return _parse_key_fields(rest)
        except ValueError:
            raise first from None


def fingerprint_sha256(key_blob: bytes) -> str:
    """Return the OpenSSH SHA256 fingerprint of a key's wire blob."""
    digest = hashlib.sha256(key_blob).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def is_valid_trust_level(level: str) -> bool:
    """Report whether ``level`` is one of the known trust levels."""
    return level in TRUST_LEVELS


# ── helpers ───────────────────────────────────────────────────────────

def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _guard(context: str, func: Callable[..., Any], *args: Any) -> Any:
    try:
        return func(*args)
    except CommandError:
        raise
    except Exception as exc:
        raise CommandError(f"{context}: {exc}") from exc


def _lookup_vm(shell: Shell, name: str) -> Any:
    record = _guard("lookup vm", shell.db.vm_by_user_and_name, shell.user.id, name)
    if record is None:
        raise CommandError(f"no vm named {_quote(name)}")
    return record


def _lookup_user(shell: Shell, handle: str) -> Any:
    user = _guard("lookup user", shell.db.user_by_handle, handle)
    if user is None:
        raise CommandError(f"no user named {_quote(handle)}")
    return user


def _handle_of(shell: Shell, user_id: int) -> Optional[str]:
    try:
        user = shell.db.user_by_id(user_id)
    except Exception:
        return None
    return None if user is None else user.handle


def _rfc3339(when: Optional[datetime]) -> str:
    if when is None:
        return ""
    return when.isoformat(timespec="seconds").replace("+00:00", "Z")


def _share_url(shell: Shell, vm_name: str, token: str) -> str:
    return f"https://{vm_name}.{shell.domain}/?ussy_share={token}"


def _lookup_txt(host: str) -> list:
    answer = dns.resolver.resolve(host, "TXT")
    return [b"".join(rdata.strings).decode("utf-8", "replace") for rdata in answer]


# ── ssh-key ───────────────────────────────────────────────────────────

def cmd_ssh_key(shell: Shell, args: list) -> None:
    """Manage the user's SSH keys."""
    if not args:
        _ssh_key_help(shell)
        return
    sub, rest = args[0], args[1:]
    if sub in ("list", "ls"):
        _ssh_key_list(shell, rest)
    elif sub == "add":
        _ssh_key_add(shell, rest)
    elif sub in ("remove", "rm"):
        _ssh_key_remove(shell, rest)
    elif sub == "help":
        _ssh_key_help(shell)
    else:
        raise CommandError(f"unknown ssh-key subcommand {_quote(sub)}. try: ssh-key help")


def _ssh_key_help(shell: Shell) -> None:
    shell.writeln("")
    shell.writeln("  \033[1mssh-key\033[0m -- manage your SSH keys")
    shell.writeln("")
    shell.writeln("    ssh-key list          list your keys")
    shell.writeln("    ssh-key add           add a new key (paste authorized_keys format)")
    shell.writeln("    ssh-key remove <id>   remove a key by ID")
    shell.writeln("")


def _ssh_key_list(shell: Shell, args: list) -> None:
    json_out, _ = has_flag(args, "--json")
    keys = _guard("list keys", shell.db.ssh_keys_by_user, shell.user.id)

    if json_out:
        out = []
        for k in keys:
            item: dict = {"id": k.id, "fingerprint": k.fingerprint}
            if k.comment:
                item["comment"] = k.comment
            item["created_at"] = _rfc3339(k.created_at)
            out.append(item)
        shell.write_json(out)
        return

    if not keys:
        shell.writeln("  no ssh keys found.")
        return

    shell.writeln("")
    row = "  {:<4}  {:<48}  {:<12}  {}\n"
    shell.write(row.format("ID", "FINGERPRINT", "COMMENT", "ADDED"))
    shell.write(row.format("──", "───────────", "───────", "─────"))
    for k in keys:
        shell.write(row.format(k.id, k.fingerprint, k.comment, relative_time(k.created_at)))
    shell.writeln("")


def _ssh_key_add(shell: Shell, args: list) -> None:
    shell.writeln("  paste your public key (authorized_keys format):")
    shell.writeln("  (e.g. ssh-ed25519 AAAA... comment)")
    shell.writeln("")

    try:
        line = shell.read_line()
    except EOFError as exc:
        raise CommandError(f"read key: {exc}") from exc

    line = line.strip()
    if not line:
        raise CommandError("no key provided")

    try:
        blob, comment = parse_authorized_key(line)
    except ValueError as exc:
        raise CommandError(f"invalid key format: {exc}") from exc

    fingerprint = fingerprint_sha256(blob)

    existing = _guard("check existing", shell.db.ssh_keys_by_user, shell.user.id)
    if any(k.fingerprint == fingerprint for k in existing):
        raise CommandError(f"key already registered (fingerprint: {fingerprint})")

    key = _guard("add key", shell.db.add_ssh_key, shell.user.id, line, fingerprint, comment)

    shell.writeln("")
    shell.write(f"  key added (id={key.id}, fingerprint={key.fingerprint})\n")
    shell.writeln("  you can now authenticate with this key.")
    shell.writeln("")


_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")


def _ssh_key_remove(shell: Shell, args: list) -> None:
    if not args:
        raise CommandError("usage: ssh-key remove <id>")
    match = _INT_PREFIX.match(args[0])
    if match is None:
        raise CommandError(f"invalid key ID {_quote(args[0])}")
    key_id = int(match.group(1))

    keys = _guard("list keys", shell.db.ssh_keys_by_user, shell.user.id)
    if not any(k.id == key_id for k in keys):
        raise CommandError(f"key {key_id} not found")

    count = _guard("count keys", shell.db.ssh_key_count_by_user, shell.user.id)
    if count <= 1:
        raise CommandError("can't remove your last SSH key (you'd be locked out)")

    _guard("delete key", shell.db.delete_ssh_key, key_id)
    shell.write(f"  removed key {key_id}.\n")


# ── share ─────────────────────────────────────────────────────────────

def cmd_share(shell: Shell, args: list) -> None:
    """Share access to the user's environments."""
    if not args:
        _share_help(shell)
        return
    sub, rest = args[0], args[1:]
    if sub == "add":
        _share_add(shell, rest)
    elif sub in ("remove", "rm"):
        _share_remove(shell, rest)
    elif sub == "add-link":
        _share_add_link(shell, rest)
    elif sub == "remove-link":
        _share_remove_link(shell, rest)
    elif sub == "set-public":
        _share_set_public(shell, rest, True)
    elif sub == "set-private":
        _share_set_public(shell, rest, False)
    elif sub in ("show", "list", "ls"):
        _share_list(shell, rest)
    elif sub == "cname":
        _share_cname(shell, rest)
    elif sub == "cname-verify":
        _share_cname_verify(shell, rest)
    elif sub == "cname-rm":
        _share_cname_rm(shell, rest)
    elif sub == "help":
        _share_help(shell)
    else:
        raise CommandError(f"unknown share subcommand {_quote(sub)}. try: share help")


def _share_help(shell: Shell) -> None:
    shell.writeln("")
    shell.writeln("  \033[1mshare\033[0m -- share access to your environments")
    shell.writeln("")
    shell.writeln("    share add <vm> <handle>      share with a user by handle")
    shell.writeln("    share remove <vm> <handle>   revoke a user's access")
    shell.writeln("    share add-link <vm>          create a shareable link")
    shell.writeln("    share remove-link <vm> <token-or-url>  revoke a share link")
    shell.writeln("    share set-public <vm>        make HTTPS endpoint public")
    shell.writeln("    share set-private <vm>       make HTTPS endpoint private")
    shell.writeln("    share show <vm>              show share state for a VM")
    shell.writeln("")
    shell.writeln("  \033[1mcustom domains\033[0m")
    shell.writeln("    share cname <vm> <domain>         add a custom domain")
    shell.writeln("    share cname-verify <vm> <domain>  verify DNS ownership")
    shell.writeln("    share cname-rm <vm> <domain>      remove a custom domain")
    shell.writeln("")


def _share_add(shell: Shell, args: list) -> None:
    if len(args) < 2:
        raise CommandError("usage: share add <vm> <handle>")
    vm_name, handle = args[0], args[1]
    record = _lookup_vm(shell, vm_name)
    target = _lookup_user(shell, handle)
    if target.id == shell.user.id:
        raise CommandError("you already own this VM")
    _guard("share", shell.db.share_vm_with_user, record.id, target.id)
    shell.write(f"  shared {vm_name} with {handle}\n")


def _share_remove(shell: Shell, args: list) -> None:
    if len(args) < 2:
        raise CommandError("usage: share remove <vm> <handle>")
    vm_name, handle = args[0], args[1]
    record = _lookup_vm(shell, vm_name)
    target = _lookup_user(shell, handle)
    _guard("remove share", shell.db.remove_share_by_vm_and_user, record.id, target.id)
    shell.write(f"  removed {handle}'s access to {vm_name}\n")


def _share_add_link(shell: Shell, args: list) -> None:
    if not args:
        raise CommandError("usage: share add-link <vm>")
    vm_name = args[0]
    record = _lookup_vm(shell, vm_name)
    token = _guard("generate token", generate_link_token)
    _guard("create link share", shell.db.share_vm_with_link, record.id, token)

    shell.writeln("")
    shell.write(f"  {_share_url(shell, vm_name, token)}\n")
    shell.writeln("")
    shell.writeln("  opening the link redeems a share cookie for this VM.")
    shell.writeln("")


def _share_remove_link(shell: Shell, args: list) -> None:
    if len(args) < 2:
        raise CommandError("usage: share remove-link <vm> <token-or-url>")
    vm_name = args[0]
    token = normalize_share_link_token(args[1])
    if not token:
        raise CommandError("invalid share link token")
    record = _lookup_vm(shell, vm_name)
    _guard("remove share link", shell.db.remove_share_link, record.id, token)
    shell.write(f"  removed share link for {vm_name}\n")


def _share_set_public(shell: Shell, args: list, public: bool) -> None:
    if not args:
        which = "set-public" if public else "set-private"
        raise CommandError(f"usage: share {which} <vm>")
    vm_name = args[0]
    record = _lookup_vm(shell, vm_name)
    _guard("set public", shell.db.set_vm_public, record.id, public)
    if public:
        shell.write(f"  {vm_name} is now public at https://{vm_name}.{shell.domain}/\n")
    else:
        shell.write(f"  {vm_name} is now private.\n")


def _share_list(shell: Shell, args: list) -> None:
    if not args:
        raise CommandError("usage: share list <vm>")
    vm_name = args[0]
    json_out, _ = has_flag(args[1:], "--json")

    record = _lookup_vm(shell, vm_name)
    shares = _guard("list shares", shell.db.shares_by_vm, record.id)
    try:
        is_public = bool(shell.db.is_vm_public(record.id))
    except Exception:
        is_public = False

    if json_out:
        out_shares = []
        for sh in shares:
            item: dict = {"id": sh.id, "type": ""}
            if sh.shared_with is not None:
                item["type"] = "user"
                handle = _handle_of(shell, sh.shared_with)
                if handle:
                    item["target"] = handle
            elif sh.link_token is not None:
                item["type"] = "link"
                item["link"] = _share_url(shell, vm_name, sh.link_token)
            elif sh.is_public:
                item["type"] = "public"
            item["created_at"] = _rfc3339(sh.created_at)
            out_shares.append(item)
        shell.write_json({"vm": vm_name, "is_public": is_public, "shares": out_shares})
        return

    shell.writeln("")
    if is_public:
        shell.write(f"  {vm_name} is \033[32mpublic\033[0m\n")
    else:
        shell.write(f"  {vm_name} is \033[33mprivate\033[0m\n")

    if not shares:
        shell.writeln("  no shares.")
    else:
        shell.writeln("")
        for sh in shares:
            since = relative_time(sh.created_at)
            if sh.shared_with is not None:
                handle = _handle_of(shell, sh.shared_with)
                if handle is not None:
                    shell.write(f"  [user]  {handle}  (since {since})\n")
            elif sh.link_token is not None:
                shell.write(f"  [link]  {_share_url(shell, vm_name, sh.link_token)}  (since {since})\n")
    shell.writeln("")


# ── share cname ───────────────────────────────────────────────────────

def _share_cname(shell: Shell, args: list) -> None:
    if len(args) < 2:
        raise CommandError("usage: share cname <vm> <domain>")
    vm_name = args[0]
    domain = args[1].strip().lower()
    if not is_valid_domain(domain):
        raise CommandError(f"invalid domain {_quote(domain)}")

    record = _lookup_vm(shell, vm_name)

    try:
        existing = shell.db.get_custom_domain(domain)
    except Exception:
        existing = None
    if existing is not None:
        if existing.vm_id != record.id:
            raise CommandError(f"domain {domain} is already registered to another VM")
        if existing.verified:
            raise CommandError(f"domain {domain} is already verified for {vm_name}")
        shell.writeln("")
        shell.write(f"  domain {domain} is already pending verification for {vm_name}.\n")
        shell.writeln("  add this DNS TXT record to verify:")
        shell.writeln("")
        shell.write(f"    {VERIFY_PREFIX}{domain}  TXT  {existing.verification_token or ''}\n")
        shell.writeln("")
        shell.writeln(f"  then run: share cname-verify {vm_name} {domain}")
        shell.writeln("")
        return

    token = _guard("generate verification token", generate_link_token)
    _guard("create custom domain", shell.db.create_custom_domain, record.id, domain, token)

    shell.writeln("")
    shell.write(f"  custom domain {domain} added for {vm_name}.\n")
    shell.writeln("")
    shell.writeln("  to verify ownership, add this DNS TXT record:")
    shell.writeln("")
    shell.write(f"    {VERIFY_PREFIX}{domain}  TXT  {token}\n")
    shell.writeln("")
    shell.writeln("  also add a CNAME record pointing to your VM:")
    shell.writeln("")
    shell.write(f"    {domain}  CNAME  {vm_name}.{shell.domain}\n")
    shell.writeln("")
    shell.write(f"  then run: share cname-verify {vm_name} {domain}\n")
    shell.writeln("")


def _share_cname_verify(shell: Shell, args: list) -> None:
    if len(args) < 2:
        raise CommandError("usage: share cname-verify <vm> <domain>")
    vm_name = args[0]
    domain = args[1].strip().lower()

    record = _lookup_vm(shell, vm_name)
    cd = _guard("lookup custom domain", shell.db.get_custom_domain, domain)
    if cd is None:
        raise CommandError(
            f"no custom domain {_quote(domain)} found. "
            f"add it with: share cname {vm_name} {domain}"
        )
    if cd.vm_id != record.id:
        raise CommandError(f"domain {domain} is not associated with {vm_name}")
    if cd.verified:
        shell.write(f"  domain {domain} is already verified.\n")
        return

    verify_host = VERIFY_PREFIX + domain
    expected = cd.verification_token or ""

    shell.write(f"  checking DNS TXT record at {verify_host}...\n")

    try:
        records = _lookup_txt(verify_host)
    except dns.exception.DNSException as exc:
        raise CommandError(
            f"DNS lookup failed for {verify_host}: {exc}\n"
            "  make sure you added the TXT record and DNS has propagated"
        ) from exc

    if not any(txt.strip() == expected for txt in records):
        shell.writeln("")
        shell.write(f"  verification failed: no matching TXT record found at {verify_host}\n")
        shell.writeln("")
        shell.writeln("  expected TXT value:")
        shell.write(f"    {expected}\n")
        shell.writeln("")
        shell.writeln("  found:")
        for txt in records:
            shell.write(f"    {txt}\n")
        if not records:
            shell.writeln("    (none)")
        shell.writeln("")
        shell.writeln("  DNS changes can take up to 48 hours to propagate. try again later.")
        shell.writeln("")
        return

    _guard("verify custom domain", shell.db.verify_custom_domain, domain)

    if shell.proxy is not None and record.status == "running":
        try:
            shell.proxy.add_custom_domain(domain, vm_name)
        except Exception as exc:
            log.warning("failed to add custom domain proxy route %s -> %s: %s", domain, vm_name, exc)
            shell.write(
                "  warning: proxy route creation failed "
                "(domain verified but routing may not work yet)\n"
            )

    shell.writeln("")
    shell.write(f"  domain {domain} verified and active for {vm_name}!\n")
    shell.write(f"  https://{domain} is now live.\n")
    shell.writeln("")


def _share_cname_rm(shell: Shell, args: list) -> None:
    if len(args) < 2:
        raise CommandError("usage: share cname-rm <vm> <domain>")
    vm_name = args[0]
    domain = args[1].strip().lower()

    record = _lookup_vm(shell, vm_name)
    cd = _guard("lookup custom domain", shell.db.get_custom_domain, domain)
    if cd is None:
        raise CommandError(f"no custom domain {_quote(domain)} found for {vm_name}")
    if cd.vm_id != record.id:
        raise CommandError(f"domain {domain} is not associated with {vm_name}")

    if cd.verified and shell.proxy is not None:
        try:
            shell.proxy.remove_custom_domain(domain)
        except Exception as exc:
            log.warning("failed to remove custom domain proxy route %s: %s", domain, exc)

    _guard("delete custom domain", shell.db.delete_custom_domain, domain)
    shell.write(f"  removed custom domain {domain} from {vm_name}.\n")


# ── llm-key ───────────────────────────────────────────────────────────

def cmd_llm_key(shell: Shell, args: list) -> None:
    """Manage the user's LLM provider API keys."""
    if not args:
        _llm_key_help(shell)
        return
    sub, rest = args[0], args[1:]
    if sub == "set":
        _llm_key_set(shell, rest)
    elif sub in ("list", "ls"):
        _llm_key_list(shell, rest)
    elif sub in ("remove", "rm"):
        _llm_key_remove(shell, rest)
    elif sub == "help":
        _llm_key_help(shell)
    else:
        raise CommandError(f"unknown llm-key subcommand {_quote(sub)}. try: llm-key help")


def _llm_key_help(shell: Shell) -> None:
    shell.writeln("")
    shell.writeln("  \033[1mllm-key\033[0m -- manage your LLM API keys")
    shell.writeln("")
    shell.writeln("    llm-key set <provider> <key>   store an API key")
    shell.writeln("    llm-key list                   show configured providers")
    shell.writeln("    llm-key rm <provider>          remove an API key")
    shell.writeln("")
    shell.writeln("  supported providers: anthropic, openai, fireworks")
    shell.writeln("  self-hosted (ollama, vllm) don't need keys.")
    shell.writeln("")


def _llm_key_set(shell: Shell, args: list) -> None:
    if len(args) < 2:
        raise CommandError("usage: llm-key set <provider> <key>")
    provider = args[0].lower()
    api_key = args[1]
    if provider not in BYOK_PROVIDERS:
        raise CommandError(
            f"unknown BYOK provider {_quote(provider)}. Supported: anthropic, openai, fireworks"
        )
    if not api_key:
        raise CommandError("API key must not be empty")
    if shell.llm_gateway is None:
        raise CommandError("LLM gateway not configured on this server")

    _guard("store key", shell.llm_gateway.set_user_key, shell.user.id, provider, api_key)
    shell.write(f"  API key for {provider} stored successfully.\n")
    shell.write(f"  Your VMs can now use /gateway/llm/{provider}\n")


def _llm_key_list(shell: Shell, args: list) -> None:
    providers = _guard("list keys", shell.db.llm_key_providers_by_user, shell.user.id)
    if not providers:
        shell.writeln("  no LLM API keys configured.")
        shell.writeln("  use 'llm-key set <provider> <key>' to add one.")
        return

    shell.writeln("")
    shell.writeln("  configured LLM providers:")
    shell.writeln("")
    for provider in providers:
        shell.write(f"    - {provider}\n")
    shell.writeln("")
    shell.writeln("  (keys are stored encrypted; use 'llm-key rm <provider>' to remove)")
    shell.writeln("")


def _llm_key_remove(shell: Shell, args: list) -> None:
    if not args:
        raise CommandError("usage: llm-key rm <provider>")
    provider = args[0].lower()
    _guard("remove key", shell.db.delete_llm_key, shell.user.id, provider)
    shell.write(f"  removed API key for {provider}.\n")


# ── admin ─────────────────────────────────────────────────────────────

def cmd_admin(shell: Shell, args: list) -> None:
    """Admin-only commands."""
    if shell.user.trust_level != "admin":
        raise CommandError("permission denied: admin commands require admin trust level")
    if not args:
        _admin_help(shell)
        return
    sub, rest = args[0], args[1:]
    if sub == "set-trust":
        _admin_set_trust(shell, rest)
    elif sub == "help":
        _admin_help(shell)
    else:
        raise CommandError(f"unknown admin subcommand {_quote(sub)}. try: admin help")


def _admin_help(shell: Shell) -> None:
    shell.writeln("")
    shell.writeln("  \033[1madmin\033[0m -- admin-only commands")
    shell.writeln("")
    shell.writeln("    admin set-trust <handle> <level>   set user trust level")
    shell.writeln("")
    shell.writeln("  trust levels: newbie, citizen, operator, admin")
    shell.writeln("")


def _admin_set_trust(shell: Shell, args: list) -> None:
    if len(args) < 2:
        raise CommandError("usage: admin set-trust <handle> <level>")
    handle = args[0]
    level = args[1].lower()
    if not is_valid_trust_level(level):
        raise CommandError(
            f"invalid trust level {_quote(level)}. valid levels: newbie, citizen, operator, admin"
        )
    target = _lookup_user(shell, handle)
    old_level = target.trust_level
    _guard("set trust level", shell.db.set_user_trust_level, target.id, level)
    shell.write(f"  {handle}: {old_level} -> {level}\n")


for _name, _handler in (
    ("ssh-key", cmd_ssh_key),
    ("share", cmd_share),
    ("llm-key", cmd_llm_key),
    ("admin", cmd_admin),
):
    register_command(_name, _handler)