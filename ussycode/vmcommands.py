"""Shell commands that manage the lifecycle of a user's environments."""

from __future__ import annotations

import contextlib
import json
import logging
from typing import Any, Callable, Optional

from .shell import (
    CommandError,
    Shell,
    color_status,
    is_valid_vm_name,
    register_command,
    relative_time,
)

__all__ = [
    "cmd_help",
    "cmd_whoami",
    "cmd_ls",
    "cmd_new",
    "cmd_start",
    "cmd_stop",
    "cmd_restart",
    "cmd_rm",
    "cmd_cp",
    "cmd_tag",
    "cmd_rename",
]

log = logging.getLogger(__name__)

DEFAULT_IMAGE = "ussyuntu"
DEFAULT_VCPU = 2
DEFAULT_MEMORY_MB = 2048
MIN_MEMORY_MB = 512
DEFAULT_DISK_GB = 5
VM_HTTP_PORT = 8080
VM_GATEWAY = "10.0.0.1"

_INVALID_NAME = (
    "invalid name {}: must be 3-30 chars, lowercase letters/numbers/hyphens, start with letter"
)


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _guard(context: str, func: Callable[..., Any], *args: Any) -> Any:
    """Call ``func`` and turn any failure into a CommandError prefixed with ``context``."""
    try:
        return func(*args)
    except CommandError:
        raise
    except Exception as exc:
        raise CommandError(f"{context}: {exc}") from exc


def _lookup_vm(shell: Shell, name: str, context: str = "lookup") -> Any:
    record = _guard(context, shell.db.vm_by_user_and_name, shell.user.id, name)
    if record is None:
        raise CommandError(f"no vm named {_quote(name)}")
    return record


def _ensure_name_free(shell: Shell, name: str) -> None:
    existing = _guard("check existing", shell.db.vm_by_user_and_name, shell.user.id, name)
    if existing is not None:
        raise CommandError(f"vm {_quote(name)} already exists")


def _enforce_quota(shell: Shell) -> Any:
    count = _guard("check vm count", shell.db.user_vm_count, shell.user.id)
    limits = shell.db.trust_limits(shell.user.trust_level)
    if limits.vm_limit >= 0 and count >= limits.vm_limit:
        raise CommandError(
            f"VM limit reached ({count}/{limits.vm_limit}). "
            "Upgrade trust level or remove a VM."
        )
    return limits


def _set_status(shell: Shell, vm_id: int, status: str) -> None:
    with contextlib.suppress(Exception):
        shell.db.update_vm_status(vm_id, status)


def _vm_ssh_keys(shell: Shell) -> list:
    keys: list = []
    with contextlib.suppress(Exception):
        keys.extend(k.public_key for k in shell.db.ssh_keys_by_user(shell.user.id))
    host_key = shell.host_public_key.strip()
    if host_key:
        keys.append(host_key)
    return keys


def _vm_ip(shell: Shell, vm_id: int) -> Optional[str]:
    try:
        records = shell.db.vms_by_user(shell.user.id)
    except Exception:
        return None
    for record in records:
        if record.id == vm_id and record.ip_address:
            return record.ip_address
    return None


def _register_metadata(shell: Shell, vm_id: int, vm_name: str, image: str) -> None:
    if shell.metadata is None:
        return
    ip = _vm_ip(shell, vm_id)
    if ip is None:
        return
    env_vars = {"USSYCODE_VM_NAME": vm_name}
    if shell.domain:
        env_vars["USSYCODE_PUBLIC_DOMAIN"] = shell.domain
    shell.metadata.register_vm(
        ip,
        {
            "instance_id": f"vm-{vm_id}",
            "local_ipv4": ip,
            "hostname": vm_name,
            "user_id": shell.user.id,
            "user_handle": shell.user.handle,
            "vm_name": vm_name,
            "image": image,
            "ssh_keys": _vm_ssh_keys(shell),
            "gateway": VM_GATEWAY,
            "env_vars": env_vars,
        },
    )


def _unregister_metadata(shell: Shell, vm_id: int) -> None:
    if shell.metadata is None:
        return
    ip = _vm_ip(shell, vm_id)
    if ip is not None:
        shell.metadata.unregister_vm(ip)


def _add_proxy_route(shell: Shell, vm_id: int, vm_name: str) -> None:
    if shell.proxy is None:
        return
    ip = _vm_ip(shell, vm_id)
    if ip is None:
        return
    try:
        shell.proxy.add_route(vm_name, ip, VM_HTTP_PORT)
    except Exception as exc:
        log.warning("failed to add proxy route for %s: %s", vm_name, exc)


def _remove_proxy_route(shell: Shell, vm_name: str) -> None:
    if shell.proxy is None:
        return
    try:
        shell.proxy.remove_route(vm_name)
    except Exception as exc:
        log.warning("failed to remove proxy route for %s: %s", vm_name, exc)


def _format_date(when: Any) -> str:
    if when is None:
        return "unknown"
    return f"{when:%b} {when.day}, {when.year}"


# ── help ──────────────────────────────────────────────────────────────

_HELP_SECTIONS = [
    ("BASICS", [
        "help          show this help",
        "whoami        show your info",
        "exit          disconnect",
    ]),
    ("VM LIFECYCLE", [
        "new           create a new dev environment",
        "ls            list your environments",
        "rm <name>     delete an environment",
        "start <name>  start a stopped environment",
        "stop <name>   stop a running environment",
        "restart <name> restart an environment",
        "rename <old> <new>  rename an environment",
        "cp <name> [new]     clone an environment",
        "tag <name> <tag>    add a tag",
        "tag -d <name> <tag> remove a tag",
    ]),
    ("ACCESS", [
        "ssh <name>    connect to an environment",
        "share         share access with others",
        "browser       open web dashboard (magic link)",
    ]),
    ("IDENTITY", [
        "ssh-key       manage your SSH keys",
        "llm-key       manage LLM API keys",
    ]),
    ("ARENA", ["arena         CTF & agent competition"]),
    ("USSYVERSE", ["community     ussyverse info, links & your stats"]),
    ("LEARN", ["tutorial      interactive tutorial (10 lessons)"]),
]


def _help_section(shell: Shell, title: str, lines: list) -> None:
    shell.writeln(f"  \033[33m{title}\033[0m")
    for line in lines:
        shell.writeln(f"    {line}")
    shell.writeln("")


def cmd_help(shell: Shell, args: list) -> None:
    """Show the list of commands."""
    shell.writeln("")
    shell.writeln("  \033[1m=== USSYCODE COMMANDS ===\033[0m")
    shell.writeln("")
    for title, lines in _HELP_SECTIONS:
        _help_section(shell, title, lines)
    if shell.user.trust_level == "admin":
        _help_section(shell, "ADMIN", ["admin         admin-only commands"])
    _help_section(shell, "OPTIONS", [
        "new --name=<n> --image=<img>",
        "ls -l         long format",
        "--json        machine-readable output (on most commands)",
    ])


# ── whoami ────────────────────────────────────────────────────────────

def cmd_whoami(shell: Shell, args: list) -> None:
    """Show the user's handle, trust level, key fingerprint and VM count."""
    fingerprint = ""
    vm_count = 0
    with contextlib.suppress(Exception):
        fingerprint = shell.db.fingerprint_by_user(shell.user.id) or ""
    with contextlib.suppress(Exception):
        vm_count = shell.db.vm_count_by_user(shell.user.id) or 0

    shell.writeln("")
    shell.write(f"  handle:      {shell.user.handle}\n")
    shell.write(f"  trust level: {shell.user.trust_level}\n")
    shell.write(f"  fingerprint: {fingerprint}\n")
    shell.write(f"  vms:         {vm_count}\n")
    shell.write(f"  member since: {_format_date(shell.user.created_at)}\n")
    shell.writeln("")


# ── ls ────────────────────────────────────────────────────────────────

def cmd_ls(shell: Shell, args: list) -> None:
    """List the user's environments."""
    vms = _guard("list vms", shell.db.vms_by_user, shell.user.id)
    if not vms:
        shell.writeln("  no environments yet. type 'new' to create one.")
        return

    long_format = any(a in ("-l", "--long") for a in args)

    shell.writeln("")
    if long_format:
        header = "  {:<16} {:<10} {:<14} {:>4} {:>6} {:>5}  {}\n"
        shell.write(header.format("NAME", "STATUS", "IMAGE", "CPU", "MEM", "DISK", "CREATED"))
        shell.write(header.format("────", "──────", "─────", "───", "───", "────", "───────"))
        for v in vms:
            shell.write(
                f"  {v.name:<16} {color_status(v.status):<10} {v.image:<14} "
                f"{v.vcpu:>4} {v.memory_mb:>4}MB {v.disk_gb:>3}GB  {relative_time(v.created_at)}\n"
            )
    else:
        header = "  {:<16} {:<10} {:<14} {}\n"
        shell.write(header.format("NAME", "STATUS", "IMAGE", "CREATED"))
        shell.write(header.format("────", "──────", "─────", "───────"))
        for v in vms:
            shell.write(
                f"  {v.name:<16} {color_status(v.status):<10} {v.image:<14} "
                f"{relative_time(v.created_at)}\n"
            )
    shell.writeln("")


# ── new ───────────────────────────────────────────────────────────────

def cmd_new(shell: Shell, args: list) -> None:
    """Create and start a new environment."""
    from .shell import random_name

    name = ""
    image = DEFAULT_IMAGE
    for arg in args:
        if arg.startswith("--name="):
            name = arg[len("--name="):]
        elif arg.startswith("--image="):
            image = arg[len("--image="):]

    if not name:
        name = random_name()
    name = name.lower()
    if not is_valid_vm_name(name):
        raise CommandError(_INVALID_NAME.format(_quote(name)))

    _ensure_name_free(shell, name)
    limits = _enforce_quota(shell)

    vcpu = DEFAULT_VCPU
    memory_mb = DEFAULT_MEMORY_MB
    if limits.cpu_limit > 0 and vcpu > limits.cpu_limit:
        vcpu = limits.cpu_limit
    if limits.ram_limit > 0 and memory_mb > limits.ram_limit:
        memory_mb = limits.ram_limit
    memory_mb = max(memory_mb, MIN_MEMORY_MB)

    record = _guard(
        "create vm", shell.db.create_vm,
        shell.user.id, name, image, vcpu, memory_mb, DEFAULT_DISK_GB,
    )

    shell.write(f"  creating {name}...")

    if shell.vm is not None:
        try:
            shell.vm.create_and_start(record.id, name, image, vcpu, memory_mb, _vm_ssh_keys(shell))
        except Exception as exc:
            shell.write(" failed!\n")
            raise CommandError(f"provision vm: {exc}") from exc
        _register_metadata(shell, record.id, name, image)
        _add_proxy_route(shell, record.id, name)
    else:
        _set_status(shell, record.id, "stopped")

    shell.writeln(" done!")
    shell.writeln("")
    shell.write(f"  name:  {record.name}\n")
    shell.write(f"  image: {record.image}\n")
    shell.write(f"  url:   https://{record.name}.{shell.domain}\n")
    shell.write(f"  ssh:   ssh {record.name} (from this shell)\n")
    shell.writeln("")


# ── stop ──────────────────────────────────────────────────────────────

def cmd_stop(shell: Shell, args: list) -> None:
    """Stop a running environment."""
    if not args:
        raise CommandError("usage: stop <name>")
    name = args[0]
    record = _lookup_vm(shell, name)
    if record.status != "running":
        raise CommandError(f"vm {_quote(name)} is already {record.status}")

    shell.write(f"  stopping {name}...")
    _unregister_metadata(shell, record.id)
    _remove_proxy_route(shell, name)

    if shell.vm is not None:
        try:
            shell.vm.stop(record.id)
        except Exception as exc:
            shell.write(" failed!\n")
            raise CommandError(f"stop vm: {exc}") from exc
    else:
        _set_status(shell, record.id, "stopped")

    shell.writeln(" done.")


# ── restart ───────────────────────────────────────────────────────────

def cmd_restart(shell: Shell, args: list) -> None:
    """Stop (if running) and start an environment again."""
    if not args:
        raise CommandError("usage: restart <name>")
    name = args[0]
    record = _lookup_vm(shell, name)

    shell.write(f"  restarting {name}...")

    if shell.vm is not None:
        _unregister_metadata(shell, record.id)
        _remove_proxy_route(shell, name)
        if record.status == "running":
            try:
                shell.vm.stop(record.id)
            except Exception as exc:
                shell.write(" stop failed!\n")
                raise CommandError(f"stop vm: {exc}") from exc
        try:
            shell.vm.start(
                record.id, name, record.image, record.vcpu, record.memory_mb, _vm_ssh_keys(shell)
            )
        except Exception as exc:
            shell.write(" start failed!\n")
            raise CommandError(f"start vm: {exc}") from exc
        _register_metadata(shell, record.id, name, record.image)
        _add_proxy_route(shell, record.id, name)

    shell.writeln(" done.")


# ── start ─────────────────────────────────────────────────────────────

def cmd_start(shell: Shell, args: list) -> None:
    """Start a stopped environment."""
    if not args:
        raise CommandError("usage: start <name>")
    name = args[0]
    record = _lookup_vm(shell, name)
    if record.status == "running":
        raise CommandError(f"vm {_quote(name)} is already running")

    shell.write(f"  starting {name}...")

    if shell.vm is not None:
        try:
            shell.vm.start(
                record.id, name, record.image, record.vcpu, record.memory_mb, _vm_ssh_keys(shell)
            )
        except Exception as exc:
            shell.write(" failed!\n")
            raise CommandError(f"start vm: {exc}") from exc
        _register_metadata(shell, record.id, name, record.image)
        _add_proxy_route(shell, record.id, name)
    else:
        _set_status(shell, record.id, "running")

    shell.writeln(" done.")
    shell.write(f"  ssh {name} to connect.\n")


# ── cp ────────────────────────────────────────────────────────────────

def cmd_cp(shell: Shell, args: list) -> None:
    """Clone an environment under a new name."""
    from .shell import random_name

    if not args:
        raise CommandError("usage: cp <name> [new-name]")
    src_name = args[0]
    dst_name = args[1].lower() if len(args) >= 2 else ""

    src = _lookup_vm(shell, src_name)

    if not dst_name:
        dst_name = random_name()
    if not is_valid_vm_name(dst_name):
        raise CommandError(_INVALID_NAME.format(_quote(dst_name)))

    _ensure_name_free(shell, dst_name)
    _enforce_quota(shell)

    shell.write(f"  cloning {src_name} -> {dst_name}...")

    try:
        clone = shell.db.create_vm(
            shell.user.id, dst_name, src.image, src.vcpu, src.memory_mb, src.disk_gb
        )
    except Exception as exc:
        shell.write(" failed!\n")
        raise CommandError(f"create clone record: {exc}") from exc

    if shell.vm is not None:
        try:
            shell.vm.clone_disks(src.id, clone.id)
        except Exception as exc:
            shell.write(" failed!\n")
            with contextlib.suppress(Exception):
                shell.db.delete_vm(clone.id)
            raise CommandError(f"clone disks: {exc}") from exc

    _set_status(shell, clone.id, "stopped")

    with contextlib.suppress(Exception):
        for tag in shell.db.tags_by_vm(src.id):
            with contextlib.suppress(Exception):
                shell.db.add_tag(clone.id, tag)

    shell.writeln(" done!")
    shell.writeln("")
    shell.write(f"  name:  {clone.name}\n")
    shell.write(f"  image: {clone.image}\n")
    shell.write(f"  url:   https://{clone.name}.{shell.domain}\n")
    shell.write(f"  start it with: start {clone.name}\n")
    shell.writeln("")


# ── rm ────────────────────────────────────────────────────────────────

def cmd_rm(shell: Shell, args: list) -> None:
    """Delete an environment after the user types its name to confirm."""
    if not args:
        raise CommandError("usage: rm <name>")
    name = args[0]
    record = _lookup_vm(shell, name)

    shell.write("  are you sure? type the vm name to confirm: ")
    try:
        confirm = shell.read_line()
    except EOFError as exc:
        raise CommandError(f"read confirmation: {exc}") from exc

    if confirm.strip() != name:
        shell.writeln("  cancelled.")
        return

    _remove_proxy_route(shell, name)
    _unregister_metadata(shell, record.id)

    if shell.vm is not None:
        _guard("destroy", shell.vm.destroy, record.id)
    else:
        _guard("delete", shell.db.delete_vm, record.id)

    shell.write(f"  deleted {name}.\n")


# ── tag ───────────────────────────────────────────────────────────────

def cmd_tag(shell: Shell, args: list) -> None:
    """Add a tag to an environment, or remove one with -d."""
    remove = any(a in ("-d", "--delete") for a in args)
    rest = [a for a in args if a not in ("-d", "--delete")]
    if len(rest) < 2:
        raise CommandError("usage: tag [-d] <name> <tag>")
    name, tag = rest[0], rest[1]

    record = _lookup_vm(shell, name)

    if remove:
        _guard("remove tag", shell.db.remove_tag, record.id, tag)
        shell.write(f"  removed tag {_quote(tag)} from {name}\n")
    else:
        _guard("add tag", shell.db.add_tag, record.id, tag)
        shell.write(f"  tagged {name} with {_quote(tag)}\n")


# ── rename ────────────────────────────────────────────────────────────

def cmd_rename(shell: Shell, args: list) -> None:
    """Rename an environment, moving its proxy route if it is running."""
    if len(args) < 2:
        raise CommandError("usage: rename <old> <new>")
    old_name = args[0]
    new_name = args[1].lower()

    if not is_valid_vm_name(new_name):
        raise CommandError(_INVALID_NAME.format(_quote(new_name)))

    record = _lookup_vm(shell, old_name)
    _ensure_name_free(shell, new_name)

    _guard("rename", shell.db.rename_vm, record.id, new_name)

    if record.status == "running":
        _remove_proxy_route(shell, old_name)
        _add_proxy_route(shell, record.id, new_name)

    shell.write(f"  renamed {old_name} -> {new_name}\n")
    shell.write(f"  new url: https://{new_name}.{shell.domain}\n")


for _name, _handler in (
    ("help", cmd_help),
    ("whoami", cmd_whoami),
    ("ls", cmd_ls),
    ("new", cmd_new),
    ("rm", cmd_rm),
    ("stop", cmd_stop),
    ("restart", cmd_restart),
    ("tag", cmd_tag),
    ("rename", cmd_rename),
    ("cp", cmd_cp),
    ("start", cmd_start),
):
    register_command(_name, _handler)