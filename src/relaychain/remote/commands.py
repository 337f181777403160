# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/remote/commands.py

"""
Typed descriptors for every remote mutation or query the pipelines issue.

A RemoteCommand names a capability, an action and its parameters. Shell text
is produced only by `render()`, so pipeline code and tests can reason about
what is being done without parsing command strings.
"""

from __future__ import annotations

import base64
import posixpath
import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple


class Capability(str, Enum):
    SYSTEM = "system"
    PACKAGE = "package"
    SYSCTL = "sysctl"
    FIREWALL = "firewall"
    NAT = "nat"
    SERVICE = "service"
    CONTAINER = "container"
    FILE = "file"
    HOSTS = "hosts"
    PORT = "port"
    CLEANUP = "cleanup"


_TEMPLATES: Dict[Tuple[Capability, str], Callable[..., str]] = {}

APT_ENV = "DEBIAN_FRONTEND=noninteractive"
DPKG_LOCKS = (
    "/var/lib/dpkg/lock-frontend",
    "/var/lib/dpkg/lock",
    "/var/lib/apt/lists/lock",
)
DEFAULT_ROUTE_IFACE = "$(ip -4 route show default | awk '{print $5; exit}')"


def _template(capability: Capability, action: str):
    def decorator(fn):
        _TEMPLATES[(capability, action)] = fn
        return fn
    return decorator


@dataclass(frozen=True)
class RemoteCommand:
    capability: Capability
    action: str
    params: Mapping[str, Any] = field(default_factory=dict)
    sensitive: Tuple[str, ...] = ()

    @property
    def description(self) -> str:
        shown = ", ".join(
            f"{k}=***" if k in self.sensitive else f"{k}={v}"
            for k, v in self.params.items()
        )
        base = f"{self.capability.value}.{self.action}"
        return f"{base}({shown})" if shown else base

    def render(self) -> str:
        try:
            fn = _TEMPLATES[(self.capability, self.action)]
        except KeyError:
            raise ValueError(f"no template for {self.capability.value}.{self.action}") from None
        return fn(**self.params)

    def __str__(self) -> str:
        return self.description


def _q(s: Any) -> str:
    return shlex.quote(str(s))


# ------------------ system ------------------

@_template(Capability.SYSTEM, "os_release")
def _os_release() -> str:
    return "lsb_release -rs"


def os_release() -> RemoteCommand:
    return RemoteCommand(Capability.SYSTEM, "os_release")


# ------------------ packages ------------------

@_template(Capability.PACKAGE, "lock_status")
def _lock_status() -> str:
    locks = " ".join(DPKG_LOCKS)
    return f"if fuser {locks} >/dev/null 2>&1; then echo locked; else echo free; fi"


@_template(Capability.PACKAGE, "status")
def _package_status(package: str) -> str:
    return f"dpkg-query -W -f='${{Status}}' {_q(package)} 2>/dev/null || echo not-installed"


@_template(Capability.PACKAGE, "install")
def _package_install(package: str) -> str:
    return f"{APT_ENV} apt-get update -y && {APT_ENV} apt-get install -y {_q(package)}"


@_template(Capability.PACKAGE, "repair")
def _package_repair(package: str) -> str:
    return (
        f"{APT_ENV} dpkg --configure -a && "
        f"{APT_ENV} apt-get install -f -y && "
        f"{APT_ENV} apt-get install -y --reinstall {_q(package)}"
    )


@_template(Capability.PACKAGE, "purge")
def _package_purge(package: str) -> str:
    p = _q(package)
    return f"if dpkg -s {p} >/dev/null 2>&1; then {APT_ENV} apt-get purge -y {p}; fi"


@_template(Capability.PACKAGE, "upgrade")
def _package_upgrade() -> str:
    return f"{APT_ENV} apt-get update -y && {APT_ENV} apt-get upgrade -y"


def package_lock_status() -> RemoteCommand:
    return RemoteCommand(Capability.PACKAGE, "lock_status")


def package_status(package: str) -> RemoteCommand:
    return RemoteCommand(Capability.PACKAGE, "status", {"package": package})


def package_install(package: str) -> RemoteCommand:
    return RemoteCommand(Capability.PACKAGE, "install", {"package": package})


def package_repair(package: str) -> RemoteCommand:
    return RemoteCommand(Capability.PACKAGE, "repair", {"package": package})


def package_purge(package: str) -> RemoteCommand:
    return RemoteCommand(Capability.PACKAGE, "purge", {"package": package})


def system_upgrade() -> RemoteCommand:
    return RemoteCommand(Capability.PACKAGE, "upgrade")


# ------------------ sysctl ------------------

@_template(Capability.SYSCTL, "ip_forward")
def _ip_forward(enabled: bool) -> str:
    v = 1 if enabled else 0
    return (
        f"sysctl -w net.ipv4.ip_forward={v} && "
        f"(grep -q '^net.ipv4.ip_forward' /etc/sysctl.conf "
        f"&& sed -i 's/^net.ipv4.ip_forward.*/net.ipv4.ip_forward={v}/' /etc/sysctl.conf "
        f"|| echo 'net.ipv4.ip_forward={v}' >> /etc/sysctl.conf)"
    )


def ip_forward(enabled: bool) -> RemoteCommand:
    return RemoteCommand(Capability.SYSCTL, "ip_forward", {"enabled": enabled})


# ------------------ firewall / nat ------------------

def _ensure_rule(table: str, chain: str, rule: str, *, insert: bool = False) -> str:
    t = "" if table == "filter" else f"-t {table} "
    op = "-I" if insert else "-A"
    return f"iptables {t}-C {chain} {rule} 2>/dev/null || iptables {t}{op} {chain} {rule}"


@_template(Capability.FIREWALL, "allow_port")
def _allow_port(port: int, proto: str) -> str:
    return _ensure_rule("filter", "INPUT", f"-p {proto} --dport {int(port)} -j ACCEPT", insert=True)


@_template(Capability.FIREWALL, "disable_ufw")
def _disable_ufw() -> str:
    return "ufw disable >/dev/null 2>&1 || true"


@_template(Capability.FIREWALL, "lockdown")
def _lockdown(port: int, ssh_port: int) -> str:
    rules = [
        _ensure_rule("filter", "INPUT", "-i lo -j ACCEPT"),
        _ensure_rule("filter", "INPUT", "-m conntrack --ctstate ESTABLISHED,RELATED -j ACCEPT"),
        _ensure_rule("filter", "INPUT", f"-p tcp --dport {int(ssh_port)} -j ACCEPT"),
        _ensure_rule("filter", "INPUT", f"-p tcp --dport {int(port)} -j ACCEPT"),
        _ensure_rule("filter", "INPUT", f"-p udp --dport {int(port)} -j ACCEPT"),
        "iptables -P INPUT DROP",
        "iptables -P FORWARD ACCEPT",
        "iptables -P OUTPUT ACCEPT",
    ]
    return " && ".join(f"({r})" for r in rules)


@_template(Capability.FIREWALL, "persist")
def _persist_rules(path: str) -> str:
    return f"mkdir -p {_q(posixpath.dirname(path))} && iptables-save > {_q(path)}"


@_template(Capability.FIREWALL, "reset")
def _reset_rules() -> str:
    steps = [
        "iptables -P INPUT ACCEPT",
        "iptables -P FORWARD ACCEPT",
        "iptables -P OUTPUT ACCEPT",
        "iptables -F",
        "iptables -X",
        "iptables -t nat -F",
        "iptables -t nat -X",
    ]
    return "; ".join(f"{s} 2>/dev/null" for s in steps) + "; true"


@_template(Capability.NAT, "masquerade")
def _masquerade(interface: Optional[str]) -> str:
    iface = _q(interface) if interface else DEFAULT_ROUTE_IFACE
    return f'IFACE={iface}; ' + _ensure_rule("nat", "POSTROUTING", '-o "$IFACE" -j MASQUERADE')


@_template(Capability.NAT, "dnat")
def _dnat(port: int, proto: str, destination: str) -> str:
    rule = f"-p {proto} --dport {int(port)} -j DNAT --to-destination {_q(destination)}:{int(port)}"
    return _ensure_rule("nat", "PREROUTING", rule)


def allow_port(port: int, proto: str = "tcp") -> RemoteCommand:
    return RemoteCommand(Capability.FIREWALL, "allow_port", {"port": port, "proto": proto})


def disable_ufw() -> RemoteCommand:
    return RemoteCommand(Capability.FIREWALL, "disable_ufw")


def firewall_lockdown(port: int, ssh_port: int = 22) -> RemoteCommand:
    return RemoteCommand(Capability.FIREWALL, "lockdown", {"port": port, "ssh_port": ssh_port})


def persist_rules(path: str = "/etc/iptables/rules.v4") -> RemoteCommand:
    return RemoteCommand(Capability.FIREWALL, "persist", {"path": path})


def reset_firewall() -> RemoteCommand:
    return RemoteCommand(Capability.FIREWALL, "reset")


def masquerade(interface: Optional[str] = None) -> RemoteCommand:
    return RemoteCommand(Capability.NAT, "masquerade", {"interface": interface})


def dnat(port: int, destination: str, proto: str = "tcp") -> RemoteCommand:
    return RemoteCommand(Capability.NAT, "dnat", {"port": port, "proto": proto, "destination": destination})


# ------------------ services ------------------

@_template(Capability.SERVICE, "restart")
def _service_restart(unit: str) -> str:
    return f"systemctl restart {_q(unit)}"


@_template(Capability.SERVICE, "enable_now")
def _service_enable_now(unit: str) -> str:
    return f"systemctl daemon-reload && systemctl enable --now {_q(unit)}"


@_template(Capability.SERVICE, "stop")
def _service_stop(unit: str) -> str:
    u = _q(unit)
    return f"systemctl stop {u} 2>/dev/null; systemctl disable {u} 2>/dev/null; true"


@_template(Capability.SERVICE, "active")
def _service_active(unit: str) -> str:
    return f"systemctl is-active --quiet {_q(unit)} && echo active || echo inactive"


@_template(Capability.SERVICE, "daemon_reload")
def _daemon_reload() -> str:
    return "systemctl daemon-reload"


def service_restart(unit: str) -> RemoteCommand:
    return RemoteCommand(Capability.SERVICE, "restart", {"unit": unit})


def service_enable_now(unit: str) -> RemoteCommand:
    return RemoteCommand(Capability.SERVICE, "enable_now", {"unit": unit})


def service_stop(unit: str) -> RemoteCommand:
    return RemoteCommand(Capability.SERVICE, "stop", {"unit": unit})


def service_active(unit: str) -> RemoteCommand:
    return RemoteCommand(Capability.SERVICE, "active", {"unit": unit})


def daemon_reload() -> RemoteCommand:
    return RemoteCommand(Capability.SERVICE, "daemon_reload")


# ------------------ containers ------------------

@_template(Capability.CONTAINER, "up")
def _compose_up(directory: str) -> str:
    return f"cd {_q(directory)} && docker-compose up -d"


@_template(Capability.CONTAINER, "restart")
def _compose_restart(directory: str) -> str:
    return f"cd {_q(directory)} && docker-compose restart"


@_template(Capability.CONTAINER, "down")
def _compose_down(directory: str, container: str) -> str:
    d = _q(directory)
    return (
        f"if [ -f {d}/docker-compose.yml ]; then (cd {d} && docker-compose down --remove-orphans); fi; "
        f"docker rm -f {_q(container)} >/dev/null 2>&1; true"
    )


def compose_up(directory: str) -> RemoteCommand:
    return RemoteCommand(Capability.CONTAINER, "up", {"directory": directory})


def compose_restart(directory: str) -> RemoteCommand:
    return RemoteCommand(Capability.CONTAINER, "restart", {"directory": directory})


def compose_down(directory: str, container: str) -> RemoteCommand:
    return RemoteCommand(Capability.CONTAINER, "down", {"directory": directory, "container": container})


# ------------------ files ------------------

@_template(Capability.FILE, "write")
def _write_file(path: str, content: str, mode: int) -> str:
    payload = base64.b64encode(content.encode("utf-8")).decode("ascii")
    p = _q(path)
    return (
        f"mkdir -p {_q(posixpath.dirname(path) or '/')} && "
        f"echo {payload} | base64 -d > {p} && chmod {mode:o} {p}"
    )


@_template(Capability.FILE, "remove")
def _remove_files(paths: Sequence[str]) -> str:
    return "rm -rf -- " + " ".join(_q(p) for p in paths)


def write_file(path: str, content: str, *, mode: int = 0o644, sensitive: bool = False) -> RemoteCommand:
    return RemoteCommand(
        Capability.FILE,
        "write",
        {"path": path, "content": content, "mode": mode},
        sensitive=("content",) if sensitive else (),
    )


def remove_files(*paths: str) -> RemoteCommand:
    return RemoteCommand(Capability.FILE, "remove", {"paths": tuple(paths)})


# ------------------ hosts file ------------------

@_template(Capability.HOSTS, "backup")
def _hosts_backup(path: str, backup: str) -> str:
    return f"[ -f {_q(backup)} ] || cp -p {_q(path)} {_q(backup)}"


@_template(Capability.HOSTS, "append")
def _hosts_append(path: str, line: str) -> str:
    p, ln = _q(path), _q(line)
    return f"touch {p} && (grep -qxF {ln} {p} || echo {ln} >> {p})"


@_template(Capability.HOSTS, "restore")
def _hosts_restore(path: str, backup: str, marker: str) -> str:
    b, p = _q(backup), _q(path)
    pattern = _q(f"/# {marker}$/d")
    return f"if [ -f {b} ]; then mv -f {b} {p}; elif [ -f {p} ]; then sed -i {pattern} {p}; fi"


def hosts_backup(path: str = "/etc/hosts", backup: str = "/etc/hosts.relaychain.bak") -> RemoteCommand:
    return RemoteCommand(Capability.HOSTS, "backup", {"path": path, "backup": backup})


def hosts_append(line: str, path: str = "/etc/hosts") -> RemoteCommand:
    return RemoteCommand(Capability.HOSTS, "append", {"path": path, "line": line})


def hosts_restore(
    marker: str,
    path: str = "/etc/hosts",
    backup: str = "/etc/hosts.relaychain.bak",
) -> RemoteCommand:
    return RemoteCommand(Capability.HOSTS, "restore", {"path": path, "backup": backup, "marker": marker})


# ------------------ ports ------------------

@_template(Capability.PORT, "listening")
def _port_listening(port: int) -> str:
    return f"ss -tuln | grep -Eq '[:.]{int(port)}[[:space:]]' && echo listening || echo not_running"


def port_listening(port: int) -> RemoteCommand:
    return RemoteCommand(Capability.PORT, "listening", {"port": port})


# ------------------ traces ------------------

@_template(Capability.CLEANUP, "traces")
def _clean_traces() -> str:
    return (
        "history -c 2>/dev/null; : > ~/.bash_history; "
        "find /var/log -type f -exec truncate -s 0 {} + 2>/dev/null; "
        "rm -rf /tmp/* /var/tmp/* 2>/dev/null; true"
    )


def clean_traces() -> RemoteCommand:
    return RemoteCommand(Capability.CLEANUP, "traces")
