# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/config/models.py

from __future__ import annotations

import re
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

LOOPBACK = "127.0.0.1"

# one /etc/hosts field: no whitespace, no control characters, no comment marker
_HOSTS_FIELD = re.compile(r"[^\s#\x00-\x1f\x7f]+")


def hosts_field(value: str, what: str) -> str:
    if not _HOSTS_FIELD.fullmatch(value):
        raise ValueError(f"invalid {what} for /etc/hosts: {value!r}")
    return value


def check_allowlist(allowlist: Dict[str, List[str]]) -> Dict[str, List[str]]:
    for domain, addresses in allowlist.items():
        hosts_field(domain, "domain")
        for addr in addresses:
            hosts_field(addr, "address")
    return allowlist


class NodeSpec(BaseModel):
    """A remote host participating in the chain. Identity is the address."""

    model_config = ConfigDict(populate_by_name=True)

    address: str = Field(min_length=1, validation_alias=AliasChoices("address", "ip"))
    credential: Optional[str] = Field(default=None, repr=False, validation_alias=AliasChoices("credential", "password"))
    username: str = "root"
    port: int = Field(default=22, ge=1, le=65535)


class RelaySpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    secret: str = Field(min_length=1, repr=False, validation_alias=AliasChoices("secret", "password"))
    port: int = Field(ge=1, le=65535)


class StaticHostEntry(BaseModel):
    hostname: str
    address: str = LOOPBACK

    @classmethod
    def parse(cls, raw: str) -> "StaticHostEntry":
        """Accepts ``hostname:address`` or a bare ``hostname``."""
        raw = raw.strip()
        if not raw:
            raise ValueError("empty static host entry")
        hostname, sep, address = raw.partition(":")
        hostname = hostname.strip()
        if not hostname:
            raise ValueError(f"static host entry without hostname: {raw!r}")
        address = address.strip() if sep and address.strip() else LOOPBACK
        return cls(hostname=hosts_field(hostname, "hostname"), address=hosts_field(address, "address"))

    def line(self, marker: str) -> str:
        return f"{self.address} {self.hostname} # {marker}"


class ProvisionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    node_count: Optional[int] = Field(default=None, validation_alias=AliasChoices("nodeCount", "node_count", "server_count"))
    nodes: List[NodeSpec] = Field(min_length=1, validation_alias=AliasChoices("nodes", "servers"))
    relay: RelaySpec = Field(validation_alias=AliasChoices("relay", "shadowsocks"))
    static_hosts: List[str] = Field(default_factory=list, validation_alias=AliasChoices("staticHosts", "static_hosts", "hosts"))
    # domain -> fixed addresses pinned in /etc/hosts on the terminal node
    upstream_allowlist: Dict[str, List[str]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("upstreamAllowlist", "upstream_allowlist"),
    )

    @field_validator("static_hosts")
    @classmethod
    def _check_static_hosts(cls, v: List[str]) -> List[str]:
        for raw in v:
            StaticHostEntry.parse(raw)
        return v

    @field_validator("upstream_allowlist")
    @classmethod
    def _check_allowlist(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return check_allowlist(v)

    @model_validator(mode="after")
    def _check_counts(self) -> "ProvisionRequest":
        if self.node_count is not None and self.node_count != len(self.nodes):
            raise ValueError(f"nodeCount={self.node_count} but {len(self.nodes)} nodes given")
        addresses = [n.address for n in self.nodes]
        if len(set(addresses)) != len(addresses):
            raise ValueError("node addresses must be unique")
        return self

    @property
    def static_entries(self) -> List[StaticHostEntry]:
        return [StaticHostEntry.parse(raw) for raw in self.static_hosts]


class TeardownRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    nodes: List[NodeSpec] = Field(min_length=1, validation_alias=AliasChoices("nodes", "servers"))

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_list(cls, data):
        if isinstance(data, list):
            return {"nodes": data}
        return data


class EgressSettings(BaseModel):
    """Terminal-node egress service."""

    package: str = "shadowsocks-libev"
    config_dir: str = "/etc/shadowsocks-libev"
    config_name: str = "config"
    unit_template: str = "shadowsocks-libev-server@.service"
    server_binary: str = "/usr/bin/ss-server"
    cipher: str = "aes-256-gcm"
    local_port: int = 1080
    timeout_seconds: int = 60
    fast_open: bool = True
    reuse_port: bool = True
    no_delay: bool = True
    listen_addresses: List[str] = Field(default_factory=lambda: ["::0", "0.0.0.0"])

    @property
    def config_path(self) -> str:
        return f"{self.config_dir}/{self.config_name}.json"

    @property
    def unit(self) -> str:
        return self.unit_template.replace("@.", f"@{self.config_name}.")

    @property
    def unit_path(self) -> str:
        return f"/etc/systemd/system/{self.unit_template}"


class ForwarderSettings(BaseModel):
    """Intermediate-node containerized forwarder."""

    package: str = "docker-compose"
    image: str = "nadoo/glider"
    container_name: str = "relay-forwarder"
    directory: str = "/opt/relaychain"
    cipher: str = "AEAD_AES_256_GCM"


# edge addresses pinned for the exchange API endpoints reached through the chain
_EXCHANGE_EDGES = [
    "13.225.164.218", "13.227.61.59", "143.204.127.42", "13.35.51.41",
    "99.84.58.138", "18.65.193.131", "18.65.176.132", "99.84.140.147",
    "13.225.173.96", "54.240.188.143", "13.35.55.41", "18.65.207.131",
    "143.204.79.125", "65.9.40.137", "99.84.137.147", "18.65.212.131",
]

DEFAULT_UPSTREAM_ALLOWLIST: Dict[str, List[str]] = {
    "fapi.binance.com": _EXCHANGE_EDGES,
    "api.binance.com": _EXCHANGE_EDGES,
}


class Settings(BaseModel):
    """Orchestration knobs. Every field has a default; load overrides from YAML."""

    connect_attempts: int = Field(default=5, ge=1)
    connect_interval: float = Field(default=5.0, ge=0)
    connect_timeout: float = 20.0
    command_timeout: float = 600.0
    probe: bool = True

    install_attempts: int = Field(default=5, ge=1)
    install_lock_wait: float = Field(default=10.0, ge=0)

    max_workers: int = Field(default=1, ge=1)
    strict: bool = False
    system_upgrade: bool = False
    clean_traces_on_provision: bool = False
    egress_interface: Optional[str] = None
    rules_path: str = "/etc/iptables/rules.v4"
    hosts_marker: str = "relaychain"
    hosts_backup: str = "/etc/hosts.relaychain.bak"
    # merged under the request's upstreamAllowlist; set to {} to pin nothing
    upstream_allowlist: Dict[str, List[str]] = Field(
        default_factory=lambda: {d: list(a) for d, a in DEFAULT_UPSTREAM_ALLOWLIST.items()},
    )

    egress: EgressSettings = Field(default_factory=EgressSettings)
    forwarder: ForwarderSettings = Field(default_factory=ForwarderSettings)

    @field_validator("upstream_allowlist")
    @classmethod
    def _check_allowlist(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return check_allowlist(v)
