# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/provision/templates.py

"""Render the files written onto relay nodes."""

from __future__ import annotations

import json
from typing import Any, Dict

import yaml
from jinja2 import DictLoader, Environment, StrictUndefined

from relaychain.config.models import EgressSettings, ForwarderSettings

_UNIT_TEMPLATE = """\
[Unit]
Description=Shadowsocks-Libev relay egress service for %I
Documentation=man:ss-server(1)
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
ExecStart={{ server_binary }} -c {{ config_dir }}/%i.json
Restart=on-failure
RestartSec=3

[Install]
WantedBy=multi-user.target
"""

_env = Environment(
    loader=DictLoader({"egress.service.j2": _UNIT_TEMPLATE}),
    autoescape=False,
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def egress_config(egress: EgressSettings, *, port: int, secret: str) -> Dict[str, Any]:
    """Config document consumed by ss-server on the terminal node."""
    return {
        "server": list(egress.listen_addresses),
        "mode": "tcp_and_udp",
        "server_port": port,
        "local_port": egress.local_port,
        "password": secret,
        "timeout": egress.timeout_seconds,
        "fast_open": egress.fast_open,
        "reuse_port": egress.reuse_port,
        "no_delay": egress.no_delay,
        "method": egress.cipher,
    }


def render_egress_config(egress: EgressSettings, *, port: int, secret: str) -> str:
    return json.dumps(egress_config(egress, port=port, secret=secret), indent=2) + "\n"


def render_egress_unit(egress: EgressSettings) -> str:
    return _env.get_template("egress.service.j2").render(
        server_binary=egress.server_binary,
        config_dir=egress.config_dir,
    )


def forwarder_command(forwarder: ForwarderSettings, *, port: int, secret: str, next_hop: str) -> str:
    scheme = f"ss://{forwarder.cipher}:{secret}"
    return f"-verbose -listen {scheme}@:{port} -forward {scheme}@{next_hop}:{port}"


def render_compose(forwarder: ForwarderSettings, *, port: int, secret: str, next_hop: str) -> str:
    doc = {
        "version": "3.0",
        "services": {
            "relay": {
                "image": forwarder.image,
                "container_name": forwarder.container_name,
                "ports": [f"{port}:{port}", f"{port}:{port}/udp"],
                "restart": "unless-stopped",
                "logging": {
                    "driver": "json-file",
                    "options": {"max-size": "800k", "max-file": "10"},
                },
                "command": forwarder_command(forwarder, port=port, secret=secret, next_hop=next_hop),
            }
        },
    }
    return yaml.safe_dump(doc, sort_keys=False)
