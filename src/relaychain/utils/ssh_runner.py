# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/utils/ssh_runner.py

from __future__ import annotations

from typing import Optional

import paramiko


class SSHRunner:
    """One open SSH session to a node."""

    def __init__(self, client: paramiko.SSHClient, *, address: str = "", command_timeout: Optional[float] = None):
        self.client = client
        self.address = address
        self.command_timeout = command_timeout
        self._closed = False

    def run(self, cmd: str, *, timeout: Optional[float] = None) -> tuple[int, str, str]:
        _stdin, stdout, stderr = self.client.exec_command(cmd, timeout=timeout or self.command_timeout)
        out = stdout.read().decode("utf-8", errors="replace")
        err = stderr.read().decode("utf-8", errors="replace")
        rc = stdout.channel.recv_exit_status()
        return rc, out, err

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.client.close()
