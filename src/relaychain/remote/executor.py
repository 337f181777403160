# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/remote/executor.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, Union

from relaychain.errors import CommandError
from relaychain.observers.dispatcher import EventBus
from relaychain.observers.events import CommandExecuted
from .commands import RemoteCommand

log = logging.getLogger("relaychain")


class RemoteSession(Protocol):
    """What the executor needs from an open connection. SSHRunner satisfies it."""

    address: str

    def run(self, cmd: str, *, timeout: Optional[float] = None) -> tuple[int, str, str]: ...

    def close(self) -> None: ...


Command = Union[RemoteCommand, str]


class CommandExecutor:
    """
    Runs exactly one remote command per call.

    Returns stdout; a non-zero exit raises CommandError. No retries happen
    here, callers decide whether a failure is tolerated.
    """

    def __init__(self, bus: Optional[EventBus] = None, run_ctx: Optional[Dict[str, Any]] = None):
        self.bus = bus
        self.run_ctx = run_ctx or {}

    def execute(self, session: RemoteSession, command: Command, *, timeout: Optional[float] = None) -> str:
        if isinstance(command, RemoteCommand):
            text = command.render()
            label = command.description
        else:
            text = command
            label = command.split(None, 1)[0] if command.strip() else "<empty>"

        address = getattr(session, "address", "?")
        log.debug("[%s] exec %s", address, label)
        rc, out, err = session.run(text, timeout=timeout)

        if self.bus is not None and self.run_ctx:
            self.bus.emit(CommandExecuted(address=address, command=label, exit_code=rc, **self.run_ctx))

        if rc != 0:
            log.debug("[%s] %s exited %d: %s", address, label, rc, err.strip())
            raise CommandError(label, rc, err)
        return out
