# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/engine/base.py

from __future__ import annotations

import functools
import logging
import time
from abc import ABC
from typing import Any, Callable, Dict, List, Optional

from relaychain.bootstrap.packages import PackageInstaller
from relaychain.config.models import NodeSpec, Settings
from relaychain.errors import CancelledError, CommandError, InstallError
from relaychain.observers.dispatcher import EventBus
from relaychain.observers.events import ConnectAttemptFailed, StepCompleted, new_ctx
from relaychain.remote.commands import RemoteCommand
from relaychain.remote.executor import CommandExecutor, RemoteSession
from relaychain.results.aggregator import NodeResult
from relaychain.utils.retry import RetryPolicy
from relaychain.utils.ssh import ConnectionManager, open_ssh, ping_host

log = logging.getLogger("relaychain")


class NodePipeline(ABC):
    """
    Shared machinery for the per-node pipelines.

    Owns the event bus and run context, and builds the connection manager,
    command executor and package installer from Settings unless they are
    injected. One instance may serve several runs; `begin_run()` refreshes
    the run context.
    """

    operation = "node"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        connections: Optional[ConnectionManager] = None,
        executor: Optional[CommandExecutor] = None,
        installer: Optional[PackageInstaller] = None,
        observers: Optional[List] = None,
        bus: Optional[EventBus] = None,
        sleep: Callable[[float], None] = time.sleep,
        run_id: Optional[str] = None,
    ):
        self.settings = settings or Settings()
        self.bus = bus or EventBus(observers or [])
        self.run_ctx: Dict[str, Any] = new_ctx(self.operation, run_id)
        self._fixed_run_id = run_id
        self.sleep = sleep

        self.connections = connections or ConnectionManager(
            RetryPolicy(
                max_attempts=self.settings.connect_attempts,
                interval=self.settings.connect_interval,
            ),
            connector=functools.partial(
                open_ssh,
                connect_timeout=self.settings.connect_timeout,
                command_timeout=self.settings.command_timeout,
            ),
            probe=ping_host if self.settings.probe else None,
            sleep=sleep,
            on_retry=self._on_connect_retry,
        )
        self.executor = executor or CommandExecutor(self.bus, self.run_ctx)
        self.installer = installer or PackageInstaller(
            self.executor,
            attempts=self.settings.install_attempts,
            lock_wait=self.settings.install_lock_wait,
            sleep=sleep,
            bus=self.bus,
            run_ctx=self.run_ctx,
        )

    # ------------------ run context ------------------

    def begin_run(self) -> None:
        # update in place: executor and installer share this dict
        self.run_ctx.update(new_ctx(self.operation, self._fixed_run_id))

    @property
    def run_id(self) -> str:
        return self.run_ctx["run_id"]

    def emit(self, event_cls, **fields) -> None:
        self.bus.emit(event_cls(**fields, **self.run_ctx))

    def _on_connect_retry(self, address: str, attempt: int, exc: BaseException) -> None:
        self.emit(ConnectAttemptFailed, address=address, attempt=attempt, error=f"{type(exc).__name__}: {exc}")

    # ------------------ helpers ------------------

    def session(self, node: NodeSpec, cancel=None):
        return self.connections.session(
            node.address, node.username, node.credential, port=node.port, cancel=cancel,
        )

    @staticmethod
    def checkpoint(cancel) -> None:
        if cancel is not None and cancel.is_cancelled():
            raise CancelledError("cancelled")

    def step(
        self,
        session: RemoteSession,
        result: NodeResult,
        description: str,
        command: RemoteCommand,
    ) -> Optional[str]:
        """
        Run one best-effort step. A CommandError is recorded on the node
        result and logged; None is returned in that case.
        """
        try:
            out = self.executor.execute(session, command)
        except CommandError as exc:
            log.warning("[%s] %s failed: %s", result.address, description, exc)
            result.fail(description, str(exc))
            self.emit(StepCompleted, address=result.address, step=description, ok=False, error=str(exc))
            return None
        result.ok(description, out)
        self.emit(StepCompleted, address=result.address, step=description, ok=True)
        return out

    def install(
        self,
        session: RemoteSession,
        result: NodeResult,
        package: str,
        *,
        service: Optional[str] = None,
        cancel=None,
    ) -> bool:
        description = f"install {package}"
        try:
            report = self.installer.install(session, package, service=service, cancel=cancel)
        except (InstallError, CommandError) as exc:
            log.warning("[%s] %s failed: %s", result.address, description, exc)
            result.fail(description, str(exc))
            self.emit(StepCompleted, address=result.address, step=description, ok=False, error=str(exc))
            return False
        result.ok(description, f"{report.action} after {report.attempts} attempt(s)")
        self.emit(StepCompleted, address=result.address, step=description, ok=True)
        return True
