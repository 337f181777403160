# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/bootstrap/packages.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from relaychain.errors import CancelledError, CommandError, InstallError
from relaychain.observers.dispatcher import EventBus
from relaychain.observers.events import PackageInstallAttempt
from relaychain.remote import commands as cmd
from relaychain.remote.executor import CommandExecutor, RemoteSession

log = logging.getLogger("relaychain")


class PackageState(str, Enum):
    INSTALLED = "installed"
    BROKEN = "broken"
    MISSING = "missing"


# dpkg status words meaning the package is present but not fully configured
_BROKEN_STATES = (
    "half-installed",
    "unpacked",
    "half-configured",
    "triggers-awaited",
    "triggers-pending",
    "reinst-required",
)


def parse_status(text: str) -> PackageState:
    """
    Interpret `dpkg-query -W -f='${Status}'` output.

    "install ok installed" is the only fully installed state. "config-files"
    means the package was removed and only its configuration is left.
    """
    words = text.strip().split()
    if not words or "not-installed" in words or "config-files" in words:
        return PackageState.MISSING
    if words[-1] == "installed" and "reinstreq" not in words:
        return PackageState.INSTALLED
    if any(w in _BROKEN_STATES for w in words) or "reinstreq" in words:
        return PackageState.BROKEN
    return PackageState.MISSING


@dataclass
class InstallReport:
    package: str
    found: PackageState
    action: str           # "restarted" | "repaired" | "installed"
    attempts: int
    restarted: bool = False


class PackageInstaller:
    """
    Installs one system package, idempotently.

    Each attempt first checks the dpkg lock. A held lock costs an attempt and
    a `lock_wait` pause. Otherwise the package state decides what happens:
    installed packages only get their service restarted, broken ones are
    repaired, missing ones are installed. Install failures also cost an
    attempt. InstallError is raised once every attempt was used up. A tripped
    cancel token ends the wait early and raises CancelledError before the
    next attempt.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        *,
        attempts: int = 5,
        lock_wait: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
    ):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.executor = executor
        self.attempts = attempts
        self.lock_wait = lock_wait
        self.sleep = sleep
        self.bus = bus
        self.run_ctx = run_ctx or {}

    def _emit(self, session: RemoteSession, package: str, attempt: int, state: str) -> None:
        if self.bus is not None and self.run_ctx:
            self.bus.emit(PackageInstallAttempt(
                address=getattr(session, "address", "?"),
                package=package,
                attempt=attempt,
                state=state,
                **self.run_ctx,
            ))

    def _restart(self, session: RemoteSession, service: Optional[str]) -> bool:
        if not service:
            return False
        try:
            self.executor.execute(session, cmd.service_restart(service))
            return True
        except CommandError as exc:
            log.warning("[%s] restart of %s failed: %s", getattr(session, "address", "?"), service, exc)
            return False

    def install(
        self,
        session: RemoteSession,
        package: str,
        *,
        service: Optional[str] = None,
        cancel=None,
    ) -> InstallReport:
        address = getattr(session, "address", "?")
        sleep = cancel.wait if cancel is not None else self.sleep
        last_error = ""

        for attempt in range(1, self.attempts + 1):
            if cancel is not None and cancel.is_cancelled():
                raise CancelledError(f"install of {package} cancelled")
            lock = self.executor.execute(session, cmd.package_lock_status()).strip()
            if lock == "locked":
                log.info("[%s] package manager locked (attempt %d/%d), waiting %ss",
                         address, attempt, self.attempts, self.lock_wait)
                self._emit(session, package, attempt, "locked")
                last_error = "package manager lock held"
                if attempt < self.attempts:
                    sleep(self.lock_wait)
                continue

            state = parse_status(self.executor.execute(session, cmd.package_status(package)))
            self._emit(session, package, attempt, state.value)

            try:
                if state is PackageState.INSTALLED:
                    log.info("[%s] %s already installed", address, package)
                    return InstallReport(package, state, "restarted", attempt, self._restart(session, service))

                if state is PackageState.BROKEN:
                    log.info("[%s] %s installed but broken, repairing", address, package)
                    self.executor.execute(session, cmd.package_repair(package))
                    return InstallReport(package, state, "repaired", attempt, self._restart(session, service))

                log.info("[%s] installing %s", address, package)
                self.executor.execute(session, cmd.package_install(package))
                return InstallReport(package, state, "installed", attempt)
            except CommandError as exc:
                log.warning("[%s] install of %s failed (attempt %d/%d): %s",
                            address, package, attempt, self.attempts, exc)
                self._emit(session, package, attempt, "failed")
                last_error = str(exc)
                if attempt < self.attempts:
                    sleep(self.lock_wait)

        raise InstallError(package, self.attempts, last_error)
