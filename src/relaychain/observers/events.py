# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    operation: str    # provision/teardown

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(operation: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "operation": operation,
    }


# ---------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunStarted(BaseEvent):
    nodes: List[str]

@dataclass(frozen=True)
class RunSummary(BaseEvent):
    status: str       # "success" | "error"
    succeeded: int
    failed: int
    skipped: int


# ---------------------------------------------------------------------
# Node lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NodeStarted(BaseEvent):
    address: str
    role: Optional[str] = None

@dataclass(frozen=True)
class ConnectAttemptFailed(BaseEvent):
    address: str
    attempt: int
    error: str

@dataclass(frozen=True)
class NodeStateChanged(BaseEvent):
    address: str
    state: str

@dataclass(frozen=True)
class StepCompleted(BaseEvent):
    address: str
    step: str
    ok: bool
    error: Optional[str] = None

@dataclass(frozen=True)
class CommandExecuted(BaseEvent):
    address: str
    command: str      # descriptor, never the rendered shell text
    exit_code: int

@dataclass(frozen=True)
class PackageInstallAttempt(BaseEvent):
    address: str
    package: str
    attempt: int
    state: str        # "locked" | "installed" | "broken" | "missing" | "failed"

@dataclass(frozen=True)
class NodeCompleted(BaseEvent):
    address: str
    status: str       # "success" | "error" | "skipped"
    message: Optional[str] = None


# ---------------------------------------------------------------------
# Chain finalization
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class FinalizeStarted(BaseEvent):
    nodes: List[str]

@dataclass(frozen=True)
class FinalizeSkipped(BaseEvent):
    reason: str
