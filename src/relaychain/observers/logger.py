# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/observers/logger.py
from __future__ import annotations

import logging

from .events import BaseEvent, ConnectAttemptFailed, NodeCompleted, StepCompleted

_SKIP = ("ts", "run_id", "operation")


def _level(event: BaseEvent) -> int:
    if isinstance(event, StepCompleted) and not event.ok:
        return logging.WARNING
    if isinstance(event, NodeCompleted) and event.status != "success":
        return logging.WARNING
    if isinstance(event, ConnectAttemptFailed):
        return logging.INFO
    return logging.DEBUG


class LoggerObserver:
    """Mirrors events into the run log; failures surface above debug level."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in _SKIP)
        self.logger.log(_level(event), "[EVENT] %s: %s", type(event).__name__, fields)
