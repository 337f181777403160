# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

"""Cooperative cancellation shared by the provisioning and teardown pipelines."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional


class CancelToken:
    """
    Cancellation signal with an optional deadline.

    Pipelines call `is_cancelled()` between steps and stop taking new work
    when it returns True. `wait()` doubles as an interruptible sleep.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self._event.set()
            return True
        return False

    def wait(self, seconds: float) -> None:
        """Sleep up to `seconds`, returning early once cancelled."""
        if self._deadline is not None:
            seconds = max(0.0, min(seconds, self._deadline - self._clock()))
        self._event.wait(seconds)
