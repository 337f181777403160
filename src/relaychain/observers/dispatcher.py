# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/observers/dispatcher.py
from __future__ import annotations

import logging
import threading
from typing import Iterable, List, Optional, Protocol

from .events import BaseEvent

log = logging.getLogger("relaychain")


class Observer(Protocol):
    def notify(self, event: BaseEvent) -> None: ...


class EventBus:
    """
    Fans events out to observers. Node workers may emit concurrently, so
    delivery is serialized; an observer never sees two events at once.
    """

    def __init__(self, observers: Optional[Iterable[Observer]] = None):
        self._observers: List[Observer] = list(observers or [])
        self._lock = threading.Lock()

    def subscribe(self, observer: Observer) -> None:
        with self._lock:
            self._observers.append(observer)

    def emit(self, event: BaseEvent) -> None:
        with self._lock:
            for ob in self._observers:
                try:
                    ob.notify(event)
                except Exception:
                    # observers must not break a run
                    log.debug("observer %r failed on %s", ob, type(event).__name__, exc_info=True)
