# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/observers/jsonfile.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Union

from .events import BaseEvent


class JsonFileObserver:
    """Appends one JSON object per event to a .jsonl file beside the run log."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def notify(self, event: BaseEvent) -> None:
        record = {"type": type(event).__name__, **event.dict()}
        line = json.dumps(record, default=str)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
