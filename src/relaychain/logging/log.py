# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "relaychain",
    verbose: bool = False,
    run_id: Optional[str] = None,
) -> tuple[logging.Logger, str, Path]:
    """
    Point the relaychain logger at a fresh per-run log file and the console.

    The file always gets the debug trace, including every remote command
    descriptor and event. The console shows INFO unless `verbose`. Node
    workers log from their own threads, so records carry the thread name.

    Returns (logger, run_id, log_path); the run id is shared with the
    pipeline so log lines and events of one run correlate.
    """
    run_id = run_id or str(uuid.uuid4())
    base_dir = base_dir or Path.home() / ".relaychain" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)

    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{stamp}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    # repeated runs in one process must not stack handlers
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    _attach(logger, logging.FileHandler(log_path), logging.DEBUG)
    _attach(logger, logging.StreamHandler(), logging.DEBUG if verbose else logging.INFO)

    logger.info("relaychain run %s, trace in %s", run_id, log_path)
    logger.debug("run_id=%s", run_id)
    return logger, run_id, log_path
