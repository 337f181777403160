# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/results/aggregator.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

SUCCESS = "success"
ERROR = "error"
SKIPPED = "skipped"

STEP_OK = "ok"
STEP_FAILED = "failed"


@dataclass
class StepOutcome:
    description: str
    status: str                 # "ok" | "failed"
    output: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STEP_OK

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"description": self.description, "status": self.status}
        if self.ok:
            d["output"] = self.output or ""
        else:
            d["error"] = self.error or ""
        return d


@dataclass
class NodeResult:
    address: str
    role: Optional[str] = None
    status: str = SUCCESS       # "success" | "error" | "skipped"
    steps: List[StepOutcome] = field(default_factory=list)
    message: Optional[str] = None

    def ok(self, description: str, output: str = "") -> StepOutcome:
        step = StepOutcome(description=description, status=STEP_OK, output=output.strip())
        self.steps.append(step)
        return step

    def fail(self, description: str, error: str) -> StepOutcome:
        step = StepOutcome(description=description, status=STEP_FAILED, error=error)
        self.steps.append(step)
        return step

    def mark(self, status: str, message: Optional[str] = None) -> None:
        self.status = status
        if message is not None:
            self.message = message

    @property
    def failed_steps(self) -> List[StepOutcome]:
        return [s for s in self.steps if not s.ok]

    def to_dict(self, *, include_steps: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {"address": self.address, "status": self.status}
        if self.role is not None:
            d["role"] = self.role
        if self.message:
            d["message"] = self.message
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.steps]
        return d


@dataclass
class PipelineResult:
    nodes: List[NodeResult] = field(default_factory=list)
    strict: bool = False

    @property
    def overall_status(self) -> str:
        failing = {ERROR, SKIPPED} if self.strict else {ERROR}
        return ERROR if any(n.status in failing for n in self.nodes) else SUCCESS

    def count(self, status: str) -> int:
        return sum(1 for n in self.nodes if n.status == status)

    def summary(self) -> str:
        return (
            f"SUCCESS={self.count(SUCCESS)} ERROR={self.count(ERROR)} "
            f"SKIPPED={self.count(SKIPPED)}"
        )

    def to_provision_response(self, relay, *, include_steps: bool = False) -> Dict[str, Any]:
        nodes = []
        for n in self.nodes:
            d: Dict[str, Any] = {"address": n.address, "role": n.role, "status": n.status}
            if n.message:
                d["message"] = n.message
            if n.role == "terminal" and n.status == SUCCESS:
                d["relayEndpoint"] = {"address": n.address, "port": relay.port, "secret": relay.secret}
            if include_steps:
                d["steps"] = [s.to_dict() for s in n.steps]
            nodes.append(d)
        return {"status": self.overall_status, "nodes": nodes}

    def to_teardown_response(self, *, include_steps: bool = False) -> Dict[str, Any]:
        status = "reset_complete" if self.overall_status == SUCCESS else ERROR
        results = [n.to_dict(include_steps=include_steps) for n in self.nodes]
        return {"status": status, "results": results}


class ResultCollector:
    """
    Collects node results keyed by input position.

    Safe for concurrent insertion when nodes are processed on worker threads.
    """

    def __init__(self, size: int):
        self._size = size
        self._results: Dict[int, NodeResult] = {}
        self._lock = threading.Lock()

    def add(self, index: int, result: NodeResult) -> None:
        if not 0 <= index < self._size:
            raise IndexError(f"node index {index} out of range")
        with self._lock:
            if index in self._results:
                raise ValueError(f"result for node {index} already recorded")
            self._results[index] = result

    def get(self, index: int) -> Optional[NodeResult]:
        with self._lock:
            return self._results.get(index)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def build(self, *, strict: bool = False) -> PipelineResult:
        with self._lock:
            missing = [i for i in range(self._size) if i not in self._results]
            if missing:
                raise ValueError(f"missing results for node indexes {missing}")
            return PipelineResult(
                nodes=[self._results[i] for i in range(self._size)],
                strict=strict,
            )
