# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/teardown/pipeline.py

from __future__ import annotations

import logging
import posixpath
from typing import List, Tuple

from relaychain.config.models import NodeSpec, TeardownRequest
from relaychain.engine.base import NodePipeline
from relaychain.errors import CancelledError, NodeConnectionError, ValidationError
from relaychain.observers.events import NodeCompleted, NodeStarted, RunStarted, RunSummary
from relaychain.remote import commands as cmd
from relaychain.remote.commands import RemoteCommand
from relaychain.remote.executor import RemoteSession
from relaychain.results.aggregator import ERROR, SKIPPED, SUCCESS, NodeResult, PipelineResult, ResultCollector
from relaychain.utils.fanout import run_per_node

log = logging.getLogger("relaychain")


class TeardownPipeline(NodePipeline):
    """
    Best-effort reset of relay nodes, regardless of their role.

    Every step is isolated: a failing step is recorded and the next one still
    runs. All commands succeed on targets that are already gone, so tearing
    down a clean node is a no-op.
    """

    operation = "teardown"

    def plan(self) -> List[Tuple[str, RemoteCommand]]:
        s = self.settings
        egress, fwd = s.egress, s.forwarder
        return [
            ("stop forwarder", cmd.compose_down(fwd.directory, fwd.container_name)),
            (f"stop {egress.unit}", cmd.service_stop(egress.unit)),
            ("stop distribution egress service", cmd.service_stop(egress.package)),
            ("remove relay config", cmd.remove_files(
                egress.config_path,
                f"{egress.config_path}.enc",
                posixpath.join(egress.config_dir, ".config_key"),
                egress.unit_path,
                fwd.directory,
            )),
            ("reload systemd", cmd.daemon_reload()),
            (f"purge {egress.package}", cmd.package_purge(egress.package)),
            ("reset firewall and nat", cmd.reset_firewall()),
            ("persist firewall rules", cmd.persist_rules(s.rules_path)),
            ("disable ip forwarding", cmd.ip_forward(False)),
            ("restore hosts file", cmd.hosts_restore(s.hosts_marker, backup=s.hosts_backup)),
            ("clean shell history and temp files", cmd.clean_traces()),
        ]

    def run(self, request: TeardownRequest, *, cancel=None) -> PipelineResult:
        self.begin_run()
        nodes = list(request.nodes)
        if not nodes:
            raise ValidationError("node list must not be empty")

        self.emit(RunStarted, nodes=[n.address for n in nodes])
        log.info("[teardown] resetting %d node(s)", len(nodes))

        collector = ResultCollector(len(nodes))
        outcomes = run_per_node(
            nodes,
            lambda i, node: self._teardown_node(i, node, collector, cancel),
            max_workers=self.settings.max_workers,
        )
        for i, (node, outcome) in enumerate(zip(nodes, outcomes)):
            if isinstance(outcome, BaseException) and collector.get(i) is None:
                collector.add(i, NodeResult(address=node.address, status=ERROR, message=str(outcome)))

        result = collector.build(strict=self.settings.strict)
        self.emit(
            RunSummary,
            status=result.overall_status,
            succeeded=result.count(SUCCESS),
            failed=result.count(ERROR),
            skipped=result.count(SKIPPED),
        )
        log.info("[teardown] finished: %s (%s)", result.overall_status, result.summary())
        return result

    def _teardown_node(self, index: int, node: NodeSpec, collector: ResultCollector, cancel) -> None:
        result = NodeResult(address=node.address)
        self.emit(NodeStarted, address=node.address)
        try:
            self.checkpoint(cancel)
            with self.session(node, cancel) as session:
                self._reset(session, result, cancel)
            if result.status == SUCCESS:
                failed = len(result.failed_steps)
                result.message = f"reset with {failed} failed step(s)" if failed else "reset complete"
            log.info("[%s] %s", node.address, result.message)
        except NodeConnectionError as exc:
            log.error("[%s] teardown skipped: %s", node.address, exc)
            result.fail("connect", str(exc))
            result.mark(SKIPPED, str(exc))
        except CancelledError:
            result.mark(SKIPPED, "cancelled")
        except Exception as exc:
            log.exception("[%s] unexpected teardown failure", node.address)
            result.fail("teardown", f"{type(exc).__name__}: {exc}")
            result.mark(ERROR, str(exc))
        finally:
            collector.add(index, result)
        self.emit(NodeCompleted, address=node.address, status=result.status, message=result.message)

    def _reset(self, session: RemoteSession, result: NodeResult, cancel) -> None:
        for description, command in self.plan():
            if cancel is not None and cancel.is_cancelled():
                result.mark(SKIPPED, "cancelled")
                return
            self.step(session, result, description, command)
