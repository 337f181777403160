# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/provision/pipeline.py

from __future__ import annotations

import logging
import posixpath
from enum import Enum
from typing import Dict, List, Optional

from relaychain.config.models import ProvisionRequest
from relaychain.engine.base import NodePipeline
from relaychain.errors import CancelledError, CommandError, NodeConnectionError
from relaychain.observers.events import (
    FinalizeSkipped,
    FinalizeStarted,
    NodeCompleted,
    NodeStarted,
    NodeStateChanged,
    RunStarted,
    RunSummary,
)
from relaychain.remote import commands as cmd
from relaychain.remote.executor import RemoteSession
from relaychain.results.aggregator import ERROR, SKIPPED, SUCCESS, NodeResult, PipelineResult, ResultCollector
from relaychain.topology.resolver import Hop, resolve
from relaychain.utils.fanout import run_per_node
from . import templates

log = logging.getLogger("relaychain")


class NodeState(str, Enum):
    PENDING_CONNECT = "pending_connect"
    CONNECTED = "connected"
    NETWORK_CONFIGURED = "network_configured"
    ROLE_CONFIGURED = "role_configured"
    HOSTS_PATCHED = "hosts_patched"
    VERIFIED = "verified"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


class ProvisioningPipeline(NodePipeline):
    """
    Provisions every node of the chain, then finalizes routing and lockdown.

    Nodes go through NodeState in order over one SSH session each. Step
    failures are recorded and tolerated; only a failed connect (skipped) or a
    failed initial system probe (error) stop a node early. The finalization
    pass opens fresh sessions and only runs once every node that was not
    skipped reached DONE.
    """

    operation = "provision"

    def run(self, request: ProvisionRequest, *, cancel=None) -> PipelineResult:
        self.begin_run()
        hops = resolve(request.nodes)
        self.emit(RunStarted, nodes=[h.address for h in hops])
        log.info("[provision] %d node(s), relay port %d", len(hops), request.relay.port)

        collector = ResultCollector(len(hops))
        outcomes = run_per_node(
            hops,
            lambda i, hop: self._provision_node(hop, request, collector, cancel),
            max_workers=self.settings.max_workers,
        )

        states: Dict[int, NodeState] = {}
        for hop, outcome in zip(hops, outcomes):
            if isinstance(outcome, BaseException):
                # _provision_node records its own result; this covers a failure before that
                if collector.get(hop.index) is None:
                    collector.add(hop.index, NodeResult(
                        address=hop.address, role=hop.role.value, status=ERROR, message=str(outcome),
                    ))
                states[hop.index] = NodeState.FAILED
            else:
                states[hop.index] = outcome

        self._maybe_finalize(hops, states, request, collector, cancel)

        result = collector.build(strict=self.settings.strict)
        self.emit(
            RunSummary,
            status=result.overall_status,
            succeeded=result.count(SUCCESS),
            failed=result.count(ERROR),
            skipped=result.count(SKIPPED),
        )
        log.info("[provision] finished: %s (%s)", result.overall_status, result.summary())
        return result

    # ------------------ per-node state machine ------------------

    def _transition(self, result: NodeResult, state: NodeState) -> NodeState:
        log.info("[%s] -> %s", result.address, state.value)
        self.emit(NodeStateChanged, address=result.address, state=state.value)
        return state

    def _provision_node(self, hop: Hop, request: ProvisionRequest, collector: ResultCollector, cancel) -> NodeState:
        result = NodeResult(address=hop.address, role=hop.role.value)
        self.emit(NodeStarted, address=hop.address, role=hop.role.value)
        log.info("[%s] provisioning as %s (next hop: %s)", hop.address, hop.role.value, hop.next_hop or "-")

        try:
            state = self._drive(hop, request, result, cancel)
        except Exception as exc:
            log.exception("[%s] unexpected failure", hop.address)
            result.fail("provision", f"{type(exc).__name__}: {exc}")
            result.mark(ERROR, str(exc))
            state = NodeState.FAILED
        finally:
            collector.add(hop.index, result)

        self.emit(NodeCompleted, address=hop.address, status=result.status, message=result.message)
        return state

    def _drive(self, hop: Hop, request: ProvisionRequest, result: NodeResult, cancel) -> NodeState:
        try:
            self.checkpoint(cancel)
            with self.session(hop.node, cancel) as session:
                self._transition(result, NodeState.CONNECTED)
                return self._configure(session, hop, request, result, cancel)
        except NodeConnectionError as exc:
            log.error("[%s] skipped: %s", hop.address, exc)
            result.fail("connect", str(exc))
            result.mark(SKIPPED, str(exc))
            return self._transition(result, NodeState.SKIPPED)
        except CancelledError:
            log.warning("[%s] cancelled", hop.address)
            result.mark(SKIPPED, "cancelled")
            return self._transition(result, NodeState.SKIPPED)

    def _configure(
        self,
        session: RemoteSession,
        hop: Hop,
        request: ProvisionRequest,
        result: NodeResult,
        cancel,
    ) -> NodeState:
        # the initial probe is the only step whose failure is fatal to the node
        try:
            release = self.executor.execute(session, cmd.os_release())
        except CommandError as exc:
            result.fail("detect os release", str(exc))
            result.mark(ERROR, f"initial system probe failed: {exc}")
            return self._transition(result, NodeState.FAILED)
        result.ok("detect os release", release)
        log.info("[%s] OS release %s", hop.address, release.strip())

        self.checkpoint(cancel)
        self._configure_network(session, request, result)
        self._transition(result, NodeState.NETWORK_CONFIGURED)

        self.checkpoint(cancel)
        if hop.is_terminal:
            self._configure_terminal(session, request, result, cancel)
        else:
            self._configure_intermediate(session, hop, request, result, cancel)
        self._transition(result, NodeState.ROLE_CONFIGURED)

        self.checkpoint(cancel)
        self._patch_hosts(session, hop, request, result)
        self._transition(result, NodeState.HOSTS_PATCHED)

        self.checkpoint(cancel)
        self._verify(session, hop, request, result)
        self._transition(result, NodeState.VERIFIED)

        if self.settings.clean_traces_on_provision:
            self.step(session, result, "clean shell history and temp files", cmd.clean_traces())

        return self._transition(result, NodeState.DONE)

    def _configure_network(self, session: RemoteSession, request: ProvisionRequest, result: NodeResult) -> None:
        port = request.relay.port
        self.step(session, result, "enable ip forwarding", cmd.ip_forward(True))
        self.step(session, result, "disable ufw", cmd.disable_ufw())
        self.step(session, result, f"open port {port}/tcp", cmd.allow_port(port, "tcp"))
        self.step(session, result, f"open port {port}/udp", cmd.allow_port(port, "udp"))
        self.step(session, result, "add masquerade rule", cmd.masquerade(self.settings.egress_interface))

    def _configure_intermediate(
        self,
        session: RemoteSession,
        hop: Hop,
        request: ProvisionRequest,
        result: NodeResult,
        cancel,
    ) -> None:
        fwd = self.settings.forwarder
        relay = request.relay
        self.install(session, result, fwd.package, cancel=cancel)

        compose = templates.render_compose(fwd, port=relay.port, secret=relay.secret, next_hop=hop.next_hop)
        self.step(
            session, result, "write forwarder compose file",
            cmd.write_file(posixpath.join(fwd.directory, "docker-compose.yml"), compose, mode=0o600, sensitive=True),
        )
        self.step(session, result, f"start forwarder to {hop.next_hop}:{relay.port}", cmd.compose_up(fwd.directory))

    def _configure_terminal(
        self,
        session: RemoteSession,
        request: ProvisionRequest,
        result: NodeResult,
        cancel,
    ) -> None:
        egress = self.settings.egress
        relay = request.relay

        if self.settings.system_upgrade:
            self.step(session, result, "upgrade system packages", cmd.system_upgrade())

        self.install(session, result, egress.package, service=egress.unit, cancel=cancel)
        # the package starts its own daemon on the same config file
        self.step(session, result, "disable distribution egress service", cmd.service_stop(egress.package))

        config = templates.render_egress_config(egress, port=relay.port, secret=relay.secret)
        self.step(
            session, result, "write egress config",
            cmd.write_file(egress.config_path, config, mode=0o600, sensitive=True),
        )
        self.step(
            session, result, "write egress service unit",
            cmd.write_file(egress.unit_path, templates.render_egress_unit(egress)),
        )
        self.step(session, result, f"enable {egress.unit}", cmd.service_enable_now(egress.unit))
        self.step(session, result, f"open service port {relay.port}/tcp", cmd.allow_port(relay.port, "tcp"))
        self.step(session, result, f"open service port {relay.port}/udp", cmd.allow_port(relay.port, "udp"))

    def _patch_hosts(self, session: RemoteSession, hop: Hop, request: ProvisionRequest, result: NodeResult) -> None:
        marker = self.settings.hosts_marker
        lines: List[str] = [e.line(marker) for e in request.static_entries]
        if hop.is_terminal:
            allowlist = {**self.settings.upstream_allowlist, **request.upstream_allowlist}
            for domain, addresses in allowlist.items():
                lines.extend(f"{addr} {domain} # {marker}" for addr in addresses)
        if not lines:
            return

        self.step(session, result, "back up hosts file", cmd.hosts_backup(backup=self.settings.hosts_backup))
        for line in lines:
            self.step(session, result, f"add hosts entry '{line.split(' #', 1)[0]}'", cmd.hosts_append(line))

    def _listening(self, session: RemoteSession, result: NodeResult, port: int, description: str) -> bool:
        out = self.step(session, result, description, cmd.port_listening(port))
        return out is not None and out.strip() == "listening"

    def _relay_up(self, session: RemoteSession, hop: Hop, result: NodeResult, port: int, verb: str) -> bool:
        listening = self._listening(session, result, port, f"{verb} port {port} listening")
        if not hop.is_terminal:
            return listening
        # a listener on the port may belong to another process
        unit = self.settings.egress.unit
        out = self.step(session, result, f"{verb} {unit} active", cmd.service_active(unit))
        return listening and out is not None and out.strip() == "active"

    def _verify(self, session: RemoteSession, hop: Hop, request: ProvisionRequest, result: NodeResult) -> None:
        port = request.relay.port
        if self._relay_up(session, hop, result, port, "check"):
            log.info("[%s] relay listening on %d", hop.address, port)
            return

        log.error("[%s] relay not serving on %d, restarting once", hop.address, port)
        if hop.is_terminal:
            restart = cmd.service_restart(self.settings.egress.unit)
        else:
            restart = cmd.compose_restart(self.settings.forwarder.directory)
        self.step(session, result, "restart relay", restart)

        if not self._relay_up(session, hop, result, port, "re-check"):
            result.fail("verify relay", f"relay not serving on port {port} after restart")

    # ------------------ cross-node finalization ------------------

    def _maybe_finalize(
        self,
        hops: List[Hop],
        states: Dict[int, NodeState],
        request: ProvisionRequest,
        collector: ResultCollector,
        cancel,
    ) -> None:
        active = [h for h in hops if states[h.index] is not NodeState.SKIPPED]
        reason: Optional[str] = None
        if not active:
            reason = "no reachable nodes"
        elif any(states[h.index] is not NodeState.DONE for h in active):
            reason = "not every reachable node finished provisioning"
        elif cancel is not None and cancel.is_cancelled():
            reason = "cancelled"

        if reason:
            log.warning("[provision] finalization skipped: %s", reason)
            self.emit(FinalizeSkipped, reason=reason)
            return

        self.emit(FinalizeStarted, nodes=[h.address for h in active])
        outcomes = run_per_node(
            active,
            lambda i, hop: self._finalize_node(hop, request, collector.get(hop.index), cancel),
            max_workers=self.settings.max_workers,
        )
        for hop, outcome in zip(active, outcomes):
            if isinstance(outcome, BaseException):
                result = collector.get(hop.index)
                result.fail("finalize", f"{type(outcome).__name__}: {outcome}")
                result.mark(ERROR, str(outcome))

    def _finalize_node(self, hop: Hop, request: ProvisionRequest, result: NodeResult, cancel) -> None:
        try:
            self.checkpoint(cancel)
            with self.session(hop.node, cancel) as session:
                if hop.is_terminal:
                    self._finalize_terminal(session, hop, request, result)
                else:
                    self._finalize_intermediate(session, hop, request, result)
        except NodeConnectionError as exc:
            log.error("[%s] finalization connect failed: %s", hop.address, exc)
            result.fail("finalize: connect", str(exc))
            result.mark(ERROR, f"finalization failed: {exc}")
        except CancelledError:
            result.fail("finalize", "cancelled")

    def _finalize_intermediate(self, session: RemoteSession, hop: Hop, request: ProvisionRequest, result: NodeResult) -> None:
        port = request.relay.port
        self.step(session, result, f"dnat {port}/tcp to {hop.next_hop}", cmd.dnat(port, hop.next_hop, "tcp"))
        self.step(session, result, f"dnat {port}/udp to {hop.next_hop}", cmd.dnat(port, hop.next_hop, "udp"))
        self.step(session, result, "masquerade egress interface", cmd.masquerade(self.settings.egress_interface))
        self.step(session, result, "persist firewall rules", cmd.persist_rules(self.settings.rules_path))

    def _finalize_terminal(self, session: RemoteSession, hop: Hop, request: ProvisionRequest, result: NodeResult) -> None:
        self.step(session, result, "lock down firewall", cmd.firewall_lockdown(request.relay.port, hop.node.port))
        self.step(session, result, "persist firewall rules", cmd.persist_rules(self.settings.rules_path))
        self.step(session, result, f"restart {self.settings.egress.unit}", cmd.service_restart(self.settings.egress.unit))
