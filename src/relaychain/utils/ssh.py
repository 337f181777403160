# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import subprocess
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import paramiko

from relaychain.errors import NodeConnectionError, NodeUnreachableError, RetryError
from relaychain.utils.retry import RetryPolicy, call_with_retry
from relaychain.utils.ssh_runner import SSHRunner

log = logging.getLogger("relaychain")

Connector = Callable[..., SSHRunner]
Probe = Callable[[str], bool]


def open_ssh(
    address: str,
    username: str,
    password: Optional[str],
    *,
    port: int = 22,
    connect_timeout: float = 20.0,
    command_timeout: Optional[float] = 300.0,
) -> SSHRunner:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    try:
        client.connect(
            hostname=address,
            port=port,
            username=username,
            password=password,
            timeout=connect_timeout,
            allow_agent=password is None,
            look_for_keys=password is None,
        )
    except Exception:
        client.close()
        raise

    return SSHRunner(client, address=address, command_timeout=command_timeout)


def ping_host(address: str, *, timeout_s: int = 2, run=subprocess.run) -> bool:
    """Single ICMP echo from the local machine."""
    try:
        cp = run(
            ["ping", "-c", "1", "-W", str(timeout_s), address],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        log.warning("[%s] ping unavailable: %s", address, exc)
        return False
    return cp.returncode == 0


class ConnectionManager:
    """
    Opens one SSH session per node.

    Connecting is retried according to `policy`. When a probe is configured it
    runs once before the first attempt; a failed probe raises
    NodeUnreachableError without spending any attempt. With a cancel token
    the waits between attempts end as soon as the token trips.
    """

    RETRY_ON = (
        paramiko.ssh_exception.AuthenticationException,
        paramiko.ssh_exception.SSHException,
        OSError,
    )

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        connector: Connector = open_ssh,
        probe: Optional[Probe] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Optional[Callable[[str, int, BaseException], None]] = None,
    ):
        self.policy = policy or RetryPolicy()
        self.connector = connector
        self.probe = probe
        self.sleep = sleep
        self.on_retry = on_retry

    def connect(
        self,
        address: str,
        user: str,
        credential: Optional[str],
        *,
        port: int = 22,
        cancel=None,
    ) -> SSHRunner:
        if self.probe is not None and not self.probe(address):
            raise NodeUnreachableError(address, f"{address} did not answer the reachability probe")

        max_attempts = self.policy.max_attempts

        def _attempt() -> SSHRunner:
            return self.connector(address, user, credential, port=port)

        def _on_retry(attempt: int, exc: BaseException) -> None:
            log.info(
                "[%s] SSH not ready (attempt %d/%d, %s: %s)",
                address, attempt, max_attempts, type(exc).__name__, exc,
            )
            if self.on_retry:
                self.on_retry(address, attempt, exc)

        try:
            runner = call_with_retry(
                _attempt,
                self.policy,
                retry_on=self.RETRY_ON,
                on_retry=_on_retry,
                sleep=cancel.wait if cancel is not None else self.sleep,
                cancel=cancel,
            )
        except RetryError as exc:
            cause = exc.__cause__
            raise NodeConnectionError(
                address,
                f"failed to SSH into {address} as '{user}' after {max_attempts} attempts: {cause}",
            ) from cause

        log.info("[%s] connected", address)
        return runner

    @contextmanager
    def session(
        self,
        address: str,
        user: str,
        credential: Optional[str],
        *,
        port: int = 22,
        cancel=None,
    ) -> Iterator[SSHRunner]:
        """Connect and guarantee the session is closed on every exit path."""
        runner = self.connect(address, user, credential, port=port, cancel=cancel)
        try:
            yield runner
        finally:
            try:
                runner.close()
            except Exception as exc:
                log.warning("[%s] error while closing SSH session: %s", address, exc)
