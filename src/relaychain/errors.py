# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/errors.py
from __future__ import annotations


class RelayChainError(RuntimeError):
    """Base class for relay chain orchestration failures."""


class ValidationError(RelayChainError):
    """Malformed request. Raised before any remote action."""


class NodeConnectionError(RelayChainError):
    """Connecting to a node failed after all attempts."""

    def __init__(self, address: str, message: str):
        super().__init__(message)
        self.address = address


class NodeUnreachableError(NodeConnectionError):
    """The pre-connect reachability probe failed."""


class CommandError(RelayChainError):
    """A remote command exited non-zero."""

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        detail = stderr.strip() or "no stderr"
        super().__init__(f"command exited {exit_code}: {detail}")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class InstallError(RelayChainError):
    """Package installation failed after all attempts."""

    def __init__(self, package: str, attempts: int, reason: str = ""):
        msg = f"failed to install {package} after {attempts} attempts"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.package = package
        self.attempts = attempts


class RetryError(RelayChainError):
    pass


class CancelledError(RelayChainError):
    """Work was cancelled through a CancelToken."""
