from __future__ import annotations

from collections import Counter

import pytest

from relaychain.config.models import Settings
from relaychain.utils.retry import RetryPolicy
from relaychain.utils.ssh import ConnectionManager


def make_sequence(*responses):
    """Response that changes on every call; the last one repeats."""
    queue = list(responses)

    def _next():
        return queue.pop(0) if len(queue) > 1 else queue[0]
    return _next


class FakeSession:
    """
    Stands in for SSHRunner. Commands are matched by substring against
    `rules` first, then DEFAULTS; anything else succeeds with empty output.
    """

    DEFAULTS = [
        ("fuser", (0, "free\n", "")),
        ("ss -tuln", (0, "listening\n", "")),
        ("systemctl is-active", (0, "active\n", "")),
        ("lsb_release", (0, "22.04\n", "")),
        ("dpkg-query", (0, "unknown ok not-installed", "")),
    ]

    def __init__(self, address="10.0.0.1", rules=None):
        self.address = address
        self.rules = list(rules or [])
        self.commands = []
        self.closed = False

    def run(self, cmd, *, timeout=None):
        self.commands.append(cmd)
        for needle, resp in self.rules + self.DEFAULTS:
            if needle in cmd:
                return resp() if callable(resp) else resp
        return 0, "", ""

    def close(self):
        self.closed = True

    def count(self, needle):
        return sum(1 for c in self.commands if needle in c)

    def joined(self):
        return "\n".join(self.commands)


class FakeConnector:
    """Connector for ConnectionManager; hands out one FakeSession per connect."""

    def __init__(self, rules=None, unreachable=()):
        self.rules = dict(rules or {})
        self.unreachable = set(unreachable)
        self.attempts = Counter()
        self.sessions = {}

    def __call__(self, address, user, credential, *, port=22):
        self.attempts[address] += 1
        if address in self.unreachable:
            raise OSError(f"connection refused: {address}")
        session = FakeSession(address, self.rules.get(address))
        self.sessions.setdefault(address, []).append(session)
        return session

    def all_sessions(self):
        return [s for group in self.sessions.values() for s in group]


class Capture:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.__class__.__name__ for e in self.events]


@pytest.fixture
def sequence():
    return make_sequence


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def session_factory():
    return FakeSession


@pytest.fixture
def make_pipeline(capture):
    """Build a pipeline wired to a fake connector with time fast-forwarded."""

    def _make(cls, connector, **settings):
        sleeps = []
        settings.setdefault("probe", False)
        s = Settings(**settings)
        conns = ConnectionManager(
            RetryPolicy(max_attempts=s.connect_attempts, interval=s.connect_interval),
            connector=connector,
            sleep=sleeps.append,
        )
        pipeline = cls(s, connections=conns, sleep=sleeps.append, observers=[capture])
        conns.on_retry = pipeline._on_connect_retry
        pipeline.sleeps = sleeps
        return pipeline

    return _make


@pytest.fixture
def connector_factory():
    return FakeConnector
