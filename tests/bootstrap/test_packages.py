import pytest

from relaychain.bootstrap.packages import PackageInstaller, PackageState, parse_status
from relaychain.errors import CancelledError, InstallError
from relaychain.observers.dispatcher import EventBus
from relaychain.observers.events import new_ctx
from relaychain.remote.executor import CommandExecutor
from relaychain.utils.cancel import CancelToken

UNIT = "shadowsocks-libev-server@config.service"


def _installer(sleeps, **kw):
    return PackageInstaller(CommandExecutor(), sleep=sleeps.append, lock_wait=10.0, **kw)


@pytest.mark.parametrize("text,state", [
    ("install ok installed", PackageState.INSTALLED),
    ("hold ok installed", PackageState.INSTALLED),
    ("install ok half-configured", PackageState.BROKEN),
    ("install reinstreq half-installed", PackageState.BROKEN),
    ("install ok unpacked", PackageState.BROKEN),
    ("deinstall ok config-files", PackageState.MISSING),
    ("unknown ok not-installed", PackageState.MISSING),
    ("not-installed\n", PackageState.MISSING),
    ("", PackageState.MISSING),
])
def test_parse_status(text, state):
    assert parse_status(text) is state


def test_installed_package_is_only_restarted(session_factory):
    sleeps = []
    session = session_factory(rules=[("dpkg-query", (0, "install ok installed", ""))])

    report = _installer(sleeps).install(session, "shadowsocks-libev", service=UNIT)

    assert report.action == "restarted"
    assert report.restarted
    assert session.count("apt-get install") == 0
    assert session.count("dpkg-query") == 1
    assert session.count(f"systemctl restart {UNIT}") == 1
    assert sleeps == []


def test_restart_failure_does_not_fail_install(session_factory):
    session = session_factory(rules=[
        ("dpkg-query", (0, "install ok installed", "")),
        ("systemctl restart", (1, "", "unit missing")),
    ])
    report = _installer([]).install(session, "shadowsocks-libev", service=UNIT)
    assert report.action == "restarted"
    assert report.restarted is False


def test_broken_package_is_repaired_and_restarted(session_factory):
    session = session_factory(rules=[("dpkg-query", (0, "install ok half-configured", ""))])

    report = _installer([]).install(session, "shadowsocks-libev", service=UNIT)

    assert report.found is PackageState.BROKEN
    assert report.action == "repaired"
    assert session.count("dpkg --configure -a") == 1
    assert session.count("systemctl restart") == 1


def test_missing_package_is_installed(session_factory):
    session = session_factory()
    report = _installer([]).install(session, "docker-compose")

    assert report.action == "installed"
    assert report.attempts == 1
    assert session.count("apt-get install -y docker-compose") == 1
    assert session.count("systemctl restart") == 0


def test_held_lock_exhausts_attempts(session_factory):
    sleeps = []
    session = session_factory(rules=[("fuser", (0, "locked\n", ""))])

    with pytest.raises(InstallError) as ei:
        _installer(sleeps, attempts=3).install(session, "docker-compose")

    assert ei.value.attempts == 3
    assert "lock" in str(ei.value)
    assert session.count("fuser") == 3
    assert session.count("dpkg-query") == 0
    assert sleeps == [10.0, 10.0]


def test_lock_released_on_second_attempt(session_factory, sequence):
    sleeps = []
    session = session_factory(rules=[
        ("fuser", sequence((0, "locked\n", ""), (0, "free\n", ""))),
    ])

    report = _installer(sleeps).install(session, "docker-compose")

    assert report.attempts == 2
    assert report.action == "installed"
    assert sleeps == [10.0]


def test_failed_install_is_retried(session_factory, sequence):
    sleeps = []
    session = session_factory(rules=[
        ("apt-get install", sequence((100, "", "E: Unable to fetch"), (0, "", ""))),
    ])

    report = _installer(sleeps).install(session, "docker-compose")

    assert report.attempts == 2
    assert session.count("apt-get install") == 2
    assert sleeps == [10.0]


def test_install_attempt_events(session_factory, capture):
    bus = EventBus([capture])
    ctx = new_ctx("provision", "run-7")
    installer = PackageInstaller(CommandExecutor(), sleep=lambda s: None, bus=bus, run_ctx=ctx)

    installer.install(session_factory(), "docker-compose")

    attempts = [e for e in capture.events if e.__class__.__name__ == "PackageInstallAttempt"]
    assert [(e.package, e.attempt, e.state) for e in attempts] == [("docker-compose", 1, "missing")]


def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        PackageInstaller(CommandExecutor(), attempts=0)


def test_cancel_ends_lock_wait_and_stops(session_factory):
    token = CancelToken()
    sleeps = []

    def locked_then_cancel():
        token.cancel()
        return 0, "locked\n", ""

    session = session_factory(rules=[("fuser", locked_then_cancel)])

    with pytest.raises(CancelledError):
        _installer(sleeps).install(session, "docker-compose", cancel=token)

    assert session.count("fuser") == 1
    assert session.count("dpkg-query") == 0
    assert sleeps == []
