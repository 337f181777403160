from relaychain.utils.ssh_runner import SSHRunner


class _Channel:
    def __init__(self, rc):
        self.rc = rc

    def recv_exit_status(self):
        return self.rc


class _Stream:
    def __init__(self, data, rc=0):
        self.data = data
        self.channel = _Channel(rc)

    def read(self):
        return self.data


class _Client:
    def __init__(self, rc=0):
        self.rc = rc
        self.commands = []
        self.closes = 0

    def exec_command(self, cmd, timeout=None):
        self.commands.append((cmd, timeout))
        return None, _Stream(b"out\n", self.rc), _Stream(b"err\n")

    def close(self):
        self.closes += 1


def test_run_returns_rc_and_decoded_streams():
    client = _Client(rc=3)
    runner = SSHRunner(client, address="10.0.0.1", command_timeout=12)
    assert runner.run("uptime") == (3, "out\n", "err\n")
    assert client.commands == [("uptime", 12)]


def test_close_is_idempotent():
    client = _Client()
    runner = SSHRunner(client)
    runner.close()
    runner.close()
    assert runner.closed
    assert client.closes == 1


def test_explicit_timeout_overrides_default():
    client = _Client()
    SSHRunner(client, command_timeout=600).run("apt-get update", timeout=5)
    assert client.commands == [("apt-get update", 5)]
