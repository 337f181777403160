import base64

import pytest

from relaychain.remote import commands as cmd
from relaychain.remote.commands import Capability, RemoteCommand


def test_sensitive_params_are_masked_in_description():
    c = cmd.write_file("/etc/relay.json", '{"password": "s3cr3t"}', mode=0o600, sensitive=True)
    assert "s3cr3t" not in c.description
    assert "content=***" in c.description
    assert c.description.startswith("file.write(")
    assert str(c) == c.description


def test_write_file_encodes_content_and_sets_mode():
    content = "line one\nit's quoted\n"
    text = cmd.write_file("/opt/relaychain/docker-compose.yml", content, mode=0o600).render()
    payload = base64.b64encode(content.encode()).decode()
    assert payload in text
    assert "mkdir -p /opt/relaychain" in text
    assert text.endswith("chmod 600 /opt/relaychain/docker-compose.yml")


def test_unknown_template_is_rejected():
    with pytest.raises(ValueError, match="no template"):
        RemoteCommand(Capability.SYSTEM, "reboot").render()


def test_allow_port_checks_before_inserting():
    text = cmd.allow_port(8388, "udp").render()
    assert text == (
        "iptables -C INPUT -p udp --dport 8388 -j ACCEPT 2>/dev/null "
        "|| iptables -I INPUT -p udp --dport 8388 -j ACCEPT"
    )


def test_dnat_targets_next_hop_on_same_port():
    text = cmd.dnat(8388, "10.0.0.2", "tcp").render()
    assert "-t nat -C PREROUTING" in text
    assert "--to-destination 10.0.0.2:8388" in text


def test_masquerade_defaults_to_default_route_interface():
    assert cmd.DEFAULT_ROUTE_IFACE in cmd.masquerade().render()
    assert "IFACE=eth1;" in cmd.masquerade("eth1").render()


def test_lockdown_keeps_ssh_open_before_dropping():
    text = cmd.firewall_lockdown(8388, ssh_port=2222).render()
    assert "--dport 2222 -j ACCEPT" in text
    assert text.index("--dport 2222") < text.index("iptables -P INPUT DROP")


def test_hosts_append_is_guarded_and_quoted():
    text = cmd.hosts_append("127.0.0.1 ads.example.com # relaychain").render()
    assert "grep -qxF '127.0.0.1 ads.example.com # relaychain' /etc/hosts" in text
    assert ">> /etc/hosts" in text


def test_hosts_restore_prefers_backup_then_strips_marker():
    text = cmd.hosts_restore("relaychain").render()
    assert text.startswith("if [ -f /etc/hosts.relaychain.bak ]; then mv -f")
    assert "'/# relaychain$/d'" in text


def test_package_status_quotes_name_and_falls_back():
    text = cmd.package_status("shadowsocks-libev").render()
    assert text.startswith("dpkg-query -W -f='${Status}' shadowsocks-libev")
    assert text.endswith("|| echo not-installed")


def test_remove_files_quotes_every_path():
    text = cmd.remove_files("/etc/a b", "/opt/relaychain").render()
    assert text == "rm -rf -- '/etc/a b' /opt/relaychain"


def test_ip_forward_persists_setting():
    assert "net.ipv4.ip_forward=1" in cmd.ip_forward(True).render()
    assert "sysctl -w net.ipv4.ip_forward=0" in cmd.ip_forward(False).render()


@pytest.mark.parametrize("command", [
    cmd.service_stop("x.service"),
    cmd.compose_down("/opt/relaychain", "relay-forwarder"),
    cmd.reset_firewall(),
    cmd.package_purge("shadowsocks-libev"),
    cmd.clean_traces(),
])
def test_teardown_commands_tolerate_missing_targets(command):
    text = command.render()
    assert text.endswith("true") or text.startswith("if ")
