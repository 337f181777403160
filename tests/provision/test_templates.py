import json

import yaml

from relaychain.config.models import EgressSettings, ForwarderSettings
from relaychain.provision import templates


def test_compose_forwards_to_next_hop():
    doc = yaml.safe_load(
        templates.render_compose(ForwarderSettings(), port=8388, secret="s3cr3t", next_hop="10.0.0.2")
    )
    relay = doc["services"]["relay"]
    assert relay["image"] == "nadoo/glider"
    assert relay["container_name"] == "relay-forwarder"
    assert relay["ports"] == ["8388:8388", "8388:8388/udp"]
    assert relay["command"] == (
        "-verbose -listen ss://AEAD_AES_256_GCM:s3cr3t@:8388 "
        "-forward ss://AEAD_AES_256_GCM:s3cr3t@10.0.0.2:8388"
    )


def test_egress_config_document():
    cfg = json.loads(templates.render_egress_config(EgressSettings(), port=8388, secret="s3cr3t"))
    assert cfg["server"] == ["::0", "0.0.0.0"]
    assert cfg["server_port"] == 8388
    assert cfg["password"] == "s3cr3t"
    assert cfg["method"] == "aes-256-gcm"
    assert cfg["mode"] == "tcp_and_udp"


def test_egress_unit_points_at_config_dir():
    unit = templates.render_egress_unit(EgressSettings(config_dir="/etc/relay", server_binary="/usr/local/bin/ss-server"))
    assert "ExecStart=/usr/local/bin/ss-server -c /etc/relay/%i.json" in unit
    assert unit.endswith("WantedBy=multi-user.target\n")


def test_unit_name_follows_config_name():
    egress = EgressSettings(config_name="edge")
    assert egress.unit == "shadowsocks-libev-server@edge.service"
    assert egress.config_path == "/etc/shadowsocks-libev/edge.json"
    assert egress.unit_path == "/etc/systemd/system/shadowsocks-libev-server@.service"
