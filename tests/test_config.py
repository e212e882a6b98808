import ipaddress
import json

import pytest

from linkroute.config import InterfaceConfig, RouterConfig


def make_interface(name="eth0", ip="10.0.0.1", network="10.0.0.0/24", enabled=True, cost=10):
    return InterfaceConfig(
        name=name, ip_address=ip, network=network, enabled=enabled, cost=cost, bandwidth=100
    )


def test_defaults_match_protocol_timers():
    config = RouterConfig()
    assert config.interfaces == []
    assert config.hello_interval == 10
    assert config.dead_interval == 40
    assert config.lsa_refresh_interval == 1800
    assert config.max_age == 3600


def test_ip_address_string_is_parsed():
    interface = make_interface(ip="192.168.1.5")
    assert interface.ip_address == ipaddress.IPv4Address("192.168.1.5")


def test_save_and_load_round_trip(tmp_path):
    config = RouterConfig(
        interfaces=[make_interface(), make_interface("eth1", "fe80::1", "fe80::/64", False, 5)],
        hello_interval=3,
    )
    path = tmp_path / "router.json"
    config.save(path)
    assert RouterConfig.load(path) == config


def test_saved_file_uses_plain_json_fields(tmp_path):
    path = tmp_path / "router.json"
    RouterConfig(interfaces=[make_interface()]).save(str(path))
    data = json.loads(path.read_text())
    assert data["interfaces"][0]["ip_address"] == "10.0.0.1"
    assert data["interfaces"][0]["network"] == "10.0.0.0/24"
    assert data["max_age"] == 3600


def test_dict_round_trip():
    config = RouterConfig(interfaces=[make_interface()])
    assert RouterConfig.from_dict(config.to_dict()) == config


def test_enabled_interfaces_filters_disabled():
    config = RouterConfig(
        interfaces=[make_interface("a"), make_interface("b", enabled=False), make_interface("c")]
    )
    assert [i.name for i in config.enabled_interfaces()] == ["a", "c"]


def test_interface_by_name():
    config = RouterConfig(interfaces=[make_interface("a"), make_interface("b", cost=7)])
    assert config.interface_by_name("b").cost == 7
    assert config.interface_by_name("missing") is None


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        RouterConfig.load(tmp_path / "nope.json")


def test_load_invalid_json_raises(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(ValueError):
        RouterConfig.load(path)


def test_missing_field_raises():
    data = RouterConfig().to_dict()
    del data["dead_interval"]
    with pytest.raises(ValueError, match="dead_interval"):
        RouterConfig.from_dict(data)


def test_negative_cost_rejected():
    data = make_interface().to_dict()
    data["cost"] = -1
    with pytest.raises(ValueError):
        InterfaceConfig.from_dict(data)


def test_invalid_ip_rejected():
    data = make_interface().to_dict()
    data["ip_address"] = "not-an-ip"
    with pytest.raises(ValueError):
        InterfaceConfig.from_dict(data)


def test_enabled_must_be_boolean():
    data = make_interface().to_dict()
    data["enabled"] = "yes"
    with pytest.raises(ValueError):
        InterfaceConfig.from_dict(data)