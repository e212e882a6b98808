"""Router configuration: interfaces and protocol timers, stored as JSON."""

from __future__ import annotations

import ipaddress
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _field(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field {key!r}") from None


def _uint(value: Any, name: str, bits: int = 32) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 1 << bits:
        raise ValueError(f"field {name!r} must be an unsigned {bits}-bit integer, got {value!r}")
    return value


def _string(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string, got {value!r}")
    return value


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be an object, got {type(data).__name__}")
    return data


@dataclass
class InterfaceConfig:
    """One router interface and its link parameters."""

    name: str
    ip_address: IPAddress
    network: str
    enabled: bool
    cost: int
    bandwidth: int  # Mbps

    def __post_init__(self) -> None:
        if isinstance(self.ip_address, str):
            self.ip_address = ipaddress.ip_address(self.ip_address)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "ip_address": str(self.ip_address),
            "network": self.network,
            "enabled": self.enabled,
            "cost": self.cost,
            "bandwidth": self.bandwidth,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InterfaceConfig:
        data = _mapping(data, "interface")
        enabled = _field(data, "enabled")
        if not isinstance(enabled, bool):
            raise ValueError(f"field 'enabled' must be a boolean, got {enabled!r}")
        return cls(
            name=_string(_field(data, "name"), "name"),
            ip_address=ipaddress.ip_address(_string(_field(data, "ip_address"), "ip_address")),
            network=_string(_field(data, "network"), "network"),
            enabled=enabled,
            cost=_uint(_field(data, "cost"), "cost"),
            bandwidth=_uint(_field(data, "bandwidth"), "bandwidth", 64),
        )


@dataclass
class RouterConfig:
    """Interfaces and protocol timers of one router (timers in seconds)."""

    interfaces: list[InterfaceConfig] = field(default_factory=list)
    hello_interval: int = 10
    dead_interval: int = 40
    lsa_refresh_interval: int = 1800
    max_age: int = 3600

    def to_dict(self) -> dict[str, Any]:
        return {
            "interfaces": [interface.to_dict() for interface in self.interfaces],
            "hello_interval": self.hello_interval,
            "dead_interval": self.dead_interval,
            "lsa_refresh_interval": self.lsa_refresh_interval,
            "max_age": self.max_age,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RouterConfig:
        data = _mapping(data, "configuration")
        interfaces = _field(data, "interfaces")
        if not isinstance(interfaces, list):
            raise ValueError("field 'interfaces' must be a list")
        return cls(
            interfaces=[InterfaceConfig.from_dict(item) for item in interfaces],
            hello_interval=_uint(_field(data, "hello_interval"), "hello_interval"),
            dead_interval=_uint(_field(data, "dead_interval"), "dead_interval"),
            lsa_refresh_interval=_uint(
                _field(data, "lsa_refresh_interval"), "lsa_refresh_interval"
            ),
            max_age=_uint(_field(data, "max_age"), "max_age"),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> RouterConfig:
        """Read a configuration from a JSON file.

        Raises OSError if the file cannot be read and ValueError if it is not
        a valid configuration.
        """
        content = Path(path).read_text(encoding="utf-8")
        return cls.from_dict(json.loads(content))

    def save(self, path: Union[str, Path]) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")

    def enabled_interfaces(self) -> list[InterfaceConfig]:
        return [interface for interface in self.interfaces if interface.enabled]

    def interface_by_name(self, name: str) -> Optional[InterfaceConfig]:
        return next((i for i in self.interfaces if i.name == name), None)