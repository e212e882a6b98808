"""Protocol messages and their JSON wire encoding."""

from __future__ import annotations

import ipaddress
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class MessageError(ValueError):
    """Raised when bytes cannot be decoded into a protocol message."""


class LSAType(Enum):
    ROUTER = "RouterLSA"
    NETWORK = "NetworkLSA"
    SUMMARY = "SummaryLSA"
    EXTERNAL = "ExternalLSA"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _field(obj: Any, key: str) -> Any:
    if not isinstance(obj, dict):
        raise MessageError(f"expected an object, got {type(obj).__name__}")
    try:
        return obj[key]
    except KeyError:
        raise MessageError(f"missing field {key!r}") from None


def _uint(value: Any, bits: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 1 << bits:
        raise MessageError(f"expected an unsigned {bits}-bit integer, got {value!r}")
    return value


def _str(value: Any) -> str:
    if not isinstance(value, str):
        raise MessageError(f"expected a string, got {value!r}")
    return value


def _list(value: Any, parse: Callable[[Any], Any]) -> list:
    if not isinstance(value, list):
        raise MessageError(f"expected a list, got {value!r}")
    return [parse(item) for item in value]


def _optional(value: Any, parse: Callable[[Any], Any]) -> Any:
    return None if value is None else parse(value)


def _ip(value: Any) -> IPAddress:
    try:
        return ipaddress.ip_address(_str(value))
    except ValueError as exc:
        raise MessageError(str(exc)) from None


def _coerce_ip(value: Any) -> Any:
    return ipaddress.ip_address(value) if isinstance(value, str) else value


def _lsa_type(value: Any) -> LSAType:
    try:
        return LSAType(_str(value))
    except ValueError:
        raise MessageError(f"unknown LSA type {value!r}") from None


def _single_variant(value: Any) -> tuple[str, Any]:
    if not isinstance(value, dict) or len(value) != 1:
        raise MessageError("expected an object with exactly one variant tag")
    return next(iter(value.items()))


_TIMESTAMP = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|z|[+-]\d{2}:\d{2})"
)


def _timestamp_to_json(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += f".{moment.microsecond:06d}"
    return text + "Z"


def _timestamp_from_json(value: Any) -> datetime:
    match = _TIMESTAMP.fullmatch(_str(value))
    if match is None:
        raise MessageError(f"invalid timestamp {value!r}")
    date, time, fraction, zone = match.groups()
    micro = (fraction or "")[:6].ljust(6, "0")
    offset = "+00:00" if zone in ("Z", "z") else zone
    try:
        moment = datetime.fromisoformat(f"{date}T{time}.{micro}{offset}")
    except ValueError as exc:
        raise MessageError(str(exc)) from None
    return moment.astimezone(timezone.utc)


@dataclass
class LinkData:
    link_id: str
    link_data: IPAddress
    link_type: int
    metric: int
    bandwidth: int
    available_bandwidth: int

    def __post_init__(self) -> None:
        self.link_data = _coerce_ip(self.link_data)

    def _to_json(self) -> dict[str, Any]:
        return {
            "link_id": self.link_id,
            "link_data": str(self.link_data),
            "link_type": self.link_type,
            "metric": self.metric,
            "bandwidth": self.bandwidth,
            "available_bandwidth": self.available_bandwidth,
        }

    @classmethod
    def _from_json(cls, obj: Any) -> LinkData:
        return cls(
            link_id=_str(_field(obj, "link_id")),
            link_data=_ip(_field(obj, "link_data")),
            link_type=_uint(_field(obj, "link_type"), 8),
            metric=_uint(_field(obj, "metric"), 32),
            bandwidth=_uint(_field(obj, "bandwidth"), 64),
            available_bandwidth=_uint(_field(obj, "available_bandwidth"), 64),
        )


@dataclass
class RouterLSAData:
    flags: int = 0
    links: list[LinkData] = field(default_factory=list)

    def _to_json(self) -> dict[str, Any]:
        return {"flags": self.flags, "links": [link._to_json() for link in self.links]}

    @classmethod
    def _from_json(cls, obj: Any) -> RouterLSAData:
        return cls(
            flags=_uint(_field(obj, "flags"), 8),
            links=_list(_field(obj, "links"), LinkData._from_json),
        )


@dataclass
class NetworkLSAData:
    network_mask: IPAddress
    attached_routers: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.network_mask = _coerce_ip(self.network_mask)

    def _to_json(self) -> dict[str, Any]:
        return {
            "network_mask": str(self.network_mask),
            "attached_routers": list(self.attached_routers),
        }

    @classmethod
    def _from_json(cls, obj: Any) -> NetworkLSAData:
        return cls(
            network_mask=_ip(_field(obj, "network_mask")),
            attached_routers=_list(_field(obj, "attached_routers"), _str),
        )


@dataclass
class SummaryLSAData:
    network_mask: IPAddress
    metric: int

    def __post_init__(self) -> None:
        self.network_mask = _coerce_ip(self.network_mask)

    def _to_json(self) -> dict[str, Any]:
        return {"network_mask": str(self.network_mask), "metric": self.metric}

    @classmethod
    def _from_json(cls, obj: Any) -> SummaryLSAData:
        return cls(
            network_mask=_ip(_field(obj, "network_mask")),
            metric=_uint(_field(obj, "metric"), 32),
        )


@dataclass
class ExternalLSAData:
    network_mask: IPAddress
    metric: int
    external_metric_type: int
    forwarding_address: Optional[IPAddress]
    external_route_tag: int

    def __post_init__(self) -> None:
        self.network_mask = _coerce_ip(self.network_mask)
        self.forwarding_address = _coerce_ip(self.forwarding_address)

    def _to_json(self) -> dict[str, Any]:
        forwarding = self.forwarding_address
        return {
            "network_mask": str(self.network_mask),
            "metric": self.metric,
            "external_metric_type": self.external_metric_type,
            "forwarding_address": None if forwarding is None else str(forwarding),
            "external_route_tag": self.external_route_tag,
        }

    @classmethod
    def _from_json(cls, obj: Any) -> ExternalLSAData:
        return cls(
            network_mask=_ip(_field(obj, "network_mask")),
            metric=_uint(_field(obj, "metric"), 32),
            external_metric_type=_uint(_field(obj, "external_metric_type"), 8),
            forwarding_address=_optional(_field(obj, "forwarding_address"), _ip),
            external_route_tag=_uint(_field(obj, "external_route_tag"), 32),
        )


LSAData = Union[RouterLSAData, NetworkLSAData, SummaryLSAData, ExternalLSAData]

_LSA_DATA_TAGS: dict[type, str] = {
    RouterLSAData: "Router",
    NetworkLSAData: "Network",
    SummaryLSAData: "Summary",
    ExternalLSAData: "External",
}
_LSA_DATA_CLASSES = {tag: cls for cls, tag in _LSA_DATA_TAGS.items()}


def _lsa_data_to_json(data: LSAData) -> dict[str, Any]:
    return {_LSA_DATA_TAGS[type(data)]: data._to_json()}


def _lsa_data_from_json(value: Any) -> LSAData:
    tag, body = _single_variant(value)
    try:
        cls = _LSA_DATA_CLASSES[tag]
    except KeyError:
        raise MessageError(f"unknown LSA data variant {tag!r}") from None
    return cls._from_json(body)


@dataclass
class HelloMessage:
    router_id: str
    router_name: str
    area_id: int
    hello_interval: int
    dead_interval: int
    neighbors: list[str]
    designated_router: Optional[str]
    backup_designated_router: Optional[str]
    timestamp: datetime

    @classmethod
    def create(
        cls,
        router_id: str,
        router_name: str,
        hello_interval: int,
        dead_interval: int,
        neighbors: list[str],
    ) -> HelloMessage:
        """A hello for area 0 with no designated routers, stamped now."""
        return cls(
            router_id=router_id,
            router_name=router_name,
            area_id=0,
            hello_interval=hello_interval,
            dead_interval=dead_interval,
            neighbors=list(neighbors),
            designated_router=None,
            backup_designated_router=None,
            timestamp=_utcnow(),
        )

    def _to_json(self) -> dict[str, Any]:
        return {
            "router_id": self.router_id,
            "router_name": self.router_name,
            "area_id": self.area_id,
            "hello_interval": self.hello_interval,
            "dead_interval": self.dead_interval,
            "neighbors": list(self.neighbors),
            "designated_router": self.designated_router,
            "backup_designated_router": self.backup_designated_router,
            "timestamp": _timestamp_to_json(self.timestamp),
        }

    @classmethod
    def _from_json(cls, obj: Any) -> HelloMessage:
        return cls(
            router_id=_str(_field(obj, "router_id")),
            router_name=_str(_field(obj, "router_name")),
            area_id=_uint(_field(obj, "area_id"), 32),
            hello_interval=_uint(_field(obj, "hello_interval"), 32),
            dead_interval=_uint(_field(obj, "dead_interval"), 32),
            neighbors=_list(_field(obj, "neighbors"), _str),
            designated_router=_optional(_field(obj, "designated_router"), _str),
            backup_designated_router=_optional(_field(obj, "backup_designated_router"), _str),
            timestamp=_timestamp_from_json(_field(obj, "timestamp")),
        )


@dataclass
class LSAMessage:
    lsa_type: LSAType
    link_state_id: str
    advertising_router: str
    sequence_number: int
    checksum: int
    age: int
    data: LSAData
    timestamp: datetime

    @classmethod
    def router_lsa(cls, router_id: str, sequence_number: int, links: list[LinkData]) -> LSAMessage:
        """A router LSA advertised by router_id about itself."""
        return cls(
            lsa_type=LSAType.ROUTER,
            link_state_id=router_id,
            advertising_router=router_id,
            sequence_number=sequence_number,
            checksum=0,
            age=0,
            data=RouterLSAData(flags=0, links=list(links)),
            timestamp=_utcnow(),
        )

    def _to_json(self) -> dict[str, Any]:
        return {
            "lsa_type": self.lsa_type.value,
            "link_state_id": self.link_state_id,
            "advertising_router": self.advertising_router,
            "sequence_number": self.sequence_number,
            "checksum": self.checksum,
            "age": self.age,
            "data": _lsa_data_to_json(self.data),
            "timestamp": _timestamp_to_json(self.timestamp),
        }

    @classmethod
    def _from_json(cls, obj: Any) -> LSAMessage:
        return cls(
            lsa_type=_lsa_type(_field(obj, "lsa_type")),
            link_state_id=_str(_field(obj, "link_state_id")),
            advertising_router=_str(_field(obj, "advertising_router")),
            sequence_number=_uint(_field(obj, "sequence_number"), 32),
            checksum=_uint(_field(obj, "checksum"), 16),
            age=_uint(_field(obj, "age"), 16),
            data=_lsa_data_from_json(_field(obj, "data")),
            timestamp=_timestamp_from_json(_field(obj, "timestamp")),
        )


@dataclass
class LSAHeader:
    lsa_type: LSAType
    link_state_id: str
    advertising_router: str

    def _to_json(self) -> dict[str, Any]:
        return {
            "lsa_type": self.lsa_type.value,
            "link_state_id": self.link_state_id,
            "advertising_router": self.advertising_router,
        }

    @classmethod
    def _from_json(cls, obj: Any) -> LSAHeader:
        return cls(
            lsa_type=_lsa_type(_field(obj, "lsa_type")),
            link_state_id=_str(_field(obj, "link_state_id")),
            advertising_router=_str(_field(obj, "advertising_router")),
        )


@dataclass
class LSRMessage:
    requests: list[LSAHeader] = field(default_factory=list)

    def _to_json(self) -> dict[str, Any]:
        return {"requests": [header._to_json() for header in self.requests]}

    @classmethod
    def _from_json(cls, obj: Any) -> LSRMessage:
        return cls(requests=_list(_field(obj, "requests"), LSAHeader._from_json))


@dataclass
class LSUMessage:
    lsas: list[LSAMessage] = field(default_factory=list)

    def _to_json(self) -> dict[str, Any]:
        return {"lsas": [lsa._to_json() for lsa in self.lsas]}

    @classmethod
    def _from_json(cls, obj: Any) -> LSUMessage:
        return cls(lsas=_list(_field(obj, "lsas"), LSAMessage._from_json))


@dataclass
class LSAckMessage:
    lsa_headers: list[LSAHeader] = field(default_factory=list)

    def _to_json(self) -> dict[str, Any]:
        return {"lsa_headers": [header._to_json() for header in self.lsa_headers]}

    @classmethod
    def _from_json(cls, obj: Any) -> LSAckMessage:
        return cls(lsa_headers=_list(_field(obj, "lsa_headers"), LSAHeader._from_json))


ProtocolMessage = Union[HelloMessage, LSAMessage, LSRMessage, LSUMessage, LSAckMessage]

_MESSAGE_TAGS: dict[type, str] = {
    HelloMessage: "Hello",
    LSAMessage: "LinkStateAdvertisement",
    LSRMessage: "LinkStateRequest",
    LSUMessage: "LinkStateUpdate",
    LSAckMessage: "LinkStateAcknowledgment",
}
_MESSAGE_CLASSES = {tag: cls for cls, tag in _MESSAGE_TAGS.items()}


def encode_message(message: ProtocolMessage) -> bytes:
    """Encode a protocol message as compact JSON tagged with its kind."""
    try:
        tag = _MESSAGE_TAGS[type(message)]
    except KeyError:
        raise TypeError(f"not a protocol message: {type(message).__name__}") from None
    payload = {tag: message._to_json()}
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def decode_message(data: Union[bytes, bytearray, memoryview, str]) -> ProtocolMessage:
    """Decode a protocol message; raise MessageError if it is malformed."""
    try:
        text = data if isinstance(data, str) else bytes(data).decode("utf-8")
        payload = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MessageError(str(exc)) from None
    tag, body = _single_variant(payload)
    try:
        cls = _MESSAGE_CLASSES[tag]
    except KeyError:
        raise MessageError(f"unknown message kind {tag!r}") from None
    return cls._from_json(body)