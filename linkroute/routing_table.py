"""Routing table with longest-prefix lookup."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Destination = Union[ipaddress.IPv4Interface, ipaddress.IPv4Network, str]


def _to_destination(value: Destination) -> ipaddress.IPv4Interface:
    """Keep the address as given (host bits included) together with its prefix."""
    if isinstance(value, ipaddress.IPv4Interface):
        return value
    return ipaddress.IPv4Interface(str(value))


def _key(destination: Destination) -> str:
    return str(_to_destination(destination))


class RouteType(Enum):
    CONNECTED = "Connected"
    STATIC = "Static"
    DYNAMIC = "Dynamic"
    DEFAULT = "Default"


@dataclass
class RoutingEntry:
    destination: ipaddress.IPv4Interface
    next_hop: Optional[IPAddress]
    interface: str
    metric: int
    route_type: RouteType
    age: int = 0

    def __post_init__(self) -> None:
        self.destination = _to_destination(self.destination)
        if isinstance(self.next_hop, str):
            self.next_hop = ipaddress.ip_address(self.next_hop)

    @classmethod
    def connected(cls, destination: Destination, interface: str) -> RoutingEntry:
        return cls(destination, None, interface, 1, RouteType.CONNECTED)

    @classmethod
    def dynamic(
        cls, destination: Destination, next_hop: IPAddress, interface: str, metric: int
    ) -> RoutingEntry:
        return cls(destination, next_hop, interface, metric, RouteType.DYNAMIC)

    @classmethod
    def default(cls, next_hop: IPAddress, interface: str, metric: int) -> RoutingEntry:
        return cls("0.0.0.0/0", next_hop, interface, metric, RouteType.DEFAULT)


class RoutingTable:
    """Routes keyed by destination prefix, plus an optional default route."""

    def __init__(self) -> None:
        self._entries: dict[str, RoutingEntry] = {}
        self.default_route: Optional[RoutingEntry] = None

    def add_route(self, entry: RoutingEntry) -> bool:
        """Install entry unless an existing route has an equal or lower metric."""
        key = _key(entry.destination)
        existing = self._entries.get(key)
        if existing is not None and entry.metric >= existing.metric:
            return False
        self._entries[key] = entry
        return True

    def remove_route(self, destination: Destination) -> Optional[RoutingEntry]:
        return self._entries.pop(_key(destination), None)

    def get_route(self, destination: Destination) -> Optional[RoutingEntry]:
        return self._entries.get(_key(destination))

    def routes(self) -> dict[str, RoutingEntry]:
        return dict(self._entries)

    def set_default_route(self, entry: RoutingEntry) -> None:
        self.default_route = entry

    def lookup(self, destination: Union[IPAddress, str]) -> Optional[RoutingEntry]:
        """Most specific matching route, else the default route; None for IPv6."""
        address = ipaddress.ip_address(destination)
        if not isinstance(address, ipaddress.IPv4Address):
            return None
        best: Optional[RoutingEntry] = None
        best_prefix = 0
        for entry in self._entries.values():
            network = entry.destination.network
            if address in network and network.prefixlen > best_prefix:
                best = entry
                best_prefix = network.prefixlen
        return best if best is not None else self.default_route

    def clear_dynamic_routes(self) -> None:
        self._entries = {
            key: entry
            for key, entry in self._entries.items()
            if entry.route_type is not RouteType.DYNAMIC
        }

    def routes_by_type(self, route_type: RouteType) -> list[RoutingEntry]:
        return [e for e in self._entries.values() if e.route_type is route_type]

    def update_system_routing_table(self) -> None:
        """Report the table; the host's kernel routes are left untouched."""
        logger.info("Updating system routing table with %d entries", len(self._entries))
        for destination, entry in self._entries.items():
            logger.debug(
                "Route: %s via %s dev %s metric %d",
                destination,
                entry.next_hop if entry.next_hop is not None else "direct",
                entry.interface,
                entry.metric,
            )
        default = self.default_route
        if default is not None:
            logger.debug(
                "Default route: via %s dev %s metric %d",
                default.next_hop if default.next_hop is not None else "direct",
                default.interface,
                default.metric,
            )

    def age_routes(self) -> None:
        for entry in self._entries.values():
            entry.age += 1
        if self.default_route is not None:
            self.default_route.age += 1

    def remove_aged_routes(self, max_age: int) -> None:
        """Drop dynamic routes older than max_age; other kinds never age out."""
        self._entries = {
            key: entry
            for key, entry in self._entries.items()
            if entry.route_type is not RouteType.DYNAMIC or entry.age <= max_age
        }