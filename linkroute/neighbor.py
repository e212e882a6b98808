"""Neighbor adjacency tracking."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NeighborState(Enum):
    DOWN = "Down"
    INIT = "Init"
    TWO_WAY = "TwoWay"
    EX_START = "ExStart"
    EXCHANGE = "Exchange"
    LOADING = "Loading"
    FULL = "Full"


@dataclass
class Neighbor:
    """A router heard on one of our interfaces."""

    router_id: str
    router_name: str
    ip_address: IPAddress
    interface: str
    hello_interval: int
    dead_interval: int
    state: NeighborState = NeighborState.INIT
    last_hello: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if isinstance(self.ip_address, str):
            self.ip_address = ipaddress.ip_address(self.ip_address)

    @classmethod
    def create(
        cls,
        router_id: str,
        router_name: str,
        ip_address: IPAddress,
        interface: str,
        hello_interval: int,
        dead_interval: int,
    ) -> Neighbor:
        """A freshly heard neighbor in the Init state."""
        return cls(
            router_id=router_id,
            router_name=router_name,
            ip_address=ip_address,
            interface=interface,
            hello_interval=hello_interval,
            dead_interval=dead_interval,
        )

    def is_active(self) -> bool:
        return self.state is not NeighborState.DOWN

    def time_since_last_hello(self) -> timedelta:
        return _utcnow() - self.last_hello

    def is_expired(self) -> bool:
        return self.time_since_last_hello() > timedelta(seconds=self.dead_interval)

    def dead_timer_remaining(self) -> int:
        """Whole seconds left before the dead interval runs out, never negative."""
        elapsed = int(self.time_since_last_hello().total_seconds())
        if elapsed >= self.dead_interval:
            return 0
        return self.dead_interval - elapsed


class NeighborManager:
    """Neighbors keyed by router id."""

    def __init__(self, dead_interval: int) -> None:
        self.dead_interval = dead_interval
        self._neighbors: dict[str, Neighbor] = {}

    def add(self, neighbor: Neighbor) -> None:
        self._neighbors[neighbor.router_id] = neighbor

    def update_hello(self, router_id: str) -> bool:
        """Record a hello from a known neighbor; False if it is unknown."""
        neighbor = self._neighbors.get(router_id)
        if neighbor is None:
            return False
        neighbor.last_hello = _utcnow()
        neighbor.state = NeighborState.TWO_WAY
        return True

    def get(self, router_id: str) -> Optional[Neighbor]:
        return self._neighbors.get(router_id)

    def neighbors(self) -> dict[str, Neighbor]:
        return dict(self._neighbors)

    def active_neighbors(self) -> list[Neighbor]:
        return [n for n in self._neighbors.values() if n.is_active()]

    def remove(self, router_id: str) -> Optional[Neighbor]:
        return self._neighbors.pop(router_id, None)

    def check_dead_neighbors(self) -> list[str]:
        """Mark expired neighbors Down, drop them and return their ids."""
        dead = [n for n in self._neighbors.values() if n.is_expired()]
        for neighbor in dead:
            neighbor.state = NeighborState.DOWN
            del self._neighbors[neighbor.router_id]
        return [neighbor.router_id for neighbor in dead]

    def __len__(self) -> int:
        return len(self._neighbors)

    def is_neighbor_active(self, router_id: str) -> bool:
        neighbor = self._neighbors.get(router_id)
        return neighbor is not None and neighbor.is_active()

    def neighbors_for_interface(self, interface: str) -> list[Neighbor]:
        return [n for n in self._neighbors.values() if n.interface == interface]

    def all_neighbors(self) -> list[Neighbor]:
        return list(self._neighbors.values())