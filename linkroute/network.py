"""Network topology graph built from router LSAs, with shortest-path search."""

from __future__ import annotations

import heapq
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from .message import LinkData, LSAMessage, RouterLSAData

# Distances saturate at the largest unsigned 32-bit value, which also marks
# a router as unreachable.
_UNREACHABLE = (1 << 32) - 1


@dataclass
class NetworkNode:
    """A router known to the topology and the links it advertises."""

    router_id: str
    router_name: str
    links: list[LinkData] = field(default_factory=list)
    is_default_router: bool = False


@dataclass
class NetworkEdge:
    """A directed link between two routers."""

    from_id: str
    to_id: str
    cost: int
    bandwidth: int
    available_bandwidth: int
    active: bool = True

    def joins(self, first: str, second: str) -> bool:
        """True if the edge runs between the two routers in either direction."""
        return (self.from_id, self.to_id) in ((first, second), (second, first))


@dataclass
class ShortestPath:
    """The best route from the source router to one destination."""

    destination: str
    next_hop: Optional[str]
    cost: int
    path: list[str]
    bandwidth: int


class NetworkTopology:
    """Routers and directed links, versioned by a sequence number.

    Every change to the graph bumps ``sequence_number``.
    """

    def __init__(self) -> None:
        self.nodes: dict[str, NetworkNode] = {}
        self.edges: list[NetworkEdge] = []
        self.sequence_number = 0

    def add_node(self, node: NetworkNode) -> None:
        self.nodes[node.router_id] = node
        self.sequence_number += 1

    def remove_node(self, router_id: str) -> None:
        """Drop a router and every edge that touches it."""
        self.nodes.pop(router_id, None)
        self.edges = [
            edge for edge in self.edges if router_id not in (edge.from_id, edge.to_id)
        ]
        self.sequence_number += 1

    def update_from_lsa(self, lsa: LSAMessage) -> None:
        """Replace the advertising router's node and outgoing edges.

        Only router LSAs carry topology; other kinds are ignored.
        """
        if not isinstance(lsa.data, RouterLSAData):
            return
        router_id = lsa.advertising_router
        links = list(lsa.data.links)
        self.edges = [edge for edge in self.edges if edge.from_id != router_id]
        self.edges.extend(
            NetworkEdge(
                from_id=router_id,
                to_id=link.link_id,
                cost=link.metric,
                bandwidth=link.bandwidth,
                available_bandwidth=link.available_bandwidth,
            )
            for link in links
        )
        self.add_node(
            NetworkNode(
                router_id=router_id,
                router_name=router_id,
                links=links,
                is_default_router=False,
            )
        )

    def calculate_shortest_paths(self, source: str) -> dict[str, ShortestPath]:
        """Dijkstra over active edges from source to every reachable router.

        Edges leading to ids that are not routers in the topology (such as
        stub networks) are not followed.
        """
        distances = {
            router_id: 0 if router_id == source else _UNREACHABLE for router_id in self.nodes
        }
        previous: dict[str, str] = {}
        queue = [(distance, router_id) for router_id, distance in distances.items()]
        heapq.heapify(queue)

        while queue:
            current_distance, current = heapq.heappop(queue)
            if current_distance > distances[current]:
                continue
            for edge in self.edges:
                if edge.from_id != current or not edge.active:
                    continue
                neighbor = edge.to_id
                if neighbor not in distances:
                    continue
                tentative = min(current_distance + edge.cost, _UNREACHABLE)
                if tentative < distances[neighbor]:
                    distances[neighbor] = tentative
                    previous[neighbor] = current
                    heapq.heappush(queue, (tentative, neighbor))

        paths: dict[str, ShortestPath] = {}
        for destination, cost in distances.items():
            if destination == source or cost == _UNREACHABLE:
                continue
            path = self._reconstruct(previous, source, destination)
            paths[destination] = ShortestPath(
                destination=destination,
                next_hop=path[1] if len(path) > 1 else None,
                cost=cost,
                path=path,
                bandwidth=self._path_bandwidth(path),
            )
        return paths

    @staticmethod
    def _reconstruct(previous: dict[str, str], source: str, destination: str) -> list[str]:
        reversed_path = []
        current = destination
        while current in previous:
            reversed_path.append(current)
            current = previous[current]
        reversed_path.append(source)
        return reversed_path[::-1]

    def _path_bandwidth(self, path: Sequence[str]) -> int:
        """Smallest available bandwidth along the path, 0 if no hop is known."""
        bandwidths = []
        for hop_from, hop_to in zip(path, path[1:]):
            edge = next(
                (e for e in self.edges if e.from_id == hop_from and e.to_id == hop_to), None
            )
            if edge is not None:
                bandwidths.append(edge.available_bandwidth)
        return min(bandwidths, default=0)

    def neighbors_of(self, router_id: str) -> list[str]:
        """Targets of the active edges leaving router_id."""
        return [
            edge.to_id for edge in self.edges if edge.from_id == router_id and edge.active
        ]

    def _set_link_state(self, from_id: str, to_id: str, active: bool) -> None:
        for edge in self.edges:
            if edge.joins(from_id, to_id):
                edge.active = active
        self.sequence_number += 1

    def mark_link_down(self, from_id: str, to_id: str) -> None:
        """Deactivate the link between two routers in both directions."""
        self._set_link_state(from_id, to_id, False)

    def mark_link_up(self, from_id: str, to_id: str) -> None:
        """Reactivate the link between two routers in both directions."""
        self._set_link_state(from_id, to_id, True)

    def update_bandwidth(self, from_id: str, to_id: str, available_bandwidth: int) -> None:
        """Set the available bandwidth of the edges from from_id to to_id."""
        for edge in self.edges:
            if edge.from_id == from_id and edge.to_id == to_id:
                edge.available_bandwidth = available_bandwidth
        self.sequence_number += 1

    def default_router(self) -> Optional[NetworkNode]:
        return next((node for node in self.nodes.values() if node.is_default_router), None)

    def set_default_router(self, router_id: str) -> None:
        """Make router_id the only default router; an unknown id clears the flag."""
        for node in self.nodes.values():
            node.is_default_router = node.router_id == router_id
        self.sequence_number += 1