"""The link-state routing protocol engine: hellos, LSA flooding and route computation."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from .config import InterfaceConfig, RouterConfig
from .message import (
    HelloMessage,
    LinkData,
    LSAMessage,
    ProtocolMessage,
    decode_message,
    encode_message,
)
from .neighbor import Neighbor, NeighborManager
from .network import NetworkTopology
from .routing_table import RoutingEntry, RoutingTable

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Address = tuple[str, int]

PROTOCOL_PORT = 9090
HELLO_ADDRESS: Address = ("224.0.0.5", PROTOCOL_PORT)
NEIGHBOR_CHECK_INTERVAL = 5
CONTROL_QUEUE_SIZE = 100

_LINK_POINT_TO_POINT = 1
_LINK_STUB_NETWORK = 3
_BITS_PER_MEGABIT = 1_000_000


class ControlAction(Enum):
    ENABLE = "Enable"
    DISABLE = "Disable"
    RECALCULATE = "Recalculate"
    INTERFACE_UP = "InterfaceUp"
    INTERFACE_DOWN = "InterfaceDown"
    SET_DEFAULT_ROUTER = "SetDefaultRouter"


@dataclass(frozen=True)
class ProtocolControl:
    """A command for a running protocol.

    ``interface`` is required for the interface actions and ``is_default``
    is the new status for SET_DEFAULT_ROUTER.
    """

    action: ControlAction
    interface: Optional[str] = None
    is_default: bool = False

    def __post_init__(self) -> None:
        needs_interface = self.action in (ControlAction.INTERFACE_UP, ControlAction.INTERFACE_DOWN)
        if needs_interface and self.interface is None:
            raise ValueError(f"{self.action.value} needs an interface name")


def _parse_ipv4_net(text: str) -> Optional[ipaddress.IPv4Interface]:
    """Parse 'a.b.c.d/len', keeping host bits; None if it is not that form."""
    address, sep, prefix = text.partition("/")
    if not sep or not prefix.isdigit():
        return None
    try:
        return ipaddress.IPv4Interface(f"{address}/{int(prefix)}")
    except ValueError:
        return None


class _Endpoint(asyncio.DatagramProtocol):
    def __init__(self, inbox: asyncio.Queue) -> None:
        self._inbox = inbox

    def datagram_received(self, data: bytes, addr: Any) -> None:
        self._inbox.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        logger.error("Socket error: %s", exc)


class RoutingProtocol:
    """Protocol state for one router and the loop that drives it."""

    def __init__(
        self,
        router_id: str,
        router_name: str,
        config: RouterConfig,
        is_default_router: bool,
    ) -> None:
        self.router_id = router_id
        self.router_name = router_name
        self.config = config
        self.enabled = True
        self.is_default_router = is_default_router

        self.neighbor_manager = NeighborManager(config.dead_interval)
        self.topology = NetworkTopology()
        self.routing_table = RoutingTable()
        self.lsa_database: dict[str, LSAMessage] = {}
        self.sequence_number = 1

        self.peer_port = PROTOCOL_PORT
        self.hello_address: Address = HELLO_ADDRESS

        self._transport: Optional[asyncio.DatagramTransport] = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._controls: asyncio.Queue = asyncio.Queue(maxsize=CONTROL_QUEUE_SIZE)

    # -- socket -----------------------------------------------------------

    async def open(self, bind_addr: Address) -> Address:
        """Bind the protocol's UDP socket and return its local address."""
        if self._transport is not None:
            raise RuntimeError("protocol socket is already open")
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _Endpoint(self._inbox), local_addr=bind_addr
        )
        self._transport = transport
        return self.local_address

    @property
    def local_address(self) -> Address:
        if self._transport is None:
            raise RuntimeError("protocol socket is not open")
        host, port = self._transport.get_extra_info("sockname")[:2]
        return host, port

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def _send(self, data: bytes, addr: Address) -> None:
        if self._transport is None:
            raise RuntimeError("protocol socket is not open")
        self._transport.sendto(data, addr)

    async def send_control(self, control: ProtocolControl) -> None:
        """Queue a control command for the running protocol."""
        await self._controls.put(control)

    # -- main loop --------------------------------------------------------

    async def run(self) -> None:
        """Receive messages and run the periodic tasks until cancelled."""
        if self.config.hello_interval <= 0 or self.config.lsa_refresh_interval <= 0:
            raise ValueError("hello and LSA refresh intervals must be positive")
        if self._transport is None:
            raise RuntimeError("protocol socket is not open")
        logger.info("Starting routing protocol for router %s", self.router_id)

        self.initialize_connected_routes()

        tasks = [
            asyncio.create_task(self._receive_loop()),
            asyncio.create_task(self._periodic(self.config.hello_interval, self.send_hellos)),
            asyncio.create_task(
                self._periodic(self.config.lsa_refresh_interval, self.send_lsa_updates)
            ),
            asyncio.create_task(self._periodic(NEIGHBOR_CHECK_INTERVAL, self._check_neighbors)),
            asyncio.create_task(self._control_loop()),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _receive_loop(self) -> None:
        while True:
            data, src = await self._inbox.get()
            try:
                self.handle_datagram(data, src)
            except Exception as exc:  # one bad datagram must not stop the loop
                logger.error("Error handling message from %s: %s", src, exc)

    async def _periodic(self, interval: float, action: Callable[[], Any]) -> None:
        while True:
            if self.enabled:
                try:
                    action()
                except Exception as exc:
                    logger.error("Periodic task failed: %s", exc)
            await asyncio.sleep(interval)

    async def _control_loop(self) -> None:
        while True:
            control = await self._controls.get()
            self.handle_control(control)

    def _check_neighbors(self) -> None:
        dead = self.neighbor_manager.check_dead_neighbors()
        if dead:
            logger.info("Detected dead neighbors: %s", dead)
            self._topology_changed()

    # -- incoming messages ------------------------------------------------

    def handle_datagram(self, data: bytes, src: Address) -> None:
        """Decode and dispatch one datagram; ignored while disabled.

        Raises MessageError if the datagram is not a valid message.
        """
        if not self.enabled:
            return
        message: ProtocolMessage = decode_message(data)
        logger.debug("Received message from %s: %r", src, message)
        if isinstance(message, HelloMessage):
            self.handle_hello(message, src[0])
        elif isinstance(message, LSAMessage):
            self.handle_lsa(message)
        else:
            logger.debug("Unhandled message type from %s", src)

    def handle_hello(self, hello: HelloMessage, src_ip: Union[IPAddress, str]) -> None:
        """Refresh a known neighbor or add a new one heard at src_ip."""
        if self.neighbor_manager.get(hello.router_id) is not None:
            self.neighbor_manager.update_hello(hello.router_id)
            return
        address = ipaddress.ip_address(src_ip)
        interface = self.find_interface_for_ip(address) or "unknown"
        neighbor = Neighbor.create(
            hello.router_id,
            hello.router_name,
            address,
            interface,
            hello.hello_interval,
            hello.dead_interval,
        )
        logger.info("New neighbor discovered: %s (%s)", hello.router_name, hello.router_id)
        self.neighbor_manager.add(neighbor)
        self._topology_changed()

    def handle_lsa(self, lsa: LSAMessage) -> bool:
        """Install and flood an LSA; False if it is not newer than the stored one."""
        key = f"{lsa.advertising_router}:{lsa.link_state_id}"
        existing = self.lsa_database.get(key)
        if existing is not None and lsa.sequence_number <= existing.sequence_number:
            return False
        self.lsa_database[key] = lsa
        self.topology.update_from_lsa(lsa)
        self.calculate_routes()
        self.flood_lsa(lsa)
        return True

    # -- outgoing messages ------------------------------------------------

    def send_hellos(self) -> None:
        """Send a hello for every enabled interface to the hello address."""
        for interface in self.config.enabled_interfaces():
            neighbors = [
                n.router_id for n in self.neighbor_manager.neighbors_for_interface(interface.name)
            ]
            hello = HelloMessage.create(
                self.router_id,
                self.router_name,
                self.config.hello_interval,
                self.config.dead_interval,
                neighbors,
            )
            data = encode_message(hello)
            try:
                self._send(data, self.hello_address)
            except OSError as exc:
                logger.warning("Failed to send hello on interface %s: %s", interface.name, exc)

    def send_lsa_updates(self) -> LSAMessage:
        """Originate a new router LSA, store it and flood it."""
        lsa = LSAMessage.router_lsa(
            self.router_id, self.sequence_number, self.generate_router_links()
        )
        self.sequence_number += 1
        self.lsa_database[f"{lsa.advertising_router}:{lsa.link_state_id}"] = lsa
        self.flood_lsa(lsa)
        return lsa

    def generate_router_links(self) -> list[LinkData]:
        """Point-to-point links to active neighbors and a stub link per network."""
        links: list[LinkData] = []
        for interface in self.config.enabled_interfaces():
            bandwidth = interface.bandwidth * _BITS_PER_MEGABIT
            links.extend(
                LinkData(
                    link_id=neighbor.router_id,
                    link_data=neighbor.ip_address,
                    link_type=_LINK_POINT_TO_POINT,
                    metric=interface.cost,
                    bandwidth=bandwidth,
                    available_bandwidth=bandwidth,
                )
                for neighbor in self.neighbor_manager.neighbors_for_interface(interface.name)
                if neighbor.is_active()
            )
            network = _parse_ipv4_net(interface.network)
            if network is not None:
                links.append(
                    LinkData(
                        link_id=f"network-{interface.name}",
                        link_data=network.network.network_address,
                        link_type=_LINK_STUB_NETWORK,
                        metric=interface.cost,
                        bandwidth=bandwidth,
                        available_bandwidth=bandwidth,
                    )
                )
        return links

    def flood_lsa(self, lsa: LSAMessage) -> None:
        """Send the LSA to every active neighbor."""
        data = encode_message(lsa)
        for neighbor in self.neighbor_manager.active_neighbors():
            try:
                self._send(data, (str(neighbor.ip_address), self.peer_port))
            except OSError as exc:
                logger.warning("Failed to send LSA to neighbor %s: %s", neighbor.router_id, exc)

    # -- route computation ------------------------------------------------

    def _topology_changed(self) -> None:
        logger.info("Topology changed, recalculating routes")
        self.calculate_routes()

    def calculate_routes(self) -> None:
        """Rebuild dynamic routes and the default route from the topology."""
        self.routing_table.clear_dynamic_routes()
        paths = self.topology.calculate_shortest_paths(self.router_id)

        for destination, path in paths.items():
            if path.next_hop is None:
                continue
            neighbor = self.neighbor_manager.get(path.next_hop)
            node = self.topology.nodes.get(destination)
            if neighbor is None or node is None:
                continue
            for link in node.links:
                if link.link_type != _LINK_STUB_NETWORK:
                    continue
                if not isinstance(link.link_data, ipaddress.IPv4Address):
                    continue
                entry = RoutingEntry.dynamic(
                    ipaddress.IPv4Interface(f"{link.link_data}/24"),
                    neighbor.ip_address,
                    neighbor.interface,
                    path.cost,
                )
                self.routing_table.add_route(entry)

        if not self.is_default_router:
            default_node = self.topology.default_router()
            if default_node is not None:
                path = paths.get(default_node.router_id)
                if path is not None and path.next_hop is not None:
                    neighbor = self.neighbor_manager.get(path.next_hop)
                    if neighbor is not None:
                        self.routing_table.set_default_route(
                            RoutingEntry.default(neighbor.ip_address, neighbor.interface, path.cost)
                        )

        self.routing_table.update_system_routing_table()

    def initialize_connected_routes(self) -> None:
        """Install a connected route for each enabled interface's network."""
        for interface in self.config.enabled_interfaces():
            network = _parse_ipv4_net(interface.network)
            if network is not None:
                self.routing_table.add_route(RoutingEntry.connected(network, interface.name))

    def find_interface_for_ip(self, ip: Union[IPAddress, str]) -> Optional[str]:
        """Name of the enabled interface whose network holds ip, if any."""
        address = ipaddress.ip_address(ip)
        if not isinstance(address, ipaddress.IPv4Address):
            return None
        interface: InterfaceConfig
        for interface in self.config.enabled_interfaces():
            network = _parse_ipv4_net(interface.network)
            if network is not None and address in network.network:
                return interface.name
        return None

    # -- control ----------------------------------------------------------

    def handle_control(self, control: ProtocolControl) -> None:
        action = control.action
        if action is ControlAction.ENABLE:
            logger.info("Enabling routing protocol")
            self.enabled = True
        elif action is ControlAction.DISABLE:
            logger.info("Disabling routing protocol")
            self.enabled = False
        elif action is ControlAction.RECALCULATE:
            logger.info("Forced route recalculation")
            self.calculate_routes()
        elif action is ControlAction.INTERFACE_UP:
            logger.info("Interface %s is up", control.interface)
            self._topology_changed()
        elif action is ControlAction.INTERFACE_DOWN:
            logger.info("Interface %s is down", control.interface)
            self._topology_changed()
        elif action is ControlAction.SET_DEFAULT_ROUTER:
            logger.info("Setting default router status: %s", control.is_default)
            self.is_default_router = control.is_default
            if control.is_default:
                self.topology.set_default_router(self.router_id)
            self.calculate_routes()