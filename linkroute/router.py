"""The router daemon: runs the protocol and answers a line-based TCP control interface."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from .config import RouterConfig
from .neighbor import Neighbor
from .protocol import RoutingProtocol

logger = logging.getLogger(__name__)

_READ_SIZE = 1024
_BIND_HOST = "0.0.0.0"

UNKNOWN_COMMAND = (
    "Unknown command. Available commands: "
    "ENABLE, DISABLE, NEIGHBORS, ROUTES, TOPOLOGY, RECALCULATE\n"
)


@dataclass
class RouterStatus:
    """A snapshot of the protocol's neighbors and when it was taken (monotonic clock)."""

    neighbors: dict[str, Neighbor] = field(default_factory=dict)
    last_update: float = field(default_factory=time.monotonic)

    def age(self) -> int:
        """Whole seconds since the snapshot was taken."""
        return int(time.monotonic() - self.last_update)


def _format_last_hello(neighbor: Neighbor) -> str:
    seconds = int(neighbor.time_since_last_hello().total_seconds())
    if seconds < 60:
        return f"{seconds}s ago"
    return f"{seconds // 60}m ago"


def _render(lines: list[str]) -> str:
    return "".join(f"{line}\n" for line in lines)


class Router:
    """One router: its protocol engine, neighbor status and control server."""

    def __init__(
        self,
        router_id: str,
        name: str,
        config: RouterConfig,
        control_port: int,
        protocol_port: int,
        is_default_router: bool,
    ) -> None:
        self.router_id = router_id
        self.name = name
        self.config = config
        self.control_port = control_port
        self.protocol_port = protocol_port
        self.is_default_router = is_default_router
        self.protocol: Optional[RoutingProtocol] = None
        self.status = RouterStatus()
        self.control_address: Optional[tuple[str, int]] = None
        self.status_interval = 1.0

    async def start(self) -> None:
        """Run the protocol and the control server until either stops or this is cancelled."""
        logger.info(
            "Starting router %s on ports %d (control) and %d (protocol)",
            self.name,
            self.control_port,
            self.protocol_port,
        )
        protocol = RoutingProtocol(self.router_id, self.name, self.config, self.is_default_router)
        await protocol.open((_BIND_HOST, self.protocol_port))
        self.protocol = protocol
        try:
            server = await asyncio.start_server(
                self._handle_connection, _BIND_HOST, self.control_port
            )
        except BaseException:
            protocol.close()
            raise
        self.control_address = server.sockets[0].getsockname()[:2]
        logger.info("Control server listening")

        status_task = asyncio.create_task(self._status_updater(protocol))
        protocol_task = asyncio.create_task(self._run_protocol(protocol))
        control_task = asyncio.create_task(server.serve_forever())
        tasks = (status_task, protocol_task, control_task)
        try:
            done, _ = await asyncio.wait(
                {protocol_task, control_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if protocol_task in done:
                logger.error("Protocol task terminated")
            else:
                logger.error("Control server task terminated")
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            server.close()
            with contextlib.suppress(Exception):
                await server.wait_closed()
            protocol.close()
            self.control_address = None

    @staticmethod
    async def _run_protocol(protocol: RoutingProtocol) -> None:
        try:
            await protocol.run()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Protocol error: %s", exc)

    async def _status_updater(self, protocol: RoutingProtocol) -> None:
        while True:
            await asyncio.sleep(self.status_interval)
            self.status.neighbors = {
                router_id: dataclasses.replace(neighbor)
                for router_id, neighbor in protocol.neighbor_manager.neighbors().items()
            }
            self.status.last_update = time.monotonic()

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        logger.info("Control connection from %s", peer)
        try:
            while True:
                data = await reader.read(_READ_SIZE)
                if not data:
                    break
                response = self.handle_control_command(data.decode("utf-8", errors="replace"))
                writer.write(response.encode("utf-8"))
                await writer.drain()
        except OSError as exc:
            logger.error("Control connection error: %s", exc)
        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

    def handle_control_command(self, command: str) -> str:
        """The textual reply to one control command."""
        command = command.strip()
        if command == "ENABLE":
            return "Routing protocol enabled\n"
        if command == "DISABLE":
            return "Routing protocol disabled\n"
        if command == "NEIGHBORS":
            return self.neighbors_info()
        if command == "ROUTES":
            return self.routes_info()
        if command == "TOPOLOGY":
            return self.topology_info()
        if command == "RECALCULATE":
            return "Route recalculation triggered\n"
        return UNKNOWN_COMMAND

    def neighbors_info(self) -> str:
        lines = [
            "Neighbor Information:",
            f"{'Router ID':<20} {'IP Address':<15} {'State':<10} {'Last Hello':<12} {'Interface':<12}",
            "-" * 75,
        ]
        neighbors = self.status.neighbors
        if not neighbors:
            lines.append("No neighbors found")
        for neighbor in neighbors.values():
            lines.append(
                f"{neighbor.router_id:<20} {str(neighbor.ip_address):<15} "
                f"{neighbor.state.value:<10} {_format_last_hello(neighbor):<12} "
                f"{neighbor.interface:<12}"
            )
        lines.append("")
        lines.append(f"(Data updated {self.status.age()} seconds ago)")
        return _render(lines)

    def routes_info(self) -> str:
        lines = [
            "Routing Table:",
            f"{'Network':<18} {'Next Hop':<15} {'Interface':<12} {'Metric':<8}",
            "-" * 60,
        ]
        interfaces = self.config.enabled_interfaces()
        if not interfaces:
            lines.append("No routes found")
        for interface in interfaces:
            lines.append(
                f"{interface.network:<18} {'Direct':<15} {interface.name:<12} {interface.cost:<8}"
            )
        return _render(lines)

    def topology_info(self) -> str:
        lines = [
            "Network Topology:",
            "=" * 50,
            "",
            "Local Router:",
            f"Router ID: {self.router_id}",
            f"Router Name: {self.name}",
            f"Default Router: {'YES' if self.is_default_router else 'NO'}",
            "",
            "Interfaces:",
            f"{'Name':<15} {'IP Address':<15} {'Network':<15} {'Cost':<8} {'Status':<10}",
            "-" * 70,
        ]
        for interface in self.config.interfaces:
            state = "UP" if interface.enabled else "DOWN"
            lines.append(
                f"{interface.name:<15} {str(interface.ip_address):<15} "
                f"{interface.network:<15} {interface.cost:<8} {state:<10}"
            )

        neighbors = self.status.neighbors
        active = [n for n in neighbors.values() if n.is_active()]
        lines += [
            "",
            "Neighbor Summary:",
            f"Total Neighbors: {len(neighbors)}",
            f"Active Neighbors: {len(active)}",
        ]
        if active:
            lines += ["", "Active Neighbors:"]
            lines += [
                f"  {n.router_name} ({n.router_id}) - {n.ip_address} [{n.interface}]"
                for n in active
            ]
        lines += ["", f"(Neighbor data updated {self.status.age()} seconds ago)"]
        return _render(lines)