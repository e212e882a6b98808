import asyncio
import ipaddress
import socket

import pytest

from linkroute.config import InterfaceConfig, RouterConfig
from linkroute.message import (
    HelloMessage,
    LinkData,
    LSAMessage,
    MessageError,
    decode_message,
    encode_message,
)
from linkroute.neighbor import Neighbor, NeighborState
from linkroute.protocol import ControlAction, ProtocolControl, RoutingProtocol
from linkroute.routing_table import RouteType


def make_config(network="10.0.0.0/24", hello_interval=10):
    return RouterConfig(
        interfaces=[
            InterfaceConfig("eth0", "10.0.0.1", network, True, 10, 100),
            InterfaceConfig("eth1", "10.1.0.1", "10.1.0.0/24", False, 20, 1000),
        ],
        hello_interval=hello_interval,
    )


def make_protocol(is_default=False, **config_args):
    return RoutingProtocol("R1", "one", make_config(**config_args), is_default)


def p2p(target, ip, metric):
    return LinkData(target, ip, 1, metric, 1000, 1000)


def stub(name, ip):
    return LinkData(name, ip, 3, 1, 1000, 1000)


def sink_socket():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2)
    return sock


def build_two_router_topology(protocol):
    protocol.neighbor_manager.add(Neighbor.create("R2", "two", "10.0.0.2", "eth0", 10, 40))
    protocol.topology.update_from_lsa(LSAMessage.router_lsa("R1", 1, [p2p("R2", "10.0.0.2", 5)]))
    protocol.topology.update_from_lsa(
        LSAMessage.router_lsa("R2", 1, [p2p("R1", "10.0.0.1", 5), stub("lan", "172.16.5.0")])
    )


def test_find_interface_for_ip():
    protocol = make_protocol()
    assert protocol.find_interface_for_ip("10.0.0.7") == "eth0"
    assert protocol.find_interface_for_ip("10.1.0.5") is None
    assert protocol.find_interface_for_ip("192.168.1.1") is None
    assert protocol.find_interface_for_ip("::1") is None


def test_initialize_connected_routes_only_enabled():
    protocol = make_protocol()
    protocol.initialize_connected_routes()
    connected = protocol.routing_table.routes_by_type(RouteType.CONNECTED)
    assert [entry.interface for entry in connected] == ["eth0"]
    assert connected[0].next_hop is None
    assert protocol.routing_table.lookup("10.0.0.9").interface == "eth0"
    assert protocol.routing_table.lookup("10.1.0.9") is None


def test_generate_router_links_stub_only():
    protocol = make_protocol()
    links = protocol.generate_router_links()
    assert len(links) == 1
    link = links[0]
    assert link.link_id == "network-eth0"
    assert link.link_type == 3
    assert link.link_data == ipaddress.ip_address("10.0.0.0")
    assert link.metric == 10
    assert link.bandwidth == 100 * 1_000_000
    assert link.available_bandwidth == link.bandwidth


def test_generate_router_links_masks_host_bits():
    protocol = make_protocol(network="10.0.0.5/24")
    (link,) = protocol.generate_router_links()
    assert link.link_data == ipaddress.ip_address("10.0.0.0")


@pytest.mark.parametrize("network", ["garbage", "10.0.0.0", "10.0.0.0/33", "10.0.0.0/255.0.0.0"])
def test_generate_router_links_ignores_unparsable_network(network):
    protocol = make_protocol(network=network)
    assert protocol.generate_router_links() == []


def test_generate_router_links_includes_active_neighbors():
    protocol = make_protocol()
    protocol.neighbor_manager.add(Neighbor.create("R2", "two", "10.0.0.2", "eth0", 10, 40))
    down = Neighbor.create("R3", "three", "10.0.0.3", "eth0", 10, 40)
    down.state = NeighborState.DOWN
    protocol.neighbor_manager.add(down)
    links = protocol.generate_router_links()
    assert [link.link_id for link in links] == ["R2", "network-eth0"]
    assert links[0].link_type == 1
    assert links[0].link_data == ipaddress.ip_address("10.0.0.2")
    assert links[0].metric == 10


def test_handle_hello_adds_then_refreshes():
    protocol = make_protocol()
    hello = HelloMessage.create("R2", "two", 10, 40, [])
    protocol.handle_hello(hello, "10.0.0.2")
    neighbor = protocol.neighbor_manager.get("R2")
    assert neighbor.interface == "eth0"
    assert neighbor.router_name == "two"
    assert neighbor.state is NeighborState.INIT
    protocol.handle_hello(hello, "10.0.0.2")
    assert protocol.neighbor_manager.get("R2").state is NeighborState.TWO_WAY
    assert len(protocol.neighbor_manager) == 1


def test_handle_hello_unknown_interface():
    protocol = make_protocol()
    protocol.handle_hello(HelloMessage.create("R5", "five", 10, 40, []), "192.168.7.7")
    assert protocol.neighbor_manager.get("R5").interface == "unknown"


def test_handle_datagram_hello():
    protocol = make_protocol()
    data = encode_message(HelloMessage.create("R2", "two", 10, 40, ["R1"]))
    protocol.handle_datagram(data, ("10.0.0.2", 9090))
    assert protocol.neighbor_manager.get("R2").ip_address == ipaddress.ip_address("10.0.0.2")


def test_handle_datagram_ignored_when_disabled():
    protocol = make_protocol()
    protocol.handle_control(ProtocolControl(ControlAction.DISABLE))
    data = encode_message(HelloMessage.create("R2", "two", 10, 40, []))
    protocol.handle_datagram(data, ("10.0.0.2", 9090))
    assert len(protocol.neighbor_manager) == 0


def test_handle_datagram_malformed():
    protocol = make_protocol()
    with pytest.raises(MessageError):
        protocol.handle_datagram(b"not json", ("10.0.0.2", 9090))


def test_handle_lsa_stores_and_ignores_older():
    protocol = make_protocol()
    newer = LSAMessage.router_lsa("R2", 5, [p2p("R1", "10.0.0.1", 5)])
    assert protocol.handle_lsa(newer) is True
    assert protocol.lsa_database["R2:R2"] is newer
    assert "R2" in protocol.topology.nodes

    older = LSAMessage.router_lsa("R2", 5, [])
    assert protocol.handle_lsa(older) is False
    assert protocol.lsa_database["R2:R2"] is newer


def test_calculate_routes_adds_dynamic_route():
    protocol = make_protocol()
    build_two_router_topology(protocol)
    protocol.calculate_routes()
    (entry,) = protocol.routing_table.routes_by_type(RouteType.DYNAMIC)
    assert entry.next_hop == ipaddress.ip_address("10.0.0.2")
    assert entry.interface == "eth0"
    assert entry.metric == 5
    assert protocol.routing_table.lookup("172.16.5.9") is entry


def test_calculate_routes_needs_known_neighbor():
    protocol = make_protocol()
    build_two_router_topology(protocol)
    protocol.neighbor_manager.remove("R2")
    protocol.calculate_routes()
    assert protocol.routing_table.routes_by_type(RouteType.DYNAMIC) == []


def test_default_route_towards_default_router():
    protocol = make_protocol()
    build_two_router_topology(protocol)
    protocol.topology.set_default_router("R2")
    protocol.calculate_routes()
    default = protocol.routing_table.default_route
    assert default.route_type is RouteType.DEFAULT
    assert default.next_hop == ipaddress.ip_address("10.0.0.2")
    assert protocol.routing_table.lookup("8.8.8.8") is default


def test_default_router_installs_no_default_route():
    protocol = make_protocol(is_default=True)
    build_two_router_topology(protocol)
    protocol.topology.set_default_router("R2")
    protocol.calculate_routes()
    assert protocol.routing_table.default_route is None


def test_handle_control_enable_disable_and_default():
    protocol = make_protocol()
    protocol.handle_control(ProtocolControl(ControlAction.DISABLE))
    assert protocol.enabled is False
    protocol.handle_control(ProtocolControl(ControlAction.ENABLE))
    assert protocol.enabled is True

    protocol.topology.update_from_lsa(LSAMessage.router_lsa("R1", 1, []))
    protocol.handle_control(ProtocolControl(ControlAction.SET_DEFAULT_ROUTER, is_default=True))
    assert protocol.is_default_router is True
    assert protocol.topology.default_router().router_id == "R1"


def test_interface_control_requires_name():
    with pytest.raises(ValueError):
        ProtocolControl(ControlAction.INTERFACE_UP)


def test_send_lsa_updates_increments_sequence():
    protocol = make_protocol()
    lsa = protocol.send_lsa_updates()
    assert lsa.sequence_number == 1
    assert protocol.sequence_number == 2
    assert protocol.lsa_database["R1:R1"] is lsa
    assert protocol.send_lsa_updates().sequence_number == 2


def test_flood_without_socket_raises():
    protocol = make_protocol()
    protocol.neighbor_manager.add(Neighbor.create("R2", "two", "10.0.0.2", "eth0", 10, 40))
    with pytest.raises(RuntimeError):
        protocol.flood_lsa(LSAMessage.router_lsa("R1", 1, []))


@pytest.mark.asyncio
async def test_run_rejects_zero_interval():
    protocol = make_protocol(hello_interval=0)
    with pytest.raises(ValueError):
        await protocol.run()


@pytest.mark.asyncio
async def test_flood_lsa_reaches_neighbor():
    protocol = make_protocol()
    sink = sink_socket()
    try:
        await protocol.open(("127.0.0.1", 0))
        protocol.peer_port = sink.getsockname()[1]
        protocol.neighbor_manager.add(Neighbor.create("R2", "two", "127.0.0.1", "eth0", 10, 40))
        lsa = LSAMessage.router_lsa("R1", 7, [p2p("R2", "127.0.0.1", 3)])
        protocol.flood_lsa(lsa)
        data, _ = sink.recvfrom(65536)
        received = decode_message(data)
        assert received.sequence_number == 7
        assert received.advertising_router == "R1"
        assert received.data.links == lsa.data.links
    finally:
        protocol.close()
        sink.close()


@pytest.mark.asyncio
async def test_send_hellos_to_hello_address():
    protocol = make_protocol()
    sink = sink_socket()
    try:
        await protocol.open(("127.0.0.1", 0))
        protocol.hello_address = sink.getsockname()
        protocol.neighbor_manager.add(Neighbor.create("R2", "two", "10.0.0.2", "eth0", 10, 40))
        protocol.send_hellos()
        data, _ = sink.recvfrom(65536)
        hello = decode_message(data)
        assert hello.router_id == "R1"
        assert hello.router_name == "one"
        assert hello.neighbors == ["R2"]
        assert hello.dead_interval == protocol.config.dead_interval
    finally:
        protocol.close()
        sink.close()


@pytest.mark.asyncio
async def test_run_handles_datagrams_and_controls():
    protocol = make_protocol()
    sink = sink_socket()
    client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    task = None
    try:
        local = await protocol.open(("127.0.0.1", 0))
        protocol.hello_address = sink.getsockname()
        task = asyncio.create_task(protocol.run())
        client.sendto(encode_message(HelloMessage.create("R9", "nine", 10, 40, [])), local)
        for _ in range(200):
            if protocol.neighbor_manager.get("R9") is not None:
                break
            await asyncio.sleep(0.01)
        assert protocol.neighbor_manager.get("R9").interface == "unknown"
        assert protocol.routing_table.lookup("10.0.0.3").interface == "eth0"

        await protocol.send_control(ProtocolControl(ControlAction.DISABLE))
        for _ in range(200):
            if not protocol.enabled:
                break
            await asyncio.sleep(0.01)
        assert protocol.enabled is False
    finally:
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        protocol.close()
        client.close()
        sink.close()