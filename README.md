# linkroute

`linkroute` is a small link-state routing daemon in the spirit of OSPF.
Routers discover each other with periodic hello messages over UDP, flood
link-state advertisements (LSAs) describing their links, build a view of
the network topology and compute shortest paths with Dijkstra's algorithm
to fill a routing table. A running router answers plain-text commands on
a TCP control port.

## Installation

```
pip install .
```

Python 3.10 or newer is required. There are no runtime dependencies
outside the standard library.

## Configuration

A router reads its interfaces and timers from a JSON file
(`router.json` by default). Every field shown is required:

```json
{
  "interfaces": [
    {
      "name": "eth0",
      "ip_address": "10.0.1.1",
      "network": "10.0.1.0/24",
      "enabled": true,
      "cost": 10,
      "bandwidth": 100
    }
  ],
  "hello_interval": 10,
  "dead_interval": 40,
  "lsa_refresh_interval": 1800,
  "max_age": 3600
}
```

Timers are in seconds and `bandwidth` is in Mbps. If the file cannot be
read or is not a valid configuration, the router logs the error and
starts with the defaults shown above and no interfaces.

`linkroute.config.RouterConfig` loads and saves this format
(`RouterConfig.load(path)`, `config.save(path)`) and offers
`enabled_interfaces()` and `interface_by_name(name)`.

## Running a router

```
linkroute start --id 1.1.1.1 --name r1 --config router.json
```

Options of `start`:

- `-i`, `--id` – router ID (required)
- `-n`, `--name` – router name (required)
- `-c`, `--config` – configuration file path (default `router.json`)
- `--control-port` – TCP control port (default `8080`)
- `--protocol-port` – UDP protocol port (default `9090`)
- `--default-router` – mark this router as the default router

## Controlling a running router

```
linkroute control --target 127.0.0.1:8080 neighbors
linkroute control routes
linkroute control topology
linkroute control enable
linkroute control disable
linkroute control recalculate
```

`--target` (`-t`) is `host:port` and defaults to `127.0.0.1:8080`. Each
action sends one command line (`NEIGHBORS`, `ROUTES`, `TOPOLOGY`,
`ENABLE`, `DISABLE`, `RECALCULATE`) to the control port and prints the
reply. Any other command gets a list of the available ones.

## Using the library

The building blocks can be used on their own:

```python
from linkroute.message import LinkData, LSAMessage
from linkroute.network import NetworkTopology

def link(to, address, metric):
    return LinkData(link_id=to, link_data=address, link_type=1,
                    metric=metric, bandwidth=100_000_000,
                    available_bandwidth=100_000_000)

topology = NetworkTopology()
topology.update_from_lsa(LSAMessage.router_lsa("r1", 1, [link("r2", "10.0.0.2", 10)]))
topology.update_from_lsa(LSAMessage.router_lsa("r2", 1, [link("r1", "10.0.0.1", 10)]))
paths = topology.calculate_shortest_paths("r1")
print(paths["r2"].next_hop, paths["r2"].cost)   # r2 10
```

Only routers known to the topology are followed as path destinations.

- `linkroute.message` – the message types and `encode_message` /
  `decode_message` for their JSON wire form; malformed input raises
  `MessageError`.
- `linkroute.neighbor.NeighborManager` – tracks neighbors and, in
  `check_dead_neighbors()`, drops those whose dead interval has passed.
- `linkroute.routing_table.RoutingTable` – routes keyed by prefix,
  longest-prefix `lookup` with a fallback default route, route ageing.
- `linkroute.protocol.RoutingProtocol` – the protocol engine; control
  commands are `ProtocolControl` values queued with `send_control`.
- `linkroute.router.Router` – runs the protocol and the control server.

## What it does not do

- Computed routes are only logged; the host's kernel routing table is
  never changed.
- The `ROUTES` command lists the enabled interfaces' configured networks
  as direct routes, not the routes the protocol has computed.
- `ENABLE`, `DISABLE` and `RECALCULATE` on the control port only return
  an acknowledgement; they are not passed on to the running protocol.
- Hellos are sent to `224.0.0.5` port 9090 and LSAs to neighbors on port
  9090, whatever `--protocol-port` is set to, and the socket does not
  join a multicast group.
- Only IPv4 networks are routed.

## Running the tests

```
pip install .[test]
pytest
```