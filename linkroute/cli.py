"""Command line: start a router daemon or send a command to a running one."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from .config import RouterConfig
from .router import Router

logger = logging.getLogger(__name__)

_RESPONSE_SIZE = 4096

ACTIONS = {
    "enable": ("ENABLE", "Enable the routing protocol"),
    "disable": ("DISABLE", "Disable the routing protocol"),
    "neighbors": ("NEIGHBORS", "Show neighbor list"),
    "routes": ("ROUTES", "Show routing table"),
    "topology": ("TOPOLOGY", "Show network topology"),
    "recalculate": ("RECALCULATE", "Force route recalculation"),
}


def _port(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port {text!r}") from None
    if not 0 <= value <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="router", description="Simple Dynamic Routing Protocol"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    start = commands.add_parser("start", help="Start the routing daemon")
    start.add_argument("-i", "--id", dest="router_id", required=True, help="Router ID")
    start.add_argument("-n", "--name", required=True, help="Router name")
    start.add_argument("-c", "--config", default="router.json", help="Configuration file path")
    start.add_argument("--control-port", type=_port, default=8080, help="Control port")
    start.add_argument("--protocol-port", type=_port, default=9090, help="Protocol port")
    start.add_argument("--default-router", action="store_true", help="Set as default router")

    control = commands.add_parser("control", help="Control running router")
    control.add_argument(
        "-t", "--target", default="127.0.0.1:8080", help="Target router control address"
    )
    actions = control.add_subparsers(dest="action", required=True)
    for name, (_, description) in ACTIONS.items():
        actions.add_parser(name, help=description)
    return parser


def _split_target(target: str) -> tuple[str, int]:
    host, sep, port_text = target.rpartition(":")
    if not sep or not host or not port_text.isdigit():
        raise ValueError(f"invalid target address {target!r}, expected host:port")
    port = int(port_text)
    if port > 65535:
        raise ValueError(f"port out of range in {target!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port


async def send_control_command(target: str, action: str) -> str:
    """Send one control action to the router at host:port and return its reply."""
    try:
        command = ACTIONS[action.lower()][0]
    except KeyError:
        raise ValueError(f"unknown control action {action!r}") from None
    host, port = _split_target(target)
    reader, writer = await asyncio.open_connection(host, port)
    try:
        writer.write(command.encode("ascii") + b"\n")
        await writer.drain()
        data = await reader.read(_RESPONSE_SIZE)
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
    return data.decode("utf-8", errors="replace")


async def _start(args: argparse.Namespace) -> None:
    logger.info("Starting router %s (%s)", args.name, args.router_id)
    try:
        config = RouterConfig.load(args.config)
        logger.info("Successfully loaded configuration from %s", args.config)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load configuration from %s: %s", args.config, exc)
        logger.info("Using default configuration instead")
        config = RouterConfig()
    router = Router(
        args.router_id,
        args.name,
        config,
        args.control_port,
        args.protocol_port,
        args.default_router,
    )
    await router.start()


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    try:
        if args.command == "start":
            asyncio.run(_start(args))
        else:
            print(asyncio.run(send_control_command(args.target, args.action)))
    except KeyboardInterrupt:
        return 130
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())