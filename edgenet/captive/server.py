"""A captive-portal DNS server that points every name at one address."""

from __future__ import annotations

import argparse
import asyncio
import ipaddress
import logging
from typing import Optional, Sequence

from edgenet.captive.dns import AddressLike, InvalidMessage, TtlLike, reply
from edgenet.transport import Address, AsyncUdpSocket, DatagramSocket

log = logging.getLogger(__name__)

DEFAULT_PORT = 53
DEFAULT_SOCKET: Address = ("::", DEFAULT_PORT)
DEFAULT_TTL = 60
TX_BUFFER_SIZE = 1500


async def run(socket: DatagramSocket, ip: AddressLike, ttl: TtlLike) -> None:
    """Answer DNS requests from the socket forever.

    Malformed requests are skipped; socket errors and replies that do not fit
    into a datagram propagate.
    """
    while True:
        log.debug("Waiting for data")
        request, remote = await socket.receive()
        log.debug("Received %d bytes from %s", len(request), remote)

        try:
            response = reply(request, ip, ttl, TX_BUFFER_SIZE)
        except InvalidMessage:
            log.warning("Got invalid message from %s, skipping", remote)
            continue

        await socket.send(remote, response)
        log.debug("Sent %d bytes to %s", len(response), remote)


async def serve(
    local_addr: Address, ip: AddressLike, ttl: TtlLike = DEFAULT_TTL
) -> None:
    """Bind a UDP socket to the local address and run the server on it."""
    async with await AsyncUdpSocket.open(local_addr) as socket:
        log.info("Captive portal DNS listening on %s", socket.local_address)
        await run(socket, ip, ttl)


def _non_negative_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from exc
    if value < 0:
        raise argparse.ArgumentTypeError("must not be negative")
    return value


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Answer every DNS A query with the captive portal's address."
    )
    parser.add_argument(
        "--ip", required=True, type=ipaddress.IPv4Address, help="address to answer with"
    )
    parser.add_argument("--bind", default=DEFAULT_SOCKET[0], help="local address")
    parser.add_argument(
        "--port", default=DEFAULT_PORT, type=_non_negative_int, help="local port"
    )
    parser.add_argument(
        "--ttl", default=DEFAULT_TTL, type=_non_negative_int, help="answer TTL, seconds"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""
    args = _parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        asyncio.run(serve((args.bind, args.port), args.ip, args.ttl))
    except KeyboardInterrupt:
        pass
    return 0