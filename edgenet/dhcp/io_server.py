"""Runs a DHCP server over a datagram socket."""

from __future__ import annotations

import ipaddress
import logging

from edgenet.dhcp.options import DhcpError
from edgenet.dhcp.packet import UNSPECIFIED, Packet
from edgenet.dhcp.server import Server, ServerOptions
from edgenet.transport import Address, DatagramSocket

log = logging.getLogger(__name__)

DEFAULT_SERVER_PORT = 67
DEFAULT_CLIENT_PORT = 68

BROADCAST = ipaddress.IPv4Address("255.255.255.255")


def reply_destination(request: Packet, remote: Address) -> Address:
    """Where a reply goes: broadcast for broadcast or unaddressed IPv4 clients."""
    try:
        host = ipaddress.ip_address(remote[0])
    except ValueError:
        return remote
    if host.version != 4:
        return remote
    if request.broadcast or host == UNSPECIFIED:
        return (str(BROADCAST), remote[1])
    return remote


async def run(
    server: Server, server_options: ServerOptions, socket: DatagramSocket
) -> None:
    """Answer DHCP requests from the socket forever.

    Undecodable packets are skipped; socket errors propagate. The lease table
    lives in ``server`` and survives cancellation.
    """
    log.info(
        "Running DHCP server for addresses %s-%s with configuration %r",
        server.range_start,
        server.range_end,
        server_options,
    )

    while True:
        data, remote = await socket.receive()
        try:
            request = Packet.decode(data)
        except DhcpError as err:
            log.warning("Decoding packet returned error: %s", err)
            continue

        reply = server.handle_request(server_options, request)
        if reply is not None:
            await socket.send(reply_destination(request, remote), reply.encode())