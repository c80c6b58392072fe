"""Acquires and keeps a DHCP lease over a datagram socket."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import ClassVar, Optional

from edgenet.dhcp.client import Client
from edgenet.dhcp.io_server import BROADCAST, DEFAULT_SERVER_PORT
from edgenet.dhcp.options import InvalidPacket
from edgenet.dhcp.packet import Packet, Settings
from edgenet.transport import Address, DatagramSocket

log = logging.getLogger(__name__)

DEFAULT_LEASE_SECS = 7200
MAX_SECS = 0xFFFF


def _elapsed_secs(start: float) -> int:
    return min(int(time.monotonic() - start), MAX_SECS)


def _server_address(ip: IPv4Address) -> Address:
    return (str(ip), DEFAULT_SERVER_PORT)


@dataclass(frozen=True)
class NetworkInfo:
    """Additional network settings handed out by the DHCP server."""

    gateway: Optional[IPv4Address] = None
    subnet: Optional[IPv4Address] = None
    dns1: Optional[IPv4Address] = None
    dns2: Optional[IPv4Address] = None
    captive_url: Optional[str] = None


@dataclass
class Lease:
    """An address leased from a DHCP server.

    ``duration`` is in seconds; ``acquired`` is a ``time.monotonic()`` reading.
    The socket used must be able to send and receive broadcast datagrams.
    """

    ip: IPv4Address
    server_ip: IPv4Address
    duration: float
    acquired: float

    reply_timeout: ClassVar[float] = 3.0
    retries: ClassVar[int] = 3
    check_interval: ClassVar[float] = 60.0

    @classmethod
    async def acquire(
        cls, client: Client, socket: DatagramSocket
    ) -> tuple["Lease", NetworkInfo]:
        """Discover a server and request an address from it until one is granted."""
        while True:
            offer = await cls._discover(client, socket)
            assert offer.server_ip is not None
            now = time.monotonic()

            settings = await cls._request(
                client, socket, offer.server_ip, offer.ip, True
            )
            if settings is None:
                continue
            if settings.server_ip is None:
                raise InvalidPacket("acknowledgement lacks a server identifier")

            lease_secs = (
                settings.lease_time_secs
                if settings.lease_time_secs is not None
                else DEFAULT_LEASE_SECS
            )
            lease = cls(
                ip=settings.ip,
                server_ip=settings.server_ip,
                duration=float(lease_secs),
                acquired=now,
            )
            info = NetworkInfo(
                gateway=settings.gateway,
                subnet=settings.subnet,
                dns1=settings.dns1,
                dns2=settings.dns2,
                captive_url=settings.captive_url,
            )
            return lease, info

    async def keep(self, client: Client, socket: DatagramSocket) -> None:
        """Renew the lease whenever a third of it has passed; return once renewal fails."""
        while True:
            if time.monotonic() - self.acquired >= self.duration / 3:
                if not await self.renew(client, socket):
                    return
            else:
                await asyncio.sleep(self.check_interval)

    async def renew(self, client: Client, socket: DatagramSocket) -> bool:
        """Ask the leasing server to extend the lease; True if it agreed."""
        log.info("Renewing DHCP lease...")
        now = time.monotonic()
        settings = await self._request(client, socket, self.server_ip, self.ip, False)
        if settings is None:
            return False
        if settings.lease_time_secs is not None:
            self.duration = float(settings.lease_time_secs)
        self.acquired = now
        return True

    async def release(self, client: Client, socket: DatagramSocket) -> None:
        """Tell the leasing server the address is no longer used."""
        request = client.release(0, self.ip)
        await socket.send(_server_address(self.server_ip), request.encode())

    @classmethod
    async def _receive(cls, socket: DatagramSocket) -> Optional[bytes]:
        try:
            data, _remote = await asyncio.wait_for(socket.receive(), cls.reply_timeout)
        except asyncio.TimeoutError:
            return None
        return data

    @classmethod
    async def _discover(cls, client: Client, socket: DatagramSocket) -> Settings:
        log.info("Discovering DHCP servers...")
        start = time.monotonic()

        while True:
            request, xid = client.discover(_elapsed_secs(start), None)
            await socket.send((str(BROADCAST), DEFAULT_SERVER_PORT), request.encode())

            data = await cls._receive(socket)
            if data is not None:
                reply = Packet.decode(data)
                if client.is_offer(reply, xid):
                    settings = Settings.from_packet(reply)
                    if settings.server_ip is None:
                        raise InvalidPacket("offer lacks a server identifier")
                    log.info(
                        "IP %s offered by DHCP server %s",
                        settings.ip,
                        settings.server_ip,
                    )
                    return settings

            log.info("No DHCP offers received, retrying...")

    @classmethod
    async def _request(
        cls,
        client: Client,
        socket: DatagramSocket,
        server_ip: IPv4Address,
        ip: IPv4Address,
        broadcast: bool,
    ) -> Optional[Settings]:
        for _ in range(cls.retries):
            log.info("Requesting IP %s from DHCP server %s", ip, server_ip)
            start = time.monotonic()
            request, xid = client.request(_elapsed_secs(start), ip, broadcast)
            destination = (
                (str(BROADCAST), DEFAULT_SERVER_PORT)
                if broadcast
                else _server_address(server_ip)
            )
            await socket.send(destination, request.encode())

            data = await cls._receive(socket)
            if data is None:
                continue
            reply = Packet.decode(data)
            if client.is_ack(reply, xid):
                log.info("IP %s leased successfully", ip)
                return Settings.from_packet(reply)
            if client.is_nak(reply, xid):
                log.info("IP %s not acknowledged", ip)
                return None

        log.warning("IP request was not replied")
        return None