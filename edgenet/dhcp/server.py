"""A transport-agnostic DHCP server with a small in-memory lease table."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from ipaddress import IPv4Address
from typing import Callable, Optional

from edgenet.dhcp.options import AddressLike, MessageType, ServerIdentifier
from edgenet.dhcp.packet import (
    DEFAULT_MAX_OPTIONS,
    UNSPECIFIED,
    Packet,
    reply_options,
    requested_ip,
)

log = logging.getLogger(__name__)

DEFAULT_LEASE_DURATION_SECS = 7200
DEFAULT_SUBNET = IPv4Address("255.255.255.0")
DEFAULT_CAPACITY = 64
RANGE_START_OCTET = 50
RANGE_END_OCTET = 200


def _ip(value: AddressLike) -> IPv4Address:
    return value if isinstance(value, IPv4Address) else IPv4Address(value)


def _monotonic_secs() -> int:
    return int(time.monotonic())


@dataclass
class Lease:
    """An address lease held by a client hardware address."""

    mac: bytes
    expires: int


class ActionKind(enum.Enum):
    DISCOVER = "discover"
    REQUEST = "request"
    RELEASE = "release"
    DECLINE = "decline"


@dataclass(frozen=True)
class Action:
    """What a client request asks the server to do."""

    kind: ActionKind
    ip: Optional[IPv4Address]
    mac: bytes


@dataclass
class ServerOptions:
    """The configuration a server hands out to clients."""

    ip: IPv4Address
    gateways: tuple[IPv4Address, ...] = ()
    subnet: Optional[IPv4Address] = DEFAULT_SUBNET
    dns: tuple[IPv4Address, ...] = ()
    captive_url: Optional[str] = None
    lease_duration_secs: int = DEFAULT_LEASE_DURATION_SECS

    def __post_init__(self) -> None:
        self.ip = _ip(self.ip)
        self.gateways = tuple(_ip(g) for g in self.gateways)
        self.subnet = None if self.subnet is None else _ip(self.subnet)
        self.dns = tuple(_ip(d) for d in self.dns)

    @classmethod
    def from_ip(cls, ip: AddressLike, with_gateway: bool = True) -> "ServerOptions":
        """Defaults for a server at the given address, optionally acting as gateway."""
        ip = _ip(ip)
        return cls(ip=ip, gateways=(ip,) if with_gateway else ())

    def process(self, request: Packet) -> Optional[Action]:
        """Classify a client request, or return None if it is to be ignored."""
        if request.reply:
            return None

        message_type = request.message_type()
        if message_type is None:
            log.warning("Ignoring DHCP request, no message type found: %r", request)
            return None

        server_identifier = next(
            (o.ip for o in request.options if isinstance(o, ServerIdentifier)), None
        )
        if server_identifier is not None and server_identifier != self.ip:
            log.warning(
                "Ignoring %s request, not addressed to this server: %r",
                message_type,
                request,
            )
            return None

        log.debug("Received %s request: %r", message_type, request)

        if message_type == MessageType.DISCOVER:
            return Action(
                ActionKind.DISCOVER, requested_ip(request.options), request.chaddr
            )
        if message_type == MessageType.REQUEST:
            ip = requested_ip(request.options)
            if ip is None and request.ciaddr != UNSPECIFIED:
                ip = request.ciaddr
            if ip is None:
                return None
            return Action(ActionKind.REQUEST, ip, request.chaddr)
        if server_identifier == self.ip:
            if message_type == MessageType.RELEASE:
                return Action(ActionKind.RELEASE, request.yiaddr, request.chaddr)
            if message_type == MessageType.DECLINE:
                return Action(ActionKind.DECLINE, request.yiaddr, request.chaddr)
        return None

    def offer(self, request: Packet, yiaddr: AddressLike) -> Packet:
        """A DHCPOFFER of the given address."""
        return self._reply(request, MessageType.OFFER, _ip(yiaddr))

    def ack_nak(self, request: Packet, ip: Optional[AddressLike]) -> Packet:
        """A DHCPACK of the address, or a DHCPNAK if there is none."""
        if ip is None:
            return self._reply(request, MessageType.NAK, None)
        return self._reply(request, MessageType.ACK, _ip(ip))

    def _reply(
        self,
        request: Packet,
        message_type: MessageType,
        ip: Optional[IPv4Address],
    ) -> Packet:
        reply = request.new_reply(
            ip,
            reply_options(
                request.options,
                message_type,
                self.ip,
                self.lease_duration_secs,
                self.gateways,
                self.subnet,
                self.dns,
                self.captive_url,
                DEFAULT_MAX_OPTIONS,
            ),
        )
        log.debug("Sending %s reply: %r", message_type, reply)
        return reply


@dataclass
class Server:
    """Hands out addresses .50 to .200 of the server's /24 network."""

    range_start: IPv4Address
    range_end: IPv4Address
    now: Callable[[], int] = _monotonic_secs
    capacity: int = DEFAULT_CAPACITY
    leases: dict[IPv4Address, Lease] = field(default_factory=dict)

    def __init__(
        self,
        ip: AddressLike,
        now: Optional[Callable[[], int]] = None,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        prefix = _ip(ip).packed[:3]
        self.range_start = IPv4Address(prefix + bytes((RANGE_START_OCTET,)))
        self.range_end = IPv4Address(prefix + bytes((RANGE_END_OCTET,)))
        self.now = now if now is not None else _monotonic_secs
        self.capacity = capacity
        self.leases = {}

    def handle_request(
        self, server_options: ServerOptions, request: Packet
    ) -> Optional[Packet]:
        """Update the lease table for a request and return the reply, if any."""
        action = server_options.process(request)
        if action is None:
            return None

        if action.kind is ActionKind.DISCOVER:
            ip: Optional[IPv4Address] = None
            if action.ip is not None and self._is_available(action.mac, action.ip):
                ip = action.ip
            if ip is None:
                ip = self._current_lease(action.mac)
            if ip is None:
                ip = self._available()
            return server_options.offer(request, ip) if ip is not None else None

        if action.kind is ActionKind.REQUEST:
            assert action.ip is not None
            now = self.now()
            granted = self._is_available(action.mac, action.ip) and self._add_lease(
                action.ip,
                request.chaddr,
                now + server_options.lease_duration_secs,
            )
            return server_options.ack_nak(request, action.ip if granted else None)

        self._remove_lease(action.mac)
        return None

    def _in_range(self, addr: IPv4Address) -> bool:
        return self.range_start <= addr <= self.range_end

    def _is_available(self, mac: bytes, addr: IPv4Address) -> bool:
        if not self._in_range(addr):
            return False
        lease = self.leases.get(addr)
        return lease is None or lease.mac == mac or self.now() > lease.expires

    def _available(self) -> Optional[IPv4Address]:
        addr = self.range_start
        while addr <= self.range_end:
            if addr not in self.leases:
                return addr
            addr += 1

        expired = next(
            (a for a, lease in self.leases.items() if self.now() > lease.expires),
            None,
        )
        if expired is not None:
            del self.leases[expired]
        return expired

    def _current_lease(self, mac: bytes) -> Optional[IPv4Address]:
        return next((a for a, lease in self.leases.items() if lease.mac == mac), None)

    def _add_lease(self, addr: IPv4Address, mac: bytes, expires: int) -> bool:
        self._remove_lease(mac)
        if addr not in self.leases and len(self.leases) >= self.capacity:
            return False
        self.leases[addr] = Lease(mac=bytes(mac), expires=expires)
        return True

    def _remove_lease(self, mac: bytes) -> bool:
        addr = self._current_lease(mac)
        if addr is None:
            return False
        del self.leases[addr]
        return True