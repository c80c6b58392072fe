"""BOOTP/DHCP packets, option sets for each message and lease settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import IPv4Address
from typing import Iterable, Optional, Sequence

from edgenet.dhcp.options import (
    CODE_CAPTIVE_URL,
    CODE_DNS,
    CODE_ROUTER,
    CODE_SUBNET,
    END,
    PAD,
    AddressLike,
    CaptiveUrl,
    DataUnderflow,
    DhcpOption,
    DomainNameServer,
    InvalidHlen,
    IpAddressLeaseTime,
    MessageType,
    MessageTypeOption,
    MissingCookie,
    ParameterRequestList,
    RequestedIpAddress,
    Router,
    ServerIdentifier,
    SubnetMask,
    decode_options,
    encode_options,
)

COOKIE = bytes((99, 130, 83, 99))
BOOT_REQUEST = 1
BOOT_REPLY = 2
HTYPE_ETHERNET = 1
HLEN_ETHERNET = 6
SERVER_NAME_AND_FILE_NAME = 64 + 128
MIN_PACKET_SIZE = 272
BROADCAST_FLAG = 128
DEFAULT_MAX_OPTIONS = 8

REQUEST_PARAMS = bytes((CODE_ROUTER, CODE_SUBNET, CODE_DNS))

UNSPECIFIED = IPv4Address(0)


def _ip(value: AddressLike) -> IPv4Address:
    return value if isinstance(value, IPv4Address) else IPv4Address(value)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise DataUnderflow()
        chunk = self._data[self._pos : end]
        self._pos = end
        return chunk

    def byte(self) -> int:
        return self.take(1)[0]

    def uint(self, size: int) -> int:
        return int.from_bytes(self.take(size), "big")

    def address(self) -> IPv4Address:
        return IPv4Address(self.take(4))

    def rest(self) -> bytes:
        return self._data[self._pos :]


def _find(options: Iterable[DhcpOption], kind: type) -> Optional[DhcpOption]:
    return next((option for option in options if isinstance(option, kind)), None)


@dataclass
class Packet:
    """A BOOTP packet carrying DHCP options."""

    reply: bool = False
    hops: int = 0
    xid: int = 0
    secs: int = 0
    broadcast: bool = False
    ciaddr: IPv4Address = UNSPECIFIED
    yiaddr: IPv4Address = UNSPECIFIED
    siaddr: IPv4Address = UNSPECIFIED
    giaddr: IPv4Address = UNSPECIFIED
    chaddr: bytes = bytes(16)
    options: tuple[DhcpOption, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        self.ciaddr = _ip(self.ciaddr)
        self.yiaddr = _ip(self.yiaddr)
        self.siaddr = _ip(self.siaddr)
        self.giaddr = _ip(self.giaddr)
        self.chaddr = bytes(self.chaddr)
        if len(self.chaddr) != 16:
            raise ValueError("chaddr must be 16 bytes long")
        self.options = tuple(self.options)

    @classmethod
    def new_request(
        cls,
        mac: bytes,
        xid: int,
        secs: int,
        our_ip: Optional[AddressLike],
        broadcast: bool,
        options: Iterable[DhcpOption],
    ) -> "Packet":
        """Build a client request from the given hardware address."""
        mac = bytes(mac)
        if len(mac) != 6:
            raise ValueError("mac must be 6 bytes long")
        ip = UNSPECIFIED if our_ip is None else _ip(our_ip)
        return cls(
            reply=False,
            hops=0,
            xid=xid,
            secs=secs,
            broadcast=broadcast,
            ciaddr=ip,
            yiaddr=ip,
            chaddr=mac + bytes(10),
            options=tuple(options),
        )

    def new_reply(
        self, ip: Optional[AddressLike], options: Iterable[DhcpOption]
    ) -> "Packet":
        """Build a server reply to this request."""
        ciaddr = UNSPECIFIED
        if ip is not None and self.message_type() is not None:
            if any(
                isinstance(o, MessageTypeOption) and o.message_type == MessageType.REQUEST
                for o in self.options
            ):
                ciaddr = self.ciaddr
        return Packet(
            reply=True,
            hops=0,
            xid=self.xid,
            secs=0,
            broadcast=self.broadcast,
            ciaddr=ciaddr,
            yiaddr=UNSPECIFIED if ip is None else _ip(ip),
            siaddr=UNSPECIFIED,
            giaddr=self.giaddr,
            chaddr=self.chaddr,
            options=tuple(options),
        )

    def is_for_us(self, mac: bytes, xid: int) -> bool:
        """Whether this is a reply addressed to the given hardware address and xid."""
        return (
            self.chaddr[:6] == bytes(mac)
            and self.chaddr[6:] == bytes(10)
            and self.xid == xid
            and self.reply
        )

    def message_type(self) -> Optional[MessageType]:
        """The DHCP message type carried in the options, if any."""
        option = _find(self.options, MessageTypeOption)
        return option.message_type if option is not None else None

    @classmethod
    def decode(cls, data: bytes) -> "Packet":
        """Parse a packet from its wire form."""
        reader = _Reader(bytes(data))
        reply = reader.byte() == BOOT_REPLY
        reader.byte()  # hardware type
        if reader.byte() != HLEN_ETHERNET:
            raise InvalidHlen()
        hops = reader.byte()
        xid = reader.uint(4)
        secs = reader.uint(2)
        broadcast = bool(reader.uint(2) & BROADCAST_FLAG)
        ciaddr = reader.address()
        yiaddr = reader.address()
        siaddr = reader.address()
        giaddr = reader.address()
        chaddr = reader.take(16)
        reader.take(SERVER_NAME_AND_FILE_NAME)
        if reader.take(4) != COOKIE:
            raise MissingCookie()
        options = decode_options(reader.rest())
        return cls(
            reply=reply,
            hops=hops,
            xid=xid,
            secs=secs,
            broadcast=broadcast,
            ciaddr=ciaddr,
            yiaddr=yiaddr,
            siaddr=siaddr,
            giaddr=giaddr,
            chaddr=chaddr,
            options=tuple(options),
        )

    def encode(self) -> bytes:
        """Serialize the packet, padded to the minimum BOOTP size."""
        out = bytearray()
        out.append(BOOT_REPLY if self.reply else BOOT_REQUEST)
        out.append(HTYPE_ETHERNET)
        out.append(HLEN_ETHERNET)
        out.append(self.hops)
        out += self.xid.to_bytes(4, "big")
        out += self.secs.to_bytes(2, "big")
        out += (BROADCAST_FLAG if self.broadcast else 0).to_bytes(2, "big")
        for address in (self.ciaddr, self.yiaddr, self.siaddr, self.giaddr):
            out += address.packed
        out += self.chaddr
        out += bytes(SERVER_NAME_AND_FILE_NAME)
        out += COOKIE
        out += encode_options(self.options)
        out.append(END)
        if len(out) < MIN_PACKET_SIZE:
            out += bytes((PAD,)) * (MIN_PACKET_SIZE - len(out))
        return bytes(out)


@dataclass(frozen=True)
class Settings:
    """Network settings offered or acknowledged by a DHCP server."""

    ip: IPv4Address
    server_ip: Optional[IPv4Address] = None
    lease_time_secs: Optional[int] = None
    gateway: Optional[IPv4Address] = None
    subnet: Optional[IPv4Address] = None
    dns1: Optional[IPv4Address] = None
    dns2: Optional[IPv4Address] = None
    captive_url: Optional[str] = None

    @classmethod
    def from_packet(cls, packet: Packet) -> "Settings":
        """Extract settings from a server reply."""
        options = packet.options
        server = _find(options, ServerIdentifier)
        lease = _find(options, IpAddressLeaseTime)
        subnet = _find(options, SubnetMask)
        captive = _find(options, CaptiveUrl)

        def nth_address(kind: type, index: int) -> Optional[IPv4Address]:
            return next(
                (
                    o.addresses[index]
                    for o in options
                    if isinstance(o, kind) and len(o.addresses) > index
                ),
                None,
            )

        return cls(
            ip=packet.yiaddr,
            server_ip=server.ip if server is not None else None,
            lease_time_secs=lease.secs if lease is not None else None,
            gateway=nth_address(Router, 0),
            subnet=subnet.mask if subnet is not None else None,
            dns1=nth_address(DomainNameServer, 0),
            dns2=nth_address(DomainNameServer, 1),
            captive_url=captive.url if captive is not None else None,
        )


def discover_options(requested_ip: Optional[AddressLike] = None) -> tuple[DhcpOption, ...]:
    """Options for a DHCPDISCOVER."""
    options: list[DhcpOption] = [MessageTypeOption(MessageType.DISCOVER)]
    if requested_ip is not None:
        options.append(RequestedIpAddress(_ip(requested_ip)))
    return tuple(options)


def request_options(ip: AddressLike) -> tuple[DhcpOption, ...]:
    """Options for a DHCPREQUEST of the given address."""
    return (
        MessageTypeOption(MessageType.REQUEST),
        RequestedIpAddress(_ip(ip)),
        ParameterRequestList(REQUEST_PARAMS),
    )


def release_options() -> tuple[DhcpOption, ...]:
    """Options for a DHCPRELEASE."""
    return (MessageTypeOption(MessageType.RELEASE),)


def decline_options() -> tuple[DhcpOption, ...]:
    """Options for a DHCPDECLINE."""
    return (MessageTypeOption(MessageType.DECLINE),)


def reply_options(
    request_options: Iterable[DhcpOption],
    message_type: MessageType,
    server_ip: AddressLike,
    lease_duration_secs: int,
    gateways: Sequence[AddressLike] = (),
    subnet: Optional[AddressLike] = None,
    dns: Sequence[AddressLike] = (),
    captive_url: Optional[str] = None,
    max_options: int = DEFAULT_MAX_OPTIONS,
) -> tuple[DhcpOption, ...]:
    """Options for a server reply, answering the client's parameter request list."""
    requested = _find(request_options, ParameterRequestList)
    options: list[DhcpOption] = [
        MessageTypeOption(message_type),
        ServerIdentifier(_ip(server_ip)),
        IpAddressLeaseTime(lease_duration_secs),
    ]

    if message_type != MessageType.NAK and requested is not None:
        for code in requested.codes:
            if all(option.code != code for option in options):
                option: Optional[DhcpOption] = None
                if code == CODE_ROUTER and gateways:
                    option = Router(tuple(gateways))
                elif code == CODE_DNS and dns:
                    option = DomainNameServer(tuple(dns))
                elif code == CODE_SUBNET and subnet is not None:
                    option = SubnetMask(_ip(subnet))
                elif code == CODE_CAPTIVE_URL and captive_url is not None:
                    option = CaptiveUrl(captive_url)
                if option is not None:
                    options.append(option)
            if len(options) >= max_options:
                break

    return tuple(options)


def requested_ip(options: Iterable[DhcpOption]) -> Optional[IPv4Address]:
    """The address a client asked for, if any."""
    option = _find(options, RequestedIpAddress)
    return option.ip if option is not None else None