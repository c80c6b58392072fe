"""DHCP option types and their wire encoding."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import ClassVar, Iterable, Union

AddressLike = Union[IPv4Address, str, int, bytes]

# Option codes (RFC 2132)
SUBNET_MASK = 1
ROUTER = 3
DOMAIN_NAME_SERVER = 6
HOST_NAME = 12
REQUESTED_IP_ADDRESS = 50
IP_ADDRESS_LEASE_TIME = 51
DHCP_MESSAGE_TYPE = 53
SERVER_IDENTIFIER = 54
PARAMETER_REQUEST_LIST = 55
MESSAGE = 56
MAXIMUM_DHCP_MESSAGE_SIZE = 57
CLIENT_IDENTIFIER = 61
CAPTIVE_URL = 114

CODE_ROUTER = ROUTER
CODE_DNS = DOMAIN_NAME_SERVER
CODE_SUBNET = SUBNET_MASK
CODE_CAPTIVE_URL = CAPTIVE_URL

END = 255
PAD = 0


class DhcpError(Exception):
    """Base class for DHCP format errors."""

    default_message = "DHCP error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class DataUnderflow(DhcpError):
    default_message = "Data underflow"


class BufferOverflow(DhcpError):
    default_message = "Buffer overflow"


class InvalidPacket(DhcpError):
    default_message = "Invalid packet"


class InvalidUtf8Str(DhcpError):
    default_message = "Invalid Utf8 string"


class InvalidMessageType(DhcpError):
    default_message = "Invalid message type"


class MissingCookie(DhcpError):
    default_message = "Missing cookie"


class InvalidHlen(DhcpError):
    default_message = "Invalid hlen"


class MessageType(enum.IntEnum):
    """DHCP message type (RFC 2131 table 2, RFC 2132 section 9.6)."""

    DISCOVER = 1
    OFFER = 2
    REQUEST = 3
    DECLINE = 4
    ACK = 5
    NAK = 6
    RELEASE = 7
    INFORM = 8

    def __str__(self) -> str:
        return "DHCP" + self.name


def _ip(value: AddressLike) -> IPv4Address:
    return value if isinstance(value, IPv4Address) else IPv4Address(value)


class DhcpOption:
    """A single DHCP option."""

    code: ClassVar[int]

    def payload(self) -> bytes:
        """The option's data bytes, without code and length."""
        raise NotImplementedError

    def encode(self) -> bytes:
        """Code, length and payload as they appear on the wire."""
        data = self.payload()
        if len(data) > 255:
            raise BufferOverflow(f"option {self.code} payload of {len(data)} bytes")
        return bytes((self.code, len(data))) + data


@dataclass(frozen=True)
class MessageTypeOption(DhcpOption):
    message_type: MessageType
    code: ClassVar[int] = DHCP_MESSAGE_TYPE

    def __post_init__(self) -> None:
        object.__setattr__(self, "message_type", MessageType(self.message_type))

    def payload(self) -> bytes:
        return bytes((int(self.message_type),))


@dataclass(frozen=True)
class ServerIdentifier(DhcpOption):
    ip: IPv4Address
    code: ClassVar[int] = SERVER_IDENTIFIER

    def __post_init__(self) -> None:
        object.__setattr__(self, "ip", _ip(self.ip))

    def payload(self) -> bytes:
        return self.ip.packed


@dataclass(frozen=True)
class ParameterRequestList(DhcpOption):
    codes: bytes
    code: ClassVar[int] = PARAMETER_REQUEST_LIST

    def __post_init__(self) -> None:
        object.__setattr__(self, "codes", bytes(self.codes))

    def payload(self) -> bytes:
        return self.codes


@dataclass(frozen=True)
class RequestedIpAddress(DhcpOption):
    ip: IPv4Address
    code: ClassVar[int] = REQUESTED_IP_ADDRESS

    def __post_init__(self) -> None:
        object.__setattr__(self, "ip", _ip(self.ip))

    def payload(self) -> bytes:
        return self.ip.packed


@dataclass(frozen=True)
class HostName(DhcpOption):
    name: str
    code: ClassVar[int] = HOST_NAME

    def payload(self) -> bytes:
        return self.name.encode("utf-8")


@dataclass(frozen=True)
class _AddressList(DhcpOption):
    addresses: tuple[IPv4Address, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "addresses", tuple(_ip(a) for a in self.addresses))

    def payload(self) -> bytes:
        return b"".join(a.packed for a in self.addresses)


@dataclass(frozen=True)
class Router(_AddressList):
    code: ClassVar[int] = ROUTER


@dataclass(frozen=True)
class DomainNameServer(_AddressList):
    code: ClassVar[int] = DOMAIN_NAME_SERVER


@dataclass(frozen=True)
class IpAddressLeaseTime(DhcpOption):
    secs: int
    code: ClassVar[int] = IP_ADDRESS_LEASE_TIME

    def payload(self) -> bytes:
        return self.secs.to_bytes(4, "big")


@dataclass(frozen=True)
class SubnetMask(DhcpOption):
    mask: IPv4Address
    code: ClassVar[int] = SUBNET_MASK

    def __post_init__(self) -> None:
        object.__setattr__(self, "mask", _ip(self.mask))

    def payload(self) -> bytes:
        return self.mask.packed


@dataclass(frozen=True)
class Message(DhcpOption):
    text: str
    code: ClassVar[int] = MESSAGE

    def payload(self) -> bytes:
        return self.text.encode("utf-8")


@dataclass(frozen=True)
class MaximumMessageSize(DhcpOption):
    size: int
    code: ClassVar[int] = MAXIMUM_DHCP_MESSAGE_SIZE

    def payload(self) -> bytes:
        return self.size.to_bytes(2, "big")


@dataclass(frozen=True)
class ClientIdentifier(DhcpOption):
    identifier: bytes
    code: ClassVar[int] = CLIENT_IDENTIFIER

    def __post_init__(self) -> None:
        object.__setattr__(self, "identifier", bytes(self.identifier))

    def payload(self) -> bytes:
        return self.identifier


@dataclass(frozen=True)
class CaptiveUrl(DhcpOption):
    url: str
    code: ClassVar[int] = CAPTIVE_URL

    def payload(self) -> bytes:
        return self.url.encode("utf-8")


@dataclass(frozen=True)
class Unrecognized(DhcpOption):
    code: int  # type: ignore[misc]
    data: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))

    def payload(self) -> bytes:
        return self.data


def _exact(data: bytes, size: int) -> bytes:
    if len(data) < size:
        raise DataUnderflow()
    if len(data) > size:
        raise InvalidPacket(f"expected {size} bytes, got {len(data)}")
    return data


def _text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidUtf8Str() from exc


def _addresses(data: bytes) -> tuple[IPv4Address, ...]:
    if len(data) % 4:
        raise InvalidPacket("address list length is not a multiple of 4")
    return tuple(IPv4Address(data[i : i + 4]) for i in range(0, len(data), 4))


def _decode_body(code: int, body: bytes) -> DhcpOption:
    if code == DHCP_MESSAGE_TYPE:
        value = _exact(body, 1)[0]
        try:
            return MessageTypeOption(MessageType(value))
        except ValueError as exc:
            raise InvalidMessageType() from exc
    if code == SERVER_IDENTIFIER:
        return ServerIdentifier(IPv4Address(_exact(body, 4)))
    if code == PARAMETER_REQUEST_LIST:
        return ParameterRequestList(body)
    if code == REQUESTED_IP_ADDRESS:
        return RequestedIpAddress(IPv4Address(_exact(body, 4)))
    if code == HOST_NAME:
        return HostName(_text(body))
    if code == MAXIMUM_DHCP_MESSAGE_SIZE:
        return MaximumMessageSize(int.from_bytes(_exact(body, 2), "big"))
    if code == ROUTER:
        return Router(_addresses(body))
    if code == DOMAIN_NAME_SERVER:
        return DomainNameServer(_addresses(body))
    if code == IP_ADDRESS_LEASE_TIME:
        return IpAddressLeaseTime(int.from_bytes(_exact(body, 4), "big"))
    if code == SUBNET_MASK:
        return SubnetMask(IPv4Address(_exact(body, 4)))
    if code == MESSAGE:
        return Message(_text(body))
    if code == CLIENT_IDENTIFIER:
        if len(body) < 2:
            raise DataUnderflow()
        return ClientIdentifier(body)
    if code == CAPTIVE_URL:
        return CaptiveUrl(_text(body))
    return Unrecognized(code, body)


def decode_options(data: bytes) -> list[DhcpOption]:
    """Decode options up to the END marker; bytes after it are ignored."""
    data = bytes(data)
    options: list[DhcpOption] = []
    pos = 0
    while True:
        if pos >= len(data):
            raise DataUnderflow()
        code = data[pos]
        pos += 1
        if code == END:
            return options
        if pos >= len(data):
            raise DataUnderflow()
        length = data[pos]
        pos += 1
        if pos + length > len(data):
            raise DataUnderflow()
        options.append(_decode_body(code, data[pos : pos + length]))
        pos += length


def encode_options(options: Iterable[DhcpOption]) -> bytes:
    """Encode options back to back, without the END marker."""
    return b"".join(option.encode() for option in options)