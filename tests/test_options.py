from ipaddress import IPv4Address

import pytest

from edgenet.dhcp.options import (
    CODE_CAPTIVE_URL,
    CODE_DNS,
    CODE_ROUTER,
    CODE_SUBNET,
    END,
    BufferOverflow,
    CaptiveUrl,
    ClientIdentifier,
    DataUnderflow,
    DhcpError,
    DomainNameServer,
    HostName,
    InvalidHlen,
    InvalidMessageType,
    InvalidPacket,
    InvalidUtf8Str,
    IpAddressLeaseTime,
    MaximumMessageSize,
    Message,
    MessageType,
    MessageTypeOption,
    MissingCookie,
    ParameterRequestList,
    RequestedIpAddress,
    Router,
    ServerIdentifier,
    SubnetMask,
    Unrecognized,
    decode_options,
    encode_options,
)

SAMPLE_OPTIONS = [
    MessageTypeOption(MessageType.REQUEST),
    ServerIdentifier("192.168.71.1"),
    ParameterRequestList(bytes([1, 3, 6])),
    RequestedIpAddress("192.168.71.50"),
    HostName("device"),
    Router(["192.168.71.1", "192.168.71.2"]),
    DomainNameServer(["8.8.8.8"]),
    IpAddressLeaseTime(7200),
    SubnetMask("255.255.255.0"),
    Message("hello"),
    MaximumMessageSize(1500),
    ClientIdentifier(b"\x01\x02\x03"),
    CaptiveUrl("http://portal.example.com/"),
    Unrecognized(200, b"\xaa\xbb"),
]


def test_message_type_display():
    assert str(MessageType.DISCOVER) == "DHCPDISCOVER"
    assert str(MessageType.INFORM) == "DHCPINFORM"
    assert MessageType(5) is MessageType.ACK


def test_message_type_wire_bytes():
    assert MessageTypeOption(MessageType.DISCOVER).encode() == bytes([53, 1, 1])


def test_codes():
    assert Router([]).code == CODE_ROUTER == 3
    assert DomainNameServer([]).code == CODE_DNS == 6
    assert SubnetMask("255.255.255.0").code == CODE_SUBNET == 1
    assert CaptiveUrl("").code == CODE_CAPTIVE_URL == 114
    assert Unrecognized(77, b"").code == 77


def test_server_identifier_encoding():
    ip = IPv4Address("10.0.0.1")
    assert ServerIdentifier(ip).encode() == bytes([54, 4]) + ip.packed
    assert ServerIdentifier(ip).payload() == ip.packed


def test_router_payload_concatenates_addresses():
    a, b = IPv4Address("10.0.0.1"), IPv4Address("10.0.0.2")
    option = Router([a, b])
    assert option.payload() == a.packed + b.packed
    assert option.encode()[:2] == bytes([3, 8])


@pytest.mark.parametrize("option", SAMPLE_OPTIONS)
def test_single_option_round_trip(option):
    assert decode_options(option.encode() + bytes([END])) == [option]


def test_all_options_round_trip():
    data = encode_options(SAMPLE_OPTIONS) + bytes([END])
    assert decode_options(data) == SAMPLE_OPTIONS


def test_encode_options_concatenates():
    opts = SAMPLE_OPTIONS[:3]
    assert encode_options(opts) == b"".join(o.encode() for o in opts)
    assert encode_options([]) == b""


def test_decode_ignores_bytes_after_end():
    data = MessageTypeOption(MessageType.OFFER).encode() + bytes([END, 0, 0, 7])
    assert decode_options(data) == [MessageTypeOption(MessageType.OFFER)]


def test_decode_empty_options():
    assert decode_options(bytes([END])) == []


def test_missing_end_is_underflow():
    with pytest.raises(DataUnderflow):
        decode_options(MessageTypeOption(MessageType.OFFER).encode())


def test_truncated_option_is_underflow():
    with pytest.raises(DataUnderflow):
        decode_options(bytes([54, 4, 1, 2]))


def test_invalid_message_type():
    with pytest.raises(InvalidMessageType):
        decode_options(bytes([53, 1, 99, END]))


def test_invalid_utf8():
    with pytest.raises(InvalidUtf8Str):
        decode_options(bytes([12, 2, 0xFF, 0xFE, END]))


def test_short_client_identifier():
    with pytest.raises(DataUnderflow):
        decode_options(bytes([61, 1, 1, END]))


def test_wrong_length_fixed_option():
    with pytest.raises(DataUnderflow):
        decode_options(bytes([51, 2, 0, 1, END]))
    with pytest.raises(InvalidPacket):
        decode_options(bytes([51, 5, 0, 0, 0, 0, 1, END]))


def test_ragged_address_list():
    with pytest.raises(InvalidPacket):
        decode_options(bytes([3, 3, 10, 0, 0, END]))


def test_oversized_payload():
    with pytest.raises(BufferOverflow):
        HostName("x" * 256).encode()


def test_error_messages_and_hierarchy():
    assert str(MissingCookie()) == "Missing cookie"
    assert str(InvalidHlen()) == "Invalid hlen"
    assert str(DataUnderflow()) == "Data underflow"
    for cls in (DataUnderflow, BufferOverflow, InvalidPacket, InvalidUtf8Str,
                InvalidMessageType, MissingCookie, InvalidHlen):
        assert issubclass(cls, DhcpError)


def test_address_fields_are_normalised():
    option = DomainNameServer(["1.1.1.1", IPv4Address("1.0.0.1")])
    assert option.addresses == (IPv4Address("1.1.1.1"), IPv4Address("1.0.0.1"))