"""A transport-agnostic DHCP client that builds requests and checks replies."""

from __future__ import annotations

import random
from typing import Iterable, Optional

from edgenet.dhcp.options import AddressLike, DhcpOption, MessageType
from edgenet.dhcp.packet import (
    Packet,
    decline_options,
    discover_options,
    release_options,
    request_options,
)


class Client:
    """Builds BOOTP requests for one hardware address and recognizes replies to it."""

    def __init__(self, mac: bytes, rng: Optional[random.Random] = None) -> None:
        mac = bytes(mac)
        if len(mac) != 6:
            raise ValueError("mac must be 6 bytes long")
        self.mac = mac
        self.rng = rng if rng is not None else random.SystemRandom()

    def discover(
        self, secs: int = 0, ip: Optional[AddressLike] = None
    ) -> tuple[Packet, int]:
        """A broadcast DHCPDISCOVER and its transaction id."""
        return self.bootp_request(secs, None, True, discover_options(ip))

    def request(
        self, secs: int, ip: AddressLike, broadcast: bool
    ) -> tuple[Packet, int]:
        """A DHCPREQUEST for the given address and its transaction id."""
        return self.bootp_request(secs, None, broadcast, request_options(ip))

    def release(self, secs: int, ip: AddressLike) -> Packet:
        """A DHCPRELEASE of the given address."""
        return self.bootp_request(secs, ip, False, release_options())[0]

    def decline(self, secs: int, ip: AddressLike) -> Packet:
        """A DHCPDECLINE of the given address."""
        return self.bootp_request(secs, ip, False, decline_options())[0]

    def is_offer(self, reply: Packet, xid: int) -> bool:
        return self.is_bootp_reply_for_us(reply, xid, (MessageType.OFFER,))

    def is_ack(self, reply: Packet, xid: int) -> bool:
        return self.is_bootp_reply_for_us(reply, xid, (MessageType.ACK,))

    def is_nak(self, reply: Packet, xid: int) -> bool:
        return self.is_bootp_reply_for_us(reply, xid, (MessageType.NAK,))

    def bootp_request(
        self,
        secs: int,
        ip: Optional[AddressLike],
        broadcast: bool,
        options: Iterable[DhcpOption],
    ) -> tuple[Packet, int]:
        """A request with a fresh random transaction id, returned alongside it."""
        xid = self.rng.getrandbits(32)
        return Packet.new_request(self.mac, xid, secs, ip, broadcast, options), xid

    def is_bootp_reply_for_us(
        self,
        reply: Packet,
        xid: int,
        expected_message_types: Optional[Iterable[MessageType]] = None,
    ) -> bool:
        """Whether the reply targets this client and, if given, has one of the types."""
        if not (reply.reply and reply.is_for_us(self.mac, xid)):
            return False
        if expected_message_types is None:
            return True
        message_type = reply.message_type()
        return message_type is not None and message_type in tuple(expected_message_types)