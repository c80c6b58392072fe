"""A DNS responder that answers every A query with one fixed address."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from datetime import timedelta
from ipaddress import IPv4Address
from typing import Optional, Union

log = logging.getLogger(__name__)

AddressLike = Union[IPv4Address, str, int, bytes]
TtlLike = Union[timedelta, int, float]

HEADER_SIZE = 12
MAX_NAME_LENGTH = 255
DEFAULT_MAX_SIZE = 1500

QR = 0x8000
RD = 0x0100
OPCODE_MASK = 0x7800
OPCODE_SHIFT = 11
RCODE_MASK = 0x000F

OPCODE_QUERY = 0
RCODE_NOERROR = 0
RCODE_NOTIMP = 4
RTYPE_A = 1
CLASS_IN = 1
MAX_TTL = 0xFFFFFFFF

_POINTER = 0xC0
_HEADER = struct.Struct("!HHHHHH")
_QUESTION_TAIL = struct.Struct("!HH")
_RECORD_TAIL = struct.Struct("!HHIH")


class DnsError(Exception):
    """Base class for errors while building a DNS reply."""

    default_message = "DnsError"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class ShortBuffer(DnsError):
    """The reply does not fit into the allowed size."""

    default_message = "ShortBuf"


class InvalidMessage(DnsError):
    """The request is not a well-formed DNS message."""

    default_message = "InvalidMessage"


@dataclass(frozen=True)
class _Question:
    name: bytes
    qtype: int
    qclass: int

    def wire(self) -> bytes:
        return self.name + _QUESTION_TAIL.pack(self.qtype, self.qclass)


class _Output:
    def __init__(self, limit: int) -> None:
        self._limit = limit
        self.data = bytearray()

    def append(self, chunk: bytes) -> None:
        if len(self.data) + len(chunk) > self._limit:
            raise ShortBuffer()
        self.data += chunk

    def set_header(self, ident: int, flags: int, qdcount: int, ancount: int) -> None:
        self.data[:HEADER_SIZE] = _HEADER.pack(ident, flags, qdcount, ancount, 0, 0)


def _parse_name(data: bytes, pos: int) -> tuple[bytes, int]:
    """Read a possibly compressed name; return its uncompressed form and the end offset."""
    name = bytearray()
    end: Optional[int] = None
    while True:
        if pos >= len(data):
            raise InvalidMessage("name runs past the end of the message")
        length = data[pos]
        kind = length & _POINTER
        if kind == _POINTER:
            if pos + 1 >= len(data):
                raise InvalidMessage("truncated compression pointer")
            target = ((length & ~_POINTER & 0xFF) << 8) | data[pos + 1]
            if end is None:
                end = pos + 2
            if target >= pos:
                raise InvalidMessage("compression pointer does not point backwards")
            pos = target
            continue
        if kind:
            raise InvalidMessage("unsupported label type")
        if pos + 1 + length > len(data):
            raise InvalidMessage("label runs past the end of the message")
        name += data[pos : pos + 1 + length]
        if len(name) > MAX_NAME_LENGTH:
            raise InvalidMessage("name too long")
        pos += 1 + length
        if length == 0:
            return bytes(name), (end if end is not None else pos)


def _parse_questions(
    data: bytes, count: int
) -> tuple[list[_Question], Optional[InvalidMessage]]:
    """Parse up to ``count`` questions, stopping at the first malformed one."""
    questions: list[_Question] = []
    pos = HEADER_SIZE
    for _ in range(count):
        try:
            name, pos = _parse_name(data, pos)
            if pos + _QUESTION_TAIL.size > len(data):
                raise InvalidMessage("truncated question")
            qtype, qclass = _QUESTION_TAIL.unpack_from(data, pos)
        except InvalidMessage as err:
            return questions, err
        pos += _QUESTION_TAIL.size
        questions.append(_Question(name, qtype, qclass))
    return questions, None


def _ttl_secs(ttl: TtlLike) -> int:
    secs = ttl // timedelta(seconds=1) if isinstance(ttl, timedelta) else int(ttl)
    if secs < 0:
        raise ValueError("ttl must not be negative")
    return min(secs, MAX_TTL)


def reply(
    request: bytes,
    ip: AddressLike,
    ttl: TtlLike,
    max_size: int = DEFAULT_MAX_SIZE,
) -> bytes:
    """Build the reply to a DNS request.

    Every question of type A and class IN is answered with ``ip``; other
    questions are echoed without an answer. Requests that are not queries get
    an empty NOTIMP reply. Raises InvalidMessage for malformed requests and
    ShortBuffer when the reply would exceed ``max_size`` bytes.
    """
    request = bytes(request)
    address = ip if isinstance(ip, IPv4Address) else IPv4Address(ip)
    ttl_secs = _ttl_secs(ttl)

    if len(request) < HEADER_SIZE:
        raise InvalidMessage("message shorter than its header")
    ident, flags, qdcount = struct.unpack_from("!HHH", request)
    opcode = (flags & OPCODE_MASK) >> OPCODE_SHIFT
    rd = flags & RD
    log.debug(
        "Processing message with id %d, flags %#06x, %d questions", ident, flags, qdcount
    )

    out = _Output(max_size)
    out.append(bytes(HEADER_SIZE))

    if opcode != OPCODE_QUERY:
        log.debug("Message is not of type Query, replying with NotImp")
        out.set_header(ident, (opcode << OPCODE_SHIFT) | rd | RCODE_NOTIMP, 0, 0)
        return bytes(out.data)

    log.debug("Message is of type Query, processing all questions")
    response_flags = QR | (opcode << OPCODE_SHIFT) | rd | RCODE_NOERROR
    questions, error = _parse_questions(request, qdcount)

    for question in questions:
        out.append(question.wire())
    out.set_header(ident, response_flags, len(questions), 0)
    if error is not None:
        raise error

    answers = 0
    for question in questions:
        if question.qtype == RTYPE_A and question.qclass == CLASS_IN:
            log.debug("Answering %r with %s", question, address)
            out.append(
                question.name
                + _RECORD_TAIL.pack(RTYPE_A, CLASS_IN, ttl_secs, 4)
                + address.packed
            )
            answers += 1
        else:
            log.debug("Question %r is not of type A, not answering", question)

    out.set_header(ident, response_flags, len(questions), answers)
    return bytes(out.data)