import asyncio
import socket as pysocket
import struct

import pytest

from edgenet.captive.dns import CLASS_IN, RD, RTYPE_A, ShortBuffer, reply
from edgenet.captive.server import main, run, serve
from edgenet.transport import AsyncUdpSocket

IP = "192.0.2.1"
REMOTE = ("198.51.100.7", 40000)


class Exhausted(Exception):
    pass


class FakeSocket:
    def __init__(self, datagrams):
        self.incoming = list(datagrams)
        self.sent = []

    async def receive(self):
        if not self.incoming:
            raise Exhausted()
        return self.incoming.pop(0)

    async def send(self, remote, data):
        self.sent.append((remote, bytes(data)))


class FailingSendSocket(FakeSocket):
    async def send(self, remote, data):
        raise ConnectionError("send failed")


def build_query(names, ident=0x4242):
    header = struct.pack("!HHHHHH", ident, RD, len(names), 0, 0, 0)
    body = b""
    for name in names:
        labels = b"".join(bytes([len(p)]) + p.encode() for p in name.split("."))
        body += labels + b"\x00" + struct.pack("!HH", RTYPE_A, CLASS_IN)
    return header + body


@pytest.mark.asyncio
async def test_run_replies_to_sender():
    query = build_query(["portal.example.com"])
    sock = FakeSocket([(query, REMOTE)])
    with pytest.raises(Exhausted):
        await run(sock, IP, 120)
    assert sock.sent == [(REMOTE, reply(query, IP, 120))]


@pytest.mark.asyncio
async def test_run_skips_invalid_messages():
    query = build_query(["portal.example.com"])
    other = ("198.51.100.8", 40001)
    sock = FakeSocket([(b"\x01\x02", other), (query, REMOTE)])
    with pytest.raises(Exhausted):
        await run(sock, IP, 120)
    assert [remote for remote, _ in sock.sent] == [REMOTE]


@pytest.mark.asyncio
async def test_run_propagates_oversized_reply():
    names = [("a" * 60) + f".n{i}.example.com" for i in range(30)]
    sock = FakeSocket([(build_query(names), REMOTE)])
    with pytest.raises(ShortBuffer):
        await run(sock, IP, 120)
    assert sock.sent == []


@pytest.mark.asyncio
async def test_run_propagates_send_errors():
    sock = FailingSendSocket([(build_query(["example.com"]), REMOTE)])
    with pytest.raises(ConnectionError):
        await run(sock, IP, 120)


def _free_udp_port():
    with pysocket.socket(pysocket.AF_INET, pysocket.SOCK_DGRAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


@pytest.mark.asyncio
async def test_serve_answers_over_udp():
    port = _free_udp_port()
    query = build_query(["portal.example.com"], ident=0x0101)
    task = asyncio.create_task(serve(("127.0.0.1", port), IP, 30))
    try:
        await asyncio.sleep(0.1)
        async with await AsyncUdpSocket.open(("127.0.0.1", 0)) as client:
            data = None
            for _ in range(10):
                await client.send(("127.0.0.1", port), query)
                try:
                    data, _remote = await asyncio.wait_for(client.receive(), 0.5)
                    break
                except (asyncio.TimeoutError, OSError):
                    await asyncio.sleep(0.1)
            assert data == reply(query, IP, 30)
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


def test_main_rejects_invalid_ip():
    with pytest.raises(SystemExit) as excinfo:
        main(["--ip", "not-an-address"])
    assert excinfo.value.code == 2


def test_main_rejects_negative_ttl():
    with pytest.raises(SystemExit) as excinfo:
        main(["--ip", IP, "--ttl", "-5"])
    assert excinfo.value.code == 2