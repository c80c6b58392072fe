import asyncio

import pytest

from edgenet.transport import AsyncUdpSocket, DatagramSocket


@pytest.mark.asyncio
async def test_roundtrip_between_two_sockets():
    a = await AsyncUdpSocket.open(("127.0.0.1", 0))
    b = await AsyncUdpSocket.open(("127.0.0.1", 0))
    try:
        assert isinstance(a, DatagramSocket)
        await a.send(b.local_address, b"ping")
        data, sender = await asyncio.wait_for(b.receive(), 2)
        assert data == b"ping"
        assert sender == a.local_address
    finally:
        a.close()
        b.close()


@pytest.mark.asyncio
async def test_datagrams_arrive_in_order():
    a = await AsyncUdpSocket.open(("127.0.0.1", 0))
    b = await AsyncUdpSocket.open(("127.0.0.1", 0))
    try:
        for payload in (b"one", b"two", b"three"):
            await a.send(b.local_address, payload)
        received = [
            (await asyncio.wait_for(b.receive(), 2))[0] for _ in range(3)
        ]
        assert received == [b"one", b"two", b"three"]
    finally:
        a.close()
        b.close()


@pytest.mark.asyncio
async def test_receive_after_close_raises():
    sock = await AsyncUdpSocket.open(("127.0.0.1", 0))
    sock.close()
    with pytest.raises(ConnectionError):
        await asyncio.wait_for(sock.receive(), 2)
    with pytest.raises(ConnectionError):
        await asyncio.wait_for(sock.receive(), 2)


@pytest.mark.asyncio
async def test_send_after_close_raises():
    sock = await AsyncUdpSocket.open(("127.0.0.1", 0))
    sock.close()
    with pytest.raises(ConnectionError):
        await sock.send(("127.0.0.1", 9), b"data")


@pytest.mark.asyncio
async def test_context_manager_closes_socket():
    async with await AsyncUdpSocket.open(("127.0.0.1", 0)) as sock:
        assert sock.local_address[0] == "127.0.0.1"
    with pytest.raises(ConnectionError):
        await asyncio.wait_for(sock.receive(), 2)