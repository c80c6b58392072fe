"""Asynchronous UDP sockets used by the network services."""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Protocol, Tuple, Union, runtime_checkable

Address = Tuple[Any, ...]

_CLOSED = object()


@runtime_checkable
class DatagramSocket(Protocol):
    """Anything that can send and receive whole datagrams asynchronously."""

    async def send(self, remote: Address, data: bytes) -> None:
        ...

    async def receive(self) -> tuple[bytes, Address]:
        ...


class _QueueProtocol(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.queue: asyncio.Queue[Union[tuple[bytes, Address], Exception, object]] = (
            asyncio.Queue()
        )
        self.closed = False

    def datagram_received(self, data: bytes, addr: Address) -> None:
        self.queue.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        self.queue.put_nowait(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.mark_closed()

    def mark_closed(self) -> None:
        if not self.closed:
            self.closed = True
            self.queue.put_nowait(_CLOSED)


class AsyncUdpSocket:
    """A bound UDP socket with awaitable send and receive."""

    def __init__(
        self, transport: asyncio.DatagramTransport, protocol: _QueueProtocol
    ) -> None:
        self._transport = transport
        self._protocol = protocol
        self.local_address: Address = transport.get_extra_info("sockname")

    @classmethod
    async def open(
        cls, local_addr: Address, broadcast: bool = False
    ) -> "AsyncUdpSocket":
        """Bind a socket to the given local address."""
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            _QueueProtocol,
            local_addr=tuple(local_addr),
            allow_broadcast=broadcast,
        )
        return cls(transport, protocol)

    async def send(self, remote: Address, data: bytes) -> None:
        """Send one datagram to the remote address."""
        if self._protocol.closed or self._transport.is_closing():
            raise ConnectionError("socket is closed")
        self._transport.sendto(bytes(data), tuple(remote))

    async def receive(self) -> tuple[bytes, Address]:
        """Wait for the next datagram and return it with its sender."""
        item = await self._protocol.queue.get()
        if item is _CLOSED:
            self._protocol.queue.put_nowait(_CLOSED)
            raise ConnectionError("socket is closed")
        if isinstance(item, Exception):
            raise item
        return item  # type: ignore[return-value]

    def close(self) -> None:
        """Close the socket; pending and later receives fail."""
        self._transport.close()
        self._protocol.mark_closed()

    async def __aenter__(self) -> "AsyncUdpSocket":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()