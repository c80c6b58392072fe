# edgenet

Small network protocol building blocks that use only the standard
library:

- **DHCP**: a packet codec, a client and a server. The client and the
  server know nothing about the transport. They work on `Packet`
  objects, and asyncio drivers run them over a datagram socket.
- **Captive-portal DNS**: a responder that answers every question of
  type `A` and class `IN` with one fixed IPv4 address. Other
  questions are echoed back without an answer, and requests whose
  opcode is not QUERY get an empty `NOTIMP` reply.

## Installation

```
pip install edgenet
```

To run the test suite:

```
pip install "edgenet[test]"
pytest
```

## DHCP (`edgenet.dhcp`)

### `edgenet.dhcp.options`

- The `MessageType` enum (`DISCOVER` … `INFORM`). `str()` of a member
  gives names such as `DHCPOFFER`.
- One frozen dataclass per option: `MessageTypeOption`,
  `ServerIdentifier`, `ParameterRequestList`, `RequestedIpAddress`,
  `HostName`, `Router`, `DomainNameServer`, `IpAddressLeaseTime`,
  `SubnetMask`, `Message`, `MaximumMessageSize`, `ClientIdentifier`,
  `CaptiveUrl`, and `Unrecognized` for any other code. Each one has
  `payload()` and `encode()`.
- `decode_options(data)` reads options up to the END marker.
  `encode_options(options)` writes them back to back.
- Malformed input raises a subclass of `DhcpError`: `DataUnderflow`,
  `BufferOverflow`, `InvalidPacket`, `InvalidUtf8Str`,
  `InvalidMessageType`, `MissingCookie` or `InvalidHlen`.

### `edgenet.dhcp.packet`

- `Packet` is a BOOTP packet with `decode(data)`, `encode()`,
  `new_request(...)`, `new_reply(ip, options)`,
  `is_for_us(mac, xid)` and `message_type()`. Encoded packets always
  end with the END option and are padded to at least 272 bytes.
- `Settings.from_packet(packet)` pulls out the offered address, the
  server identifier, the lease time, the gateway, the subnet mask, up
  to two DNS servers and the captive-portal URL.
- Option builders: `discover_options`, `request_options`,
  `release_options`, `decline_options` and `reply_options`.
  `reply_options` answers the client's parameter request list with
  router, DNS, subnet and captive-URL options, and holds at most
  `max_options` options in all. `requested_ip(options)` returns the
  address the client asked for.

```python
from edgenet.dhcp.packet import Packet

packet = Packet.decode(data)
print(packet.message_type(), packet.yiaddr)
wire = packet.encode()
```

### `edgenet.dhcp.client`

`Client(mac, rng=None)` builds DISCOVER, REQUEST, RELEASE and DECLINE
packets. Each one gets a random 32-bit transaction id. `is_offer`,
`is_ack` and `is_nak` check that a reply is meant for this client.

### `edgenet.dhcp.server`

- `ServerOptions` holds what the server hands out. Use
  `ServerOptions.from_ip(ip, with_gateway=True)` for the defaults: a
  255.255.255.0 subnet and a lease of 7200 seconds.
  `process(request)` sorts a request into an `Action`, or returns
  `None`.
- `Server(ip, now=None, capacity=64)` leases addresses `.50` to `.200`
  of the server's /24 network. `handle_request(server_options,
  request)` updates the lease table and returns the reply packet, if
  there is one. `now` is a function that returns seconds, with
  `time.monotonic` as the default.

### `edgenet.dhcp.io_server`

`run(server, server_options, socket)` answers requests from a
datagram socket forever. Packets that cannot be decoded are skipped.
`reply_destination(request, remote)` sends replies to broadcast
requests, and to clients with no address yet, to 255.255.255.255.

```python
import asyncio
from edgenet.dhcp.io_server import DEFAULT_SERVER_PORT, run
from edgenet.dhcp.server import Server, ServerOptions
from edgenet.transport import AsyncUdpSocket

async def main():
    options = ServerOptions.from_ip("192.168.4.1")
    server = Server("192.168.4.1")
    async with await AsyncUdpSocket.open(("0.0.0.0", DEFAULT_SERVER_PORT), broadcast=True) as sock:
        await run(server, options, sock)

asyncio.run(main())
```

### `edgenet.dhcp.io_client`

- `Lease.acquire(client, socket)` discovers a server and requests the
  offered address. It retries until an address is granted, and
  returns the `Lease` together with a `NetworkInfo`.
- `lease.renew(client, socket)` asks to extend the lease.
- `lease.keep(client, socket)` renews once a third of the lease has
  passed, and returns when a renewal fails.
- `lease.release(client, socket)` gives the address back.

The socket must be able to send and receive broadcast datagrams.

## Captive-portal DNS (`edgenet.captive`)

- `edgenet.captive.dns.reply(request, ip, ttl, max_size=1500)` builds
  the response to one DNS request. `ttl` is a `timedelta` or a number
  of seconds. It raises `InvalidMessage` for malformed requests and
  `ShortBuffer` when the response would exceed `max_size`.
- `edgenet.captive.server.run(socket, ip, ttl)` answers requests on an
  open socket and skips malformed ones.
  `serve(local_addr, ip, ttl=60)` binds a socket first.

## Transport (`edgenet.transport`)

`AsyncUdpSocket.open(local_addr, broadcast=False)` binds an asyncio
UDP socket. It has `send(remote, data)`, `receive()` and `close()`,
and works as an async context manager. Any object with matching
`send` and `receive` coroutines satisfies the `DatagramSocket`
protocol, so the servers and the lease client can also run over
other transports.

## Command line

Run the captive-portal DNS responder:

```
edgenet-captive --ip 192.168.4.1 [--bind ::] [--port 53] [--ttl 60] [-v]
```

Port 53 usually needs elevated privileges.

## What this package does not do

- It has no command-line program for the DHCP server or client. Both
  are used from Python code.
- The DHCP lease table lives in memory only. It is not stored
  anywhere and is lost when the process ends.
- Replies are sent through an ordinary UDP socket. A reply to a
  client without an address goes to the IP broadcast address. It is
  never sent as a unicast Ethernet frame to the client's hardware
  address.
- The DNS responder answers only with IPv4 `A` records. It does not
  resolve names upstream.