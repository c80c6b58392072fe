"""DHCP client and server, captive-portal DNS responder and asyncio UDP transport."""

__version__ = "0.10.1"