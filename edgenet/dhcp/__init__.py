"""DHCP options, packet codec, client, server and their asyncio drivers."""