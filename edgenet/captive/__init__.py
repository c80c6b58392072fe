"""Captive-portal DNS: reply building and an asyncio server."""