"""
miLight bridge transport
Fire-and-forget UDP, one socket per command
"""

import asyncio
import logging

from lightbridge.controllers.milight_protocol import Command

log = logging.getLogger(__name__)

DEFAULT_BRIDGE_PORT = 8899


class MiLightController:
    def __init__(self, host: str, port: int = DEFAULT_BRIDGE_PORT):
        self.host = host
        self.port = port

    async def send(self, command: Command) -> bool:
        """Send one command frame to the bridge, False if the socket failed"""
        frame = command.frame()
        log.debug("BRIDGE %s:%s: Sending %s (%s)", self.host, self.port, command, frame.hex())
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                asyncio.DatagramProtocol, remote_addr=(self.host, self.port)
            )
        except OSError as e:
            log.warning("BRIDGE %s:%s: Command %s failed: %s", self.host, self.port, command, e)
            return False

        try:
            transport.sendto(frame)
        finally:
            transport.close()
        return True
