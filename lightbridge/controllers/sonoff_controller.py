"""
Sonoff DIY switch transport
Forwards the power value to the device's zeroconf REST endpoint
"""

import asyncio
import logging

import requests

log = logging.getLogger(__name__)

DEFAULT_SONOFF_PORT = 8081


class SonoffController:
    def __init__(self, host: str, port: int = DEFAULT_SONOFF_PORT, timeout: float = 3.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.session = requests.Session()

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/zeroconf/switch"

    def _post(self, on: bool) -> bool:
        try:
            response = self.session.post(self.url, json={"on": on}, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            log.warning("SWITCH %s: Power %s failed: %s", self.host, "on" if on else "off", e)
            return False
        log.debug("SWITCH %s: Power %s sent (HTTP %s)", self.host, "on" if on else "off", response.status_code)
        return True

    async def send(self, on: bool) -> bool:
        """POST the power value, False if the request failed"""
        return await asyncio.to_thread(self._post, on)

    def close(self):
        self.session.close()
