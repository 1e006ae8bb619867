import asyncio
import socket

import requests

from lightbridge.controllers.milight_controller import MiLightController
from lightbridge.controllers.milight_protocol import Command
from lightbridge.controllers.sonoff_controller import SonoffController


def test_milight_sends_three_byte_datagram():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as bridge:
        bridge.bind(("127.0.0.1", 0))
        bridge.settimeout(2)
        port = bridge.getsockname()[1]

        controller = MiLightController("127.0.0.1", port)
        assert asyncio.run(controller.send(Command(0x4E, 13))) is True
        assert asyncio.run(controller.send(Command(0x42, 0))) is True

        assert bridge.recvfrom(16)[0] == b"\x4e\x0d\x55"
        assert bridge.recvfrom(16)[0] == b"\x42\x00\x55"


def test_milight_socket_error_is_swallowed(caplog):
    controller = MiLightController("127.0.0.1", 8899)

    async def failing_endpoint(*args, **kwargs):
        raise OSError("network unreachable")

    async def scenario():
        loop = asyncio.get_running_loop()
        loop.create_datagram_endpoint = failing_endpoint
        return await controller.send(Command(0x41, 0))

    assert asyncio.run(scenario()) is False
    assert "network unreachable" in caplog.text


class FakeResponse:
    status_code = 200

    def raise_for_status(self):
        pass


def test_sonoff_posts_power(monkeypatch):
    controller = SonoffController("192.168.1.60", 8081)
    calls = []

    def post(url, json, timeout):
        calls.append((url, json, timeout))
        return FakeResponse()

    monkeypatch.setattr(controller.session, "post", post)

    assert asyncio.run(controller.send(True)) is True
    assert asyncio.run(controller.send(False)) is True
    assert calls == [
        ("http://192.168.1.60:8081/zeroconf/switch", {"on": True}, 3.0),
        ("http://192.168.1.60:8081/zeroconf/switch", {"on": False}, 3.0),
    ]
    controller.close()


def test_sonoff_request_error_is_swallowed(monkeypatch, caplog):
    controller = SonoffController("192.168.1.60")

    def post(url, json, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(controller.session, "post", post)

    assert asyncio.run(controller.send(True)) is False
    assert "Power on failed" in caplog.text
    controller.close()
