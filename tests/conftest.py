import asyncio

import pytest

from lightbridge.config import LightbridgeConfig
from lightbridge.controllers.milight_controller import MiLightController
from lightbridge.controllers.sonoff_controller import SonoffController
from lightbridge.services.device_manager import DeviceManager

CONFIG = {
    # miLight-adapter-N is zone N
    "bulbs": [
        {"zone": zone, "bridgeIP": "127.0.0.1", "bridgePort": 8899}
        for zone in range(5)
    ],
    "switches": [{"IP": "127.0.0.1", "Port": 8081, "name": "Desk lamp"}],
}


@pytest.fixture
def events():
    """Everything the fakes saw, in order"""
    return []


@pytest.fixture
def fake_sleep(events):
    async def sleep(seconds):
        events.append(("wait", seconds))
        await asyncio.sleep(0)

    return sleep


@pytest.fixture
def fake_transports(monkeypatch, events):
    async def milight_send(self, command):
        events.append(("send", command))
        return True

    async def sonoff_send(self, on):
        events.append(("switch", on))
        return True

    monkeypatch.setattr(MiLightController, "send", milight_send)
    monkeypatch.setattr(SonoffController, "send", sonoff_send)


@pytest.fixture
def config():
    return LightbridgeConfig.model_validate(CONFIG)


@pytest.fixture
def make_manager(config, fake_sleep, fake_transports):
    def factory(**kwargs):
        kwargs.setdefault("sleep", fake_sleep)
        return DeviceManager(config, **kwargs)

    return factory


@pytest.fixture
def config_data():
    return CONFIG
