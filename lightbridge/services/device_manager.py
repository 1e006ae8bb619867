"""
Device management service
Owns the devices, applies property writes and queues the resulting commands
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from lightbridge.config import (
    LightbridgeConfig,
    MiLightBulbConfig,
    SonoffSwitchConfig,
    load_config,
)
from lightbridge.controllers.milight_controller import MiLightController
from lightbridge.controllers.sonoff_controller import SonoffController
from lightbridge.models.light_state import (
    LIGHT_PROPERTIES,
    SWITCH_PROPERTIES,
    LightState,
    SwitchState,
    Transition,
    UnknownPropertyError,
    apply_switch_write,
    apply_write,
)
from lightbridge.services.command_queue import CommandQueue

log = logging.getLogger(__name__)

MILIGHT_ID_PREFIX = "miLight-adapter-"
SONOFF_ID_PREFIX = "sonoff-diy-adapter-"

Subscriber = Callable[["Device", Dict[str, Any]], Awaitable[None]]


class DeviceExistsError(Exception):
    def __init__(self, device_id: str):
        super().__init__(f"Device: {device_id} already exists.")
        self.device_id = device_id


class DeviceNotFoundError(LookupError):
    def __init__(self, device_id: str):
        super().__init__(f"Device: {device_id} not found.")
        self.device_id = device_id


@dataclass
class _DeviceBase:
    id: str
    name: str
    queue: Optional[CommandQueue] = field(default=None, repr=False)
    recently_updated: bool = False
    last_command_time: Optional[float] = None

    def mark_updated(self):
        """Called right before a command leaves for the device"""
        self.recently_updated = True
        self.last_command_time = time.monotonic()

    def is_recently_updated(self, window: float) -> bool:
        if not self.recently_updated or self.last_command_time is None:
            return False
        return time.monotonic() - self.last_command_time < window

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "properties": self.state.to_dict(),
            "recently_updated": self.recently_updated,
        }


@dataclass
class DimmableColorLight(_DeviceBase):
    """miLight zone: on, level and color"""

    kind = "milight"
    properties = LIGHT_PROPERTIES

    config: MiLightBulbConfig = None
    controller: Optional[MiLightController] = field(default=None, repr=False)
    state: LightState = field(default_factory=LightState)

    @property
    def zone(self) -> int:
        return self.config.zone

    def plan(self, name: str, value: Any) -> Transition:
        return apply_write(self.state, name, value, self.zone)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["zone"] = self.zone
        return data


@dataclass
class ToggleSwitch(_DeviceBase):
    """Sonoff DIY switch: on only"""

    kind = "sonoff"
    properties = SWITCH_PROPERTIES

    config: SonoffSwitchConfig = None
    controller: Optional[SonoffController] = field(default=None, repr=False)
    state: SwitchState = field(default_factory=SwitchState)

    def plan(self, name: str, value: Any) -> Transition:
        return apply_switch_write(self.state, name, value)


Device = Union[DimmableColorLight, ToggleSwitch]


class DeviceManager:
    """Manages devices, their cached state and their command queues"""

    def __init__(
        self,
        config: Optional[LightbridgeConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        config = config or LightbridgeConfig()
        self.devices: Dict[str, Device] = {}
        self.subscribers: List[Subscriber] = []
        self.feedback_window = config.feedback_window
        self.pairing = False
        self._sleep = sleep
        self._load_devices(config)

    @classmethod
    def from_file(cls, config_path: str, **kwargs) -> "DeviceManager":
        return cls(load_config(config_path), **kwargs)

    def _load_devices(self, config: LightbridgeConfig):
        for i, bulb in enumerate(config.bulbs):
            self.add_milight(f"{MILIGHT_ID_PREFIX}{i}", bulb)
        for i, switch in enumerate(config.switches):
            self.add_sonoff(f"{SONOFF_ID_PREFIX}{i}", switch)
        log.info(
            "Loaded %d miLight zones and %d Sonoff switches",
            len(config.bulbs),
            len(config.switches),
        )

    def _attach_queue(self, device: Device):
        device.queue = CommandQueue(
            device.id,
            device.controller.send,
            sleep=self._sleep,
            before_send=device.mark_updated,
        )

    def add_milight(self, device_id: str, config: MiLightBulbConfig) -> DimmableColorLight:
        device = DimmableColorLight(
            id=device_id,
            name=config.name or "Dimmable Color Light",
            config=config,
            controller=MiLightController(config.bridge_ip, config.bridge_port),
        )
        return self.add_device(device)

    def add_sonoff(self, device_id: str, config: SonoffSwitchConfig) -> ToggleSwitch:
        device = ToggleSwitch(
            id=device_id,
            name=config.name or "On Off Switch",
            config=config,
            controller=SonoffController(config.ip, config.port),
        )
        return self.add_device(device)

    def add_device(self, device: Device) -> Device:
        """Register a device, DeviceExistsError if the id is taken"""
        if device.id in self.devices:
            raise DeviceExistsError(device.id)
        if device.queue is None:
            self._attach_queue(device)
        self.devices[device.id] = device
        log.info("Device added: %s (%s)", device.id, device.kind)
        return device

    def next_device_id(self, kind: str) -> str:
        prefix = MILIGHT_ID_PREFIX if kind == DimmableColorLight.kind else SONOFF_ID_PREFIX
        i = 0
        while f"{prefix}{i}" in self.devices:
            i += 1
        return f"{prefix}{i}"

    async def remove_device(self, device_id: str) -> Device:
        """Unregister a device, DeviceNotFoundError if unknown"""
        device = self.devices.pop(device_id, None)
        if device is None:
            raise DeviceNotFoundError(device_id)
        await device.queue.close()
        if isinstance(device, ToggleSwitch):
            device.controller.close()
        log.info("Device removed: %s", device_id)
        return device

    # Pairing is bookkeeping only, devices come from the config file
    def start_pairing(self, timeout_seconds: Optional[float] = None):
        self.pairing = True
        log.info("Pairing started (timeout %s)", timeout_seconds)

    def cancel_pairing(self):
        self.pairing = False
        log.info("Pairing cancelled")

    async def remove_thing(self, device_id: str) -> bool:
        """Unpair a device, failures are logged rather than raised"""
        log.info("Unpairing %s", device_id)
        try:
            await self.remove_device(device_id)
        except DeviceNotFoundError as e:
            log.error("Unpairing %s failed: %s", device_id, e)
            return False
        log.info("Device %s was unpaired", device_id)
        return True

    def cancel_remove_thing(self, device_id: str):
        log.info("Unpairing %s cancelled", device_id)

    def get_device(self, device_id: str) -> Device:
        device = self.devices.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    def get_all_states(self) -> List[dict]:
        return [device.to_dict() for device in self.devices.values()]

    def subscribe(self, callback: Subscriber):
        """Subscribe to property changes"""
        self.subscribers.append(callback)

    async def _notify_subscribers(self, device: Device, changed: Dict[str, Any]):
        for callback in self.subscribers:
            try:
                await callback(device, changed)
            except Exception as e:
                log.warning("Subscriber notification failed: %s", e)

    @staticmethod
    def _changed(before: dict, after: dict, written: str) -> Dict[str, Any]:
        changed = {name: value for name, value in after.items() if before.get(name) != value}
        changed[written] = after[written]
        return changed

    async def set_property(self, device_id: str, name: str, value: Any, wait: bool = True) -> Any:
        """
        Write a property and queue the commands it implies

        The cached state is updated before anything is sent, so a transport
        failure leaves the device optimistically in the written state. With
        wait=False the call returns as soon as the plan is queued.
        Returns the cached value of the property after the write.
        """
        device = self.get_device(device_id)
        try:
            transition = device.plan(name, value)
        except UnknownPropertyError:
            log.warning("Unknown property: %s (device %s)", name, device_id)
            raise

        before = device.state.to_dict()
        device.state = transition.state
        after = device.state.to_dict()
        log.debug("DEVICE %s: %s=%r -> %s, %d steps", device_id, name, value, after, len(transition.steps))

        pending = device.queue.submit(transition.steps)
        await self._notify_subscribers(device, self._changed(before, after, name))

        if wait:
            # Removing the device cancels its queued plans
            await asyncio.wait([pending])
            if pending.cancelled():
                log.warning("DEVICE %s: %s write not delivered, device removed", device_id, name)
                return after[name]
            results = pending.result()
            if not all(results):
                log.warning("DEVICE %s: %s write not fully delivered", device_id, name)
        return after[name]

    async def report_state(self, device_id: str, name: str, value: Any) -> bool:
        """
        Record a state observed on the device side without sending anything

        Reports arriving within feedback_window seconds of our own command are
        echoes of it and are dropped. Returns True if the report was applied.
        """
        device = self.get_device(device_id)
        if name not in device.properties:
            log.warning("Unknown property: %s (device %s)", name, device_id)
            raise UnknownPropertyError(name)

        if device.is_recently_updated(self.feedback_window):
            log.debug("DEVICE %s: Ignoring %s=%r reported right after a command", device_id, name, value)
            return False

        device.recently_updated = False
        before = device.state.to_dict()
        device.state = device.plan(name, value).state
        after = device.state.to_dict()
        await self._notify_subscribers(device, self._changed(before, after, name))
        return True

    async def drain(self):
        """Wait for every device's queued commands to go out"""
        await asyncio.gather(*(device.queue.join() for device in self.devices.values()))

    async def close(self):
        for device in list(self.devices.values()):
            await device.queue.close()
            if isinstance(device, ToggleSwitch):
                device.controller.close()
