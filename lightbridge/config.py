"""
Configuration loading
Device records come from a JSON file, validated with pydantic
"""

import json
import logging
import os
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lightbridge.controllers.milight_controller import DEFAULT_BRIDGE_PORT
from lightbridge.controllers.sonoff_controller import DEFAULT_SONOFF_PORT

log = logging.getLogger(__name__)

CONFIG_ENV = "LIGHTBRIDGE_CONFIG"
DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_FEEDBACK_WINDOW = 5.0


class MiLightBulbConfig(BaseModel):
    """One miLight zone behind a bridge"""

    model_config = ConfigDict(populate_by_name=True)

    zone: int = Field(0, ge=0, le=4, description="0 = all zones, 1-4 = group")
    bridge_ip: str = Field(..., alias="bridgeIP")
    bridge_port: int = Field(DEFAULT_BRIDGE_PORT, alias="bridgePort", gt=0, lt=65536)
    name: Optional[str] = None


class SonoffSwitchConfig(BaseModel):
    """One Sonoff switch in DIY mode"""

    model_config = ConfigDict(populate_by_name=True)

    ip: str = Field(..., alias="IP")
    port: int = Field(DEFAULT_SONOFF_PORT, alias="Port", gt=0, lt=65536)
    name: Optional[str] = None


class LightbridgeConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bulbs: List[MiLightBulbConfig] = Field(default_factory=list)
    switches: List[SonoffSwitchConfig] = Field(default_factory=list)
    feedback_window: float = Field(
        DEFAULT_FEEDBACK_WINDOW,
        alias="feedbackWindow",
        ge=0,
        description="Seconds after a command during which state reports are ignored",
    )


def config_path_from_env() -> str:
    return os.environ.get(CONFIG_ENV, DEFAULT_CONFIG_PATH)


def load_config(config_path: str) -> LightbridgeConfig:
    """Load the config file, an unusable file yields an empty config"""
    try:
        with open(config_path, "r") as f:
            raw = json.load(f)
        return LightbridgeConfig.model_validate(raw)
    except FileNotFoundError:
        log.error("Config file %s not found - no devices will be loaded", config_path)
    except json.JSONDecodeError as e:
        log.error("Invalid JSON in config file %s: %s", config_path, e)
    except ValidationError as e:
        log.error("Invalid config file %s: %s", config_path, e)
    return LightbridgeConfig()
