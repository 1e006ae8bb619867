#!/usr/bin/env python3
"""
Lightbridge FastAPI Server
Property writes in, miLight UDP and Sonoff HTTP commands out
"""

import argparse
import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Any, List, Literal, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError
import uvicorn

from lightbridge import __version__
from lightbridge.config import CONFIG_ENV, MiLightBulbConfig, SonoffSwitchConfig, config_path_from_env
from lightbridge.models.light_state import UnknownPropertyError
from lightbridge.services.device_manager import (
    DeviceExistsError,
    DeviceManager,
    DeviceNotFoundError,
    DimmableColorLight,
)

log = logging.getLogger(__name__)


def setup_debug_logging(debug_mode: bool, log_file: str = "lightbridge_debug.log"):
    """Setup debug logging to file and console with timestamping"""
    logger = logging.getLogger("lightbridge")

    if not debug_mode:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
        return

    # Clear existing log file on startup
    open(log_file, "w").close()

    logger.setLevel(logging.DEBUG)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)

    formatter = logging.Formatter("%(asctime)s.%(msecs)03d | %(name)s | %(message)s", datefmt="%H:%M:%S")
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    logger.propagate = False
    logger.info("=== Lightbridge Debug Logging Started ===")


# Request/Response Models
class PropertyWrite(BaseModel):
    value: Any = Field(..., description="New value: bool for on, 0-100 for level, CSS color for color")


class StateReport(BaseModel):
    name: str = Field(..., description="Property observed on the device")
    value: Any


class NewDevice(BaseModel):
    kind: Literal["milight", "sonoff"]
    id: Optional[str] = Field(None, description="Device id, generated when omitted")
    config: dict = Field(..., description="miLight {zone, bridgeIP, bridgePort} or Sonoff {IP, Port}")


class PairingRequest(BaseModel):
    timeout: Optional[float] = Field(None, ge=0, description="Seconds before pairing times out")


# WebSocket Connection Manager
class ConnectionManager:
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        log.debug("WEBSOCKET: New connection established (total: %d)", len(self.active_connections))

    def disconnect(self, websocket: WebSocket):
        try:
            self.active_connections.remove(websocket)
            log.debug("WEBSOCKET: Connection disconnected (remaining: %d)", len(self.active_connections))
        except ValueError:
            pass

    async def broadcast(self, message: dict):
        dead_connections = []
        for connection in self.active_connections:
            try:
                await connection.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                dead_connections.append(connection)

        for dead_conn in dead_connections:
            self.disconnect(dead_conn)


# Global instances
device_manager: Optional[DeviceManager] = None
websocket_manager = ConnectionManager()


async def on_property_changed(device, changed: dict):
    """Notify WebSocket clients of property changes"""
    await websocket_manager.broadcast(
        {"type": "property_changed", "id": device.id, "data": changed}
    )


def get_manager() -> DeviceManager:
    if not device_manager:
        raise HTTPException(status_code=503, detail="Device manager not initialized")
    return device_manager


# App lifecycle
@asynccontextmanager
async def lifespan(app: FastAPI):
    global device_manager

    config_path = config_path_from_env()
    device_manager = DeviceManager.from_file(config_path)
    device_manager.subscribe(on_property_changed)
    log.info("Lightbridge started - %d devices loaded from %s", len(device_manager.devices), config_path)

    yield

    if device_manager:
        await device_manager.close()
    device_manager = None
    log.info("Lightbridge shutting down")


app = FastAPI(
    title="Lightbridge API",
    description="miLight zone and Sonoff DIY switch control",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# API Routes
@app.get("/")
async def root():
    return {"message": f"Lightbridge API v{__version__}"}


@app.get("/devices")
async def get_devices():
    """Get all device states"""
    return get_manager().get_all_states()


@app.get("/devices/{device_id}")
async def get_device(device_id: str):
    """Get specific device state"""
    try:
        return get_manager().get_device(device_id).to_dict()
    except DeviceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.put("/devices/{device_id}/properties/{name}")
async def write_property(device_id: str, name: str, write: PropertyWrite):
    """Write a property; responds once its commands have gone out"""
    manager = get_manager()
    log.debug("API: PUT /devices/%s/properties/%s - %r", device_id, name, write.value)

    try:
        value = await manager.set_property(device_id, name, write.value)
    except DeviceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnknownPropertyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {"id": device_id, name: value}


@app.post("/devices/{device_id}/state")
async def report_state(device_id: str, report: StateReport):
    """Record a state change observed on the device itself"""
    manager = get_manager()

    try:
        applied = await manager.report_state(device_id, report.name, report.value)
    except DeviceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnknownPropertyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {"id": device_id, "applied": applied}


@app.post("/devices", status_code=201)
async def add_device(request: NewDevice):
    """Add a device from a config record"""
    manager = get_manager()
    device_id = request.id or manager.next_device_id(request.kind)

    try:
        if request.kind == DimmableColorLight.kind:
            device = manager.add_milight(device_id, MiLightBulbConfig.model_validate(request.config))
        else:
            device = manager.add_sonoff(device_id, SonoffSwitchConfig.model_validate(request.config))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DeviceExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return device.to_dict()


@app.delete("/devices/{device_id}")
async def remove_device(device_id: str):
    """Unpair a device"""
    if not await get_manager().remove_thing(device_id):
        raise HTTPException(status_code=404, detail=f"Device: {device_id} not found.")
    return {"message": "Device removed", "id": device_id}


@app.post("/pairing")
async def start_pairing(request: PairingRequest):
    get_manager().start_pairing(request.timeout)
    return {"pairing": True}


@app.delete("/pairing")
async def cancel_pairing():
    get_manager().cancel_pairing()
    return {"pairing": False}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket for real-time property updates"""
    await websocket_manager.connect(websocket)

    try:
        if device_manager:
            await websocket.send_json(
                {"type": "initial_state", "data": device_manager.get_all_states()}
            )

        # Keep connection alive
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=30.0)
                log.debug("WEBSOCKET: Received from client: %s", data)
                await websocket.send_json({"type": "pong", "data": "alive"})
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "ping"})

    except WebSocketDisconnect:
        log.debug("WEBSOCKET: Client disconnected normally")
    finally:
        websocket_manager.disconnect(websocket)


def main():
    parser = argparse.ArgumentParser(description="Lightbridge FastAPI Server")
    parser.add_argument("--debug", "--verbose", action="store_true",
                        help="Enable debug logging to file and console")
    parser.add_argument("--config", help=f"Path to config.json (default: ${CONFIG_ENV} or ./config.json)")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    setup_debug_logging(args.debug)

    if args.config:
        os.environ[CONFIG_ENV] = args.config

    uvicorn.run(
        "lightbridge.main:app",
        host=args.host,
        port=args.port,
        reload=False,
        log_level="info",
        access_log=False,
    )


if __name__ == "__main__":
    main()
