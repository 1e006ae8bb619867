import json

import pytest
from fastapi.testclient import TestClient

from lightbridge import main
from lightbridge.config import CONFIG_ENV
from lightbridge.controllers.milight_protocol import Command


@pytest.fixture
def client(tmp_path, monkeypatch, fake_transports, config_data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config_data))
    monkeypatch.setenv(CONFIG_ENV, str(path))
    with TestClient(main.app) as client:
        yield client


def test_root(client):
    assert client.get("/").status_code == 200


def test_list_and_get_devices(client):
    devices = client.get("/devices").json()
    assert len(devices) == 6

    response = client.get("/devices/miLight-adapter-2")
    assert response.status_code == 200
    assert response.json()["zone"] == 2
    assert response.json()["properties"] == {"on": False, "level": 0, "color": "#ffffff"}

    assert client.get("/devices/unknown").status_code == 404


def test_write_level(client, events):
    response = client.put("/devices/miLight-adapter-2/properties/level", json={"value": 50})
    assert response.status_code == 200
    assert response.json() == {"id": "miLight-adapter-2", "level": 50}
    assert [e for e in events if e[0] == "send"] == [
        ("send", Command(0x47, 0)),
        ("send", Command(0x4E, 13)),
    ]
    assert client.get("/devices/miLight-adapter-2").json()["properties"]["on"] is True


def test_write_switch(client, events):
    response = client.put("/devices/sonoff-diy-adapter-0/properties/on", json={"value": True})
    assert response.status_code == 200
    assert events == [("switch", True)]


def test_write_errors(client, events):
    assert client.put("/devices/nope/properties/on", json={"value": True}).status_code == 404
    assert client.put("/devices/miLight-adapter-1/properties/hue", json={"value": 1}).status_code == 400
    assert client.put("/devices/miLight-adapter-1/properties/level", json={"value": 300}).status_code == 422
    assert client.put("/devices/miLight-adapter-1/properties/color", json={"value": "nope"}).status_code == 422
    overflowing = client.put(
        "/devices/miLight-adapter-1/properties/level",
        content='{"value": 1e999}',
        headers={"Content-Type": "application/json"},
    )
    assert overflowing.status_code == 422
    assert events == []


def test_state_report(client):
    response = client.post("/devices/miLight-adapter-1/state", json={"name": "on", "value": True})
    assert response.json() == {"id": "miLight-adapter-1", "applied": True}

    client.put("/devices/miLight-adapter-1/properties/on", json={"value": False})
    response = client.post("/devices/miLight-adapter-1/state", json={"name": "on", "value": True})
    assert response.json()["applied"] is False
    assert client.get("/devices/miLight-adapter-1").json()["properties"]["on"] is False


def test_add_and_remove_device(client):
    response = client.post("/devices", json={"kind": "milight", "config": {"zone": 4, "bridgeIP": "10.0.0.9"}})
    assert response.status_code == 201
    assert response.json()["id"] == "miLight-adapter-5"

    response = client.post("/devices", json={"kind": "sonoff", "id": "sonoff-diy-adapter-0", "config": {"IP": "10.0.0.7"}})
    assert response.status_code == 409

    response = client.post("/devices", json={"kind": "milight", "config": {"zone": 7, "bridgeIP": "10.0.0.9"}})
    assert response.status_code == 422

    assert client.delete("/devices/miLight-adapter-5").status_code == 200
    assert client.delete("/devices/miLight-adapter-5").status_code == 404


def test_pairing(client):
    assert client.post("/pairing", json={"timeout": 30}).json() == {"pairing": True}
    assert client.delete("/pairing").json() == {"pairing": False}


def test_websocket_feed(client):
    with client.websocket_connect("/ws") as ws:
        initial = ws.receive_json()
        assert initial["type"] == "initial_state"
        assert len(initial["data"]) == 6

        client.put("/devices/miLight-adapter-0/properties/color", json={"value": "#00ff00"})
        message = ws.receive_json()
        assert message == {
            "type": "property_changed",
            "id": "miLight-adapter-0",
            "data": {"color": "#00ff00"},
        }


def test_write_named_and_hsl_colors(client):
    response = client.put("/devices/miLight-adapter-0/properties/color", json={"value": "hotpink"})
    assert response.json() == {"id": "miLight-adapter-0", "color": "#ff69b4"}
    response = client.put("/devices/miLight-adapter-0/properties/color", json={"value": "hsl(120, 100%, 50%)"})
    assert response.json() == {"id": "miLight-adapter-0", "color": "#00ff00"}
