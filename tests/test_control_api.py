"""Tests for the control API."""
import logging
import threading

from fastapi.testclient import TestClient

from cmt.control_api import ControlAPI
from cmt.watcher import Watcher


def _client(scripted_transport, counter_dump):
    transport = scripted_transport({"osd.0.asok": [counter_dump(alpha=1, beta=2)]})
    watcher = Watcher(["osd.0.asok"], transport)
    watcher.sample_once()
    shutdown = threading.Event()
    return TestClient(ControlAPI(watcher, shutdown).app), shutdown


def test_healthz(scripted_transport, counter_dump):
    client, _ = _client(scripted_transport, counter_dump)
    assert client.get("/healthz").json()["status"] == "healthy"


def test_status(scripted_transport, counter_dump):
    client, _ = _client(scripted_transport, counter_dump)
    body = client.get("/status").json()
    assert body["tick_count"] == 1
    assert body["stopping"] is False
    assert body["targets"]["osd.0"]["samples"] == 1
    assert body["targets"]["osd.0"]["columns"] == 2


def test_target_keys(scripted_transport, counter_dump):
    client, _ = _client(scripted_transport, counter_dump)
    assert client.get("/targets/osd.0/keys").json()["keys"] == ["alpha", "beta"]
    assert client.get("/targets/osd.0/keys", params={"pattern": "^b"}).json()["keys"] == ["beta"]
    assert client.get("/targets/osd.0/keys", params={"pattern": "("}).status_code == 400
    assert client.get("/targets/osd.9/keys").status_code == 404


def test_stop_sets_shutdown_token(scripted_transport, counter_dump):
    client, shutdown = _client(scripted_transport, counter_dump)
    assert client.post("/control/stop").json()["status"] == "stopping"
    assert shutdown.is_set()


def test_log_level(scripted_transport, counter_dump):
    client, _ = _client(scripted_transport, counter_dump)
    root = logging.getLogger()
    previous = root.level
    try:
        assert client.post("/control/loglevel", json={"level": "debug"}).json()["level"] == "DEBUG"
        assert root.level == logging.DEBUG
        assert client.post("/control/loglevel", json={"level": "loud"}).status_code == 400
    finally:
        root.setLevel(previous)
