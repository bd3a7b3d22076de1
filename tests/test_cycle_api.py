from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from railcam.config import TrackerConfig, settings
from railcam.main import app
from railcam.routers import cycle_api
from railcam.services.collection_cycle import CollectionCycle


@pytest.fixture
def fake_cycle(monkeypatch):
    cycle = MagicMock()
    cycle.run.return_value = {"ran": True, "force": True, "approaching": {}}
    cycle.debug_state.return_value = {"runs": 1}
    cycle.debug_events.return_value = [{"stage": "run"}]
    monkeypatch.setattr(cycle_api, "get_collection_cycle", lambda: cycle)
    return cycle


@pytest.fixture
def client():
    # not used as a context manager: the lifespan scheduler stays off
    return TestClient(app)


def test_health(client):
    r = client.get("/_health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_collect_without_token_configured(client, fake_cycle, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_TASK_TOKEN", None)
    r = client.post("/admin/collect", params={"force": "true"})
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["ran"] is True
    fake_cycle.run.assert_called_once_with(force=True)


def test_collect_requires_matching_token(client, fake_cycle, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_TASK_TOKEN", "s3cret")

    assert client.post("/admin/collect").status_code == 401
    assert client.post("/admin/collect", headers={"X-Task-Token": "nope"}).status_code == 401
    fake_cycle.run.assert_not_called()

    r = client.post("/admin/collect", headers={"X-Task-Token": "s3cret"})
    assert r.status_code == 200
    fake_cycle.run.assert_called_once_with(force=False)


def test_debug_cycle(client, fake_cycle):
    r = client.get("/_debug/cycle", params={"limit": 5})
    assert r.status_code == 200
    assert r.json() == {"state": {"runs": 1}, "events": [{"stage": "run"}]}
    fake_cycle.debug_events.assert_called_once_with(5)


def test_collect_setup_failure_is_not_a_server_error(client, monkeypatch, tmp_path):
    def broken_directory():
        raise RuntimeError("stations file unreadable")

    cycle = CollectionCycle(
        config_factory=TrackerConfig,
        directory_loader=broken_directory,
        store_path=tmp_path / "train_status.json",
        snapshot_path=tmp_path / "current_status.json",
    )
    monkeypatch.setattr(cycle_api, "get_collection_cycle", lambda: cycle)
    monkeypatch.setattr(settings, "INTERNAL_TASK_TOKEN", None)

    r = client.post("/admin/collect")

    assert r.status_code == 200
    assert r.json()["ran"] is False
    assert r.json()["reason"] == "error"
