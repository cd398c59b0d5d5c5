"""Tests for the HTTP run server."""

import json

import pytest
from fastapi.testclient import TestClient

from fakes import FakeSessions, png_bytes
from garden.core.config import GardenConfig, GardenSecrets
from garden.server import GardenRuntime, create_app
from garden.storage import GardenDatabase, RunStatus

SCRIPT = {
    "steps": [{"type": "goto", "url": "https://example.com"}, {"type": "click", "locator": "#go"}],
    "secrets": [],
}


@pytest.fixture
def runtime(database: GardenDatabase, config: GardenConfig, secrets: GardenSecrets) -> GardenRuntime:
    return GardenRuntime.create(config, secrets=secrets, database=database, sessions=FakeSessions())


@pytest.fixture
def client(runtime: GardenRuntime) -> TestClient:
    return TestClient(create_app(runtime))


def test_upload_script(client: TestClient, database: GardenDatabase) -> None:
    site = database.add_site("Example", "example.com")

    response = client.post("/api/scripts", json={"siteId": site.id, "script": SCRIPT})

    assert response.status_code == 200
    assert response.json()["ok"] is True
    stored = database.latest_script(site.id)  # type: ignore[arg-type]
    assert stored is not None and json.loads(stored.content) == SCRIPT


def test_upload_rejects_malformed_script(client: TestClient, database: GardenDatabase) -> None:
    site = database.add_site("Example", "example.com")

    response = client.post("/api/scripts", json={"siteId": site.id, "script": '{"steps": 3}'})

    assert response.status_code == 400
    assert "Invalid script format" in response.json()["error"]
    assert database.latest_script(site.id) is None  # type: ignore[arg-type]


def test_upload_for_unknown_site(client: TestClient) -> None:
    response = client.post("/api/scripts", json={"siteId": 41, "script": SCRIPT})
    assert response.status_code == 404


def test_start_run(client: TestClient, database: GardenDatabase) -> None:
    site = database.add_site("Example", "example.com")
    database.add_script(site.id, json.dumps(SCRIPT))  # type: ignore[arg-type]

    response = client.post(f"/api/sites/{site.id}/run")

    assert response.status_code == 202
    assert response.json()["status"] == RunStatus.RUNNING
    assert database.get_run(response.json()["runId"]) is not None


def test_start_run_errors(client: TestClient, database: GardenDatabase) -> None:
    assert client.post("/api/sites/404/run").status_code == 404

    site = database.add_site("Example", "example.com")
    response = client.post(f"/api/sites/{site.id}/run")
    assert response.status_code == 404
    assert response.json() == {"error": "No script uploaded for this site."}


def test_get_run_and_screenshot(client: TestClient, database: GardenDatabase) -> None:
    site = database.add_site("Example", "example.com")
    run = database.create_run(site.id)  # type: ignore[arg-type]
    database.add_captcha_trace(run.id, 1, 1, "gpt-5-mini", "prompt", None, "boom")  # type: ignore[arg-type]
    database.save_screenshot(run.id, png_bytes())  # type: ignore[arg-type]

    body = client.get(f"/api/runs/{run.id}").json()
    assert body["run"]["status"] == "running"
    assert body["captchaTraces"][0]["error"] == "boom"
    assert body["hasScreenshot"] is True

    shot = client.get(f"/api/runs/{run.id}/screenshot")
    assert shot.status_code == 200
    assert shot.headers["content-type"] == "image/png"
    assert shot.content == png_bytes()

    assert client.get("/api/runs/999").status_code == 404
    assert client.get("/api/runs/999/screenshot").status_code == 404


def test_events_of_finished_run_are_replayed(client: TestClient, runtime: GardenRuntime, database: GardenDatabase) -> None:
    site = database.add_site("Example", "example.com")
    run = database.create_run(site.id)  # type: ignore[arg-type]
    runtime.bus.publish(run.id, "run.start", siteId=site.id)  # type: ignore[arg-type]
    runtime.bus.publish(run.id, "run.success", durationMs=5)  # type: ignore[arg-type]
    database.finish_run(run.id, RunStatus.SUCCESS, 5)  # type: ignore[arg-type]

    response = client.get(f"/api/runs/{run.id}/events")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    chunks = [chunk for chunk in response.text.split("\n\n") if chunk]
    assert chunks[0] == f'event: ready\ndata: {{"type": "ready", "runId": {run.id}}}'
    messages = [json.loads(chunk.split("data: ", 1)[1]) for chunk in chunks[1:]]
    assert [message["type"] for message in messages] == ["run.start", "run.success"]
    assert runtime.bus.subscriber_count(run.id) == 0  # type: ignore[arg-type]


def test_events_for_unknown_run(client: TestClient) -> None:
    assert client.get("/api/runs/999/events").status_code == 404
