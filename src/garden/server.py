"""HTTP surface of the run engine."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Self

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from garden.core.config import GardenConfig, GardenSecrets
from garden.core.script import parse_script
from garden.engine.browser import BrowserSessions, ChromiumSessions
from garden.engine.events import EventBus, StreamMessage
from garden.engine.runner import SiteRunner
from garden.errors import FormatError, ScriptNotFoundError, SiteNotFoundError
from garden.storage import GardenDatabase, RunStatus

if TYPE_CHECKING:
    from garden.ai.connectors import CaptchaConnector

logger = logging.getLogger(__name__)


@dataclass
class GardenRuntime:
    """Process-wide collaborators shared by the server and the CLI."""

    config: GardenConfig
    secrets: GardenSecrets
    database: GardenDatabase
    bus: EventBus
    runner: SiteRunner

    @classmethod
    def create(
        cls,
        config: GardenConfig,
        secrets: GardenSecrets | None = None,
        database: GardenDatabase | None = None,
        sessions: BrowserSessions | None = None,
        connector_factory: Callable[[], CaptchaConnector] | None = None,
    ) -> Self:
        secrets = secrets or GardenSecrets()
        database = database or GardenDatabase.from_config(config.storage)
        bus = EventBus(database, keepalive_seconds=config.events.keepalive_seconds)
        runner = SiteRunner(
            database,
            bus,
            sessions or ChromiumSessions(config.browser),
            config=config,
            secrets=secrets,
            connector_factory=connector_factory,
        )
        return cls(config=config, secrets=secrets, database=database, bus=bus, runner=runner)


class ScriptUpload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    site_id: int = Field(alias="siteId", gt=0)
    script: dict[str, Any] | str


def create_app(runtime: GardenRuntime) -> FastAPI:
    app = FastAPI(title="Garden")
    app.state.runtime = runtime

    @app.exception_handler(SiteNotFoundError)
    @app.exception_handler(ScriptNotFoundError)
    async def not_found(_request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=status.HTTP_404_NOT_FOUND)

    @app.exception_handler(FormatError)
    async def bad_script(_request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=status.HTTP_400_BAD_REQUEST)

    @app.post("/api/sites/{site_id}/run", status_code=status.HTTP_202_ACCEPTED)
    async def start_run(site_id: int) -> dict[str, Any]:
        run = runtime.runner.start_run(site_id)
        return {"runId": run.id, "status": run.status}

    @app.get("/api/runs/{run_id}")
    async def get_run(run_id: int) -> dict[str, Any]:
        run = runtime.database.get_run(run_id)
        if run is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, f"Run {run_id} not found.")
        traces = runtime.database.list_captcha_traces(run_id)
        return {
            "run": run.model_dump(mode="json"),
            "captchaTraces": [trace.model_dump(mode="json") for trace in traces],
            "hasScreenshot": runtime.database.get_screenshot(run_id) is not None,
        }

    @app.get("/api/runs/{run_id}/events")
    async def run_events(run_id: int) -> StreamingResponse:
        if runtime.database.get_run(run_id) is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, f"Run {run_id} not found.")
        return StreamingResponse(
            _event_stream(runtime, run_id),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.get("/api/runs/{run_id}/screenshot")
    async def run_screenshot(run_id: int) -> Response:
        shot = runtime.database.get_screenshot(run_id)
        if shot is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Not found")
        return Response(content=shot.data, media_type=shot.mime_type or "image/png")

    @app.post("/api/scripts")
    async def upload_script(payload: ScriptUpload) -> dict[str, Any]:
        if runtime.database.get_site(payload.site_id) is None:
            raise SiteNotFoundError(payload.site_id)
        content = payload.script if isinstance(payload.script, str) else json.dumps(payload.script, indent=2)
        parse_script(content)
        record = runtime.database.add_script(payload.site_id, content)
        return {"ok": True, "scriptId": record.id}

    return app


async def _event_stream(runtime: GardenRuntime, run_id: int) -> AsyncIterator[str]:
    # Subscribe before looking at the run, so a run finishing in between is not missed
    subscription = runtime.bus.subscribe(run_id)
    run = runtime.database.get_run(run_id)
    if run is not None and RunStatus(run.status).is_terminal:
        subscription.close()
        yield StreamMessage("ready", {"type": "ready", "runId": run_id}).encode()
        for record in runtime.database.list_run_events(run_id):
            yield StreamMessage("message", json.loads(record.payload)).encode()
        return

    try:
        async for message in subscription.stream():
            yield message.encode()
    finally:
        subscription.close()


def serve(runtime: GardenRuntime, host: str | None = None, port: int | None = None) -> None:
    host = host or runtime.config.server.host
    port = port or runtime.config.server.port
    logger.info("Serving Garden on http://%s:%s", host, port)
    uvicorn.run(create_app(runtime), host=host, port=port, log_config=None)
