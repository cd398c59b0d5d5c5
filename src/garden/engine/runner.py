"""Run orchestration.

A run executes a site's latest script in a fresh browser session, retrying the
whole script from the start on failure until the attempts run out. Runs are
independent of each other; nothing here serializes runs of the same site.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

from garden.ai.connectors import create_connector
from garden.core.config import GardenConfig, GardenSecrets
from garden.core.crypto import SecretCipher
from garden.core.script import CaptchaStep, GotoStep, parse_script
from garden.core.secrets import build_secret_values, redact_secrets
from garden.engine.browser import capture_screenshot
from garden.engine.captcha import CaptchaAttempt, CaptchaSolver
from garden.engine.steps import execute_step
from garden.errors import (
    CaptchaError,
    CaptchaSolveError,
    LocatorError,
    ScriptNotFoundError,
    SiteNotFoundError,
    StepError,
)
from garden.storage.models import RunStatus

if TYPE_CHECKING:
    from playwright.async_api import Page

    from garden.ai.connectors import CaptchaConnector
    from garden.core.script import Script
    from garden.core.secrets import SecretValues
    from garden.engine.browser import BrowserSessions
    from garden.engine.events import EventBus
    from garden.storage.database import GardenDatabase
    from garden.storage.models import Run, Site

logger = logging.getLogger(__name__)

# Failures that end the current attempt and leave the decision to the retry policy
ATTEMPT_ERRORS = (StepError, LocatorError, CaptchaError, CaptchaSolveError, PlaywrightError)

LOCAL_HOST_PREFIXES = ("localhost", "127.0.0.1", "[::1]")


def build_base_url(domain: str | None) -> str | None:
    """Derive the start URL for a site's domain.

    Local hosts get ``http://``, everything else ``https://``; an explicit scheme is kept.
    """
    if not domain or not domain.strip():
        return None
    trimmed = domain.strip()
    lower = trimmed.lower()
    if lower.startswith(("http://", "https://")):
        base = trimmed
    elif lower.startswith(LOCAL_HOST_PREFIXES) or lower.split("/")[0].split(":")[0].endswith(".local"):
        base = f"http://{trimmed}"
    else:
        base = f"https://{trimmed}"
    return base.removesuffix("/")


@dataclass
class PreparedRun:
    run: Run
    site: Site
    script: Script

    @property
    def run_id(self) -> int:
        assert self.run.id is not None
        return self.run.id


class SiteRunner:
    """Executes runs against the database, the event bus and a browser.

    Example:
        runner = SiteRunner(database, bus, ChromiumSessions(config.browser), config, secrets)
        run = await runner.run_site(site_id)
    """

    def __init__(
        self,
        store: GardenDatabase,
        bus: EventBus,
        sessions: BrowserSessions,
        config: GardenConfig | None = None,
        secrets: GardenSecrets | None = None,
        connector_factory: Callable[[], CaptchaConnector] | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.bus = bus
        self.sessions = sessions
        self.config = config or GardenConfig()
        self.secrets = secrets or GardenSecrets()
        self.connector_factory = connector_factory or (lambda: create_connector(self.config.captcha, self.secrets))
        self.sleep = sleep
        self._tasks: set[asyncio.Task[Run]] = set()

    def prepare(self, site_id: int) -> PreparedRun:
        """Load the site and its script and open a run row.

        Raises `SiteNotFoundError`, `ScriptNotFoundError` or `FormatError` before any
        run exists.
        """
        site = self.store.get_site(site_id)
        if site is None:
            raise SiteNotFoundError(site_id)
        record = self.store.latest_script(site_id)
        if record is None:
            raise ScriptNotFoundError(site_id)
        script = parse_script(record.content)

        run = self.store.create_run(site_id)
        logger.info("Run %s started for site %s (%s)", run.id, site.id, site.domain)
        return PreparedRun(run=run, site=site, script=script)

    async def run_site(self, site_id: int) -> Run:
        """Run a site's latest script to completion and return the finished run.

        The last attempt's error is re-raised after the run is marked failed.
        """
        return await self.execute(self.prepare(site_id))

    def start_run(self, site_id: int) -> Run:
        """Open a run and execute it in the background of the running event loop."""
        prepared = self.prepare(site_id)
        task = asyncio.get_running_loop().create_task(self.execute(prepared), name=f"garden-run-{prepared.run_id}")
        self._tasks.add(task)
        task.add_done_callback(self._forget)
        return prepared.run

    def _forget(self, task: asyncio.Task[Run]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("%s ended with %s: %s", task.get_name(), error.__class__.__name__, error)

    async def wait_idle(self) -> None:
        """Wait for every background run started by this runner."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def execute(self, prepared: PreparedRun) -> Run:
        run_id = prepared.run_id
        site = prepared.site
        started = time.monotonic()
        secrets: SecretValues = {}

        self.bus.publish(run_id, "run.start", siteId=site.id)
        try:
            secrets = self._secret_values(prepared)
            solver = self._captcha_solver() if prepared.script.captcha_count else None
            await self._attempt_loop(prepared, secrets, solver)
        except Exception as e:
            message = redact_secrets(str(e) or e.__class__.__name__, secrets)
            logger.error("Run %s failed: %s", run_id, message)
            self._finish(prepared, started, RunStatus.FAILED, message)
            raise

        return self._finish(prepared, started, RunStatus.SUCCESS)

    def _secret_values(self, prepared: PreparedRun) -> SecretValues:
        site = prepared.site
        cipher = None
        if site.username_enc or site.password_enc:
            key = self.secrets.enc_key_base64
            cipher = SecretCipher.from_base64(key.get_secret_value() if key else None)
        return build_secret_values(prepared.script, site.username_enc, site.password_enc, cipher)

    def _captcha_solver(self) -> CaptchaSolver:
        return CaptchaSolver(self.connector_factory(), self.bus, self.store, self.config.captcha)

    async def _attempt_loop(self, prepared: PreparedRun, secrets: SecretValues, solver: CaptchaSolver | None) -> None:
        run_id = prepared.run_id
        attempts = self.config.runner.attempts
        last_captcha_error: str | None = None

        for attempt in range(1, attempts + 1):
            logger.info("Run %s attempt %s/%s", run_id, attempt, attempts)
            self.bus.publish(run_id, "run.attempt", attempt=attempt, total=attempts)
            try:
                await self._run_attempt(prepared, secrets, solver, attempt, last_captcha_error)
            except ATTEMPT_ERRORS as e:
                message = redact_secrets(str(e) or e.__class__.__name__, secrets)
                if isinstance(e, CaptchaSolveError):
                    last_captcha_error = message
                logger.warning("Run %s attempt %s failed: %s", run_id, attempt, message)
                self.bus.publish(run_id, "run.attempt.failed", attempt=attempt, error=message)
                if attempt == attempts:
                    raise
                await self.sleep(self.config.runner.retry_delay_ms / 1000)
            else:
                return

    async def _run_attempt(
        self,
        prepared: PreparedRun,
        secrets: SecretValues,
        solver: CaptchaSolver | None,
        attempt: int,
        captcha_context: str | None,
    ) -> None:
        async with self.sessions.session() as page:
            try:
                await self._run_steps(page, prepared, secrets, solver, attempt, captcha_context)
            finally:
                await self._capture(page, prepared.run_id, attempt)

    async def _run_steps(
        self,
        page: Page,
        prepared: PreparedRun,
        secrets: SecretValues,
        solver: CaptchaSolver | None,
        attempt: int,
        captcha_context: str | None,
    ) -> None:
        run_id = prepared.run_id
        script = prepared.script

        base_url = build_base_url(prepared.site.domain)
        if base_url and not script.starts_with_goto:
            self.bus.publish(run_id, "auto.goto", attempt=attempt, url=base_url)
            await execute_step(page, GotoStep(type="goto", url=base_url), secrets)

        total = len(script.steps)
        sequence = 0
        for index, step in enumerate(script.steps, start=1):
            position = {"attempt": attempt, "index": index, "total": total}
            self.bus.publish(run_id, "step.start", **position, step=step.summary())
            match step:
                case CaptchaStep():
                    assert solver is not None
                    sequence += 1
                    where = CaptchaAttempt(run_id, attempt, sequence, captcha_context)
                    await solver.solve(page, step, secrets, where)
                    captcha_context = None
                case _:
                    await execute_step(page, step, secrets)
            self.bus.publish(run_id, "step.done", **position)

    async def _capture(self, page: Page, run_id: int, attempt: int) -> None:
        """Store the attempt's final screenshot. Failures are reported, never raised."""
        try:
            shot = await capture_screenshot(page)
            self.store.save_screenshot(run_id, shot.data, shot.mime_type, shot.width, shot.height)
        except Exception as e:  # noqa: BLE001
            logger.warning("Screenshot failed for run %s attempt %s: %s", run_id, attempt, e)
            self.bus.publish(run_id, "screenshot.failed", attempt=attempt, error=str(e) or e.__class__.__name__)

    def _finish(self, prepared: PreparedRun, started: float, status: RunStatus, error: str | None = None) -> Run:
        run_id = prepared.run_id
        duration_ms = int((time.monotonic() - started) * 1000)
        run = self.store.finish_run(run_id, status, duration_ms, error)
        self.store.record_site_result(prepared.site.id, status, error)  # type: ignore[arg-type]

        if status is RunStatus.SUCCESS:
            logger.info("Run %s succeeded in %sms", run_id, duration_ms)
            self.bus.publish(run_id, "run.success", durationMs=duration_ms)
        else:
            self.bus.publish(run_id, "run.failed", durationMs=duration_ms, error=error)
        return run
