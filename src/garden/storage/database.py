"""SQLite-backed store used by the run engine, the server and the CLI."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any, Self

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from garden.errors import RunStateError

from .models import CaptchaTrace, Run, RunEventRecord, RunStatus, Screenshot, ScriptRecord, Site, utcnow

if TYPE_CHECKING:
    from garden.core.config import StorageConfig

IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


class GardenDatabase:
    """Thin repository over the Garden tables.

    Every method opens its own short session, so one instance can be shared by
    concurrent runs.
    """

    def __init__(self, url: str = "sqlite://", echo: bool = False) -> None:
        engine_args: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in IN_MEMORY_URLS:
            # One shared connection, otherwise every session would see a fresh empty database
            engine_args["poolclass"] = StaticPool
        self.engine = create_engine(url, echo=echo, **engine_args)

    @classmethod
    def from_config(cls, config: StorageConfig) -> Self:
        config.data_dir.mkdir(parents=True, exist_ok=True)
        if config.db_path is not None:
            config.db_path.parent.mkdir(parents=True, exist_ok=True)
        database = cls(config.database_url)
        database.init()
        return database

    def init(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        with Session(self.engine) as s:
            yield s

    # Sites

    def add_site(self, name: str, domain: str) -> Site:
        with self.session() as s:
            if s.exec(select(Site).where(Site.domain == domain)).first():
                raise ValueError(f"Domain {domain} already exists.")
            site = Site(name=name, domain=domain)
            s.add(site)
            s.commit()
            s.refresh(site)
            return site

    def get_site(self, site_id: int) -> Site | None:
        with self.session() as s:
            return s.get(Site, site_id)

    def get_site_by_domain(self, domain: str) -> Site | None:
        with self.session() as s:
            return s.exec(select(Site).where(Site.domain == domain)).first()

    def list_sites(self) -> Sequence[Site]:
        with self.session() as s:
            return s.exec(select(Site).order_by(Site.id)).all()

    def set_credentials(self, site_id: int, username_enc: str | None, password_enc: str | None) -> None:
        self._update_site(site_id, username_enc=username_enc, password_enc=password_enc)

    def record_site_result(self, site_id: int, status: RunStatus, error: str | None = None) -> None:
        now = utcnow()
        values: dict[str, Any] = {"last_run_at": now, "last_status": status, "last_error": error}
        if status is RunStatus.SUCCESS:
            values["last_success_at"] = now
        self._update_site(site_id, **values)

    def _update_site(self, site_id: int, **values: Any) -> None:
        with self.session() as s:
            site = s.get(Site, site_id)
            if site is None:
                raise LookupError(f"Site {site_id} not found.")
            for key, value in values.items():
                setattr(site, key, value)
            site.updated_at = utcnow()
            s.add(site)
            s.commit()

    # Scripts

    def add_script(self, site_id: int, content: str) -> ScriptRecord:
        with self.session() as s:
            record = ScriptRecord(site_id=site_id, content=content)
            s.add(record)
            s.commit()
            s.refresh(record)
            return record

    def latest_script(self, site_id: int) -> ScriptRecord | None:
        with self.session() as s:
            stmt = select(ScriptRecord).where(ScriptRecord.site_id == site_id).order_by(ScriptRecord.id.desc())
            return s.exec(stmt).first()

    # Runs

    def create_run(self, site_id: int, started_at: datetime | None = None) -> Run:
        with self.session() as s:
            run = Run(site_id=site_id, status=RunStatus.RUNNING, started_at=started_at or utcnow())
            s.add(run)
            s.commit()
            s.refresh(run)
            return run

    def finish_run(self, run_id: int, status: RunStatus, duration_ms: int, error: str | None = None) -> Run:
        """Move a running run into a terminal state. Terminal runs never change again."""
        if not status.is_terminal:
            raise RunStateError(f"Cannot finish run {run_id} with non-terminal status {status}.")

        with self.session() as s:
            run = s.get(Run, run_id)
            if run is None:
                raise LookupError(f"Run {run_id} not found.")
            if RunStatus(run.status).is_terminal:
                raise RunStateError(f"Run {run_id} already finished with status {run.status}.")
            run.status = status
            run.error = error
            run.duration_ms = duration_ms
            run.finished_at = utcnow()
            s.add(run)
            s.commit()
            s.refresh(run)
            return run

    def get_run(self, run_id: int) -> Run | None:
        with self.session() as s:
            return s.get(Run, run_id)

    def list_runs(self, site_id: int, limit: int = 10) -> Sequence[Run]:
        with self.session() as s:
            stmt = select(Run).where(Run.site_id == site_id).order_by(Run.id.desc()).limit(limit)
            return s.exec(stmt).all()

    # Artifacts

    def save_screenshot(
        self,
        run_id: int,
        data: bytes,
        mime_type: str = "image/png",
        width: int | None = None,
        height: int | None = None,
    ) -> Screenshot:
        """Store the run's screenshot, replacing one taken by an earlier attempt."""
        with self.session() as s:
            shot = s.exec(select(Screenshot).where(Screenshot.run_id == run_id)).first()
            if shot is None:
                shot = Screenshot(run_id=run_id, data=data)
            shot.data = data
            shot.mime_type = mime_type
            shot.width = width
            shot.height = height
            shot.created_at = utcnow()
            s.add(shot)
            s.commit()
            s.refresh(shot)
            return shot

    def get_screenshot(self, run_id: int) -> Screenshot | None:
        with self.session() as s:
            return s.exec(select(Screenshot).where(Screenshot.run_id == run_id)).first()

    def add_captcha_trace(
        self,
        run_id: int,
        attempt: int,
        sequence: int,
        model: str,
        prompt: str,
        response: str | None,
        error: str | None,
    ) -> CaptchaTrace:
        with self.session() as s:
            trace = CaptchaTrace(
                run_id=run_id,
                attempt=attempt,
                sequence=sequence,
                model=model,
                prompt=prompt,
                response=response,
                error=error,
            )
            s.add(trace)
            s.commit()
            s.refresh(trace)
            return trace

    def list_captcha_traces(self, run_id: int) -> Sequence[CaptchaTrace]:
        with self.session() as s:
            stmt = select(CaptchaTrace).where(CaptchaTrace.run_id == run_id).order_by(CaptchaTrace.id)
            return s.exec(stmt).all()

    def add_run_event(self, run_id: int, type: str, payload: str, created_at: datetime) -> RunEventRecord:
        with self.session() as s:
            record = RunEventRecord(run_id=run_id, type=type, payload=payload, created_at=created_at)
            s.add(record)
            s.commit()
            s.refresh(record)
            return record

    def list_run_events(self, run_id: int) -> Sequence[RunEventRecord]:
        with self.session() as s:
            stmt = select(RunEventRecord).where(RunEventRecord.run_id == run_id).order_by(RunEventRecord.id)
            return s.exec(stmt).all()
