"""Database tables."""

from datetime import UTC, datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(UTC)


class RunStatus(StrEnum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class Site(SQLModel, table=True):
    __tablename__ = "sites"

    id: int | None = Field(default=None, primary_key=True)
    name: str
    domain: str = Field(index=True, unique=True)
    enabled: bool = True
    username_enc: str | None = None
    password_enc: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_run_at: datetime | None = None
    last_success_at: datetime | None = None
    last_status: str | None = None
    last_error: str | None = None


class ScriptRecord(SQLModel, table=True):
    __tablename__ = "scripts"

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(index=True, foreign_key="sites.id")
    content: str
    created_at: datetime = Field(default_factory=utcnow)


class Run(SQLModel, table=True):
    __tablename__ = "runs"

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(index=True, foreign_key="sites.id")
    status: str = RunStatus.RUNNING
    error: str | None = None
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    duration_ms: int | None = None


class Screenshot(SQLModel, table=True):
    __tablename__ = "screenshots"

    id: int | None = Field(default=None, primary_key=True)
    run_id: int = Field(index=True, unique=True, foreign_key="runs.id")
    data: bytes
    mime_type: str = "image/png"
    width: int | None = None
    height: int | None = None
    created_at: datetime = Field(default_factory=utcnow)


class CaptchaTrace(SQLModel, table=True):
    __tablename__ = "captcha_traces"

    id: int | None = Field(default=None, primary_key=True)
    run_id: int = Field(index=True, foreign_key="runs.id")
    attempt: int
    sequence: int
    model: str
    prompt: str
    response: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class RunEventRecord(SQLModel, table=True):
    __tablename__ = "run_events"

    id: int | None = Field(default=None, primary_key=True)
    run_id: int = Field(index=True, foreign_key="runs.id")
    type: str
    payload: str
    created_at: datetime = Field(default_factory=utcnow)
