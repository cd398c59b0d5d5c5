"""Persistence for sites, scripts, runs and their artifacts."""

from .database import GardenDatabase
from .models import CaptchaTrace, Run, RunEventRecord, RunStatus, Screenshot, ScriptRecord, Site

__all__ = [
    "CaptchaTrace",
    "GardenDatabase",
    "Run",
    "RunEventRecord",
    "RunStatus",
    "Screenshot",
    "ScriptRecord",
    "Site",
]
