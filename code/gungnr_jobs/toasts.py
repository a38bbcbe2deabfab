"""Notification sink contract for surfacing job outcomes.

The panel's toast stack lives in the UI layer. This module only defines
the ``{tone, title, message}`` shape it accepts and a sink that writes
toasts to the log, which is what the command line uses.
"""
from __future__ import annotations

from typing import List, Optional, Protocol

import structlog
from pydantic import BaseModel

from gungnr_jobs.job_status import JobBadgeTone

log = structlog.get_logger(__name__)


class Toast(BaseModel):
    tone: JobBadgeTone = JobBadgeTone.NEUTRAL
    title: str
    message: Optional[str] = None


class ToastSink(Protocol):
    def push(self, toast: Toast) -> None: ...


class LogToastSink:
    """Writes toasts to the structured log and keeps them for later inspection."""

    def __init__(self) -> None:
        self.history: List[Toast] = []

    def push(self, toast: Toast) -> None:
        self.history.append(toast)
        if toast.tone == JobBadgeTone.ERROR:
            log.warning("toast", title=toast.title, message=toast.message)
        else:
            log.info("toast", tone=toast.tone.value, title=toast.title, message=toast.message)
