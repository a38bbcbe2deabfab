"""Job status classification shared by the jobs store and the poll controller.

The server sends status as a free-form string. Terminal states are
``completed`` and ``failed``; anything else, including statuses this client
does not know yet, keeps a poll loop running.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobBadgeTone(str, Enum):
    NEUTRAL = "neutral"
    OK = "ok"
    WARN = "warn"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED.value, JobStatus.FAILED.value})

_TONES = {
    JobStatus.COMPLETED.value: JobBadgeTone.OK,
    JobStatus.RUNNING.value: JobBadgeTone.WARN,
    JobStatus.FAILED.value: JobBadgeTone.ERROR,
}

_LABELS = {
    JobStatus.PENDING.value: "queued",
    JobStatus.RUNNING.value: "running",
    JobStatus.COMPLETED.value: "completed",
    JobStatus.FAILED.value: "failed",
    "": "pending",
}

_ACTION_LABELS = {
    "create_template": "Create template",
    "deploy_existing": "Deploy existing",
    "quick_service": "Quick service",
}


def _normalize(value: Optional[str]) -> str:
    return (value or "").lower()


def job_status_tone(status: Optional[str]) -> JobBadgeTone:
    return _TONES.get(_normalize(status), JobBadgeTone.NEUTRAL)


def job_status_label(status: Optional[str]) -> str:
    """Human label for a status; unknown values are shown with spaces for underscores."""
    label = _LABELS.get(_normalize(status))
    if label is not None:
        return label
    return (status or "").replace("_", " ")


def is_terminal(status: Optional[str]) -> bool:
    return _normalize(status) in TERMINAL_STATUSES


def is_pending_job(status: Optional[str]) -> bool:
    return status == JobStatus.PENDING.value


def job_action_label(action: Optional[str]) -> str:
    label = _ACTION_LABELS.get(_normalize(action))
    if label is not None:
        return label
    return action.replace("_", " ") if action else "Deploy"
