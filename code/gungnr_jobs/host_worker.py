"""Poll controller for host-deploy jobs.

After a host-deploy job is created the panel shows a modal with the worker
command and the job's live log. :class:`JobPollController` drives that
modal's data:

* ``open_with_host_deploy`` starts an observation session and polls the
  job immediately, then every ``interval_s`` seconds measured from the end
  of the previous attempt.
* At most one request per session is outstanding. A poll attempt that
  finds one in flight is dropped, not queued.
* Fetch failures are shown on ``error`` and polling carries on.
* A terminal status stops the timer and keeps the finished job on screen.
* ``close_modal`` stops everything and may be called from any state.

Every request remembers the session it was issued for. If the session was
closed or replaced by the time the response arrives, the response is
thrown away and no timer is re-armed.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from gungnr_jobs.config import settings
from gungnr_jobs.integrations.jobs_client import JobsClient, TransportError
from gungnr_jobs.job_status import (
    JobBadgeTone,
    is_terminal,
    job_action_label,
    job_status_tone,
)
from gungnr_jobs.models.jobs import HostDeployResponse, JobDetail
from gungnr_jobs.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler
from gungnr_jobs.toasts import Toast, ToastSink

log = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_S = 3.0


class PollState(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    POLLING = "polling"


def build_command(token: str, origin: str) -> str:
    """Shell command an operator runs on the host to pick up the job."""
    return f"./deploy.sh worker --token {token} --api {origin.rstrip('/')}"


class JobPollController:
    """Owns one observation session and keeps its job fresh by polling."""

    def __init__(
        self,
        client: JobsClient,
        scheduler: Optional[Scheduler] = None,
        interval_s: Optional[float] = None,
        origin: Optional[str] = None,
        toasts: Optional[ToastSink] = None,
    ) -> None:
        self._client = client
        self._owns_scheduler = scheduler is None
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self.interval_s = interval_s if interval_s is not None else (
            settings.JOB_POLL_INTERVAL_S or DEFAULT_POLL_INTERVAL_S
        )
        self._origin = origin or settings.PANEL_ORIGIN
        self._toasts = toasts

        self.modal_open = False
        self.job: Optional[JobDetail] = None
        self.logs: List[str] = []
        self.error: Optional[str] = None
        self.action = ""
        self.expires_at: Optional[datetime] = None
        self.token = ""
        self.polling = False
        self.state = PollState.CLOSED

        self._session = 0
        self._timer: Optional[ScheduledHandle] = None
        self._in_flight_session: Optional[int] = None
        self._settled = asyncio.Event()
        self._settled.set()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def command(self) -> str:
        return build_command(self.token, self._origin) if self.token else ""

    @property
    def in_flight(self) -> bool:
        return self._in_flight_session is not None and self._in_flight_session == self._session

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def token_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at

    def snapshot(self) -> Dict[str, Any]:
        return {
            "modalOpen": self.modal_open,
            "state": self.state.value,
            "job": self.job.to_wire() if self.job else None,
            "logs": list(self.logs),
            "error": self.error,
            "action": self.action,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "token": self.token,
            "polling": self.polling,
            "command": self.command,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def open_with_host_deploy(self, response: HostDeployResponse) -> None:
        """Start observing a freshly created host-deploy job."""
        self._stop_polling()
        self._session += 1
        self.state = PollState.OPENING
        self._settled.clear()

        self.job = JobDetail.from_job(response.job)
        self.logs = []
        self.action = response.action
        self.token = response.token
        self.expires_at = response.expires_at
        self.error = None
        self.modal_open = True
        self.polling = True
        self.state = PollState.POLLING
        log.info("job_watch_opened", job_id=response.job.id, action=response.action)

        await self.poll_job()

    def close_modal(self) -> None:
        """Stop polling and close the modal. Safe to call repeatedly."""
        was_polling = self.polling
        self.modal_open = False
        self._session += 1
        self._stop_polling()
        if was_polling and self.job is not None:
            log.info("job_watch_closed", job_id=self.job.id)

    async def aclose(self) -> None:
        """Tear down: close the session and cancel any poll still running."""
        self.close_modal()
        if self._owns_scheduler and isinstance(self._scheduler, AsyncioScheduler):
            await self._scheduler.aclose()

    async def wait_settled(self) -> None:
        """Wait until polling stops, either on a terminal status or a close."""
        await self._settled.wait()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_job(self) -> None:
        """Fetch the observed job once, unless a fetch is already outstanding."""
        if self.job is None or not self.polling:
            return
        session = self._session
        if self._in_flight_session == session:
            log.debug("job_poll_skipped_in_flight", job_id=self.job.id)
            return

        self._in_flight_session = session
        job_id = self.job.id
        try:
            detail = await self._client.get_job(job_id)
        except TransportError as exc:
            if session != self._session:
                log.debug("job_poll_stale_error_dropped", job_id=job_id)
                return
            self.error = exc.message
            log.warning("job_poll_failed", job_id=job_id, status=exc.status, error=exc.message)
        else:
            if session != self._session:
                log.debug("job_poll_stale_response_dropped", job_id=job_id)
                return
            self.job = detail
            self.logs = list(detail.log_lines)
            self.error = None
            if is_terminal(detail.status):
                self._stop_polling()
                self._notify_finished(detail)
                return
        finally:
            if self._in_flight_session == session:
                self._in_flight_session = None

        if self.modal_open and self.polling:
            self._schedule_poll()

    def _schedule_poll(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        session = self._session
        handle: List[Optional[ScheduledHandle]] = [None]

        async def _tick() -> None:
            # A tick whose handle was replaced after it fired must not run.
            if session != self._session or self._timer is not handle[0]:
                return
            self._timer = None
            await self.poll_job()

        handle[0] = self._scheduler.call_later(self.interval_s, _tick)
        self._timer = handle[0]

    def _stop_polling(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.polling = False
        self.state = PollState.CLOSED
        self._settled.set()

    def _notify_finished(self, job: JobDetail) -> None:
        log.info("job_watch_finished", job_id=job.id, status=job.status, error=job.error)
        if self._toasts is None:
            return
        label = job_action_label(self.action)
        tone = job_status_tone(job.status)
        if tone == JobBadgeTone.ERROR:
            toast = Toast(tone=tone, title=f"{label} failed", message=job.error or f"Job #{job.id} failed.")
        else:
            toast = Toast(tone=tone, title=f"{label} completed", message=f"Job #{job.id} finished.")
        self._toasts.push(toast)
