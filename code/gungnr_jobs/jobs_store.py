"""Paginated job list state for the jobs view.

One store instance owns one page of job summaries. Each successful fetch
replaces the page wholesale; pages are never merged. Fetch failures are
recorded on ``error`` rather than raised, so callers always get a settled
state to render.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog

from gungnr_jobs.config import settings
from gungnr_jobs.integrations.jobs_client import JobsClient, TransportError
from gungnr_jobs.models.jobs import Job

log = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 25
UNAUTHORIZED_MESSAGE = "Sign in to view jobs."


class JobsStore:
    """Current page of jobs plus fetch lifecycle flags."""

    def __init__(self, client: JobsClient, page_size: Optional[int] = None) -> None:
        self._client = client
        self.jobs: List[Job] = []
        self.loading = False
        self.error: Optional[str] = None
        self.initialized = False
        self.page = 1
        self.page_size = page_size or settings.JOBS_PAGE_SIZE or DEFAULT_PAGE_SIZE
        self.total = 0
        self.total_pages = 0

    async def fetch_jobs(self, page: Optional[int] = None, page_size: Optional[int] = None) -> None:
        """Load a page of jobs. Does nothing while another fetch is running."""
        if self.loading:
            log.debug("jobs_fetch_skipped_in_flight", page=page)
            return
        self.loading = True
        self.error = None
        try:
            requested_page = page if page is not None else self.page
            requested_size = page_size if page_size is not None else self.page_size
            result = await self._client.list_jobs(page=requested_page, limit=requested_size)
            self.jobs = list(result.jobs)
            self.page = result.page
            self.page_size = result.page_size
            self.total = result.total
            self.total_pages = result.total_pages
            log.debug("jobs_fetched", page=self.page, count=len(self.jobs), total=self.total)
        except TransportError as exc:
            self.error = UNAUTHORIZED_MESSAGE if exc.is_unauthorized else exc.message
            self.jobs = []
            self.total = 0
            self.total_pages = 0
            log.warning("jobs_fetch_failed", status=exc.status, error=exc.message)
        finally:
            self.loading = False
            self.initialized = True

    async def stop_job(self, job_id: int, reason: Optional[str] = None) -> Job:
        """Stop a job, then refresh the current page. Transport errors propagate."""
        job = await self._client.stop_job(job_id, reason=reason)
        log.info("job_stop_requested", job_id=job_id, status=job.status)
        await self.fetch_jobs()
        return job

    async def retry_job(self, job_id: int) -> Job:
        """Retry a failed job, then refresh the current page. Transport errors propagate."""
        job = await self._client.retry_job(job_id)
        log.info("job_retry_requested", job_id=job_id, new_job_id=job.id)
        await self.fetch_jobs()
        return job

    def snapshot(self) -> Dict[str, Any]:
        return {
            "jobs": [job.to_wire() for job in self.jobs],
            "loading": self.loading,
            "error": self.error,
            "initialized": self.initialized,
            "page": self.page,
            "pageSize": self.page_size,
            "total": self.total,
            "totalPages": self.total_pages,
        }
