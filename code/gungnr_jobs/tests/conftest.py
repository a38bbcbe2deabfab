"""Shared fixtures: a fake scheduler and an in-process fake job API."""
from __future__ import annotations

import json
import os
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

# Keep tests deterministic and local-only.
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("GUNGNR_API_TOKEN", None)
os.environ.pop("GUNGNR_SESSION_COOKIE", None)

from gungnr_jobs.integrations.jobs_client import JobsClient  # noqa: E402

API_TOKEN = "test-token"


# ===========================================================================
# Scheduler
# ===========================================================================


class FakeCall:
    def __init__(self, delay_s: float, callback: Callable[[], Awaitable[None]]) -> None:
        self.delay_s = delay_s
        self.callback = callback
        self.cancelled = False
        self.fired = False
        self.cancel_count = 0

    def cancel(self) -> None:
        self.cancel_count += 1
        if not self.fired:
            self.cancelled = True


class FakeScheduler:
    """Records delayed calls and runs them only when a test says so."""

    def __init__(self) -> None:
        self.calls: List[FakeCall] = []

    def call_later(self, delay_s: float, callback: Callable[[], Awaitable[None]]) -> FakeCall:
        call = FakeCall(delay_s, callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> List[FakeCall]:
        return [c for c in self.calls if not c.cancelled and not c.fired]

    async def fire_next(self) -> None:
        call = self.pending[0]
        call.fired = True
        await call.callback()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


# ===========================================================================
# Fake job API
# ===========================================================================


def job_payload(job_id: int, status: str = "pending", **extra: Any) -> Dict[str, Any]:
    created = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)
    body: Dict[str, Any] = {
        "id": job_id,
        "type": extra.pop("type", "quick_service"),
        "status": status,
        "createdAt": created.isoformat(),
        "startedAt": None,
        "finishedAt": None,
        "error": None,
    }
    if status in ("running", "completed", "failed"):
        body["startedAt"] = (created + timedelta(seconds=5)).isoformat()
    if status in ("completed", "failed"):
        body["finishedAt"] = (created + timedelta(seconds=30)).isoformat()
    body.update(extra)
    return body


class FakeJobApi:
    """In-memory stand-in for the panel's /api/v1/jobs endpoints."""

    def __init__(self) -> None:
        self.jobs: Dict[int, Dict[str, Any]] = {}
        self.logs: Dict[int, List[str]] = {}
        self.requests: List[str] = []
        self.fail_status: Optional[int] = None
        self.next_id = 1
        self.app = self._build_app()

    def add(self, job_id: int, status: str = "pending", logs: Optional[List[str]] = None, **extra: Any) -> Dict[str, Any]:
        job = job_payload(job_id, status, **extra)
        self.jobs[job_id] = job
        self.logs[job_id] = list(logs or [])
        self.next_id = max(self.next_id, job_id + 1)
        return job

    def _error(self, status: int, message: str) -> JSONResponse:
        return JSONResponse(status_code=status, content={"error": message})

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        router = APIRouter(prefix="/api/v1")

        @app.middleware("http")
        async def _record(request: Request, call_next):
            self.requests.append(f"{request.method} {request.url.path}")
            if request.headers.get("authorization") != f"Bearer {API_TOKEN}":
                return self._error(401, "unauthorized")
            if self.fail_status is not None:
                return self._error(self.fail_status, "backend exploded")
            return await call_next(request)

        @router.get("/jobs")
        async def list_jobs(page: int = 1, limit: int = 25):
            ordered = sorted(self.jobs.values(), key=lambda j: j["id"], reverse=True)
            start = (page - 1) * limit
            total = len(ordered)
            return {
                "jobs": ordered[start:start + limit],
                "page": page,
                "pageSize": limit,
                "total": total,
                "totalPages": -(-total // limit) if total else 0,
            }

        @router.post("/jobs/host-deploy")
        async def host_deploy(request: Request):
            body = await request.json()
            job_type = (body.get("jobType") or "").strip()
            if not job_type:
                return self._error(400, "job type is required")
            job = self.add(self.next_id, "pending_host", type="host_deploy")
            return JSONResponse(
                status_code=202,
                content={
                    "job": job,
                    "token": "a" * 64,
                    "expiresAt": datetime(2026, 1, 5, 12, 30, tzinfo=UTC).isoformat(),
                    "action": job_type,
                },
            )

        @router.get("/jobs/{job_id}")
        async def get_job(job_id: int):
            job = self.jobs.get(job_id)
            if job is None:
                return self._error(404, "job not found")
            return {**job, "logLines": self.logs.get(job_id) or None}

        @router.post("/jobs/{job_id}/stop")
        async def stop_job(job_id: int, request: Request):
            job = self.jobs.get(job_id)
            if job is None:
                return self._error(404, "job not found")
            raw = await request.body()
            reason = (json.loads(raw).get("error") if raw else "") or "manually stopped"
            if job["status"] in ("completed", "failed"):
                return self._error(409, "job already finished")
            if job["status"] == "running":
                return self._error(409, "job already running")
            job.update(status="failed", error=reason, finishedAt=datetime(2026, 1, 5, 13, 0, tzinfo=UTC).isoformat())
            return {"job": job}

        @router.post("/jobs/{job_id}/retry")
        async def retry_job(job_id: int):
            job = self.jobs.get(job_id)
            if job is None:
                return self._error(404, "job not found")
            if job["status"] != "failed":
                return self._error(409, "job is not retryable")
            retry = self.add(self.next_id, "pending", type=job["type"])
            return {"job": retry}

        @router.get("/jobs/{job_id}/stream")
        async def stream_job(job_id: int, offset: int = 0):
            job = self.jobs.get(job_id)

            async def _events():
                if job is None:
                    yield 'event: error\ndata: {"code": "job_not_found", "message": "job not found"}\n\n'
                    return
                yield ": keep-alive\n\n"
                for line in self.logs.get(job_id, [])[offset:]:
                    yield f"event: log\ndata: {json.dumps({'line': line})}\n\n"
                yield f"event: done\ndata: {json.dumps({'status': job['status']})}\n\n"
                yield 'event: log\ndata: {"line": "after done"}\n\n'

            return StreamingResponse(_events(), media_type="text/event-stream")

        app.include_router(router)
        return app


@pytest.fixture
def api() -> FakeJobApi:
    return FakeJobApi()


@pytest_asyncio.fixture
async def client(api: FakeJobApi):
    transport = httpx.ASGITransport(app=api.app)
    async with JobsClient(
        base_url="http://test/api/v1",
        api_token=API_TOKEN,
        cookies={},
        transport=transport,
    ) as jobs_client:
        yield jobs_client
