"""Job API client for the gungnr admin panel.

Stateless request/response wrappers over the ``/api/v1/jobs`` endpoints.
Each call issues exactly one request: no retries, no caching. Every
failure surfaces as a :class:`TransportError` carrying the HTTP status
(``None`` for network errors and timeouts) so callers can classify it.

A job that finished with ``status == "failed"`` is ordinary data, not an
error.

Usage::

    async with JobsClient() as client:
        page = await client.list_jobs(page=2, limit=25)
        detail = await client.get_job(page.jobs[0].id)
"""
from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from gungnr_jobs.config import settings
from gungnr_jobs.models.jobs import (
    HostDeployRequest,
    HostDeployResponse,
    Job,
    JobDetail,
    JobPage,
    JobStreamEvent,
)

log = structlog.get_logger(__name__)

_UNEXPECTED = "Unexpected error"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TransportError(Exception):
    """Raised when a job API request fails at the network or HTTP layer."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        fields: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.fields = fields

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status!r}, message={self.message!r})"


class JobNotFoundError(TransportError):
    """Raised for HTTP 404 on a job lookup."""


def parse_api_error(exc: BaseException) -> TransportError:
    """Convert any request failure into a :class:`TransportError`.

    The message prefers the JSON body's ``error`` then ``message`` keys and
    falls back to the exception text.
    """
    if isinstance(exc, TransportError):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        fields = data.get("fields") if isinstance(data.get("fields"), dict) else None
        message = data.get("error") or data.get("message") or str(exc) or _UNEXPECTED
        error_cls = JobNotFoundError if response.status_code == 404 else TransportError
        return error_cls(message, status=response.status_code, fields=fields)

    if isinstance(exc, httpx.TimeoutException):
        return TransportError(str(exc) or "Request timed out")

    return TransportError(str(exc) or _UNEXPECTED)


def api_error_message(exc: BaseException) -> str:
    return parse_api_error(exc).message


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class JobsClient:
    """Async client for the job endpoints of the panel API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        cookies: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.API_TIMEOUT_S
        token = api_token if api_token is not None else settings.API_TOKEN

        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            cookies=cookies if cookies is not None else settings.cookies,
            timeout=self._timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "JobsClient":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal request helper
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        log.debug("jobs_api_request", method=method, path=path)
        try:
            resp = await self._client.request(method, path, params=params, json=body)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            error = parse_api_error(exc)
            log.debug("jobs_api_request_failed", method=method, path=path, status=error.status, error=error.message)
            raise error from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError("Invalid JSON in response", status=resp.status_code) from exc

    # ------------------------------------------------------------------
    # Jobs API
    # ------------------------------------------------------------------

    async def list_jobs(self, page: Optional[int] = None, limit: Optional[int] = None) -> JobPage:
        """Fetch one page of job summaries (GET /jobs?page=&limit=)."""
        params: Dict[str, Any] = {}
        if page is not None:
            params["page"] = page
        if limit is not None:
            params["limit"] = limit
        data = await self._request("GET", "/jobs", params=params or None)
        return _parse(JobPage, data)

    async def get_job(self, job_id: int) -> JobDetail:
        """Fetch a job with its full log. HTTP 404 raises :class:`JobNotFoundError`."""
        data = await self._request("GET", f"/jobs/{job_id}")
        return _parse(JobDetail, data)

    async def stop_job(self, job_id: int, reason: Optional[str] = None) -> Job:
        """Ask the server to stop a job; poll afterwards to observe the outcome."""
        body = {"error": reason} if reason else None
        data = await self._request("POST", f"/jobs/{job_id}/stop", body=body)
        return _parse(Job, _unwrap_job(data))

    async def retry_job(self, job_id: int) -> Job:
        """Re-run a failed job. The returned record may carry a new id."""
        data = await self._request("POST", f"/jobs/{job_id}/retry")
        return _parse(Job, _unwrap_job(data))

    async def create_host_deploy(self, job_type: str, payload: Dict[str, Any]) -> HostDeployResponse:
        """Create a host-deploy job and its one-time worker token."""
        request = HostDeployRequest(job_type=job_type, payload=payload)
        data = await self._request("POST", "/jobs/host-deploy", body=request.to_wire())
        response = _parse(HostDeployResponse, data)
        log.info("host_deploy_created", job_id=response.job.id, action=response.action)
        return response

    async def stream_job(self, job_id: int, offset: int = 0) -> AsyncIterator[JobStreamEvent]:
        """Follow a job's log over server-sent events.

        Yields ``log`` events as lines arrive and stops after the first
        ``done`` or ``error`` event, or when the server closes the stream.
        ``offset`` is the number of log bytes already seen.
        """
        timeout = httpx.Timeout(self._timeout, read=None)
        try:
            async with self._client.stream(
                "GET",
                f"/jobs/{job_id}/stream",
                params={"offset": offset},
                timeout=timeout,
            ) as resp:
                if resp.is_error:
                    await resp.aread()
                    resp.raise_for_status()
                async for event in _iter_sse(resp.aiter_lines()):
                    yield event
                    if event.is_final:
                        return
        except httpx.HTTPError as exc:
            raise parse_api_error(exc) from exc


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def _unwrap_job(data: Any) -> Any:
    # stop/retry answer with {"job": {...}}
    if isinstance(data, dict) and isinstance(data.get("job"), dict):
        return data["job"]
    return data


def _parse(model: type[BaseModel], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        log.warning("jobs_api_unexpected_response", model=model.__name__, errors=exc.error_count())
        raise TransportError(f"Unexpected {model.__name__} response from job API") from exc


# ---------------------------------------------------------------------------
# Server-sent events
# ---------------------------------------------------------------------------


async def _iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[JobStreamEvent]:
    event_name = "message"
    data_lines: list[str] = []
    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data_lines:
                yield _build_event(event_name, data_lines)
            event_name = "message"
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event_name = value
        elif field == "data":
            data_lines.append(value)
    if data_lines:
        yield _build_event(event_name, data_lines)


def _build_event(name: str, data_lines: list[str]) -> JobStreamEvent:
    text = "\n".join(data_lines)
    try:
        data = json.loads(text)
    except ValueError:
        data = {"raw": text}
    if not isinstance(data, dict):
        data = {"value": data}
    return JobStreamEvent(event=name, data=data)
