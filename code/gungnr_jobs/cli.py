"""Command line front end for the panel's job API.

    gungnr-jobs list --page 2
    gungnr-jobs show 42
    gungnr-jobs deploy quick_service --payload '{"name": "blog"}'
    gungnr-jobs watch 42
    gungnr-jobs stop 42 --reason "wrong branch"
    gungnr-jobs retry 42
    gungnr-jobs stream 42

Connection settings come from the GUNGNR_* environment variables (see
``gungnr_jobs.config``).
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional, Sequence

from gungnr_jobs.config import settings
from gungnr_jobs.host_worker import JobPollController
from gungnr_jobs.integrations.jobs_client import JobsClient, TransportError
from gungnr_jobs.integrations.logging_setup import configure_logging
from gungnr_jobs.job_status import is_terminal, job_action_label, job_status_label
from gungnr_jobs.jobs_store import JobsStore
from gungnr_jobs.models.jobs import HostDeployResponse, Job
from gungnr_jobs.toasts import LogToastSink


def _format_job(job: Job) -> str:
    created = job.created_at.isoformat() if job.created_at else "-"
    line = f"#{job.id:<6} {job.type:<20} {job_status_label(job.status):<10} {created}"
    if job.error:
        line += f"  ({job.error})"
    return line


def _print_new_logs(lines: List[str], printed: int) -> int:
    for line in lines[printed:]:
        print(f"  | {line}")
    return max(printed, len(lines))


def _report_error(exc: TransportError, what: str) -> int:
    if exc.is_unauthorized and settings.authenticated:
        print(f"error: credentials were rejected; sign in again to {what}", file=sys.stderr)
    elif exc.is_unauthorized:
        print(f"error: sign in to {what} (set GUNGNR_API_TOKEN or GUNGNR_SESSION_COOKIE)", file=sys.stderr)
    else:
        print(f"error: {exc.message}", file=sys.stderr)
    return 1


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_list(client: JobsClient, args: argparse.Namespace) -> int:
    store = JobsStore(client, page_size=args.limit)
    await store.fetch_jobs(page=args.page)
    if store.error:
        print(f"error: {store.error}", file=sys.stderr)
        return 1
    if not store.jobs:
        print("No jobs yet.")
        return 0
    for job in store.jobs:
        print(_format_job(job))
    print(f"\nPage {store.page}/{max(store.total_pages, 1)} · {store.total} jobs")
    return 0


async def cmd_show(client: JobsClient, args: argparse.Namespace) -> int:
    try:
        job = await client.get_job(args.job_id)
    except TransportError as exc:
        return _report_error(exc, "view jobs")
    print(_format_job(job))
    _print_new_logs(job.log_lines, 0)
    return 0


async def _follow(controller: JobPollController) -> int:
    printed = 0
    while controller.polling:
        printed = _print_new_logs(controller.logs, printed)
        try:
            await asyncio.wait_for(controller.wait_settled(), timeout=controller.interval_s)
        except asyncio.TimeoutError:
            if controller.error:
                print(f"  ! {controller.error} (still polling)", file=sys.stderr)
    _print_new_logs(controller.logs, printed)

    job = controller.job
    if job is None:
        return 1
    print(f"Job #{job.id} {job_status_label(job.status)}")
    return 1 if (job.status or "").lower() == "failed" else 0


async def cmd_watch(client: JobsClient, args: argparse.Namespace) -> int:
    try:
        job = await client.get_job(args.job_id)
    except TransportError as exc:
        return _report_error(exc, "view jobs")
    if is_terminal(job.status):
        print(_format_job(job))
        _print_new_logs(job.log_lines, 0)
        return 1 if job.status.lower() == "failed" else 0

    controller = JobPollController(client, toasts=LogToastSink())
    try:
        await controller.open_with_host_deploy(
            HostDeployResponse(job=job, token="", action=job.type)
        )
        return await _follow(controller)
    finally:
        await controller.aclose()


async def cmd_deploy(client: JobsClient, args: argparse.Namespace) -> int:
    try:
        payload = json.loads(args.payload) if args.payload else {}
    except ValueError as exc:
        print(f"error: --payload is not valid JSON: {exc}", file=sys.stderr)
        return 2
    if not isinstance(payload, dict):
        print("error: --payload must be a JSON object", file=sys.stderr)
        return 2

    try:
        response = await client.create_host_deploy(args.job_type, payload)
    except TransportError as exc:
        return _report_error(exc, "create jobs")

    controller = JobPollController(client, toasts=LogToastSink())
    try:
        await controller.open_with_host_deploy(response)
        print(f"{job_action_label(response.action)} queued as job #{response.job.id}")
        print("Run this on the target host:\n")
        print(f"  {controller.command}\n")
        if response.expires_at:
            print(f"Token expires at {response.expires_at.isoformat()}")
        if args.no_watch:
            return 0
        return await _follow(controller)
    finally:
        await controller.aclose()


async def cmd_stop(client: JobsClient, args: argparse.Namespace) -> int:
    try:
        job = await client.stop_job(args.job_id, reason=args.reason)
    except TransportError as exc:
        return _report_error(exc, "manage jobs")
    print(_format_job(job))
    return 0


async def cmd_retry(client: JobsClient, args: argparse.Namespace) -> int:
    try:
        job = await client.retry_job(args.job_id)
    except TransportError as exc:
        return _report_error(exc, "manage jobs")
    print(f"Retry queued as job #{job.id}")
    return 0


async def cmd_stream(client: JobsClient, args: argparse.Namespace) -> int:
    try:
        async for event in client.stream_job(args.job_id, offset=args.offset):
            if event.event == "log":
                print(f"  | {event.data.get('line', '')}")
            elif event.event == "done":
                print(f"Job #{args.job_id} {job_status_label(event.data.get('status'))}")
                return 1 if event.data.get("status") == "failed" else 0
            elif event.event == "error":
                print(f"error: {event.data.get('message', 'stream error')}", file=sys.stderr)
                return 1
    except TransportError as exc:
        return _report_error(exc, "view jobs")
    return 0


_COMMANDS = {
    "list": cmd_list,
    "show": cmd_show,
    "watch": cmd_watch,
    "deploy": cmd_deploy,
    "stop": cmd_stop,
    "retry": cmd_retry,
    "stream": cmd_stream,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gungnr-jobs", description="Inspect and follow panel jobs")
    parser.add_argument("--api", default=None, help="API base URL (default: GUNGNR_API_BASE_URL)")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="List jobs, newest first")
    p_list.add_argument("--page", type=int, default=1)
    p_list.add_argument("--limit", type=int, default=settings.JOBS_PAGE_SIZE)

    for name, help_text in (
        ("show", "Show one job and its log"),
        ("watch", "Poll a job until it finishes"),
        ("retry", "Retry a failed job"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("job_id", type=int)

    p_stop = sub.add_parser("stop", help="Stop a pending job")
    p_stop.add_argument("job_id", type=int)
    p_stop.add_argument("--reason", default=None)

    p_stream = sub.add_parser("stream", help="Follow a job's log over server-sent events")
    p_stream.add_argument("job_id", type=int)
    p_stream.add_argument("--offset", type=int, default=0)

    p_deploy = sub.add_parser("deploy", help="Create a host-deploy job and follow it")
    p_deploy.add_argument("job_type", help="create_template | deploy_existing | quick_service")
    p_deploy.add_argument("--payload", default=None, help="JSON object sent as the job payload")
    p_deploy.add_argument("--no-watch", action="store_true", help="Print the worker command and exit")

    return parser


async def run(args: argparse.Namespace, client: Optional[JobsClient] = None) -> int:
    handler = _COMMANDS[args.command]
    if client is not None:
        return await handler(client, args)
    async with JobsClient(base_url=args.api) as owned:
        return await handler(owned, args)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or settings.LOG_LEVEL)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
