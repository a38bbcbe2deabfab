"""structlog setup for the jobs CLI.

Events go to stderr so that command output on stdout stays clean enough
to pipe. Each event carries ``service``, ``env`` and ``version`` plus a
``component`` naming the module that logged it (``host_worker``,
``jobs_store``, ...), which is how poll and store events are told apart
when several watches run side by side.

    from gungnr_jobs.integrations.logging_setup import configure_logging
    configure_logging("debug")
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Any, MutableMapping

import structlog

_PACKAGE_PREFIX = "gungnr_jobs."
_LOCAL_ENVIRONMENTS = ("development", "local", "test")


def configure_logging(level: str | None = None, pretty: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger once, at startup.

    ``pretty`` defaults to console rendering for local environments and
    JSON lines everywhere else.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    _configure_stdlib_logging(log_level)

    if pretty is None:
        pretty = os.getenv("ENVIRONMENT", "development").lower() in _LOCAL_ENVIRONMENTS

    structlog.configure(
        processors=_build_processors(pretty=pretty),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.get_logger(__name__).debug("logging_configured", level=level_name, pretty=pretty)


def _build_processors(pretty: bool) -> list:
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_component,
        _add_service_context,
        structlog.processors.format_exc_info,
    ]
    if pretty:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


def _add_component(
    logger: Any,
    method: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Derive ``component`` from the logger name, e.g. ``integrations.jobs_client``."""
    name = event_dict.get("logger") or ""
    if name.startswith(_PACKAGE_PREFIX):
        event_dict.setdefault("component", name[len(_PACKAGE_PREFIX):])
    return event_dict


def _add_service_context(
    logger: Any,
    method: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", os.getenv("GUNGNR_SERVICE", "gungnr-jobs"))
    event_dict.setdefault("env", os.getenv("ENVIRONMENT", "development"))
    event_dict.setdefault("version", os.getenv("GUNGNR_VERSION", "0.1.0"))
    return event_dict


def _configure_stdlib_logging(level: int) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        root.addHandler(handler)

    # httpx logs every request at INFO
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)
