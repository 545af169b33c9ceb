"""structlog configuration for the CLI and the queue workers.

Log events go to **stderr** so that CLI results printed on stdout stay
clean for piping.  Rendering is console (coloured) in development and JSON
when ``app_env`` is ``"production"`` or ``json_output`` is set.

Library loggers (httpx, openai, aiosqlite) are routed through the same
processor chain; below DEBUG they are held at WARNING so one embedding
call does not produce a page of request logs.
"""

import logging
import sys
from typing import TextIO

import structlog

_LIBRARY_LOGGERS = ("httpx", "httpcore", "openai", "aiosqlite")


def _shared_processors() -> list[structlog.types.Processor]:
    # merge_contextvars must come first to pick up job_id / queue bindings.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _select_renderer(use_json: bool, colors: bool) -> structlog.types.Processor:
    if use_json:
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=colors)


def _route_library_logging(
    renderer: structlog.types.Processor, level: int, stream: TextIO
) -> None:
    """Send stdlib ``logging`` records through the structlog renderer."""
    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    library_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    app_env: str = "development",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR.
        json_output: Force JSON lines regardless of *app_env*.
        app_env: Deployment environment; ``"production"`` selects JSON.
        stream: Destination for log lines, ``sys.stderr`` by default.
    """
    stream = stream or sys.stderr
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level!r}")

    use_json = json_output or app_env == "production"
    renderer = _select_renderer(use_json, colors=not use_json and stream.isatty())

    structlog.configure(
        processors=[*_shared_processors(), renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )
    _route_library_logging(renderer, level, stream)


def job_log_context(**bindings: object):  # noqa: ANN201
    """Bind job-scoped keys (``job_id``, ``queue``) for the duration of a job.

    Every log line emitted while a worker handles the job carries the same
    identifiers, including lines from collaborators that never see the job.

    Usage::

        with job_log_context(job_id=job.job_id, queue="chunk-embedding"):
            await handler(job)
    """
    return structlog.contextvars.bound_contextvars(**bindings)
