"""Retry classification and backoff for embedding failures.

A failure is **transient** (worth retrying) when it is:

- an HTTP 429 or any 5xx status,
- a transport failure (``ETIMEDOUT``, ``ECONNRESET``) or a local timeout,
- any error whose message mentions "rate limit".

Everything else is **permanent**: retrying a 400 (bad input) or a 401
(bad credentials) only burns attempts.
"""

from __future__ import annotations

import asyncio

from src.utils.errors import EmbeddingError

DEFAULT_BASE_DELAY_SECONDS = 5.0
DEFAULT_MAX_DELAY_SECONDS = 60.0

_TRANSIENT_TRANSPORT_CODES = frozenset({"ETIMEDOUT", "ECONNRESET"})


def is_transient_error(error: BaseException) -> bool:
    """Return ``True`` when *error* should be retried with backoff."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return True

    if isinstance(error, EmbeddingError):
        status = error.status_code
        if status is not None and (status == 429 or status >= 500):
            return True
        if error.transport_code in _TRANSIENT_TRANSPORT_CODES:
            return True
        message = error.message
    else:
        message = str(error)

    return "rate limit" in message.lower()


def compute_retry_delay(
    attempts_made: int,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS,
) -> float:
    """Backoff before the next attempt: ``min(max_delay, base_delay * 2**attempts_made)``.

    *attempts_made* counts the attempts that already **failed** before the
    current one (0 on the first run).
    """
    return min(max_delay, base_delay * (2 ** max(attempts_made, 0)))


def serialize_error(error: BaseException) -> str:
    """Human-readable message stored on a failed chunk."""
    if isinstance(error, EmbeddingError):
        return error.message
    message = str(error)
    return message or type(error).__name__
