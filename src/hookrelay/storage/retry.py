"""Retry policy for storage operations.

Transient failures talking to a Qdrant server (connection errors, timeouts,
5xx responses) are retried with exponential backoff. A 4xx response means
the request itself is wrong and is raised immediately.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

STORAGE_MAX_ATTEMPTS = 3


def is_transient_storage_error(exc: BaseException) -> bool:
    """Whether a storage exception is worth retrying."""
    if isinstance(exc, httpx.ConnectError | httpx.TimeoutException):
        return True
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is None or exc.status_code >= 500
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying Qdrant operation %s (attempt %d/%d): %s",
        retry_state.fn.__name__ if retry_state.fn else "unknown",
        retry_state.attempt_number,
        STORAGE_MAX_ATTEMPTS,
        outcome,
    )


qdrant_retry = retry(
    stop=stop_after_attempt(STORAGE_MAX_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(is_transient_storage_error),
    before_sleep=_log_retry,
    reraise=True,
)
