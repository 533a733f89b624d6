"""
Infrastructure-specific retry policies, providing cross-cutting concerns like
retry logic for network operations.
"""

import logging

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from ..application.exceptions import DownloadError

logger = logging.getLogger(__name__)

# --- Defaults for Retry Logic ---
# Overridden by the [download] section of the settings.
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 3


def is_retryable(exception: BaseException) -> bool:
    """Transport failures, server errors and undersized bodies are transient."""
    if isinstance(exception, httpx.HTTPStatusError):
        status = exception.response.status_code
        return status >= 500 or status == 429
    return isinstance(exception, (httpx.TransportError, DownloadError))


def _log_before_retry(retry_state):
    """Log the retry attempt with details about the exception and wait time."""
    exception = retry_state.outcome.exception()
    next_attempt_in = retry_state.next_action.sleep
    logger.warning(
        f"Retrying in {next_attempt_in:.2f}s due to "
        f"{type(exception).__name__}: {exception} "
        f"(attempt {retry_state.attempt_number} failed)..."
    )


def download_retrying(
    attempts: int = DEFAULT_RETRY_ATTEMPTS,
    delay: float = DEFAULT_RETRY_DELAY_SECONDS,
) -> AsyncRetrying:
    """
    Builds the retry controller for one download.

    The delay is fixed rather than exponential, and the last attempt's error
    is re-raised unchanged so the caller can report it.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_fixed(delay),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_before_retry,
        reraise=True,
    )
