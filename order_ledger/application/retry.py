"""
Retry-on-conflict for commands.

The core never retries on its own. A caller that wants "retry once, then
fail" wraps the command here. Each attempt re-runs the whole command, so the
stream is re-read and the decision is made against the new state; a cached
version is never reused.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from order_ledger.config import get_settings
from order_ledger.domain.errors import ConcurrencyConflictError

logger = structlog.get_logger(__name__)

R = TypeVar("R")


def _log_conflict(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.info(
        "command.retrying_after_conflict",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


async def retry_on_conflict(
    command: Callable[..., Awaitable[R]],
    *args: Any,
    attempts: int | None = None,
    max_jitter: float = 0.05,
    **kwargs: Any,
) -> R:
    """
    Run ``command(*args, **kwargs)``, re-running it on ConcurrencyConflictError.

    Args:
        command: Any command handler
        attempts: Total attempts including the first. Defaults to
            ``command_retry_attempts`` of the settings passed to the command,
            or of the process settings
        max_jitter: Upper bound of the random pause between attempts (seconds)

    Raises:
        ConcurrencyConflictError: every attempt lost the race.
    """
    if attempts is None:
        attempts = (kwargs.get("settings") or get_settings()).command_retry_attempts

    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ConcurrencyConflictError),
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_random(0, max_jitter),
        before_sleep=_log_conflict,
        reraise=True,
    ):
        with attempt:
            return await command(*args, **kwargs)
    raise AssertionError("unreachable")  # tenacity either returns or reraises
