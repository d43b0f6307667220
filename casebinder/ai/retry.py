"""
Bounded retry at the oracle boundary.

RetriableOracleError (timeouts, 429/5xx) is retried with exponential
backoff up to ORACLE_MAX_ATTEMPTS attempts in total; FatalOracleError and
every other exception propagate on the first occurrence.
"""

from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from casebinder.config import ORACLE_RETRY_MAX_SECONDS, get_setting
from casebinder.errors import RetriableOracleError
from casebinder.logging_config import warning

T = TypeVar('T')


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    warning(
        f"[ORACLE] Retrying after attempt {retry_state.attempt_number} failed: {exc}"
    )


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float = ORACLE_RETRY_MAX_SECONDS,
) -> T:
    """
    Await operation(), retrying only on RetriableOracleError.

    Args:
        operation: Zero-argument coroutine factory (called once per attempt).
        max_attempts: Total attempts including the first. Defaults to the
                      oracle_max_attempts setting.
        base_delay: First backoff delay in seconds, doubled per attempt.
                    Defaults to the oracle_retry_base_seconds setting.
        max_delay: Upper bound on a single backoff delay.

    Returns:
        The operation's result.

    Raises:
        RetriableOracleError: When every attempt failed transiently.
        FatalOracleError: Immediately, without retry.
    """
    if max_attempts is None:
        max_attempts = get_setting('oracle_max_attempts')
    if base_delay is None:
        base_delay = get_setting('oracle_retry_base_seconds')

    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(RetriableOracleError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, min=base_delay, max=max_delay),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            result = await operation()
    return result
