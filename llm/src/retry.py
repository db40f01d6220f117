"""
Exponential backoff for LLM calls.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from shared.logging import get_logger

from .client import LLMRequestError

log = get_logger("llm", "retry")

T = TypeVar("T")

# Upper bound on a server-provided Retry-After
MAX_RETRY_AFTER_SECONDS = 60.0


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call fn until it succeeds or max_attempts is reached.

    Transient LLMRequestErrors are retried after base_delay * 2**attempt
    seconds (or the server's Retry-After, when larger). Non-transient errors
    and the last failure propagate to the caller.

    Args:
        fn: Zero-argument coroutine factory (called once per attempt)
        max_attempts: Total attempts including the first
        base_delay: Delay before the first retry, doubled each retry
        sleep: Sleep function (injectable for tests)
    """
    for attempt in range(max_attempts):
        try:
            return await fn()
        except LLMRequestError as e:
            if not e.transient or attempt >= max_attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            if e.retry_after:
                delay = max(delay, min(e.retry_after, MAX_RETRY_AFTER_SECONDS))
            log.warning(
                "llm.retry.scheduled",
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay_seconds=delay,
                error=str(e),
            )
            await sleep(delay)

    raise RuntimeError("with_retry called with max_attempts < 1")
