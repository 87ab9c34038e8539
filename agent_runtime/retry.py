"""
Exponential-backoff retry for a single logical provider call.

Attempts are numbered from 0. After a failed attempt `i` the invoker waits
`base_delay_ms * 2**i` plus a uniform jitter in [0, 500) ms, as long as
`i < max_retries` and the classifier accepts the error. The worst case is
therefore `max_retries + 1` physical attempts.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

from .errors import ProviderConnectionError, ProviderTimeoutError, RetryableProviderError
from .logging_setup import get_logger
from .timing import CallTimer

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000
MAX_JITTER_MS = 500


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _jitter_ms() -> float:
    return random.uniform(0, MAX_JITTER_MS)


def compute_delay_ms(attempt: int, base_delay_ms: int, jitter_ms: float = 0.0) -> float:
    return base_delay_ms * (2 ** attempt) + jitter_ms


def is_retryable_error(error: BaseException) -> bool:
    """Default classifier: rate limits, server errors, timeouts and network failures."""
    return isinstance(error, (RetryableProviderError, ProviderTimeoutError, ProviderConnectionError))


class RetryingInvoker:
    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        *,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        jitter: Optional[Callable[[], float]] = None,
    ) -> None:
        self.logger = logger or get_logger("RetryingInvoker")
        self._sleep = sleep
        self._jitter = jitter
        self._timer = CallTimer()

    async def invoke(
        self,
        operation: Callable[[], Awaitable[Any]],
        is_retryable: Callable[[BaseException], bool] = is_retryable_error,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        description: str = "request",
    ) -> Any:
        attempt = 0
        while True:
            outcome = await self._timer.measure(operation)
            error = outcome.error
            if error is None:
                return outcome.result

            if attempt >= max_retries or not is_retryable(error):
                raise error

            jitter = self._jitter() if self._jitter is not None else _jitter_ms()
            delay_ms = compute_delay_ms(attempt, base_delay_ms, jitter)
            self.logger.warning(
                "%s failed on attempt %d after %dms: %s. Retrying in %dms",
                description,
                attempt,
                outcome.duration_ms,
                error,
                int(delay_ms),
                extra={"attempt": attempt, "delay_ms": delay_ms},
            )
            sleep = self._sleep or _sleep
            await sleep(delay_ms / 1000.0)
            attempt += 1
