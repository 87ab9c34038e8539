from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional


def now_ms() -> int:
    """Wall-clock timestamp in milliseconds."""
    return int(time.time() * 1000)


def elapsed_ms(start: float) -> int:
    """Milliseconds elapsed since a `time.monotonic()` reading."""
    return int((time.monotonic() - start) * 1000)


@dataclass
class TimedOutcome:
    """Result of a measured operation: either `result` or `error` is set."""

    duration_ms: int
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CallTimer:
    """Measures the duration of an async operation without raising."""

    async def measure(self, operation: Callable[[], Awaitable[Any]]) -> TimedOutcome:
        start = time.monotonic()
        try:
            result = await operation()
        except Exception as exc:
            return TimedOutcome(duration_ms=elapsed_ms(start), error=exc)
        return TimedOutcome(duration_ms=elapsed_ms(start), result=result)
