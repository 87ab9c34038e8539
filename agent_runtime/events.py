from __future__ import annotations

from typing import Iterator, List

from .models import Event


class EventSink:
    """
    Ordered, append-only record of the calls made while handling one request.

    Events are kept in completion order. Appends are single synchronous steps,
    so concurrent tasks on the same event loop never interleave partial events.
    """

    def __init__(self) -> None:
        self._events: List[Event] = []

    def append(self, event: Event) -> None:
        self._events.append(event)

    def snapshot(self) -> List[Event]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events))

    def __bool__(self) -> bool:
        return bool(self._events)

    def __getitem__(self, index: int) -> Event:
        return self._events[index]
