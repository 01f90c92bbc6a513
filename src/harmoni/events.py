"""Change events bound to hash path patterns.

An Event pairs a pattern with a processor. When a change is detected, the
registry resolves each pattern against the nested diff and hands the
matching values to the processor:

    registry.add(Event("db.*", on_db_change, singular=False))
    registry.dispatch({"db": {"host": "h2", "port": 5433}})
    # -> on_db_change(["h2", 5433], "db.*")

String patterns are hash paths (see harmoni.hashpath). Compiled regular
expressions are matched in full against the flattened dotted keys of the
diff instead.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from harmoni import hashpath
from harmoni.errors import EventDispatchError
from harmoni.logging import get_logger

log = get_logger("events")

EventPattern = str | re.Pattern[str]
EventProcessor = Callable[[Any, EventPattern], Any]

# (listener label, exception) pairs collected during one dispatch
Failures = list[tuple[str, BaseException]]


@dataclass(eq=False)
class Event:
    """A processor that fires when a diff matches its pattern.

    Attributes:
        pattern: Hash path (may contain wildcards) or compiled regex.
        processor: Called as processor(value, pattern).
        singular: Deliver only the first match instead of the list of all
            matches.
    """

    pattern: EventPattern
    processor: EventProcessor
    singular: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.pattern, (str, re.Pattern)):
            raise TypeError(f"Event pattern must be str or re.Pattern, got {type(self.pattern).__name__}")
        if not callable(self.processor):
            raise TypeError("Event processor must be callable")

    @property
    def label(self) -> str:
        pattern = self.pattern.pattern if isinstance(self.pattern, re.Pattern) else self.pattern
        return f"event {pattern!r}"

    def matches(self, changes: dict[str, Any]) -> list[Any]:
        """Return the values in changes selected by this event's pattern."""
        if isinstance(self.pattern, re.Pattern):
            return [
                value
                for key, value in hashpath.flatten(changes).items()
                if self.pattern.fullmatch(key)
            ]
        return hashpath.resolve_all(changes, self.pattern)

    def call(self, changes: Any) -> bool:
        """Run the processor if changes match.

        Returns:
            True if the processor was invoked.
        """
        if not isinstance(changes, dict):
            return False
        found = self.matches(changes)
        if not found:
            return False
        self.processor(found[0] if self.singular else found, self.pattern)
        return True


class EventRegistry:
    """Ordered, thread-safe collection of Events."""

    def __init__(self, events: list[Event] | None = None) -> None:
        self._lock = threading.Lock()
        self._events: list[Event] = list(events or [])

    def add(self, event: Event) -> Event:
        with self._lock:
            self._events.append(event)
        return event

    def remove(self, event: Event) -> bool:
        """Remove an event. Returns False if it was not registered."""
        with self._lock:
            try:
                self._events.remove(event)
            except ValueError:
                return False
        return True

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def snapshot(self) -> list[Event]:
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self.snapshot())

    def deliver(self, changes: dict[str, Any]) -> Failures:
        """Run every matching event, isolating failures.

        Args:
            changes: Nested diff of changed keys.

        Returns:
            Failures raised by processors, in registration order.
        """
        failures: Failures = []
        for event in self.snapshot():
            try:
                event.call(changes)
            except Exception as e:
                log.error("Change listener %s failed: %s", event.label, e, exc_info=e)
                failures.append((event.label, e))
        return failures

    def dispatch(self, changes: dict[str, Any]) -> None:
        """Run every matching event.

        Raises:
            EventDispatchError: After all events ran, if any processor raised.
        """
        failures = self.deliver(changes)
        if failures:
            raise EventDispatchError(failures)
