"""Change detection between the effective configuration and incoming data."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from harmoni import hashpath
from harmoni.events import EventRegistry, Failures
from harmoni.logging import get_logger

log = get_logger("changes")

ChangeHook = Callable[[dict[str, Any], dict[str, Any]], Any]

_MISSING = object()


def _differs(a: Any, b: Any) -> bool:
    """Value inequality that also tells 1 from True and 1 from 1.0."""
    if type(a) is not type(b):
        return True
    if isinstance(a, list):
        return len(a) != len(b) or any(_differs(x, y) for x, y in zip(a, b))
    if isinstance(a, dict):
        return a.keys() != b.keys() or any(_differs(a[k], b[k]) for k in a)
    return a != b


def diff_changes(current: Mapping[str, Any], incoming: Mapping[str, Any]) -> dict[str, Any]:
    """Compute what incoming would change in current.

    Both sides are flattened to dotted keys. A key is reported when it is
    new or its value differs, including in type (1 versus True). Only keys
    present in incoming can appear, so untouched keys of current are never
    reported.

    Args:
        current: The effective configuration before the change.
        incoming: The change-set (or the new effective configuration).

    Returns:
        The changed keys with their incoming values, as a nested dict.
    """
    before = hashpath.flatten(current)
    after = hashpath.flatten(incoming)
    changed = {
        key: value
        for key, value in after.items()
        if before.get(key, _MISSING) is _MISSING or _differs(before[key], value)
    }
    return hashpath.expand(changed)


class ChangeDetector:
    """Computes diffs and fans them out to the global hook and the events.

    Detection is skipped when nobody is listening.
    """

    def __init__(self, events: EventRegistry, on_change: ChangeHook | None = None) -> None:
        self.events = events
        self.on_change = on_change

    @property
    def active(self) -> bool:
        return self.on_change is not None or len(self.events) > 0

    def detect(self, current: Mapping[str, Any], incoming: Mapping[str, Any]) -> dict[str, Any]:
        if not self.active:
            return {}
        return diff_changes(current, incoming)

    def notify(self, raw: dict[str, Any], changes: dict[str, Any]) -> Failures:
        """Invoke on_change(raw, changes), then the matching events.

        Must be called without holding the store lock. Each listener is
        isolated; failures are logged and returned rather than raised.
        """
        if not changes:
            return []

        failures: Failures = []
        hook = self.on_change
        if hook is not None:
            try:
                hook(raw, changes)
            except Exception as e:
                log.error("on_change hook failed: %s", e, exc_info=e)
                failures.append(("on_change", e))

        failures.extend(self.events.deliver(changes))
        return failures
