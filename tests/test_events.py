"""Tests for change detection and event dispatch."""

from __future__ import annotations

import re
from typing import Any

import pytest

from harmoni.changes import ChangeDetector, diff_changes
from harmoni.errors import EventDispatchError
from harmoni.events import Event, EventRegistry


class Recorder:
    """Processor that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, Any]] = []

    def __call__(self, value: Any, pattern: Any) -> None:
        self.calls.append((value, pattern))


def boom(value: Any, pattern: Any) -> None:
    raise RuntimeError(f"boom on {pattern}")


class TestDiffChanges:
    """Tests for diff_changes."""

    def test_changed_value(self) -> None:
        current = {"a": {"b": 0, "c": 1}, "z": 9}
        assert diff_changes(current, {"a": {"b": 1}}) == {"a": {"b": 1}}

    def test_new_key(self) -> None:
        assert diff_changes({"a": 1}, {"b": 2}) == {"b": 2}

    def test_unchanged_is_empty(self) -> None:
        assert diff_changes({"a": {"b": 1}}, {"a": {"b": 1}}) == {}

    def test_only_incoming_keys_reported(self) -> None:
        """Keys missing from incoming are never reported, even if they differ."""
        current = {"a": {"b": 0}, "other": 1, "nested": {"x": 1}}
        assert diff_changes(current, {"a": {"b": 1}}) == {"a": {"b": 1}}

    def test_list_compared_whole(self) -> None:
        assert diff_changes({"l": [1, 2]}, {"l": [1, 2]}) == {}
        assert diff_changes({"l": [1, 2]}, {"l": [2, 1]}) == {"l": [2, 1]}

    def test_none_value_is_a_change(self) -> None:
        assert diff_changes({"a": 1}, {"a": None}) == {"a": None}
        assert diff_changes({}, {"a": None}) == {"a": None}

    @pytest.mark.parametrize(
        ("old", "new"),
        [(1, True), (0, False), (1, 1.0), ([1, 0], [True, False]), ({"x": 0}, {"x": False})],
    )
    def test_type_change_is_a_change(self, old: Any, new: Any) -> None:
        """Values equal under == but of another type still count as changed."""
        assert diff_changes({"flag": old}, {"flag": new}) == {"flag": new}

    def test_same_type_and_value_unchanged(self) -> None:
        assert diff_changes({"flag": True, "l": [1.0]}, {"flag": True, "l": [1.0]}) == {}


class TestEvent:
    """Tests for a single Event."""

    def test_singular_delivers_first_match(self) -> None:
        recorder = Recorder()
        event = Event("db.*", recorder)
        assert event.call({"db": {"host": "h", "port": 1}}) is True
        assert recorder.calls == [("h", "db.*")]

    def test_plural_delivers_all_matches(self) -> None:
        recorder = Recorder()
        event = Event("db.*", recorder, singular=False)
        event.call({"db": {"host": "h", "port": 1}})
        assert recorder.calls == [(["h", 1], "db.*")]

    def test_no_match_does_not_fire(self) -> None:
        recorder = Recorder()
        assert Event("db.host", recorder).call({"cache": {"ttl": 1}}) is False
        assert recorder.calls == []

    def test_non_dict_changes_ignored(self) -> None:
        recorder = Recorder()
        assert Event("a", recorder).call(["a"]) is False

    def test_regex_pattern_matches_flat_keys(self) -> None:
        recorder = Recorder()
        pattern = re.compile(r"db\.(host|port)")
        Event(pattern, recorder, singular=False).call({"db": {"host": "h", "port": 1, "user": "u"}})
        assert recorder.calls == [(["h", 1], pattern)]

    def test_invalid_pattern_rejected(self) -> None:
        with pytest.raises(TypeError):
            Event(42, Recorder())  # type: ignore[arg-type]

    def test_processor_must_be_callable(self) -> None:
        with pytest.raises(TypeError):
            Event("a", "not callable")  # type: ignore[arg-type]


class TestEventRegistry:
    """Tests for EventRegistry."""

    def test_add_and_remove(self) -> None:
        registry = EventRegistry()
        event = registry.add(Event("a", Recorder()))
        assert len(registry) == 1
        assert registry.remove(event) is True
        assert registry.remove(event) is False
        assert len(registry) == 0

    def test_dispatch_in_registration_order(self) -> None:
        order: list[str] = []
        registry = EventRegistry(
            [
                Event("a", lambda v, p: order.append("first")),
                Event("a", lambda v, p: order.append("second")),
            ]
        )
        registry.dispatch({"a": 1})
        assert order == ["first", "second"]

    def test_failure_isolated_and_reported(self, caplog: pytest.LogCaptureFixture) -> None:
        """A failing processor does not stop later ones; the error comes at the end."""
        after = Recorder()
        registry = EventRegistry([Event("a", boom), Event("a", after)])

        with pytest.raises(EventDispatchError) as excinfo:
            registry.dispatch({"a": 1})

        assert after.calls == [(1, "a")]
        assert len(excinfo.value.failures) == 1
        label, exc = excinfo.value.failures[0]
        assert label == "event 'a'"
        assert isinstance(exc, RuntimeError)
        assert "boom on a" in caplog.text

    def test_deliver_returns_failures(self) -> None:
        registry = EventRegistry([Event("a", boom), Event("b", boom)])
        failures = registry.deliver({"a": 1, "b": 2})
        assert [label for label, _ in failures] == ["event 'a'", "event 'b'"]


class TestChangeDetector:
    """Tests for ChangeDetector."""

    def test_inactive_without_listeners(self) -> None:
        detector = ChangeDetector(EventRegistry())
        assert not detector.active
        assert detector.detect({"a": 0}, {"a": 1}) == {}

    def test_hook_then_events(self) -> None:
        calls: list[str] = []
        registry = EventRegistry([Event("a", lambda v, p: calls.append("event"))])
        detector = ChangeDetector(registry, on_change=lambda raw, diff: calls.append("hook"))

        changes = detector.detect({"a": 0}, {"a": 1})
        assert detector.notify({"a": 1}, changes) == []
        assert calls == ["hook", "event"]

    def test_hook_receives_raw_and_diff(self) -> None:
        seen: list[tuple[Any, Any]] = []
        detector = ChangeDetector(EventRegistry(), on_change=lambda raw, diff: seen.append((raw, diff)))
        raw = {"a": {"b": 1, "c": 2}}
        detector.notify(raw, detector.detect({"a": {"b": 0, "c": 2}}, raw))
        assert seen == [(raw, {"a": {"b": 1}})]

    def test_empty_diff_fires_nothing(self) -> None:
        recorder = Recorder()
        detector = ChangeDetector(EventRegistry([Event("a", recorder)]), on_change=boom)
        assert detector.notify({"a": 1}, {}) == []
        assert recorder.calls == []

    def test_hook_failure_does_not_block_events(self) -> None:
        recorder = Recorder()
        detector = ChangeDetector(EventRegistry([Event("a", recorder)]), on_change=boom)
        failures = detector.notify({"a": 1}, {"a": 1})
        assert recorder.calls == [(1, "a")]
        assert [label for label, _ in failures] == ["on_change"]
