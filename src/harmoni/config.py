"""The Config orchestrator.

Config ties the pieces together:

- a LayeredStore holding defaults, configuration and overlay,
- hash path reads and writes against the effective view,
- a ChangeDetector feeding the on_change hook and the EventRegistry,
- a format adapter for load/save,
- a ReloadScheduler that watches the backing file while sync_up is set.

Example usage:
    from harmoni import Config

    config = Config("settings.yaml", defaults={"timeout": 30}, sync=True)
    config.get("timeout")            # 30
    config.set("db.host", "db2")     # written to settings.yaml (sync_down)

    @config.on("db.*", singular=False)
    def db_changed(values, pattern):
        ...
"""

from __future__ import annotations

import copy
import os
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from harmoni import hashpath
from harmoni.changes import ChangeDetector, ChangeHook
from harmoni.errors import EventDispatchError
from harmoni.events import Event, EventPattern, EventProcessor, EventRegistry, Failures
from harmoni.formats import FormatAdapter, resolve_format
from harmoni.logging import VERBOSE, get_logger
from harmoni.merge import reload_merge, stringify_keys
from harmoni.scheduler import MIN_INTERVAL, ReloadScheduler
from harmoni.store import LayeredStore, Swap

log = get_logger("config")

ReloadHook = Callable[[dict[str, Any]], Any]

_MISSING = object()


class Config:
    """A layered configuration backed by an optional file.

    The effective configuration is defaults, then configuration, then
    overlay, deep merged with later layers winning. Construction performs
    one reload() and starts the file watcher when sync_up is set.
    Listener or on_reload failures during that first reload are logged,
    not raised, so a failing hook never prevents construction.

    Args:
        path: Backing file. None keeps everything in memory.
        configuration: Initial explicit layer. Replaced by the file contents
            on reload unless persist_memory is set.
        defaults: Lowest precedence layer.
        overlay: Highest precedence layer.
        sync: Shorthand for sync_up and sync_down together.
        sync_up: Watch the file and reload when it changes.
        sync_down: Save after every set/delete.
        interval: Seconds between file checks (minimum 0.01).
        persist_memory: Keep in-memory keys when reloading from disk.
        prefer_memory: With persist_memory, memory wins conflicting keys.
        normalize_keys: Convert every mapping key to str.
        on_reload: Called with the effective configuration after each reload.
        on_change: Called with (raw change, diff) when values change.
        events: Initial events.
        format: Adapter instance or registered name. Detected from the path
            when omitted.
    """

    def __init__(
        self,
        path: str | os.PathLike[str] | None = None,
        *,
        configuration: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
        overlay: Mapping[str, Any] | None = None,
        sync: bool = False,
        sync_up: bool = False,
        sync_down: bool = False,
        interval: float = 1.0,
        persist_memory: bool = False,
        prefer_memory: bool = False,
        normalize_keys: bool = True,
        on_reload: ReloadHook | None = None,
        on_change: ChangeHook | None = None,
        events: list[Event] | None = None,
        format: str | FormatAdapter | None = None,
    ) -> None:
        self._path = os.fspath(path) if path is not None else None
        self.format = resolve_format(format, self._path)
        self.sync_down = bool(sync_down or sync)
        self.persist_memory = persist_memory
        self.prefer_memory = prefer_memory
        self.on_reload = on_reload
        self.interval = interval

        self._events = EventRegistry(events)
        self._changes = ChangeDetector(self._events, on_change)
        self._store = LayeredStore(
            configuration, defaults, overlay, normalize_keys=normalize_keys
        )
        self._last_refresh: float | None = None
        self._sync_up = False
        self._scheduler = ReloadScheduler(self)

        try:
            self.reload()
        except EventDispatchError as e:
            # Each failure was already logged; the loaded state is kept
            log.warning(
                "Initial load of %s finished with %d listener failure(s)",
                self._path or "<memory>",
                len(e.failures),
            )
        self.sync_up = bool(sync_up or sync)

    def __repr__(self) -> str:
        return (
            f"Config(path={self._path!r}, format={self.format.name!r}, "
            f"sync_up={self._sync_up}, sync_down={self.sync_down})"
        )

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    @property
    def path(self) -> str | None:
        return self._path

    @property
    def normalize_keys(self) -> bool:
        return self._store.normalize_keys

    @property
    def interval(self) -> float:
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        self._interval = max(MIN_INTERVAL, float(value))

    @property
    def sync_up(self) -> bool:
        return self._sync_up

    @sync_up.setter
    def sync_up(self, value: bool) -> None:
        self._sync_up = bool(value)
        if self._sync_up:
            self._scheduler.start()
        else:
            self._scheduler.wake()

    def sync(self, toggle: bool) -> None:
        """Turn sync_up and sync_down on or off together."""
        self.sync_up = toggle
        self.sync_down = bool(toggle)

    @property
    def watching(self) -> bool:
        """True while the watcher thread is running."""
        return self._scheduler.alive

    @property
    def last_refresh(self) -> float | None:
        """Epoch seconds of the last reload, or None before the first one."""
        with self._store.lock:
            return self._last_refresh

    @property
    def on_change(self) -> ChangeHook | None:
        return self._changes.on_change

    @on_change.setter
    def on_change(self, hook: ChangeHook | None) -> None:
        self._changes.on_change = hook

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    @property
    def configuration(self) -> dict[str, Any]:
        """Copy of the explicit layer (loaded from disk or set in memory)."""
        return self._store.configuration

    @configuration.setter
    def configuration(self, value: Mapping[str, Any]) -> None:
        self._replace_layers(value, configuration=value)

    @property
    def default_configuration(self) -> dict[str, Any]:
        return self._store.defaults

    @default_configuration.setter
    def default_configuration(self, value: Mapping[str, Any]) -> None:
        self._replace_layers(value, defaults=value)

    @property
    def overlay_configuration(self) -> dict[str, Any]:
        return self._store.overlay

    @overlay_configuration.setter
    def overlay_configuration(self, value: Mapping[str, Any]) -> None:
        self._replace_layers(value, overlay=value)

    defaults = default_configuration
    overlay = overlay_configuration

    def to_dict(self) -> dict[str, Any]:
        """Copy of the effective configuration."""
        return self._store.snapshot()

    def _replace_layers(self, raw: Mapping[str, Any], **layers: Mapping[str, Any]) -> None:
        swap = self._store.replace(**layers)
        self._raise_failures(self._notify(raw, swap))

    def _notify(self, raw: Mapping[str, Any], swap: Swap, incoming: dict[str, Any] | None = None) -> Failures:
        """Diff before/after and run listeners. Never called under the lock."""
        changes = self._changes.detect(swap.before, swap.after if incoming is None else incoming)
        return self._changes.notify(dict(raw), changes)

    @staticmethod
    def _raise_failures(failures: Failures) -> None:
        if failures:
            raise EventDispatchError(failures)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: str, default: Any = None) -> Any:
        """Get the first value matching a key or hash path."""
        found = self._store.read(lambda data: hashpath.resolve_all(data, path)[:1])
        return copy.deepcopy(found[0]) if found else default

    def get_all(self, path: str) -> list[Any]:
        """Get every value matching a key or hash path, in document order."""
        return copy.deepcopy(self._store.read(lambda data: hashpath.resolve_all(data, path)))

    def __getitem__(self, path: str) -> Any:
        value = self.get(path, _MISSING)
        if value is _MISSING:
            raise KeyError(path)
        return value

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        return self._store.read(lambda data: hashpath.exists(data, path))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, path: str | Mapping[str, Any] | None = None, value: Any = None, /, **values: Any) -> bool:
        """Set one path, or merge in several.

        Examples:
            config.set("db.host", "db2")
            config.set({"db.host": "db2", "db.port": 5433})
            config.set(timeout=60, retries=3)

        Listeners are told about values that actually change. The file is
        saved afterwards when sync_down is set.

        Returns:
            True if at least one location was written.

        Raises:
            EventDispatchError: If a listener failed. The change is kept.
        """
        if isinstance(path, Mapping):
            items = list(path.items()) + list(values.items())
        elif path is not None:
            items = [(path, value), *values.items()]
        else:
            items = list(values.items())
        if not items:
            return False

        normalize = self._store.normalize_keys

        def mutate(working: dict[str, Any]) -> tuple[list[hashpath.KeyPath], dict[str, Any]]:
            touched: list[hashpath.KeyPath] = []
            for key, item in items:
                item = stringify_keys(item) if normalize else copy.deepcopy(item)
                touched.extend(hashpath.set_path(working, key, item))
            return touched, hashpath.project(working, touched)

        swap, (touched, incoming) = self._store.update(mutate)
        if not touched:
            return False

        failures = self._notify(incoming, swap, incoming)
        if self.sync_down:
            self.save()
        self._raise_failures(failures)
        return True

    def __setitem__(self, path: str, value: Any) -> None:
        self.set(path, value)

    def delete(self, path: str) -> list[Any]:
        """Delete a key or nested path from the explicit layer.

        Values coming from defaults or overlay are unaffected. A missing
        path is a no-op.

        Returns:
            The removed values.
        """
        _, removed = self._store.update(lambda working: hashpath.delete_path(working, path))
        if removed and self.sync_down:
            self.save()
        return removed

    def __delitem__(self, path: str) -> None:
        if not self.delete(path):
            raise KeyError(path)

    def clear(self) -> None:
        """Empty the explicit layer."""
        self.configuration = {}

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @property
    def events(self) -> list[Event]:
        return self._events.snapshot()

    def add_event(self, event: Event) -> Event:
        return self._events.add(event)

    def remove_event(self, event: Event) -> bool:
        return self._events.remove(event)

    def on(
        self,
        pattern: EventPattern,
        processor: EventProcessor | None = None,
        *,
        singular: bool = True,
    ) -> Any:
        """Register a processor for changes matching pattern.

        Can be used directly or as a decorator:

            config.on("db.host", reconnect)

            @config.on("db.*", singular=False)
            def db_changed(values, pattern): ...
        """
        if processor is None:

            def decorator(func: EventProcessor) -> EventProcessor:
                self.add_event(Event(pattern, func, singular=singular))
                return func

            return decorator
        return self.add_event(Event(pattern, processor, singular=singular))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_config(self) -> dict[str, Any]:
        """Read the backing file through the format adapter."""
        return self.format.load(self._path)

    def save(self) -> None:
        """Write the effective configuration through the format adapter."""
        self.format.save(self._path, self.to_dict())

    def delete_file(self, missing_ok: bool = True) -> bool:
        """Delete the backing file.

        Returns:
            True if a file was removed.

        Raises:
            FileNotFoundError: If the file is missing and missing_ok is False.
        """
        if self._path is None:
            if missing_ok:
                return False
            raise FileNotFoundError("Config has no backing file")
        try:
            Path(self._path).unlink()
        except FileNotFoundError:
            if missing_ok:
                return False
            raise
        return True

    def reload(self) -> bool:
        """Reload the backing file and merge it per persist/prefer_memory.

        Always refreshes last_refresh and calls on_reload, even when nothing
        changed.

        Raises:
            EventDispatchError: If a listener or on_reload failed. The
                reloaded state is kept.
        """
        started = time.time()
        loaded = self.load_config()
        with self._store.lock:
            configuration = reload_merge(
                self._store.configuration,
                loaded,
                persist_memory=self.persist_memory,
                prefer_memory=self.prefer_memory,
            )
            swap = self._store.replace(configuration=configuration)
            self._last_refresh = started
        log.log(VERBOSE, "Reloaded config %s", self._path or "<memory>")

        failures = self._notify(configuration, swap)
        hook = self.on_reload
        if hook is not None:
            try:
                hook(copy.deepcopy(swap.after))
            except Exception as e:
                log.error("on_reload hook failed: %s", e, exc_info=e)
                failures.append(("on_reload", e))
        self._raise_failures(failures)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self, timeout: float | None = None) -> None:
        """Stop watching and wait for the watcher thread to exit."""
        self._sync_up = False
        self._scheduler.stop(timeout)

    def __enter__(self) -> Config:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def build(path: str | os.PathLike[str] | None, **options: Any) -> Config:
    """Create a Config, detecting the format from path unless format= is given."""
    return Config(path, **options)


def sync(path: str | os.PathLike[str] | None, **options: Any) -> Config:
    """Create a Config with both sync directions enabled."""
    options["sync"] = True
    return build(path, **options)
