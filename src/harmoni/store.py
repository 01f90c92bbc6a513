"""Lock-guarded holder for the three configuration layers.

The store keeps the explicit configuration, the defaults and the overlay,
plus the effective view compiled from them. Every change computes a new
effective view first and swaps it in under the lock, so readers never see
a partially merged state. Callbacks are never run while the lock is held.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from harmoni.merge import compile_layers, stringify_keys


@dataclass(frozen=True)
class Swap:
    """Result of replacing one or more layers."""

    before: dict[str, Any]
    after: dict[str, Any]


class LayeredStore:
    """Defaults, configuration and overlay with a cached effective view."""

    def __init__(
        self,
        configuration: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
        overlay: Mapping[str, Any] | None = None,
        *,
        normalize_keys: bool = True,
    ) -> None:
        self.normalize_keys = normalize_keys
        self.lock = threading.RLock()
        self._configuration = self._prepare(configuration)
        self._defaults = self._prepare(defaults)
        self._overlay = self._prepare(overlay)
        self._effective = compile_layers(self._configuration, self._defaults, self._overlay)

    def _prepare(self, layer: Mapping[str, Any] | None) -> dict[str, Any]:
        if layer is None:
            return {}
        if not isinstance(layer, Mapping):
            raise TypeError(f"Configuration layers must be mappings, got {type(layer).__name__}")
        if self.normalize_keys:
            return stringify_keys(layer)
        return copy.deepcopy(dict(layer))

    # Reads always return copies so callers cannot mutate shared state

    @property
    def configuration(self) -> dict[str, Any]:
        with self.lock:
            return copy.deepcopy(self._configuration)

    @property
    def defaults(self) -> dict[str, Any]:
        with self.lock:
            return copy.deepcopy(self._defaults)

    @property
    def overlay(self) -> dict[str, Any]:
        with self.lock:
            return copy.deepcopy(self._overlay)

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the effective configuration."""
        with self.lock:
            return copy.deepcopy(self._effective)

    def read(self, reader: Callable[[dict[str, Any]], Any]) -> Any:
        """Run reader against the live effective view under the lock.

        The reader must not keep references to containers it receives.
        """
        with self.lock:
            return reader(self._effective)

    def replace(
        self,
        *,
        configuration: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
        overlay: Mapping[str, Any] | None = None,
    ) -> Swap:
        """Replace any of the layers and recompile.

        Layers passed as None are left untouched.
        """
        new_configuration = None if configuration is None else self._prepare(configuration)
        new_defaults = None if defaults is None else self._prepare(defaults)
        new_overlay = None if overlay is None else self._prepare(overlay)
        with self.lock:
            return self._swap(
                self._configuration if new_configuration is None else new_configuration,
                self._defaults if new_defaults is None else new_defaults,
                self._overlay if new_overlay is None else new_overlay,
            )

    def update(self, mutate: Callable[[dict[str, Any]], Any]) -> tuple[Swap, Any]:
        """Apply mutate to a copy of the configuration layer and swap it in.

        Args:
            mutate: Receives a private copy of the configuration layer and
                mutates it in place. Runs under the lock, so it must be fast
                and must not call back into user code.

        Returns:
            The swap and whatever mutate returned.
        """
        with self.lock:
            working = copy.deepcopy(self._configuration)
            result = mutate(working)
            if self.normalize_keys:
                working = stringify_keys(working)
            return self._swap(working, self._defaults, self._overlay), result

    def _swap(
        self,
        configuration: dict[str, Any],
        defaults: dict[str, Any],
        overlay: dict[str, Any],
    ) -> Swap:
        effective = compile_layers(configuration, defaults, overlay)
        before = self._effective
        self._configuration = configuration
        self._defaults = defaults
        self._overlay = overlay
        self._effective = effective
        return Swap(before=before, after=copy.deepcopy(effective))
