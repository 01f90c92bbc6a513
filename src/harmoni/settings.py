"""Class-level settings backed by a lazily built Config.

Example:
    class AppSettings(SettingsMixin):
        SETTINGS_PATH = "~/.myapp/settings.yaml"
        DEFAULT_SETTINGS = {"theme": "dark", "timeout": 30}
        CONFIG_SETTINGS = {"sync": True}

    AppSettings.settings().get("theme")
"""

from __future__ import annotations

import os
import threading
from collections.abc import Mapping
from typing import Any, ClassVar

from harmoni.config import Config, build

_settings_lock = threading.Lock()


class SettingsMixin:
    """Gives a class one shared Config, created on first use.

    Each subclass gets its own Config built from its class attributes:

    - SETTINGS_PATH: backing file (None for memory only)
    - DEFAULT_SETTINGS: the defaults layer
    - OVERLAY_SETTINGS: the overlay layer
    - CONFIG_SETTINGS: extra keyword arguments for Config
    """

    SETTINGS_PATH: ClassVar[str | None] = None
    DEFAULT_SETTINGS: ClassVar[Mapping[str, Any]] = {}
    OVERLAY_SETTINGS: ClassVar[Mapping[str, Any]] = {}
    CONFIG_SETTINGS: ClassVar[Mapping[str, Any]] = {}

    @classmethod
    def settings(cls) -> Config:
        """Return this class's Config, building it on first call."""
        existing = cls.__dict__.get("_harmoni_settings")
        if existing is not None:
            return existing
        with _settings_lock:
            existing = cls.__dict__.get("_harmoni_settings")
            if existing is None:
                existing = cls.load_settings()
                cls._harmoni_settings = existing
        return existing

    @classmethod
    def settings_path(cls) -> str | None:
        if cls.SETTINGS_PATH is None:
            return None
        return os.path.expanduser(cls.SETTINGS_PATH)

    @classmethod
    def load_settings(cls) -> Config:
        options = dict(cls.CONFIG_SETTINGS)
        options["defaults"] = cls.DEFAULT_SETTINGS
        options["overlay"] = cls.OVERLAY_SETTINGS
        return build(cls.settings_path(), **options)

    @classmethod
    def reset_settings(cls) -> None:
        """Close and forget this class's Config; the next call rebuilds it."""
        with _settings_lock:
            existing = cls.__dict__.get("_harmoni_settings")
            if existing is not None:
                del cls._harmoni_settings
        if existing is not None:
            existing.close()
