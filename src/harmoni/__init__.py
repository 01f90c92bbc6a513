"""harmoni: layered, self-refreshing configuration.

Provides a Config store with:
- Defaults, explicit configuration and overlay layers (deep merged)
- Hash path reads and writes (db.host, servers[0].port, db.*)
- Change events bound to path patterns
- JSON and YAML backing files, optionally watched for external edits

Example usage:
    import harmoni

    config = harmoni.sync("settings.yaml", defaults={"timeout": 30})
    config.get("timeout")
    config.set("timeout", 60)

    @config.on("db.*", singular=False)
    def db_changed(values, pattern):
        print(values)
"""

from harmoni.changes import ChangeDetector, diff_changes
from harmoni.config import Config, build, sync
from harmoni.errors import EventDispatchError, HarmoniError, UnknownFormatError
from harmoni.events import Event, EventRegistry
from harmoni.formats import (
    FileFormat,
    FormatAdapter,
    JsonFormat,
    YamlFormat,
    available_formats,
    detect_format,
    get_format,
    register_format,
)
from harmoni.merge import compile_layers, deep_merge, reload_merge
from harmoni.scheduler import ReloadScheduler, WatcherState
from harmoni.settings import SettingsMixin
from harmoni.store import LayeredStore

__version__ = "0.1.0"

__all__ = [
    # Main API
    "Config",
    "build",
    "sync",
    "SettingsMixin",
    # Events
    "Event",
    "EventRegistry",
    "ChangeDetector",
    "diff_changes",
    # Layers
    "LayeredStore",
    "deep_merge",
    "compile_layers",
    "reload_merge",
    # Watcher
    "ReloadScheduler",
    "WatcherState",
    # Formats
    "FormatAdapter",
    "FileFormat",
    "JsonFormat",
    "YamlFormat",
    "register_format",
    "get_format",
    "detect_format",
    "available_formats",
    # Errors
    "HarmoniError",
    "EventDispatchError",
    "UnknownFormatError",
]
