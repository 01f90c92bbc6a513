"""File format adapters and the format registry.

An adapter knows how to recognise, read and write one file format:

- matches(path): True if the existing file parses in this format, or, when
  the file does not exist yet, if the extension belongs to the format.
- load(path): the parsed mapping. Missing files, parse errors and non-mapping
  documents all give {} (errors are logged, never raised).
- save(path, data): serialize and atomically replace the file.

The registry is a closed, ordered set filled at import time. Detection
walks it in registration order, so JSON is tried before YAML (every JSON
document is also valid YAML).
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from harmoni.errors import UnknownFormatError
from harmoni.logging import get_logger

log = get_logger("formats")


class FormatAdapter:
    """In-memory format: nothing is read from or written to disk."""

    name = "memory"
    extensions: tuple[str, ...] = ()

    def matches(self, path: str | os.PathLike[str]) -> bool:
        return False

    def load(self, path: str | os.PathLike[str] | None) -> dict[str, Any]:
        return {}

    def save(self, path: str | os.PathLike[str] | None, data: Mapping[str, Any]) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class FileFormat(FormatAdapter):
    """Shared load/save/matches logic for text file formats.

    Subclasses implement parse() and dump() and list their extensions.
    """

    parse_errors: tuple[type[BaseException], ...] = ()

    def parse(self, text: str) -> Any:
        raise NotImplementedError

    def dump(self, data: Mapping[str, Any]) -> str:
        raise NotImplementedError

    def matches(self, path: str | os.PathLike[str]) -> bool:
        p = Path(path)
        if p.exists():
            try:
                self.parse(p.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, *self.parse_errors):
                return False
            return True
        return p.suffix.lower() in self.extensions

    def load(self, path: str | os.PathLike[str] | None) -> dict[str, Any]:
        """Load the file, returning empty dict if not found or invalid.

        Args:
            path: Path to the file.

        Returns:
            Parsed document as dict, or empty dict on error.
        """
        if path is None:
            return {}
        p = Path(path)
        if not p.exists():
            return {}

        try:
            data = self.parse(p.read_text(encoding="utf-8"))
        except self.parse_errors as e:
            log.warning("Failed to load %s as %s: %s", p, self.name, e)
            return {}
        except PermissionError:
            log.warning("Permission denied reading %s", p)
            return {}
        except (OSError, UnicodeDecodeError) as e:
            log.warning("Error reading %s: %s", p, e)
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            log.warning("Ignoring %s: root is %s, not a mapping", p, type(data).__name__)
            return {}
        return data

    def save(self, path: str | os.PathLike[str] | None, data: Mapping[str, Any]) -> None:
        """Write data to path atomically.

        The document is written to a temporary file in the same directory
        and moved over the target, so readers never see a partial file.
        """
        if path is None:
            return
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        text = self.dump(data)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=p.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, p)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        log.debug("Saved %s (%s)", p, self.name)


class JsonFormat(FileFormat):
    name = "json"
    extensions = (".json",)
    parse_errors = (json.JSONDecodeError,)

    def parse(self, text: str) -> Any:
        return json.loads(text)

    def dump(self, data: Mapping[str, Any]) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


class YamlFormat(FileFormat):
    name = "yaml"
    extensions = (".yml", ".yaml")
    parse_errors = (yaml.YAMLError,)

    def parse(self, text: str) -> Any:
        return yaml.safe_load(text)

    def dump(self, data: Mapping[str, Any]) -> str:
        return yaml.safe_dump(
            dict(data),
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )


MEMORY = FormatAdapter()

_registry: dict[str, FormatAdapter] = {}


def register_format(adapter: FormatAdapter, *, replace: bool = False) -> FormatAdapter:
    """Add an adapter to the registry under adapter.name.

    Raises:
        ValueError: If the name is taken and replace is False.
    """
    if adapter.name in _registry and not replace:
        raise ValueError(f"Config format {adapter.name!r} is already registered")
    _registry[adapter.name] = adapter
    return adapter


def available_formats() -> list[str]:
    return list(_registry)


def get_format(name: str) -> FormatAdapter:
    """Look up a registered adapter by name ("memory" is always available)."""
    if name == MEMORY.name:
        return MEMORY
    try:
        return _registry[name]
    except KeyError:
        raise UnknownFormatError(name, [MEMORY.name, *_registry]) from None


def detect_format(path: str | os.PathLike[str] | None) -> FormatAdapter:
    """Pick the first registered adapter that matches path.

    An existing file that no adapter can parse is matched by extension
    instead, so saves still go to it. Falls back to the in-memory adapter
    when nothing matches, with a warning if the file exists.
    """
    if path is None:
        return MEMORY
    for adapter in _registry.values():
        if adapter.matches(path):
            return adapter
    p = Path(path)
    if not p.exists():
        return MEMORY
    suffix = p.suffix.lower()
    for adapter in _registry.values():
        if suffix in adapter.extensions:
            log.warning("%s does not parse as %s; using it by extension", p, adapter.name)
            return adapter
    log.warning("No config format matches %s; changes stay in memory only", p)
    return MEMORY


def resolve_format(
    fmt: str | FormatAdapter | None,
    path: str | os.PathLike[str] | None,
) -> FormatAdapter:
    """Turn a format option (instance, name or None) into an adapter."""
    if isinstance(fmt, FormatAdapter):
        return fmt
    if fmt is None:
        return detect_format(path)
    return get_format(fmt)


register_format(JsonFormat())
register_format(YamlFormat())
