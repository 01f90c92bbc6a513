"""Hash path addressing for nested configuration data.

A hash path is a dotted expression that selects zero or more locations in a
tree of dicts and lists:

    db.host              literal keys
    servers[0].name      list index (negative indexes count from the end)
    servers.0.name       same thing; integer segments index into lists
    servers[*].name      every element of a list
    db.*                 glob over keys (fnmatch rules, case-sensitive)
    /^log_(in|out)$/     regex over keys (re.search), wrapped in slashes
    file\\.name          backslash escapes a literal '.', '*', '?', '[' or '/'

Addressing is permissive: an empty or malformed path matches nothing, and
traversing through a scalar yields no match instead of raising. Matches are
always returned in document order (dict insertion order, then list order).
"""

from __future__ import annotations

import copy
import fnmatch
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

# Concrete location of a value: a tuple of dict keys and list indexes
KeyPath = tuple[Any, ...]

_INDEX_PATTERN = re.compile(r"\[(\*|-?\d+)\]")
_INT_PATTERN = re.compile(r"-?\d+")

_ABSENT = object()


class SegmentKind(Enum):
    """How a path segment selects children."""

    KEY = "key"
    GLOB = "glob"
    REGEX = "regex"
    INDEX = "index"
    ALL = "all"


@dataclass(frozen=True)
class Segment:
    """One parsed step of a hash path."""

    kind: SegmentKind
    value: Any = None

    @property
    def is_wildcard(self) -> bool:
        return self.kind in (SegmentKind.GLOB, SegmentKind.REGEX, SegmentKind.ALL)


class _InvalidPath(Exception):
    pass


def escape_key(key: Any) -> str:
    """Escape a raw key so it can be used as a literal hash path segment."""
    text = str(key)
    out = []
    for i, ch in enumerate(text):
        if ch in "\\.*?[" or (ch == "/" and i == 0):
            out.append("\\")
        out.append(ch)
    return "".join(out)


def join_path(*keys: Any) -> str:
    """Build a hash path from raw keys, escaping each one."""
    return ".".join(escape_key(key) for key in keys)


def _split_unescaped(text: str, sep: str = ".") -> list[str]:
    """Split on unescaped separators, keeping escapes in the parts."""
    parts: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            current.append(text[i : i + 2])
            i += 2
            continue
        if ch == sep:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    parts.append("".join(current))
    return parts


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


def _read_regex(path: str, start: int) -> tuple[Segment, int]:
    """Read a /regex/ segment starting at the opening slash."""
    i = start + 1
    chars: list[str] = []
    while i < len(path):
        ch = path[i]
        if ch == "\\" and i + 1 < len(path) and path[i + 1] == "/":
            chars.append("/")
            i += 2
            continue
        if ch == "/":
            try:
                return Segment(SegmentKind.REGEX, re.compile("".join(chars))), i + 1
            except re.error as e:
                raise _InvalidPath(str(e)) from e
        chars.append(ch)
        i += 1
    raise _InvalidPath("unterminated regex segment")


def _read_plain(path: str, start: int) -> tuple[list[Segment], int]:
    """Read a key/glob segment plus any trailing [index] groups."""
    i = start
    literal: list[str] = []  # unescaped text
    pattern: list[str] = []  # fnmatch pattern with escapes bracketed
    wild = False
    while i < len(path):
        ch = path[i]
        if ch == "\\":
            if i + 1 >= len(path):
                raise _InvalidPath("dangling escape")
            nxt = path[i + 1]
            literal.append(nxt)
            pattern.append(f"[{nxt}]" if nxt in "*?[" else nxt)
            i += 2
            continue
        if ch in ".[":
            break
        if ch in "*?":
            wild = True
        literal.append(ch)
        pattern.append(ch)
        i += 1

    segments: list[Segment] = []
    if literal:
        if wild:
            segments.append(Segment(SegmentKind.GLOB, "".join(pattern)))
        else:
            segments.append(Segment(SegmentKind.KEY, "".join(literal)))

    while i < len(path) and path[i] == "[":
        match = _INDEX_PATTERN.match(path, i)
        if match is None:
            raise _InvalidPath(f"bad index at {i}")
        token = match.group(1)
        if token == "*":
            segments.append(Segment(SegmentKind.ALL))
        else:
            segments.append(Segment(SegmentKind.INDEX, int(token)))
        i = match.end()

    if not segments:
        raise _InvalidPath(f"empty segment at {start}")
    return segments, i


def parse(path: Any) -> list[Segment]:
    """Parse a hash path into segments.

    Args:
        path: The path expression.

    Returns:
        The parsed segments, or an empty list for an empty or invalid path.
    """
    if not isinstance(path, str) or not path:
        return []

    segments: list[Segment] = []
    i = 0
    try:
        while True:
            if path[i] == "/":
                segment, i = _read_regex(path, i)
                segments.append(segment)
            else:
                parsed, i = _read_plain(path, i)
                segments.extend(parsed)
            if i >= len(path):
                break
            if path[i] != ".":
                raise _InvalidPath(f"unexpected {path[i]!r} at {i}")
            i += 1
            if i >= len(path):
                raise _InvalidPath("trailing separator")
    except _InvalidPath:
        return []
    return segments


def _list_index(seg: Segment, size: int) -> int | None:
    """Resolve a KEY or INDEX segment to a valid list position."""
    if seg.kind is SegmentKind.INDEX:
        index = seg.value
    elif seg.kind is SegmentKind.KEY and _INT_PATTERN.fullmatch(seg.value):
        index = int(seg.value)
    else:
        return None
    if index < 0:
        index += size
    if 0 <= index < size:
        return index
    return None


def _match(seg: Segment, container: Any) -> list[tuple[Any, Any]]:
    """Return (key, child) pairs of container selected by seg."""
    if isinstance(container, Mapping):
        if seg.kind is SegmentKind.KEY:
            if seg.value in container:
                return [(seg.value, container[seg.value])]
            return []
        if seg.kind is SegmentKind.GLOB:
            return [
                (k, v)
                for k, v in container.items()
                if isinstance(k, str) and fnmatch.fnmatchcase(k, seg.value)
            ]
        if seg.kind is SegmentKind.REGEX:
            return [(k, v) for k, v in container.items() if isinstance(k, str) and seg.value.search(k)]
        if seg.kind is SegmentKind.ALL:
            return list(container.items())
        return []

    if isinstance(container, list):
        if seg.kind is SegmentKind.ALL or (seg.kind is SegmentKind.GLOB and seg.value == "*"):
            return list(enumerate(container))
        index = _list_index(seg, len(container))
        if index is not None:
            return [(index, container[index])]
    return []


def _walk(data: Any, segments: list[Segment]) -> list[tuple[KeyPath, Any]]:
    """Resolve segments to (concrete key path, value) pairs."""
    current: list[tuple[KeyPath, Any]] = [((), data)]
    for seg in segments:
        current = [
            (key_path + (key,), child)
            for key_path, container in current
            for key, child in _match(seg, container)
        ]
        if not current:
            break
    return current


def locate(data: Any, path: str) -> list[KeyPath]:
    """Return the concrete key paths that a hash path selects."""
    segments = parse(path)
    if not segments:
        return []
    return [key_path for key_path, _ in _walk(data, segments)]


def resolve_all(data: Any, path: str) -> list[Any]:
    """Return every value selected by path, in document order."""
    segments = parse(path)
    if not segments:
        return []
    return [value for _, value in _walk(data, segments)]


def resolve_first(data: Any, path: str, default: Any = None) -> Any:
    """Return the first value selected by path, or default."""
    matches = resolve_all(data, path)
    return matches[0] if matches else default


def exists(data: Any, path: str) -> bool:
    """True if path selects at least one location."""
    return bool(locate(data, path))


def _assign(
    container: Any,
    segments: list[Segment],
    value: Any,
    key_path: KeyPath,
    touched: list[KeyPath],
) -> None:
    seg, rest = segments[0], segments[1:]
    appended = False

    if isinstance(container, dict):
        if seg.kind is SegmentKind.KEY:
            targets = [seg.value]
        elif seg.is_wildcard:
            targets = [key for key, _ in _match(seg, container)]
        else:
            return
    elif isinstance(container, list):
        if seg.is_wildcard:
            targets = [index for index, _ in _match(seg, container)]
        else:
            index = _list_index(seg, len(container))
            if index is None:
                # Writing one past the end appends
                raw = seg.value if seg.kind is SegmentKind.INDEX else None
                if seg.kind is SegmentKind.KEY and _INT_PATTERN.fullmatch(seg.value):
                    raw = int(seg.value)
                if raw != len(container):
                    return
                container.append(None)
                appended = True
                index = raw
            targets = [index]
    else:
        return

    for key in targets:
        if not rest:
            container[key] = value
            touched.append(key_path + (key,))
            continue

        child = container[key] if isinstance(container, list) else container.get(key, _ABSENT)
        previous = child
        if not isinstance(child, (dict, list)):
            child = {}
            container[key] = child
        before = len(touched)
        _assign(child, rest, value, key_path + (key,), touched)

        # Nothing written below: undo containers created on the way down
        if len(touched) == before and child is not previous:
            if appended:
                container.pop()
            elif previous is _ABSENT:
                del container[key]
            else:
                container[key] = previous


def set_path(data: dict[str, Any], path: str, value: Any) -> list[KeyPath]:
    """Set value at path, creating intermediate dicts as needed.

    Scalars met along the path are replaced by dicts. Wildcard segments set
    every existing match and create nothing. The value is stored as given
    (not copied).

    Args:
        data: Root dict, mutated in place.
        path: Hash path to write.
        value: Value to store at the leaf.

    Returns:
        Concrete key paths that were written. Empty for an invalid path or
        when a wildcard matched nothing.
    """
    segments = parse(path)
    touched: list[KeyPath] = []
    if segments:
        _assign(data, segments, value, (), touched)
    return touched


def delete_path(data: dict[str, Any], path: str) -> list[Any]:
    """Remove every location selected by path.

    Args:
        data: Root dict, mutated in place.
        path: Hash path to delete.

    Returns:
        The removed values in document order. Missing paths remove nothing.
    """
    segments = parse(path)
    if not segments:
        return []

    removed: list[Any] = []
    for _, parent in _walk(data, segments[:-1]):
        matches = _match(segments[-1], parent)
        if isinstance(parent, list):
            for index, _ in sorted(matches, key=lambda kv: kv[0], reverse=True):
                del parent[index]
        elif isinstance(parent, dict):
            for key, _ in matches:
                del parent[key]
        removed.extend(value for _, value in matches)
    return removed


def flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Squish nested dicts into a flat {dotted path: value} dict.

    Lists and empty dicts are kept as leaf values. Keys are escaped so
    that every flat key is a valid literal hash path.
    """
    flat: dict[str, Any] = {}
    for key, value in data.items():
        full = f"{prefix}.{escape_key(key)}" if prefix else escape_key(key)
        if isinstance(value, Mapping) and value:
            flat.update(flatten(value, full))
        else:
            flat[full] = value
    return flat


def expand(flat: Mapping[str, Any]) -> dict[str, Any]:
    """Inverse of flatten: rebuild nested dicts from dotted keys."""
    result: dict[str, Any] = {}
    for flat_key, value in flat.items():
        parts = [_unescape(part) for part in _split_unescaped(flat_key)]
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
    return result


def project(data: Any, key_paths: list[KeyPath]) -> dict[str, Any]:
    """Copy the values at key_paths into a new nested dict.

    A key path that passes through a list is cut at the list, so the whole
    list becomes the projected value. Paths that no longer exist are skipped.
    """
    result: dict[str, Any] = {}
    for key_path in key_paths:
        node, keys = data, []
        for key in key_path:
            if not isinstance(node, Mapping) or key not in node:
                break
            keys.append(key)
            node = node[key]
        else:
            keys = list(key_path)
        if not keys or (len(keys) < len(key_path) and not isinstance(node, list)):
            continue
        target = result
        for key in keys[:-1]:
            child = target.get(str(key))
            if not isinstance(child, dict):
                child = {}
                target[str(key)] = child
            target = child
        target[str(keys[-1])] = copy.deepcopy(node)
    return result
