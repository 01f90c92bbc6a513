"""Root pytest configuration for all tests."""

from __future__ import annotations

import json
import os
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

from harmoni import Config


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, step: float = 0.01) -> bool:
    """Poll predicate until it is true or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(step)
    return predicate()


def touch_after(path: Path, timestamp: float | None) -> None:
    """Push path's mtime past timestamp so a watcher sees it as changed."""
    mtime = (timestamp or time.time()) + 1.0
    os.utime(path, (mtime, mtime))


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    return wait_until


@pytest.fixture
def touch() -> Callable[[Path, float | None], None]:
    return touch_after


@pytest.fixture
def json_file(tmp_path: Path) -> Callable[[dict[str, Any]], Path]:
    """Factory writing a JSON config file and returning its path."""
    path = tmp_path / "config.json"

    def write(data: dict[str, Any]) -> Path:
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return write


@pytest.fixture
def yaml_file(tmp_path: Path) -> Callable[[dict[str, Any]], Path]:
    """Factory writing a YAML config file and returning its path."""
    path = tmp_path / "config.yaml"

    def write(data: dict[str, Any]) -> Path:
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return write


@pytest.fixture
def make_config() -> Iterator[Callable[..., Config]]:
    """Factory for Config instances that are closed after the test."""
    created: list[Config] = []

    def factory(*args: Any, **kwargs: Any) -> Config:
        config = Config(*args, **kwargs)
        created.append(config)
        return config

    yield factory

    for config in created:
        config.close(timeout=2.0)
