"""Tests for format adapters and the format registry."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from harmoni.errors import UnknownFormatError
from harmoni.formats import (
    MEMORY,
    FormatAdapter,
    JsonFormat,
    YamlFormat,
    available_formats,
    detect_format,
    get_format,
    register_format,
    resolve_format,
)


class TestJsonFormat:
    """Tests for the JSON adapter."""

    def test_load(self, tmp_path: Path) -> None:
        path = tmp_path / "c.json"
        path.write_text('{"a": {"b": 1}}')
        assert JsonFormat().load(path) == {"a": {"b": 1}}

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert JsonFormat().load(tmp_path / "missing.json") == {}
        assert JsonFormat().load(None) == {}

    def test_invalid_json_logs_and_returns_empty(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "c.json"
        path.write_text("{not json")
        assert JsonFormat().load(path) == {}
        assert "Failed to load" in caplog.text

    def test_non_mapping_root_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "c.json"
        path.write_text("[1, 2]")
        assert JsonFormat().load(path) == {}

    def test_save_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "c.json"
        data = {"a": {"b": [1, 2]}, "name": "café"}
        JsonFormat().save(path, data)
        assert json.loads(path.read_text(encoding="utf-8")) == data
        assert JsonFormat().load(path) == data

    def test_save_leaves_no_temp_files(self, tmp_path: Path) -> None:
        path = tmp_path / "c.json"
        JsonFormat().save(path, {"a": 1})
        JsonFormat().save(path, {"a": 2})
        assert [p.name for p in tmp_path.iterdir()] == ["c.json"]

    def test_failed_save_keeps_old_file(self, tmp_path: Path) -> None:
        path = tmp_path / "c.json"
        JsonFormat().save(path, {"a": 1})
        with pytest.raises(TypeError):
            JsonFormat().save(path, {"a": object()})
        assert JsonFormat().load(path) == {"a": 1}

    def test_matches(self, tmp_path: Path) -> None:
        assert JsonFormat().matches(tmp_path / "new.JSON")
        assert not JsonFormat().matches(tmp_path / "new.yaml")
        existing = tmp_path / "settings.conf"
        existing.write_text('{"a": 1}')
        assert JsonFormat().matches(existing)
        existing.write_text("a: 1")
        assert not JsonFormat().matches(existing)


class TestYamlFormat:
    """Tests for the YAML adapter."""

    def test_load(self, tmp_path: Path) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("db:\n  host: localhost\n  port: 5432\n")
        assert YamlFormat().load(path) == {"db": {"host": "localhost", "port": 5432}}

    def test_empty_document(self, tmp_path: Path) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("")
        assert YamlFormat().load(path) == {}

    def test_invalid_yaml_logs_and_returns_empty(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("invalid: yaml: :")
        assert YamlFormat().load(path) == {}
        assert "Failed to load" in caplog.text

    def test_save_keeps_key_order(self, tmp_path: Path) -> None:
        path = tmp_path / "c.yml"
        YamlFormat().save(path, {"z": 1, "a": {"y": 2, "b": 3}})
        assert list(yaml.safe_load(path.read_text())) == ["z", "a"]
        assert YamlFormat().load(path) == {"z": 1, "a": {"y": 2, "b": 3}}

    def test_matches(self, tmp_path: Path) -> None:
        assert YamlFormat().matches(tmp_path / "new.yml")
        assert YamlFormat().matches(tmp_path / "new.YAML")
        assert not YamlFormat().matches(tmp_path / "new.json")
        existing = tmp_path / "settings"
        existing.write_text("a: [1, 2]\n")
        assert YamlFormat().matches(existing)


class TestRegistry:
    """Tests for format lookup and detection."""

    def test_builtin_formats(self) -> None:
        assert available_formats()[:2] == ["json", "yaml"]
        assert isinstance(get_format("json"), JsonFormat)
        assert get_format("memory") is MEMORY

    def test_unknown_format(self) -> None:
        with pytest.raises(UnknownFormatError, match="toml"):
            get_format("toml")

    def test_duplicate_registration_rejected(self) -> None:
        with pytest.raises(ValueError, match="already registered"):
            register_format(JsonFormat())

    def test_detect_by_extension(self, tmp_path: Path) -> None:
        assert detect_format(tmp_path / "a.json").name == "json"
        assert detect_format(tmp_path / "a.yaml").name == "yaml"
        assert detect_format(tmp_path / "a.txt") is MEMORY
        assert detect_format(None) is MEMORY

    def test_detect_by_content(self, tmp_path: Path) -> None:
        """JSON is tried first; YAML-only content falls through to YAML."""
        path = tmp_path / "settings.cfg"
        path.write_text('{"a": 1}')
        assert detect_format(path).name == "json"
        path.write_text("a: 1\n")
        assert detect_format(path).name == "yaml"

    def test_unparseable_file_matched_by_extension(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{broken")
        assert detect_format(path).name == "json"
        assert "using it by extension" in caplog.text

    def test_unparseable_unknown_file_warns(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "broken.cfg"
        path.write_text("{broken")
        assert detect_format(path) is MEMORY
        assert "No config format matches" in caplog.text

    def test_resolve_format(self, tmp_path: Path) -> None:
        adapter = YamlFormat()
        assert resolve_format(adapter, tmp_path / "a.json") is adapter
        assert resolve_format("yaml", tmp_path / "a.json").name == "yaml"
        assert resolve_format(None, tmp_path / "a.json").name == "json"


class TestMemoryFormat:
    def test_noop(self, tmp_path: Path) -> None:
        adapter = FormatAdapter()
        adapter.save(tmp_path / "x.json", {"a": 1})
        assert not (tmp_path / "x.json").exists()
        assert adapter.load(tmp_path / "x.json") == {}
        assert not adapter.matches(tmp_path / "x.json")
