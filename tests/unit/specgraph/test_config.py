"""Unit tests for store configuration.

Tests YAML configuration loading, environment variable overrides,
and StoreContext construction.
"""

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from specgraph.config import (
    DEFAULT_CONFIG,
    StoreContext,
    _deep_merge,
    _resolve_path,
    build_context,
    get_debounce_seconds,
    get_log_level,
    load_config,
)
from specgraph.exceptions import ConfigurationError

CLEAN_ENV = {
    "SPECGRAPH_CONFIG_PATH": "",
    "SPECGRAPH_ROOTS": "",
    "SPECGRAPH_PLAN_PATH": "",
}


class TestDeepMerge:
    """Tests for _deep_merge helper function."""

    def test_merge_nested_dicts(self):
        base = {"outer": {"a": 1, "b": 2}}
        override = {"outer": {"b": 3}}

        assert _deep_merge(base, override) == {"outer": {"a": 1, "b": 3}}

    def test_merge_does_not_modify_base(self):
        base = {"a": {"b": 1}}
        _deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}


class TestResolvePath:
    """Tests for _resolve_path helper function."""

    def test_none(self, tmp_path):
        assert _resolve_path(None, tmp_path) is None

    def test_absolute_unchanged(self, tmp_path):
        assert _resolve_path("/srv/specs", tmp_path) == Path("/srv/specs")

    def test_relative_from_base(self, tmp_path):
        assert _resolve_path("specs", tmp_path) == (tmp_path / "specs").resolve()


class TestLoadConfig:
    """Tests for load_config()."""

    def test_defaults_without_file(self, tmp_path):
        with patch.dict(os.environ, CLEAN_ENV):
            config = load_config(base_dir=tmp_path)

        assert config["store"]["roots"] == [str((tmp_path / "specifications").resolve())]
        assert config["store"]["plan_document"] == str(
            (tmp_path / "SOFTWARE_DEVELOPMENT_PLAN.md").resolve()
        )
        assert config["defaults"] == DEFAULT_CONFIG["defaults"]

    def test_default_file_in_base_dir(self, tmp_path):
        (tmp_path / "specgraph-config.yaml").write_text(
            yaml.dump({"store": {"roots": ["a", "b"]}, "defaults": {"owner": "Team X"}})
        )
        with patch.dict(os.environ, CLEAN_ENV):
            config = load_config(base_dir=tmp_path)

        assert config["store"]["roots"] == [
            str((tmp_path / "a").resolve()),
            str((tmp_path / "b").resolve()),
        ]
        assert config["defaults"]["owner"] == "Team X"
        # Untouched defaults survive the merge
        assert config["defaults"]["code_review"] == "Not Required"

    def test_single_root_string_accepted(self, tmp_path):
        config_file = tmp_path / "custom.yaml"
        config_file.write_text("store:\n  roots: docs\n")
        with patch.dict(os.environ, CLEAN_ENV):
            config = load_config(str(config_file), base_dir=tmp_path)

        assert config["store"]["roots"] == [str((tmp_path / "docs").resolve())]

    def test_explicit_invalid_yaml_raises(self, tmp_path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("store: [unclosed\n")
        with patch.dict(os.environ, CLEAN_ENV):
            with pytest.raises(ConfigurationError):
                load_config(str(config_file), base_dir=tmp_path)

    def test_default_invalid_yaml_ignored(self, tmp_path):
        (tmp_path / "specgraph-config.yaml").write_text("store: [unclosed\n")
        with patch.dict(os.environ, CLEAN_ENV):
            config = load_config(base_dir=tmp_path)

        assert config["watcher"]["debounce_seconds"] == 1.0

    def test_missing_explicit_file_uses_defaults(self, tmp_path):
        with patch.dict(os.environ, CLEAN_ENV):
            config = load_config(str(tmp_path / "absent.yaml"), base_dir=tmp_path)
        assert config["server"]["log_level"] == "INFO"

    def test_env_overrides(self, tmp_path):
        env = {
            **CLEAN_ENV,
            "SPECGRAPH_ROOTS": os.pathsep.join(["one", "two"]),
            "SPECGRAPH_PLAN_PATH": "plan.md",
        }
        with patch.dict(os.environ, env):
            config = load_config(base_dir=tmp_path)

        assert config["store"]["roots"] == [
            str((tmp_path / "one").resolve()),
            str((tmp_path / "two").resolve()),
        ]
        assert config["store"]["plan_document"] == str((tmp_path / "plan.md").resolve())

    def test_config_path_from_env(self, tmp_path):
        config_file = tmp_path / "env.yaml"
        config_file.write_text("watcher:\n  debounce_seconds: 0.25\n")
        with patch.dict(os.environ, {**CLEAN_ENV, "SPECGRAPH_CONFIG_PATH": str(config_file)}):
            config = load_config(base_dir=tmp_path)

        assert get_debounce_seconds(config) == 0.25


class TestStoreContext:
    """Tests for build_context() and StoreContext."""

    def test_build_context(self, tmp_path):
        with patch.dict(os.environ, CLEAN_ENV):
            context = build_context(load_config(base_dir=tmp_path))

        assert context.roots == ((tmp_path / "specifications").resolve(),)
        assert context.primary_root == context.roots[0]
        assert context.default("owner") == "Product Team"

    def test_default_falls_back_to_built_in(self):
        context = StoreContext(roots=(Path("/x"),), defaults={})
        assert context.default("design_review") == "Required"
        assert context.default("unknown") == ""

    def test_no_roots(self):
        with pytest.raises(ConfigurationError):
            StoreContext(roots=()).primary_root


class TestLogLevel:
    def test_named_level(self):
        assert get_log_level({"server": {"log_level": "debug"}}) == logging.DEBUG

    def test_unknown_level_defaults_to_info(self):
        assert get_log_level({"server": {"log_level": "chatty"}}) == logging.INFO
