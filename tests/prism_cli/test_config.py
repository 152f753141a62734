"""Tests for prism_cli configuration management."""

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from prism_cli.config import (
    DEFAULT_CONFIG,
    ensure_prism_home,
    get_prism_home,
    load_config,
    load_env,
    load_policy,
    save_config,
    setup_logging,
)


class TestGetPrismHome:
    def test_default_path(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("PRISM_HOME", None)
            assert get_prism_home() == Path.home() / ".prism"

    def test_env_override(self):
        with patch.dict(os.environ, {"PRISM_HOME": "/custom/path"}):
            assert get_prism_home() == Path("/custom/path")


class TestEnsurePrismHome:
    def test_creates_subdirs(self, prism_home):
        ensure_prism_home()
        assert (prism_home / "workspaces").is_dir()
        assert (prism_home / "logs").is_dir()


class TestLoadConfigDefaults:
    def test_returns_defaults_when_no_file(self, prism_home):
        config = load_config()
        assert config["policy"] == DEFAULT_CONFIG["policy"]
        assert config["active_provider"] == "openai"
        assert [p["id"] for p in config["providers"]][:2] == ["openai", "openrouter"]
        assert config["model_assignments"]["polish"] == "openai:gpt-4o"

    def test_invalid_yaml_falls_back(self, prism_home):
        (prism_home / "config.yaml").write_text("policy: [unclosed", encoding="utf-8")
        assert load_config()["policy"] == DEFAULT_CONFIG["policy"]


class TestSaveAndLoadRoundtrip:
    def test_roundtrip(self, prism_home):
        config = load_config()
        config["active_provider"] = "deepseek"
        config["model_assignments"]["translate"] = "deepseek"
        save_config(config)

        reloaded = load_config()
        assert reloaded["active_provider"] == "deepseek"
        assert reloaded["model_assignments"]["translate"] == "deepseek:deepseek-chat"

    def test_nested_values_merge_over_defaults(self, prism_home):
        (prism_home / "config.yaml").write_text("policy:\n  reconcile_window: 500\n", encoding="utf-8")
        config = load_config()
        assert config["policy"]["reconcile_window"] == 500
        assert config["policy"]["max_changes"] == 12

    def test_policy_from_config(self, prism_home):
        (prism_home / "config.yaml").write_text(
            "policy:\n  max_source_chars: 1000\n  save_debounce_seconds: 2\n  unknown: 1\n", encoding="utf-8",
        )
        policy = load_policy()
        assert policy.max_source_chars == 1000
        assert policy.save_debounce_seconds == 2.0
        assert policy.history_limit == 50


class TestEnv:
    def test_load_env_from_home(self, prism_home):
        (prism_home / ".env").write_text("PRISM_TEST_API_KEY=sk-from-file\n", encoding="utf-8")
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("PRISM_TEST_API_KEY", None)
            assert load_env()
            assert os.environ["PRISM_TEST_API_KEY"] == "sk-from-file"

    def test_missing_env_file(self, prism_home):
        assert load_env() is False


class TestLogging:
    def test_setup_logging_writes_log_file(self, prism_home):
        setup_logging("DEBUG")
        try:
            logging.getLogger("prism.test").debug("hello log")
            for handler in logging.getLogger().handlers:
                handler.flush()
            assert "hello log" in (prism_home / "logs" / "prism.log").read_text(encoding="utf-8")
        finally:
            for handler in list(logging.getLogger().handlers):
                logging.getLogger().removeHandler(handler)
                handler.close()
