"""
Configuration for the prism CLI.

Everything lives under ~/.prism (override with PRISM_HOME):

    ~/.prism/config.yaml      user settings, merged over DEFAULT_CONFIG
    ~/.prism/.env             provider API keys
    ~/.prism/workspaces/      persisted projects, one JSON file per user/project
    ~/.prism/logs/prism.log   log file
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from agent.env_loader import load_env_file
from prism_cli.providers import default_providers, normalize_assignments, normalize_providers
from workspace.policy import DEFAULT_POLICY, EditPolicy

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

DEFAULT_CONFIG: Dict[str, Any] = {
    "policy": DEFAULT_POLICY.to_dict(),
    "providers": default_providers(),
    "active_provider": "openai",
    "model_assignments": {},
    "transform": {
        "writing_style": "academic",
        "thinking_style": "rigorous",
        "target_language": "zh-CN",
        "stream": True,
        # Route speaking the NDJSON protocol; empty means call the provider directly.
        "endpoint": "",
    },
    "compile": {
        "url": "http://localhost:3001/builds/sync",
        "timeout": 120,
    },
    "logging": {
        "level": "INFO",
    },
}


def get_prism_home() -> Path:
    return Path(os.getenv("PRISM_HOME", Path.home() / ".prism"))


def ensure_prism_home() -> Path:
    home = get_prism_home()
    for sub in ("workspaces", "logs"):
        (home / sub).mkdir(parents=True, exist_ok=True)
    return home


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config() -> Dict[str, Any]:
    """Read config.yaml over the defaults. Missing or unreadable files give the defaults."""
    path = get_prism_home() / CONFIG_FILENAME
    user_config: Dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
            if isinstance(loaded, dict):
                user_config = loaded
            elif loaded is not None:
                logger.warning("Ignoring %s: top level is not a mapping", path)
        except yaml.YAMLError as e:
            logger.warning("Could not parse %s: %s", path, e)

    config = _deep_merge(DEFAULT_CONFIG, user_config)
    config["providers"] = normalize_providers(config.get("providers"))
    config["model_assignments"] = normalize_assignments(config.get("model_assignments"), config["providers"])
    return config


def save_config(config: Dict[str, Any]) -> Path:
    home = get_prism_home()
    home.mkdir(parents=True, exist_ok=True)
    path = home / CONFIG_FILENAME
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return path


def load_policy(config: Dict[str, Any] = None) -> EditPolicy:
    config = config if config is not None else load_config()
    return EditPolicy.from_dict(config.get("policy") or {})


def load_env() -> bool:
    """Load ~/.prism/.env into the process environment (existing vars win)."""
    return load_env_file(get_prism_home() / ".env")


def setup_logging(level: str = None, log_to_file: bool = True) -> None:
    """Root logging to stderr, plus ~/.prism/logs/prism.log."""
    level_name = (level or os.getenv("PRISM_LOG_LEVEL") or "INFO").upper()
    handlers = [logging.StreamHandler()]
    if log_to_file:
        log_dir = ensure_prism_home() / "logs"
        handlers.append(logging.FileHandler(log_dir / "prism.log", encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
