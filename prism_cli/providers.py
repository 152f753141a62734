"""
Built-in model providers and model-assignment resolution.

Providers live in config.yaml as plain dicts:

    providers:
      - id: openai
        name: OpenAI
        base_url: https://api.openai.com/v1
        api_key: ""
        models:
          - {id: "openai:gpt-4o", model_name: gpt-4o}

`model_assignments` maps each task (chat, polish, rewrite, expand, translate)
to a model id; a provider id is accepted too and means its first model.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from agent.backend import DEFAULT_MODEL, ProviderConfig
from agent.env_loader import resolve_api_key

logger = logging.getLogger(__name__)

ASSIGNMENT_KEYS: tuple[str, ...] = ("chat", "polish", "rewrite", "expand", "translate")

# (provider_id, display name, base URL, default model)
BUILTIN_PROVIDERS: list[tuple[str, str, str, str]] = [
    ("openai",     "OpenAI",     "https://api.openai.com/v1",                         "gpt-4o"),
    ("openrouter", "OpenRouter", "https://openrouter.ai/api/v1",                      "openai/gpt-4o"),
    ("deepseek",   "DeepSeek",   "https://api.deepseek.com/v1",                       "deepseek-chat"),
    ("qwen",       "Qwen",       "https://dashscope.aliyuncs.com/compatible-mode/v1", "qwen-max"),
    ("zhipu",      "Zhipu",      "https://open.bigmodel.cn/api/paas/v4",              "glm-4"),
    ("moonshot",   "Moonshot",   "https://api.moonshot.cn/v1",                        "moonshot-v1-32k"),
]


def model_id(provider_id: str, model_name: str) -> str:
    return f"{provider_id}:{model_name}"


def default_providers() -> List[Dict[str, Any]]:
    return [
        {
            "id": pid,
            "name": name,
            "base_url": base_url,
            "api_key": "",
            "models": [{"id": model_id(pid, model), "model_name": model}],
        }
        for pid, name, base_url, model in BUILTIN_PROVIDERS
    ]


def normalize_providers(providers: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Fill in model lists, including legacy entries that carried a single `model_name`."""
    base = providers if providers else default_providers()
    normalized = []
    for raw in base:
        provider = copy.deepcopy(raw)
        pid = provider.get("id") or ""
        raw_models = provider.get("models")
        if isinstance(raw_models, list) and raw_models:
            models = []
            for model in raw_models:
                if not isinstance(model, dict):
                    continue
                name = model.get("model_name") if isinstance(model.get("model_name"), str) else ""
                models.append({
                    **model,
                    "id": model.get("id") or model_id(pid, name or "model"),
                    "model_name": name or DEFAULT_MODEL,
                })
        else:
            legacy = provider.pop("model_name", None)
            legacy = legacy if isinstance(legacy, str) and legacy else DEFAULT_MODEL
            models = [{"id": model_id(pid, legacy), "model_name": legacy}]
        provider["models"] = models
        normalized.append(provider)
    return normalized


def _first_model_id(providers: List[Dict[str, Any]]) -> str:
    for provider in providers[:1]:
        for model in provider.get("models", [])[:1]:
            return model["id"]
    return ""


def normalize_assignments(assignments: Optional[Dict[str, str]], providers: List[Dict[str, Any]]) -> Dict[str, str]:
    """Every assignment key mapped to an existing model id."""
    assignments = assignments or {}
    fallback = _first_model_id(providers)
    known = {m["id"] for p in providers for m in p.get("models", [])}

    def pick(value: Optional[str]) -> str:
        if value and value in known:
            return value
        for provider in providers:
            if provider.get("id") == value and provider.get("models"):
                return provider["models"][0]["id"]
        return fallback

    return {key: pick(assignments.get(key)) for key in ASSIGNMENT_KEYS}


def find_model(
    providers: List[Dict[str, Any]],
    key_or_model_id: Optional[str],
    assignments: Optional[Dict[str, str]] = None,
    active_provider_id: Optional[str] = None,
) -> Optional[Tuple[Dict[str, Any], Dict[str, Any]]]:
    """
    Resolve (provider, model) for an assignment key or model id.

    Fallback chain: assigned model id -> provider id -> active provider's
    first model -> first provider's first model. None when nothing is
    configured at all.
    """
    target = key_or_model_id
    if assignments and key_or_model_id in assignments:
        target = assignments[key_or_model_id]

    for provider in providers:
        for model in provider.get("models", []):
            if model.get("id") == target:
                return provider, model
    for provider in providers:
        if provider.get("id") == target and provider.get("models"):
            return provider, provider["models"][0]

    fallback = next((p for p in providers if p.get("id") == active_provider_id), None)
    if fallback is None and providers:
        fallback = providers[0]
    if fallback is None or not fallback.get("models"):
        return None
    if target:
        logger.debug("Model %s not configured; falling back to provider %s", target, fallback.get("id"))
    return fallback, fallback["models"][0]


def resolve_model_config(
    providers: List[Dict[str, Any]],
    assignments: Optional[Dict[str, str]],
    key: str,
    active_provider_id: Optional[str] = None,
) -> Optional[ProviderConfig]:
    """Connection settings for a task key, with the API key filled from the environment if unset."""
    match = find_model(providers, key, assignments, active_provider_id)
    if match is None:
        return None
    provider, model = match
    return ProviderConfig(
        api_key=resolve_api_key(provider.get("id"), provider.get("api_key")),
        base_url=provider.get("base_url") or None,
        model_name=model.get("model_name") or DEFAULT_MODEL,
    )


def menu_labels(providers: List[Dict[str, Any]]) -> list[str]:
    """Display labels like 'OpenRouter: openai/gpt-4o'."""
    labels = []
    for provider in providers:
        for model in provider.get("models", []):
            labels.append(f"{provider.get('name') or provider.get('id')}: {model.get('model_name')}")
    return labels
