from __future__ import annotations

import os
from typing import Any, Dict, Mapping

from .utils import load_config

_ENV_KEYS = {
    "backend": "BIBLECLOUD_BACKEND",
    "firebase_api_key": "BIBLECLOUD_FIREBASE_API_KEY",
    "firebase_project_id": "BIBLECLOUD_FIREBASE_PROJECT_ID",
    "catalog_source": "BIBLECLOUD_CATALOG",
    "database_path": "BIBLECLOUD_DATABASE",
    "http_timeout": "BIBLECLOUD_HTTP_TIMEOUT",
}

_BACKENDS = {"local", "firebase"}


def settings_defaults() -> Dict[str, Any]:
    return {
        "backend": "local",
        "firebase_api_key": "",
        "firebase_project_id": "",
        "catalog_source": "",
        "database_path": "",
        "http_timeout": 15.0,
    }


def coerce_float(value: Any, default: float) -> float:
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return default


def normalize_setting_value(key: str, value: Any, defaults: Mapping[str, Any]) -> Any:
    default = defaults[key]
    if key == "backend":
        text = str(value or default).strip().lower()
        return text if text in _BACKENDS else default
    if isinstance(default, float):
        return coerce_float(value, default) or default
    return str(value or "").strip()


def load_settings(overrides: Mapping[str, Any] | None = None) -> Dict[str, Any]:
    """Merge defaults, config.json, environment and ``overrides`` (last wins)."""
    defaults = settings_defaults()
    cfg = load_config() or {}
    settings: Dict[str, Any] = {}
    for key, default in defaults.items():
        raw_value = cfg.get(key, default)
        env_value = os.environ.get(_ENV_KEYS[key])
        if env_value:
            raw_value = env_value
        if overrides and key in overrides:
            raw_value = overrides[key]
        settings[key] = normalize_setting_value(key, raw_value, defaults)
    return settings
