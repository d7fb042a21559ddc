"""
Configuration loader: YAML + .env + env overrides.
Every value falls back to its default when it cannot be parsed. Only a missing explicit config file
or malformed YAML raises ConfigError.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from core.exceptions import ConfigError
from core.models import (
    DEFAULT_FALLBACK_CONFIDENCE,
    HARD_REJECT_CONFIDENCE,
    OnDeviceConfig,
    ThresholdConfig,
)

DEFAULT_API_BASE_URL = "http://localhost:8000"
DEFAULT_BACKEND_TIMEOUT_MS = 30000
DEFAULT_ON_DEVICE_TIMEOUT_MS = 12000
DEFAULT_INPUT_SIZE = 224
DEFAULT_PRESET = "balanced"
DEFAULT_QUEUE_PATH = "offline_queue.json"
DEFAULT_QUEUE_CAPACITY = 20


def _coerce_float(s: Any, default: float) -> float:
    if s is None or s == "":
        return default
    try:
        value = float(s)
    except (TypeError, ValueError):
        return default
    if value != value or value in (float("inf"), float("-inf")):
        return default
    return value


def _coerce_positive_int(s: Any, default: int) -> int:
    if s is None or s == "":
        return default
    try:
        value = int(float(s))
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _coerce_str(s: Any, default: str) -> str:
    if s is None:
        return default
    text = str(s).strip()
    return text or default


def _optional_str(s: Any) -> str | None:
    text = str(s).strip() if s is not None else ""
    return text or None


def parse_fallback_threshold(raw: Any) -> float:
    """Fallback confidence clamped to [0, 1]; default on missing or unparseable input."""
    value = _coerce_float(raw, DEFAULT_FALLBACK_CONFIDENCE)
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class AppConfig:
    """Immutable application configuration. Built from YAML + env."""

    api_base_url: str = DEFAULT_API_BASE_URL
    auth_token: str = ""
    backend_timeout_ms: int = DEFAULT_BACKEND_TIMEOUT_MS
    on_device_timeout_ms: int = DEFAULT_ON_DEVICE_TIMEOUT_MS
    native_module: str | None = None
    on_device: OnDeviceConfig = field(default_factory=OnDeviceConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    offline_queue_path: str = DEFAULT_QUEUE_PATH
    offline_queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    log_level: str = "INFO"

    def with_overrides(self, **overrides: Any) -> AppConfig:
        """Return new config with replaced keys; None values are ignored."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _load_yaml(path: Path, required: bool = False) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e
    return data if isinstance(data, dict) else {}


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _config_from_dict(data: dict[str, Any]) -> AppConfig:
    """Build AppConfig from nested dict (backend / on_device / thresholds / offline_queue)."""
    backend = _section(data, "backend")
    dev = _section(data, "on_device")
    thr = _section(data, "thresholds")
    queue = _section(data, "offline_queue")
    return AppConfig(
        api_base_url=_coerce_str(backend.get("base_url"), DEFAULT_API_BASE_URL),
        auth_token=str(backend.get("auth_token") or ""),
        backend_timeout_ms=_coerce_positive_int(backend.get("timeout_ms"), DEFAULT_BACKEND_TIMEOUT_MS),
        on_device_timeout_ms=_coerce_positive_int(dev.get("timeout_ms"), DEFAULT_ON_DEVICE_TIMEOUT_MS),
        native_module=_optional_str(dev.get("native_module")),
        on_device=OnDeviceConfig(
            preset=_coerce_str(dev.get("preset"), DEFAULT_PRESET),
            input_width=_coerce_positive_int(dev.get("input_width"), DEFAULT_INPUT_SIZE),
            input_height=_coerce_positive_int(dev.get("input_height"), DEFAULT_INPUT_SIZE),
            model_path=_optional_str(dev.get("model_path")),
            tokenizer_path=_optional_str(dev.get("tokenizer_path")),
            labels_path=_optional_str(dev.get("labels_path")),
        ),
        thresholds=ThresholdConfig.from_values(
            parse_fallback_threshold(thr.get("fallback_confidence")), HARD_REJECT_CONFIDENCE
        ),
        offline_queue_path=_coerce_str(queue.get("path"), DEFAULT_QUEUE_PATH),
        offline_queue_capacity=_coerce_positive_int(queue.get("capacity"), DEFAULT_QUEUE_CAPACITY),
        log_level=_coerce_str(data.get("log_level"), "INFO"),
    )


def _env(key: str) -> str | None:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return None
    return raw


def load_config(config_path: str | Path | None = None, *, use_dotenv: bool = True) -> AppConfig:
    """
    Load config from YAML file, then apply env overrides.
    Env vars: API_BASE_URL, API_AUTH_TOKEN, BACKEND_TIMEOUT_MS, ONDEVICE_TIMEOUT_MS,
    ONDEVICE_FALLBACK_CONFIDENCE, ONDEVICE_PRESET, ONDEVICE_INPUT_WIDTH/HEIGHT,
    ONDEVICE_MODEL_PATH/TOKENIZER_PATH/LABELS_PATH, ONDEVICE_NATIVE_MODULE,
    OFFLINE_QUEUE_PATH, OFFLINE_QUEUE_CAPACITY, LOG_LEVEL.
    """
    if use_dotenv:
        load_dotenv()
    path = Path(config_path) if config_path else Path("config.yaml")
    cfg = _config_from_dict(_load_yaml(path, required=config_path is not None))

    overrides: dict[str, Any] = {}
    if _env("API_BASE_URL"):
        overrides["api_base_url"] = _coerce_str(os.getenv("API_BASE_URL"), cfg.api_base_url)
    if os.getenv("API_AUTH_TOKEN") is not None:
        overrides["auth_token"] = os.getenv("API_AUTH_TOKEN", "").strip()
    if _env("BACKEND_TIMEOUT_MS"):
        overrides["backend_timeout_ms"] = _coerce_positive_int(os.getenv("BACKEND_TIMEOUT_MS"), DEFAULT_BACKEND_TIMEOUT_MS)
    if _env("ONDEVICE_TIMEOUT_MS"):
        overrides["on_device_timeout_ms"] = _coerce_positive_int(os.getenv("ONDEVICE_TIMEOUT_MS"), DEFAULT_ON_DEVICE_TIMEOUT_MS)
    if _env("ONDEVICE_NATIVE_MODULE"):
        overrides["native_module"] = _optional_str(os.getenv("ONDEVICE_NATIVE_MODULE"))
    if _env("ONDEVICE_FALLBACK_CONFIDENCE"):
        overrides["thresholds"] = ThresholdConfig.from_values(
            parse_fallback_threshold(os.getenv("ONDEVICE_FALLBACK_CONFIDENCE")), HARD_REJECT_CONFIDENCE
        )
    dev_keys = (
        "ONDEVICE_PRESET",
        "ONDEVICE_INPUT_WIDTH",
        "ONDEVICE_INPUT_HEIGHT",
        "ONDEVICE_MODEL_PATH",
        "ONDEVICE_TOKENIZER_PATH",
        "ONDEVICE_LABELS_PATH",
    )
    if any(_env(k) for k in dev_keys):
        dev = cfg.on_device
        overrides["on_device"] = OnDeviceConfig(
            preset=_coerce_str(os.getenv("ONDEVICE_PRESET"), dev.preset),
            input_width=_coerce_positive_int(os.getenv("ONDEVICE_INPUT_WIDTH"), dev.input_width),
            input_height=_coerce_positive_int(os.getenv("ONDEVICE_INPUT_HEIGHT"), dev.input_height),
            model_path=_optional_str(os.getenv("ONDEVICE_MODEL_PATH")) or dev.model_path,
            tokenizer_path=_optional_str(os.getenv("ONDEVICE_TOKENIZER_PATH")) or dev.tokenizer_path,
            labels_path=_optional_str(os.getenv("ONDEVICE_LABELS_PATH")) or dev.labels_path,
        )
    if _env("OFFLINE_QUEUE_PATH"):
        overrides["offline_queue_path"] = _coerce_str(os.getenv("OFFLINE_QUEUE_PATH"), cfg.offline_queue_path)
    if _env("OFFLINE_QUEUE_CAPACITY"):
        overrides["offline_queue_capacity"] = _coerce_positive_int(os.getenv("OFFLINE_QUEUE_CAPACITY"), DEFAULT_QUEUE_CAPACITY)
    if _env("LOG_LEVEL"):
        overrides["log_level"] = _coerce_str(os.getenv("LOG_LEVEL"), cfg.log_level)
    if not overrides:
        return cfg
    return cfg.with_overrides(**overrides)
