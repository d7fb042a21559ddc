"""
Data models for the dispatch layer.
Uses dataclasses for DTOs; the request body schema (pydantic) lives in core.schema.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

ENGINE_ON_DEVICE = "on-device"
ENGINE_BACKEND = "backend"

DEFAULT_FALLBACK_CONFIDENCE = 0.45
HARD_REJECT_CONFIDENCE = 0.30


class EnginePreference(str, Enum):
    """Closed set of engine preferences. Fixed for the duration of one call."""

    AUTO = "auto"
    ON_DEVICE = ENGINE_ON_DEVICE
    BACKEND = ENGINE_BACKEND

    @classmethod
    def parse(cls, value: EnginePreference | str | None) -> EnginePreference:
        """Parse a tag (case-insensitive). None means AUTO; unknown tags raise ValueError."""
        if isinstance(value, EnginePreference):
            return value
        if value is None:
            return cls.AUTO
        text = str(value).strip().lower()
        for member in cls:
            if member.value == text:
                return member
        raise ValueError(f"Unknown engine preference: {value!r}. Use auto, on-device, or backend.")


@dataclass
class RuntimeMeta:
    """Describes which engine answered and how. Produced with every result; never persisted."""

    engine: str
    source: str | None = None
    endpoint: str | None = None
    fallback_from: str | None = None
    fallback_reason: str | None = None
    on_device_confidence: float | None = None
    on_device_fallback_threshold: float | None = None
    degraded_to_on_device: bool | None = None
    fallback_attempted: bool | None = None
    fallback_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """camelCase export; unset fields are omitted."""
        keys = {
            "engine": self.engine,
            "source": self.source,
            "endpoint": self.endpoint,
            "fallbackFrom": self.fallback_from,
            "fallbackReason": self.fallback_reason,
            "onDeviceConfidence": self.on_device_confidence,
            "onDeviceFallbackThreshold": self.on_device_fallback_threshold,
            "degradedToOnDevice": self.degraded_to_on_device,
            "fallbackAttempted": self.fallback_attempted,
            "fallbackError": self.fallback_error,
        }
        return {k: v for k, v in keys.items() if v is not None}


@dataclass
class RecognitionOutcome:
    """Single public output of a dispatch: provider payload + runtime metadata."""

    data: dict[str, Any]
    runtime: RuntimeMeta

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "runtime": self.runtime.to_dict()}


@dataclass(frozen=True)
class ThresholdConfig:
    """Confidence thresholds. Invariant: fallback_confidence >= hard_reject_confidence."""

    fallback_confidence: float = DEFAULT_FALLBACK_CONFIDENCE
    hard_reject_confidence: float = HARD_REJECT_CONFIDENCE

    def __post_init__(self) -> None:
        # Both clamped into [0, 1]; the floor never exceeds the fallback threshold.
        fallback = max(0.0, min(1.0, float(self.fallback_confidence)))
        floor = max(0.0, min(1.0, float(self.hard_reject_confidence)))
        object.__setattr__(self, "fallback_confidence", fallback)
        object.__setattr__(self, "hard_reject_confidence", min(floor, fallback))

    @classmethod
    def from_values(cls, fallback_confidence: float, hard_reject_confidence: float = HARD_REJECT_CONFIDENCE) -> ThresholdConfig:
        return cls(fallback_confidence=fallback_confidence, hard_reject_confidence=hard_reject_confidence)


@dataclass(frozen=True)
class OnDeviceConfig:
    """Options handed to the native recognizer."""

    preset: str = "balanced"
    input_width: int = 224
    input_height: int = 224
    model_path: str | None = None
    tokenizer_path: str | None = None
    labels_path: str | None = None

    def to_options(self) -> dict[str, Any]:
        """Flat option set; optional paths are left out when unset."""
        options: dict[str, Any] = {
            "preset": self.preset,
            "inputWidth": self.input_width,
            "inputHeight": self.input_height,
        }
        if self.model_path:
            options["modelPath"] = self.model_path
        if self.tokenizer_path:
            options["tokenizerPath"] = self.tokenizer_path
        if self.labels_path:
            options["labelsPath"] = self.labels_path
        return options


@dataclass
class QueuedRequest:
    """Request captured after a likely-offline failure, awaiting manual retry."""

    id: str
    payload: dict[str, Any]
    preferred_engine: str
    created_at: str
    last_error: str = ""
    attempts: int = field(default=0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "payload": self.payload,
            "preferredEngine": self.preferred_engine,
            "createdAt": self.created_at,
            "lastError": self.last_error,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> QueuedRequest:
        """Raises KeyError, TypeError or ValueError on a malformed entry."""
        return cls(
            id=str(d["id"]),
            payload=dict(d.get("payload") or {}),
            preferred_engine=EnginePreference.parse(d.get("preferredEngine") or None).value,
            created_at=str(d.get("createdAt") or ""),
            last_error=str(d.get("lastError") or ""),
            attempts=int(d.get("attempts") or 0),
        )
