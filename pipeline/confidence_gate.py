"""Confidence gate: when on-device confidence < threshold, consult the backend; decide on degrade vs reject."""

from __future__ import annotations

import math
from typing import Any

from core.models import ThresholdConfig
from core.schema import RecognitionRequest

BEST_LABEL_KEYS = ("bestLabel", "label")
CANDIDATE_KEYS = ("candidates", "topLabels")


def read_confidence(data: Any) -> float | None:
    """Numeric confidence from a result payload; None when missing or unreadable."""
    if not isinstance(data, dict):
        return None
    raw = data.get("confidence")
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else None
    try:
        value = float(str(raw if raw is not None else "").strip())
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _label_of(candidate: Any) -> str:
    if isinstance(candidate, str):
        return candidate.strip()
    if isinstance(candidate, dict):
        return str(candidate.get("label") or candidate.get("name") or "").strip()
    return ""


def derive_label(data: dict[str, Any]) -> str:
    """Best label of an on-device result, else the head of its ranked candidates."""
    for key in BEST_LABEL_KEYS:
        label = str(data.get(key) or "").strip()
        if label:
            return label
    for key in CANDIDATE_KEYS:
        candidates = data.get(key)
        if isinstance(candidates, list) and candidates:
            label = _label_of(candidates[0])
            if label:
                return label
    return ""


def build_fallback_request(
    request: RecognitionRequest,
    on_device_data: dict[str, Any],
    on_device_confidence: float,
) -> RecognitionRequest:
    """
    Label-only payload for the backend: the caller's label, else one derived from the local result.
    The image is not re-sent. With no label available the original request goes out unchanged.
    """
    label = request.explicit_label or derive_label(on_device_data)
    if not label:
        return request
    return RecognitionRequest(
        detected_label=label,
        confidence_hint=on_device_confidence,
    )


def format_fallback_reason(confidence: float, threshold: float) -> str:
    return f"On-device confidence {confidence:.3f} below threshold {threshold:.3f}"


class ConfidenceGate:
    """Threshold checks for one dispatch. Thresholds are passed by value."""

    def __init__(self, thresholds: ThresholdConfig) -> None:
        self._thresholds = thresholds

    @property
    def fallback_threshold(self) -> float:
        return self._thresholds.fallback_confidence

    @property
    def hard_reject_threshold(self) -> float:
        return self._thresholds.hard_reject_confidence

    def should_fallback(self, confidence: float | None) -> bool:
        return confidence is not None and confidence < self._thresholds.fallback_confidence

    def can_degrade(self, confidence: float) -> bool:
        return confidence >= self._thresholds.hard_reject_confidence
