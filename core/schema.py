"""
Pydantic schemas for recognition and training-sample payloads. Used by providers, pipeline, services.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.exceptions import InvalidRequestError


# ---------------------------------------------------------------------------
# Recognition request
# ---------------------------------------------------------------------------


class RecognitionRequest(BaseModel):
    """What the caller wants identified. Not validated for completeness; extra keys are forwarded."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    # Opaque: values are forwarded untouched, whatever their type.
    detected_label: Any = Field(default=None, alias="detectedLabel")
    image_data: Any = Field(default=None, alias="imageData")
    confidence_hint: Any = Field(default=None, alias="confidenceHint")

    @property
    def explicit_label(self) -> str:
        """Caller-supplied label, trimmed; empty when none was given or it is not text."""
        if not isinstance(self.detected_label, str):
            return ""
        return self.detected_label.strip()

    def to_body(self) -> dict[str, Any]:
        """JSON body for the recognition endpoint. Empty strings stand in for missing label/image."""
        body = self.model_dump(by_alias=True, exclude_none=True)
        body["detectedLabel"] = "" if self.detected_label is None else self.detected_label
        body["imageData"] = "" if self.image_data is None else self.image_data
        return body

    @classmethod
    def from_payload(cls, payload: RecognitionRequest | dict[str, Any] | None) -> RecognitionRequest:
        """Payload must be a mapping; anything else is a coded InvalidRequestError."""
        if isinstance(payload, RecognitionRequest):
            return payload
        try:
            return cls.model_validate(payload or {})
        except ValidationError as e:
            raise InvalidRequestError(f"Recognition request must be an object: {e}") from e


# ---------------------------------------------------------------------------
# Training sample (user-confirmed label for a prior recognition)
# ---------------------------------------------------------------------------


class TrainingSampleSchema(BaseModel):
    """Body for /api/training/samples."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(default="anonymous", alias="userId")
    image_base64: str = Field(default="", alias="imageBase64")
    predicted_label: str = Field(default="", alias="predictedLabel")
    predicted_confidence: float | None = Field(default=None, alias="predictedConfidence")
    final_label: str = Field(alias="finalLabel")
    taxonomy_leaf: str | None = Field(default=None, alias="taxonomyLeaf")
    source_engine: str = Field(default="unknown", alias="sourceEngine")
    source_runtime: str = Field(default="unknown", alias="sourceRuntime")
    device_platform: str = Field(default="", alias="devicePlatform")
    app_version: str = Field(default="cli-dev", alias="appVersion")
    user_confirmed: bool = Field(default=True, alias="userConfirmed")

    @field_validator("predicted_confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float | None:
        if v is None or v == "":
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return max(0.0, min(1.0, value))

    @field_validator("final_label")
    @classmethod
    def final_label_stripped(cls, v: str) -> str:
        return (v or "").strip()
