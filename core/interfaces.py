"""
Abstract interfaces for the recognition dispatch layer.
Every provider is behind an interface; the dispatcher never depends on a concrete engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol

from core.models import OnDeviceConfig, RecognitionOutcome
from core.schema import RecognitionRequest


class INativeRecognizer(Protocol):
    """Opaque local inference capability. Methods may be plain or async callables."""

    def detect_and_summarize(self, request: dict[str, Any], options: dict[str, Any]) -> Any:
        """Run inference; returns a structured summary (dict or JSON object string)."""
        ...

    def warmup(self, options: dict[str, Any]) -> None:
        """Optional one-time model load. May be absent."""
        ...


class IOnDeviceRecognizer(ABC):
    """On-device adapter: capability check, one-time warmup, guarded inference."""

    @abstractmethod
    def is_available(self) -> bool:
        """Synchronous, side-effect-free capability check."""
        ...

    @abstractmethod
    def is_platform_supported(self) -> bool:
        """Platform half of the check; AUTO selection keys on this."""
        ...

    @abstractmethod
    async def warmup(self, config: OnDeviceConfig | None = None) -> None:
        """Best-effort, process-wide idempotent initialization."""
        ...

    @abstractmethod
    async def recognize(
        self, request: RecognitionRequest, config: OnDeviceConfig | None = None
    ) -> RecognitionOutcome:
        """Guarded inference. Raises CapabilityUnavailableError / InvalidResponseError / RecognitionTimeoutError."""
        ...


class IBackendRecognizer(ABC):
    """Backend adapter: one authenticated, guarded network call."""

    @abstractmethod
    async def recognize(
        self,
        request: RecognitionRequest,
        base_url: str,
        auth_token: str = "",
        timeout_ms: int | None = None,
    ) -> RecognitionOutcome:
        """Raises BackendHTTPError / BackendConnectionError / RecognitionTimeoutError / InvalidResponseError."""
        ...


class IFallbackStrategy(Protocol):
    """Strategy: when on-device confidence < threshold, consult the backend."""

    @property
    def fallback_threshold(self) -> float:
        """Threshold reported in runtime metadata."""
        ...

    def should_fallback(self, confidence: float | None) -> bool:
        """True if the backend should be consulted."""
        ...

    def can_degrade(self, confidence: float) -> bool:
        """True if a distrusted on-device result may still be surfaced after a failed fallback."""
        ...
