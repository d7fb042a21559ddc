"""
Recognition dispatcher: single public method recognize(payload, ...) -> RecognitionOutcome.
Does not know which engines are behind the adapters; both are injected via constructor.
Flow: engine preference -> on-device and/or backend (each guarded) -> confidence gate -> result or typed failure.
At most one automatic fallback per call; no further retries.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from core.exceptions import (
    CODE_BACKEND_FALLBACK_FAILED,
    RejectedLowConfidenceError,
)
from core.interfaces import IBackendRecognizer, IFallbackStrategy, IOnDeviceRecognizer
from core.models import (
    ENGINE_ON_DEVICE,
    EnginePreference,
    RecognitionOutcome,
    ThresholdConfig,
)
from core.schema import RecognitionRequest
from pipeline.confidence_gate import (
    ConfidenceGate,
    build_fallback_request,
    format_fallback_reason,
    read_confidence,
)
from providers.factory import create_backend_provider, create_on_device_provider
from utils.config import AppConfig
from utils.logger import (
    DECISION_CONSULT_BACKEND,
    DECISION_DEGRADE,
    DECISION_ON_DEVICE_FAILED,
    DECISION_REJECT,
    log_decision,
)

logger = logging.getLogger(__name__)


def _error_message(err: BaseException, default: str) -> str:
    text = str(getattr(err, "message", None) or err or "").strip()
    return text or default


class RecognitionDispatcher:
    """
    Engine selector. No global state apart from the on-device adapter's warmup flag.
    Every terminal path yields a RecognitionOutcome or raises a RecognitionError.
    """

    def __init__(
        self,
        on_device: IOnDeviceRecognizer,
        backend: IBackendRecognizer,
        *,
        thresholds: ThresholdConfig | None = None,
        backend_timeout_ms: int | None = None,
        gate: IFallbackStrategy | None = None,
    ) -> None:
        self._on_device = on_device
        self._backend = backend
        self._thresholds = thresholds or ThresholdConfig()
        self._backend_timeout_ms = backend_timeout_ms
        self._gate = gate or ConfidenceGate(self._thresholds)

    @property
    def thresholds(self) -> ThresholdConfig:
        return self._thresholds

    async def recognize(
        self,
        payload: RecognitionRequest | dict[str, Any] | None,
        *,
        base_url: str,
        preferred_engine: EnginePreference | str | None = EnginePreference.AUTO,
        auth_token: str = "",
    ) -> RecognitionOutcome:
        """Dispatch one request by explicit engine preference."""
        engine = EnginePreference.parse(preferred_engine)
        request = RecognitionRequest.from_payload(payload)

        if engine is EnginePreference.BACKEND:
            return await self._call_backend(request, base_url, auth_token)

        if engine is EnginePreference.ON_DEVICE:
            outcome = await self._on_device.recognize(request)
            return await self._apply_confidence_gate(request, outcome, base_url, auth_token)

        if engine is EnginePreference.AUTO:
            if not self._on_device.is_platform_supported():
                return await self._call_backend(request, base_url, auth_token)
            return await self._auto_on_device_first(request, base_url, auth_token)

        raise ValueError(f"Unhandled engine preference: {engine!r}")

    async def _call_backend(
        self, request: RecognitionRequest, base_url: str, auth_token: str
    ) -> RecognitionOutcome:
        return await self._backend.recognize(request, base_url, auth_token, self._backend_timeout_ms)

    async def _auto_on_device_first(
        self, request: RecognitionRequest, base_url: str, auth_token: str
    ) -> RecognitionOutcome:
        try:
            outcome = await self._on_device.recognize(request)
        except Exception as on_device_error:
            reason = _error_message(on_device_error, "On-device path failed")
            log_decision(
                logger,
                logging.INFO,
                DECISION_ON_DEVICE_FAILED,
                f"On-device failed; falling back to backend: {reason}",
                engine=ENGINE_ON_DEVICE,
                error_code=getattr(on_device_error, "code", None),
            )
            fallback = await self._call_backend(request, base_url, auth_token)
            fallback.runtime = replace(
                fallback.runtime,
                fallback_from=ENGINE_ON_DEVICE,
                fallback_reason=reason,
            )
            return fallback
        return await self._apply_confidence_gate(request, outcome, base_url, auth_token)

    async def _apply_confidence_gate(
        self,
        request: RecognitionRequest,
        outcome: RecognitionOutcome,
        base_url: str,
        auth_token: str,
    ) -> RecognitionOutcome:
        gate = self._gate
        confidence = read_confidence(outcome.data)
        if not gate.should_fallback(confidence):
            return outcome

        threshold = gate.fallback_threshold
        log_decision(
            logger,
            logging.INFO,
            DECISION_CONSULT_BACKEND,
            f"On-device confidence {confidence:.3f} below {threshold:.3f}; consulting backend",
            engine=ENGINE_ON_DEVICE,
            confidence=confidence,
            threshold=threshold,
        )
        fallback_request = build_fallback_request(request, outcome.data, confidence)
        try:
            fallback = await self._call_backend(fallback_request, base_url, auth_token)
        except Exception as backend_error:
            return self._degrade_or_reject(gate, outcome, confidence, backend_error)

        fallback.runtime = replace(
            fallback.runtime,
            fallback_from=ENGINE_ON_DEVICE,
            fallback_reason=format_fallback_reason(confidence, threshold),
            on_device_confidence=confidence,
            on_device_fallback_threshold=threshold,
        )
        return fallback

    def _degrade_or_reject(
        self,
        gate: IFallbackStrategy,
        outcome: RecognitionOutcome,
        confidence: float,
        backend_error: Exception,
    ) -> RecognitionOutcome:
        detail = _error_message(backend_error, "")
        if gate.can_degrade(confidence):
            log_decision(
                logger,
                logging.WARNING,
                DECISION_DEGRADE,
                f"Backend fallback failed; keeping on-device result ({confidence:.3f}): {detail}",
                engine=ENGINE_ON_DEVICE,
                confidence=confidence,
                error_code=getattr(backend_error, "code", None),
            )
            outcome.runtime = replace(
                outcome.runtime,
                on_device_confidence=confidence,
                on_device_fallback_threshold=gate.fallback_threshold,
                degraded_to_on_device=True,
                fallback_attempted=True,
                fallback_error=detail or "Backend fallback failed.",
            )
            return outcome

        head = f"Low-confidence on-device result rejected ({confidence:.3f})."
        message = f"{head} Backend fallback failed: {detail}" if detail else f"{head} Backend fallback failed."
        code = getattr(backend_error, "code", None)
        if code is None:
            code = CODE_BACKEND_FALLBACK_FAILED
        log_decision(
            logger,
            logging.WARNING,
            DECISION_REJECT,
            message,
            engine=ENGINE_ON_DEVICE,
            confidence=confidence,
            error_code=code,
        )
        raise RejectedLowConfidenceError(message, confidence, cause=backend_error, code=code) from backend_error


def create_dispatcher(config: AppConfig, **provider_kwargs: Any) -> RecognitionDispatcher:
    """Wire adapters and thresholds from config. provider_kwargs go to create_on_device_provider (native, platform)."""
    return RecognitionDispatcher(
        create_on_device_provider(config, **provider_kwargs),
        create_backend_provider(config),
        thresholds=config.thresholds,
        backend_timeout_ms=config.backend_timeout_ms,
    )
