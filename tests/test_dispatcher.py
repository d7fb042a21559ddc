"""
Unit tests for the recognition dispatcher.
Demonstrates: fake on-device/backend adapters injected into the dispatcher, call-count assertions,
confidence gate + degradation decisions.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from core.exceptions import (
    BackendConnectionError,
    BackendHTTPError,
    CapabilityUnavailableError,
    RecognitionTimeoutError,
    RejectedLowConfidenceError,
)
from core.interfaces import IBackendRecognizer, IOnDeviceRecognizer
from core.models import (
    ENGINE_BACKEND,
    ENGINE_ON_DEVICE,
    EnginePreference,
    OnDeviceConfig,
    RecognitionOutcome,
    RuntimeMeta,
    ThresholdConfig,
)
from core.schema import RecognitionRequest
from pipeline.dispatcher import RecognitionDispatcher
from pipeline.offline_queue import is_likely_offline

BASE_URL = "http://api.test"


# ---------------------------------------------------------------------------
# Fake implementations (test doubles)
# ---------------------------------------------------------------------------


class FakeOnDevice(IOnDeviceRecognizer):
    """Returns a fixed payload or raises a fixed error; counts calls."""

    def __init__(
        self,
        data: dict | None = None,
        error: Exception | None = None,
        platform_supported: bool = True,
    ) -> None:
        self.data = data if data is not None else {"confidence": 0.9, "bestLabel": "glass bottle"}
        self.error = error
        self.platform_supported = platform_supported
        self.calls: list[RecognitionRequest] = []

    def is_available(self) -> bool:
        return self.platform_supported and self.error is None

    def is_platform_supported(self) -> bool:
        return self.platform_supported

    async def warmup(self, config: OnDeviceConfig | None = None) -> None:
        return None

    async def recognize(self, request: RecognitionRequest, config: OnDeviceConfig | None = None) -> RecognitionOutcome:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return RecognitionOutcome(data=self.data, runtime=RuntimeMeta(engine=ENGINE_ON_DEVICE, source="darwin-native"))


class FakeBackend(IBackendRecognizer):
    """Returns a fixed payload or raises a fixed error; records every request it receives."""

    def __init__(self, data: dict | None = None, error: Exception | None = None) -> None:
        self.data = data if data is not None else {"confidence": 0.97, "label": "glass bottle", "ecoScore": 80}
        self.error = error
        self.calls: list[tuple[RecognitionRequest, str, str]] = []

    async def recognize(
        self,
        request: RecognitionRequest,
        base_url: str,
        auth_token: str = "",
        timeout_ms: int | None = None,
    ) -> RecognitionOutcome:
        self.calls.append((request, base_url, auth_token))
        if self.error is not None:
            raise self.error
        return RecognitionOutcome(
            data=dict(self.data),
            runtime=RuntimeMeta(engine=ENGINE_BACKEND, endpoint=f"{base_url}/api/recognize"),
        )


def _dispatch(
    on_device: FakeOnDevice,
    backend: FakeBackend,
    payload: dict | RecognitionRequest | None = None,
    engine: str | EnginePreference = EnginePreference.AUTO,
    thresholds: ThresholdConfig | None = None,
) -> RecognitionOutcome:
    dispatcher = RecognitionDispatcher(
        on_device, backend, thresholds=thresholds or ThresholdConfig(0.45, 0.30)
    )
    return asyncio.run(
        dispatcher.recognize(
            payload if payload is not None else {"imageData": "aGVsbG8="},
            base_url=BASE_URL,
            preferred_engine=engine,
            auth_token="tok",
        )
    )


# ---------------------------------------------------------------------------
# Confidence gate
# ---------------------------------------------------------------------------


def test_confident_on_device_result_is_returned_unmodified() -> None:
    """c >= threshold: on-device result as-is, zero backend calls, no fallback annotations."""
    data = {"confidence": 0.50, "bestLabel": "steel bottle"}
    on_device = FakeOnDevice(data=data)
    backend = FakeBackend()
    outcome = _dispatch(on_device, backend, engine=EnginePreference.ON_DEVICE)
    assert outcome.data is data
    assert outcome.runtime.engine == "on-device"
    assert outcome.runtime.to_dict() == {"engine": "on-device", "source": "darwin-native"}
    assert backend.calls == []


def test_low_confidence_falls_back_to_backend() -> None:
    on_device = FakeOnDevice(data={"confidence": 0.40, "bestLabel": "paper cup"})
    backend = FakeBackend()
    outcome = _dispatch(on_device, backend, engine=EnginePreference.ON_DEVICE)
    assert outcome.runtime.engine == "backend"
    assert outcome.runtime.fallback_from == "on-device"
    assert outcome.runtime.on_device_confidence == 0.40
    assert outcome.runtime.on_device_fallback_threshold == 0.45
    assert outcome.runtime.fallback_reason == "On-device confidence 0.400 below threshold 0.450"
    assert outcome.data["ecoScore"] == 80


def test_fallback_payload_is_label_only() -> None:
    """Derived label is sent without the image; on-device confidence becomes the hint."""
    on_device = FakeOnDevice(data={"confidence": 0.40, "bestLabel": "paper cup"})
    backend = FakeBackend()
    _dispatch(on_device, backend, payload={"imageData": "aGVsbG8="}, engine=EnginePreference.ON_DEVICE)
    assert len(backend.calls) == 1
    sent, base_url, token = backend.calls[0]
    assert sent.detected_label == "paper cup"
    assert sent.image_data is None
    assert sent.confidence_hint == 0.40
    assert (base_url, token) == (BASE_URL, "tok")


def test_fallback_payload_prefers_caller_label() -> None:
    on_device = FakeOnDevice(data={"confidence": 0.10, "bestLabel": "napkin"})
    backend = FakeBackend()
    _dispatch(on_device, backend, payload={"detectedLabel": "coffee cup", "imageData": "x"})
    sent, _, _ = backend.calls[0]
    assert sent.detected_label == "coffee cup"
    assert sent.image_data is None


def test_fallback_payload_uses_head_of_candidates() -> None:
    on_device = FakeOnDevice(data={"confidence": 0.10, "candidates": [{"label": "soda can"}, {"label": "cup"}]})
    backend = FakeBackend()
    _dispatch(on_device, backend)
    sent, _, _ = backend.calls[0]
    assert sent.detected_label == "soda can"


def test_fallback_without_any_label_resends_original_request() -> None:
    on_device = FakeOnDevice(data={"confidence": 0.10})
    backend = FakeBackend()
    _dispatch(on_device, backend, payload={"imageData": "aGVsbG8="})
    sent, _, _ = backend.calls[0]
    assert sent.image_data == "aGVsbG8="


def test_below_hard_floor_with_failing_backend_raises() -> None:
    on_device = FakeOnDevice(data={"confidence": 0.20, "bestLabel": "wrapper"})
    backend = FakeBackend(error=BackendHTTPError("Service unavailable", 503))
    with pytest.raises(RejectedLowConfidenceError) as exc:
        _dispatch(on_device, backend)
    message = str(exc.value)
    assert "0.200" in message
    assert "Service unavailable" in message
    assert exc.value.code == 503
    assert exc.value.confidence == 0.20
    assert len(backend.calls) == 1


def test_between_floor_and_threshold_with_failing_backend_degrades() -> None:
    data = {"confidence": 0.35, "bestLabel": "tumbler"}
    on_device = FakeOnDevice(data=data)
    backend = FakeBackend(error=BackendHTTPError("Service unavailable", 503))
    outcome = _dispatch(on_device, backend)
    assert outcome.data is data
    assert outcome.runtime.engine == "on-device"
    assert outcome.runtime.degraded_to_on_device is True
    assert outcome.runtime.fallback_attempted is True
    assert outcome.runtime.fallback_error == "Service unavailable"
    assert len(backend.calls) == 1


def test_rejection_after_transport_failure_is_not_classified_offline() -> None:
    on_device = FakeOnDevice(data={"confidence": 0.05, "bestLabel": "bag"})
    backend = FakeBackend(error=BackendConnectionError("Network request failed: connection refused"))
    with pytest.raises(RejectedLowConfidenceError) as exc:
        _dispatch(on_device, backend)
    assert exc.value.code == "BACKEND_FALLBACK_FAILED"
    assert not is_likely_offline(exc.value)


def test_unreadable_confidence_is_trusted() -> None:
    on_device = FakeOnDevice(data={"confidence": "n/a", "bestLabel": "bottle"})
    backend = FakeBackend()
    outcome = _dispatch(on_device, backend)
    assert outcome.runtime.engine == "on-device"
    assert backend.calls == []


# ---------------------------------------------------------------------------
# Engine selection
# ---------------------------------------------------------------------------


def test_backend_preference_never_invokes_on_device() -> None:
    on_device = FakeOnDevice(data={"confidence": 0.99})
    backend = FakeBackend()
    outcome = _dispatch(on_device, backend, engine="backend")
    assert on_device.calls == []
    assert len(backend.calls) == 1
    assert outcome.runtime.engine == "backend"
    assert outcome.runtime.fallback_from is None


def test_backend_preference_propagates_failure_unchanged() -> None:
    err = BackendHTTPError("Unauthorized", 401)
    with pytest.raises(BackendHTTPError) as exc:
        _dispatch(FakeOnDevice(), FakeBackend(error=err), engine="backend")
    assert exc.value is err


def test_auto_on_device_unavailable_falls_back_once() -> None:
    on_device = FakeOnDevice(error=CapabilityUnavailableError("On-device recognizer is not available in this build."))
    backend = FakeBackend()
    outcome = _dispatch(on_device, backend, engine="auto")
    assert len(backend.calls) == 1
    assert outcome.runtime.engine == "backend"
    assert outcome.runtime.fallback_from == "on-device"
    assert outcome.runtime.fallback_reason == "On-device recognizer is not available in this build."
    sent, _, _ = backend.calls[0]
    assert sent.image_data == "aGVsbG8="


def test_auto_on_device_timeout_falls_back() -> None:
    on_device = FakeOnDevice(error=RecognitionTimeoutError("On-device recognition timed out.", "ON_DEVICE_TIMEOUT"))
    backend = FakeBackend()
    outcome = _dispatch(on_device, backend)
    assert outcome.runtime.fallback_reason == "On-device recognition timed out."


def test_auto_double_failure_propagates_backend_error() -> None:
    backend_err = BackendConnectionError("Network request failed: unreachable")
    on_device = FakeOnDevice(error=CapabilityUnavailableError("not linked"))
    backend = FakeBackend(error=backend_err)
    with pytest.raises(BackendConnectionError) as exc:
        _dispatch(on_device, backend)
    assert exc.value is backend_err
    assert len(backend.calls) == 1


def test_auto_on_unsupported_platform_behaves_like_backend() -> None:
    on_device = FakeOnDevice(platform_supported=False)
    backend = FakeBackend()
    outcome = _dispatch(on_device, backend, engine=None)
    assert on_device.calls == []
    assert outcome.runtime.engine == "backend"
    assert outcome.runtime.fallback_from is None


def test_on_device_preference_does_not_fall_back_on_error() -> None:
    err = CapabilityUnavailableError("not linked")
    backend = FakeBackend()
    with pytest.raises(CapabilityUnavailableError) as exc:
        _dispatch(FakeOnDevice(error=err), backend, engine="on-device")
    assert exc.value is err
    assert backend.calls == []


def test_auto_confident_on_device_skips_backend() -> None:
    backend = FakeBackend()
    outcome = _dispatch(FakeOnDevice(data={"confidence": 0.9}), backend)
    assert outcome.runtime.engine == "on-device"
    assert backend.calls == []


def test_unknown_engine_preference_is_rejected() -> None:
    backend = FakeBackend()
    with pytest.raises(ValueError):
        _dispatch(FakeOnDevice(), backend, engine="cloud")
    assert backend.calls == []


class AlwaysConsultGate:
    """Fallback strategy that always asks the backend and never degrades."""

    fallback_threshold = 1.0

    def should_fallback(self, confidence: float | None) -> bool:
        return True

    def can_degrade(self, confidence: float) -> bool:
        return False


def test_injected_fallback_strategy_overrides_thresholds() -> None:
    on_device = FakeOnDevice(data={"confidence": 0.95, "bestLabel": "tin can"})
    backend = FakeBackend()
    dispatcher = RecognitionDispatcher(on_device, backend, gate=AlwaysConsultGate())
    outcome = asyncio.run(dispatcher.recognize({"imageData": "aGk="}, base_url=BASE_URL))
    assert outcome.runtime.engine == ENGINE_BACKEND
    assert outcome.runtime.on_device_fallback_threshold == 1.0
    assert backend.calls[0][0].detected_label == "tin can"

    failing = RecognitionDispatcher(on_device, FakeBackend(error=BackendHTTPError("down", 503)), gate=AlwaysConsultGate())
    with pytest.raises(RejectedLowConfidenceError) as exc:
        asyncio.run(failing.recognize({"imageData": "aGk="}, base_url=BASE_URL))
    assert exc.value.code == 503


def test_degrade_and_reject_decisions_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="pipeline.dispatcher")
    failing = FakeBackend(error=BackendHTTPError("Service unavailable", 503))
    _dispatch(FakeOnDevice(data={"confidence": 0.35, "bestLabel": "tumbler"}), failing)
    with pytest.raises(RejectedLowConfidenceError):
        _dispatch(FakeOnDevice(data={"confidence": 0.1, "bestLabel": "tumbler"}), failing)
    decisions = [getattr(r, "decision", None) for r in caplog.records if r.name == "pipeline.dispatcher"]
    assert decisions == ["consult-backend", "degrade", "consult-backend", "reject"]
    reject = [r for r in caplog.records if getattr(r, "decision", None) == "reject"][0]
    assert reject.error_code == 503
    assert reject.confidence == 0.1
