"""Core layer: interfaces, models, schemas, exceptions."""

from core.interfaces import (
    INativeRecognizer,
    IOnDeviceRecognizer,
    IBackendRecognizer,
    IFallbackStrategy,
)
from core.models import (
    EnginePreference,
    RuntimeMeta,
    RecognitionOutcome,
    ThresholdConfig,
    OnDeviceConfig,
    QueuedRequest,
)
from core.schema import RecognitionRequest, TrainingSampleSchema
from core.exceptions import (
    RecognitionError,
    CapabilityUnavailableError,
    InvalidRequestError,
    InvalidResponseError,
    RecognitionTimeoutError,
    BackendHTTPError,
    BackendConnectionError,
    FallbackFailedError,
    RejectedLowConfidenceError,
    ConfigError,
    TrainingSampleError,
)

__all__ = [
    "INativeRecognizer",
    "IOnDeviceRecognizer",
    "IBackendRecognizer",
    "IFallbackStrategy",
    "EnginePreference",
    "RuntimeMeta",
    "RecognitionOutcome",
    "ThresholdConfig",
    "OnDeviceConfig",
    "QueuedRequest",
    "RecognitionRequest",
    "TrainingSampleSchema",
    "RecognitionError",
    "CapabilityUnavailableError",
    "InvalidRequestError",
    "InvalidResponseError",
    "RecognitionTimeoutError",
    "BackendHTTPError",
    "BackendConnectionError",
    "FallbackFailedError",
    "RejectedLowConfidenceError",
    "ConfigError",
    "TrainingSampleError",
]
