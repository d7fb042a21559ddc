"""Custom exceptions for the recognition dispatch layer. No generic Exception usage."""

from __future__ import annotations

CODE_ON_DEVICE_UNAVAILABLE = "ON_DEVICE_UNAVAILABLE"
CODE_ON_DEVICE_INVALID_RESPONSE = "ON_DEVICE_INVALID_RESPONSE"
CODE_ON_DEVICE_TIMEOUT = "ON_DEVICE_TIMEOUT"
CODE_BACKEND_INVALID_RESPONSE = "BACKEND_INVALID_RESPONSE"
CODE_BACKEND_TIMEOUT = "BACKEND_TIMEOUT"
CODE_BACKEND_FALLBACK_FAILED = "BACKEND_FALLBACK_FAILED"
CODE_CONFIG_INVALID = "CONFIG_INVALID"
CODE_INVALID_REQUEST = "INVALID_REQUEST"


class RecognitionError(Exception):
    """Base exception for dispatch failures. `code` is None for unclassified transport errors."""

    def __init__(self, message: str, code: str | int | None = None) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


class CapabilityUnavailableError(RecognitionError):
    """On-device engine is not supported on this platform or not linked."""

    def __init__(self, message: str, code: str | int | None = CODE_ON_DEVICE_UNAVAILABLE) -> None:
        super().__init__(message, code)


class InvalidRequestError(RecognitionError):
    """Recognition payload is not a mapping of request fields."""

    def __init__(self, message: str, code: str | int | None = CODE_INVALID_REQUEST) -> None:
        super().__init__(message, code)


class InvalidResponseError(RecognitionError):
    """A provider answered with something that is not a structured object."""

    pass


class RecognitionTimeoutError(RecognitionError):
    """Guarded call did not settle before its deadline."""

    pass


class BackendHTTPError(RecognitionError):
    """Backend returned a non-2xx status. code is the numeric status."""

    def __init__(self, message: str, status: int) -> None:
        self.status = status
        super().__init__(message, status)


class BackendConnectionError(RecognitionError):
    """Transport failure before any response arrived. Carries no code."""

    def __init__(self, message: str) -> None:
        super().__init__(message, None)


class FallbackFailedError(RecognitionError):
    """Backend fallback after an on-device attempt failed."""

    def __init__(self, message: str, code: str | int | None = CODE_BACKEND_FALLBACK_FAILED) -> None:
        super().__init__(message, code)


class RejectedLowConfidenceError(FallbackFailedError):
    """On-device confidence below the hard floor and the backend fallback failed too."""

    def __init__(
        self,
        message: str,
        confidence: float,
        cause: RecognitionError | None = None,
        code: str | int | None = CODE_BACKEND_FALLBACK_FAILED,
    ) -> None:
        self.confidence = confidence
        self.cause = cause
        super().__init__(message, code)


class ConfigError(RecognitionError):
    """Invalid configuration value that cannot be defaulted."""

    def __init__(self, message: str) -> None:
        super().__init__(message, CODE_CONFIG_INVALID)


class TrainingSampleError(RecognitionError):
    """Training sample submission was rejected by the backend."""

    pass
