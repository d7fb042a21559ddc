"""
On-device recognition adapter: wraps an opaque native recognizer.
Capability check, one-time process-wide warmup, guarded per-call inference, result validation.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import json
import logging
import sys
import threading
from typing import Any, Callable

from core.exceptions import (
    CODE_ON_DEVICE_INVALID_RESPONSE,
    CODE_ON_DEVICE_TIMEOUT,
    CapabilityUnavailableError,
    InvalidResponseError,
    RecognitionError,
)
from core.interfaces import INativeRecognizer, IOnDeviceRecognizer
from core.models import ENGINE_ON_DEVICE, OnDeviceConfig, RecognitionOutcome, RuntimeMeta
from core.schema import RecognitionRequest
from utils.timeout import with_timeout

logger = logging.getLogger(__name__)

SUPPORTED_PLATFORMS = ("darwin", "ios")
DEFAULT_ON_DEVICE_TIMEOUT_MS = 12000
CODE_ON_DEVICE_INFERENCE_FAILED = "ON_DEVICE_INFERENCE_FAILED"
ON_DEVICE_TIMEOUT_MESSAGE = "On-device recognition timed out."
UNAVAILABLE_MESSAGE = "On-device recognizer is not available in this build."
INVALID_RESPONSE_MESSAGE = "On-device recognizer returned an invalid response payload."


class SingleAssignmentFlag:
    """Set-once cell. try_set() returns True only for the first caller; never resets."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._set = False

    def try_set(self) -> bool:
        with self._lock:
            if self._set:
                return False
            self._set = True
            return True

    @property
    def is_set(self) -> bool:
        return self._set


# Process-wide: warmup runs at most once per process, whichever provider instance asks first.
WARMUP_PERFORMED = SingleAssignmentFlag()


def load_native_recognizer(target: str | None) -> INativeRecognizer | None:
    """
    Resolve a native recognizer from 'package.module:attr' (attr defaults to 'recognizer').
    A class or factory is called with no arguments. Missing module or attribute -> None (unavailable).
    """
    if not target:
        return None
    module_name, _, attr = target.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        logger.info("Native recognizer module %s not importable: %s", module_name, e)
        return None
    obj = getattr(module, attr or "recognizer", None)
    if obj is None:
        logger.info("Native recognizer %s has no attribute %r", module_name, attr or "recognizer")
        return None
    if inspect.isclass(obj):
        return obj()
    return obj


async def _invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """Await async capabilities directly; run blocking ones on a worker thread so the guard can expire."""
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    result = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(result):
        return await result
    return result


def _coerce_result(raw: Any) -> dict[str, Any] | None:
    """Structured object or None. A JSON string holding an object is decoded."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            decoded = json.loads(raw)
        except ValueError:
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


class OnDeviceProvider(IOnDeviceRecognizer):
    """Local inference through an injected native recognizer. No concrete model imports."""

    def __init__(
        self,
        native: INativeRecognizer | None = None,
        *,
        config: OnDeviceConfig | None = None,
        timeout_ms: int = DEFAULT_ON_DEVICE_TIMEOUT_MS,
        platform: str | None = None,
        supported_platforms: tuple[str, ...] = SUPPORTED_PLATFORMS,
        warmup_flag: SingleAssignmentFlag | None = None,
    ) -> None:
        self._native = native
        self._config = config or OnDeviceConfig()
        self._timeout_ms = timeout_ms
        self._platform = (platform or sys.platform).lower()
        self._supported = tuple(p.lower() for p in supported_platforms)
        self._warmup_flag = warmup_flag if warmup_flag is not None else WARMUP_PERFORMED

    @property
    def source(self) -> str:
        return f"{self._platform}-native"

    def is_platform_supported(self) -> bool:
        return self._platform in self._supported

    def is_available(self) -> bool:
        if not self.is_platform_supported():
            return False
        return self._native is not None and callable(getattr(self._native, "detect_and_summarize", None))

    async def warmup(self, config: OnDeviceConfig | None = None) -> None:
        """Only the first call in the process does work. Failures are logged, never raised."""
        if not self.is_available():
            return
        if not self._warmup_flag.try_set():
            return
        warm = getattr(self._native, "warmup", None)
        if not callable(warm):
            return
        options = (config or self._config).to_options()
        logger.info("Warming up on-device recognizer (preset=%s)", options.get("preset"))
        try:
            await with_timeout(
                _invoke(warm, options),
                self._timeout_ms,
                message="On-device warmup timed out.",
                code=CODE_ON_DEVICE_TIMEOUT,
            )
        except Exception as e:
            logger.warning("On-device warmup failed (continuing without it): %s", e)

    async def recognize(
        self, request: RecognitionRequest, config: OnDeviceConfig | None = None
    ) -> RecognitionOutcome:
        if not self.is_available():
            raise CapabilityUnavailableError(UNAVAILABLE_MESSAGE)
        cfg = config or self._config
        await self.warmup(cfg)
        try:
            raw = await with_timeout(
                _invoke(
                    self._native.detect_and_summarize,
                    request.model_dump(by_alias=True, exclude_none=True),
                    cfg.to_options(),
                ),
                self._timeout_ms,
                message=ON_DEVICE_TIMEOUT_MESSAGE,
                code=CODE_ON_DEVICE_TIMEOUT,
            )
        except RecognitionError:
            raise
        except Exception as e:
            logger.warning("On-device inference failed: %s", e)
            raise RecognitionError(
                f"On-device inference failed: {e}", CODE_ON_DEVICE_INFERENCE_FAILED
            ) from e
        data = _coerce_result(raw)
        if data is None:
            raise InvalidResponseError(INVALID_RESPONSE_MESSAGE, CODE_ON_DEVICE_INVALID_RESPONSE)
        return RecognitionOutcome(
            data=data,
            runtime=RuntimeMeta(engine=ENGINE_ON_DEVICE, source=self.source),
        )
