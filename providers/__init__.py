"""Recognition providers: on-device adapter, backend adapter, factory."""

from providers.on_device_provider import (
    OnDeviceProvider,
    SingleAssignmentFlag,
    WARMUP_PERFORMED,
    load_native_recognizer,
)
from providers.backend_provider import BackendProvider
from providers.factory import create_on_device_provider, create_backend_provider

__all__ = [
    "OnDeviceProvider",
    "SingleAssignmentFlag",
    "WARMUP_PERFORMED",
    "load_native_recognizer",
    "BackendProvider",
    "create_on_device_provider",
    "create_backend_provider",
]
