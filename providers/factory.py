"""Factory for creating recognition providers from config. No hardcoded engine choice."""

from __future__ import annotations

from core.interfaces import INativeRecognizer
from providers.backend_provider import BackendProvider
from providers.on_device_provider import OnDeviceProvider, load_native_recognizer
from utils.config import AppConfig


def create_on_device_provider(
    config: AppConfig,
    *,
    native: INativeRecognizer | None = None,
    platform: str | None = None,
) -> OnDeviceProvider:
    """
    Build the on-device adapter. native overrides config.native_module (tests, embedding apps).
    Without either, the provider reports itself unavailable.
    """
    recognizer = native if native is not None else load_native_recognizer(config.native_module)
    return OnDeviceProvider(
        recognizer,
        config=config.on_device,
        timeout_ms=config.on_device_timeout_ms,
        platform=platform,
    )


def create_backend_provider(config: AppConfig) -> BackendProvider:
    return BackendProvider(timeout_ms=config.backend_timeout_ms)
