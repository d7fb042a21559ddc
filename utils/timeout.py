"""Deadline guard for awaitables. No shared timer state; every call owns its own."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from core.exceptions import RecognitionTimeoutError

logger = logging.getLogger(__name__)
T = TypeVar("T")

DEFAULT_TIMEOUT_MESSAGE = "Operation timed out."
DEFAULT_TIMEOUT_CODE = "TIMEOUT"


async def with_timeout(
    operation: Awaitable[T],
    timeout_ms: int | float | None,
    *,
    message: str = DEFAULT_TIMEOUT_MESSAGE,
    code: str = DEFAULT_TIMEOUT_CODE,
) -> T:
    """
    Await operation under a millisecond deadline.
    On expiry the operation is cancelled (a signal only: work already handed to a thread
    keeps running, its late result is discarded) and RecognitionTimeoutError(message, code) is raised.
    timeout_ms None or <= 0 means no deadline.
    """
    if timeout_ms is None or timeout_ms <= 0:
        return await operation
    try:
        return await asyncio.wait_for(operation, timeout=timeout_ms / 1000.0)
    except asyncio.TimeoutError as e:
        logger.debug("Deadline of %sms expired (%s)", timeout_ms, code)
        raise RecognitionTimeoutError(message, code) from e
