"""Remote recognition adapter: one authenticated, guarded POST to /api/recognize (requests)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests

from core.exceptions import (
    CODE_BACKEND_INVALID_RESPONSE,
    CODE_BACKEND_TIMEOUT,
    BackendConnectionError,
    BackendHTTPError,
    InvalidResponseError,
    RecognitionTimeoutError,
)
from core.interfaces import IBackendRecognizer
from core.models import ENGINE_BACKEND, RecognitionOutcome, RuntimeMeta
from core.schema import RecognitionRequest
from utils.api_url import build_api_url
from utils.http import auth_headers, decode_json_body, error_message_for_status
from utils.timeout import with_timeout

logger = logging.getLogger(__name__)

RECOGNIZE_PATH = "/api/recognize"
DEFAULT_BACKEND_TIMEOUT_MS = 30000
BACKEND_TIMEOUT_MESSAGE = "Backend recognition timed out."
NETWORK_FAILURE_PREFIX = "Network request failed"


class BackendProvider(IBackendRecognizer):
    """Recognition service over HTTP. Session is optional; module-level requests.post otherwise."""

    def __init__(
        self,
        timeout_ms: int = DEFAULT_BACKEND_TIMEOUT_MS,
        session: requests.Session | None = None,
    ) -> None:
        self._timeout_ms = timeout_ms
        self._session = session

    def _post(self, url: str, body: dict[str, Any], headers: dict[str, str], timeout_sec: float) -> Any:
        poster = self._session.post if self._session is not None else requests.post
        try:
            return poster(url, json=body, headers=headers, timeout=timeout_sec)
        except requests.Timeout as e:
            raise RecognitionTimeoutError(BACKEND_TIMEOUT_MESSAGE, CODE_BACKEND_TIMEOUT) from e
        except requests.RequestException as e:
            raise BackendConnectionError(f"{NETWORK_FAILURE_PREFIX}: {e}") from e

    async def recognize(
        self,
        request: RecognitionRequest,
        base_url: str,
        auth_token: str = "",
        timeout_ms: int | None = None,
    ) -> RecognitionOutcome:
        deadline_ms = timeout_ms or self._timeout_ms
        url = build_api_url(base_url, RECOGNIZE_PATH)
        logger.info("POST %s (label=%r, image=%s)", url, request.explicit_label, bool(request.image_data))
        resp = await with_timeout(
            asyncio.to_thread(self._post, url, request.to_body(), auth_headers(auth_token), deadline_ms / 1000.0),
            deadline_ms,
            message=BACKEND_TIMEOUT_MESSAGE,
            code=CODE_BACKEND_TIMEOUT,
        )
        status = int(resp.status_code)
        data = decode_json_body(resp)
        if not 200 <= status < 300:
            message = error_message_for_status(data, status)
            logger.warning("Backend recognition failed: status=%s message=%s", status, message)
            raise BackendHTTPError(message, status)
        if not isinstance(data, dict):
            raise InvalidResponseError(
                "Backend returned an invalid response payload.", CODE_BACKEND_INVALID_RESPONSE
            )
        return RecognitionOutcome(
            data=data,
            runtime=RuntimeMeta(engine=ENGINE_BACKEND, endpoint=url),
        )
