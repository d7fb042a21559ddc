"""
Training sample submission: user-confirmed label for a prior recognition -> /api/training/samples.
Synchronous (requests); called after a result has been reviewed, outside the dispatch path.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import requests

from core.exceptions import BackendConnectionError, TrainingSampleError
from core.models import RecognitionOutcome
from core.schema import TrainingSampleSchema
from pipeline.confidence_gate import derive_label, read_confidence
from utils.api_url import build_api_url
from utils.http import auth_headers, decode_json_body, error_message_for_status

logger = logging.getLogger(__name__)

TRAINING_SAMPLES_PATH = "/api/training/samples"
DEFAULT_TIMEOUT_SEC = 30.0


class TrainingSampleService:
    """Posts confirmed labels back to the recognition backend for retraining."""

    def __init__(
        self,
        base_url: str,
        auth_token: str = "",
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        app_version: str = "cli-dev",
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url
        self._auth_token = auth_token
        self._timeout = timeout_sec
        self._app_version = app_version
        self._session = session

    def submit(
        self,
        *,
        final_label: str,
        user_id: str = "",
        image_base64: str = "",
        predicted_label: str = "",
        predicted_confidence: Any = None,
        source_engine: str = "",
        source_runtime: str = "",
        taxonomy_leaf: str | None = None,
        user_confirmed: bool = True,
    ) -> dict[str, Any] | None:
        """Returns the server response, or None without calling out when final_label is blank."""
        sample = TrainingSampleSchema(
            user_id=(user_id or "").strip() or "anonymous",
            image_base64=(image_base64 or "").strip(),
            predicted_label=(predicted_label or "").strip(),
            predicted_confidence=predicted_confidence,
            final_label=final_label or "",
            taxonomy_leaf=taxonomy_leaf,
            source_engine=(source_engine or "").strip() or "unknown",
            source_runtime=(source_runtime or "").strip() or "unknown",
            device_platform=sys.platform,
            app_version=self._app_version,
            user_confirmed=bool(user_confirmed),
        )
        if not sample.final_label:
            return None
        url = build_api_url(self._base_url, TRAINING_SAMPLES_PATH)
        poster = self._session.post if self._session is not None else requests.post
        try:
            resp = poster(
                url,
                json=sample.model_dump(by_alias=True, exclude_none=True),
                headers=auth_headers(self._auth_token),
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise BackendConnectionError(f"Network request failed: {e}") from e
        status = int(resp.status_code)
        data = decode_json_body(resp)
        if not 200 <= status < 300:
            raise TrainingSampleError(
                error_message_for_status(data, status, generic="Training sample save failed"), status
            )
        logger.info("Training sample saved (label=%s, engine=%s)", sample.final_label, sample.source_engine)
        return data if isinstance(data, dict) else {}

    def submit_for_outcome(
        self,
        outcome: RecognitionOutcome,
        final_label: str,
        *,
        image_base64: str = "",
        user_id: str = "",
    ) -> dict[str, Any] | None:
        """Convenience: prediction fields taken from a dispatch outcome."""
        return self.submit(
            final_label=final_label,
            user_id=user_id,
            image_base64=image_base64,
            predicted_label=derive_label(outcome.data),
            predicted_confidence=read_confidence(outcome.data),
            source_engine=outcome.runtime.engine,
            source_runtime=outcome.runtime.source or outcome.runtime.endpoint or "",
        )
