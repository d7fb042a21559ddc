"""Dispatch pipeline: confidence gate, engine selector, offline retry queue."""

from pipeline.confidence_gate import ConfidenceGate, read_confidence, build_fallback_request
from pipeline.dispatcher import RecognitionDispatcher, create_dispatcher
from pipeline.offline_queue import OfflineRetryQueue, is_likely_offline

__all__ = [
    "ConfidenceGate",
    "read_confidence",
    "build_fallback_request",
    "RecognitionDispatcher",
    "create_dispatcher",
    "OfflineRetryQueue",
    "is_likely_offline",
]
