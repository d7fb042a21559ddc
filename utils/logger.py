"""
Logging for the dispatch layer. Dispatch decisions carry fixed extra fields
(decision, engine, confidence, threshold, error_code) that are rendered as a
` key=value` suffix on stderr, so stdout stays clean for JSON results.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

DECISION_FIELDS = ("decision", "engine", "confidence", "threshold", "error_code")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s%(decision_suffix)s"

# Decision tags
DECISION_ON_DEVICE_FAILED = "on-device-failed"
DECISION_CONSULT_BACKEND = "consult-backend"
DECISION_DEGRADE = "degrade"
DECISION_REJECT = "reject"


def _render(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


class DecisionFieldsFilter(logging.Filter):
    """Sets record.decision_suffix from whichever decision fields the record carries."""

    def filter(self, record: logging.LogRecord) -> bool:
        parts = [
            f"{name}={_render(getattr(record, name))}"
            for name in DECISION_FIELDS
            if getattr(record, name, None) is not None
        ]
        record.decision_suffix = f" [{' '.join(parts)}]" if parts else ""
        return True


def setup_logging(level: str = "INFO", stream: TextIO | None = None) -> None:
    """Configure the root logger (replacing earlier handlers). Safe to call from main or tests."""
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    handler.addFilter(DecisionFieldsFilter())
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )


def log_decision(
    logger: logging.Logger,
    level: int,
    decision: str,
    msg: str,
    *,
    engine: str | None = None,
    confidence: float | None = None,
    threshold: float | None = None,
    error_code: str | int | None = None,
) -> None:
    """One dispatch decision. Unset fields are left off the record."""
    fields = {
        "decision": decision,
        "engine": engine,
        "confidence": confidence,
        "threshold": threshold,
        "error_code": error_code,
    }
    logger.log(level, msg, extra={k: v for k, v in fields.items() if v is not None})
