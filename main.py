"""
Recognition dispatch: command-line entry point.

Commands:
  recognize      Identify an item by label and/or image; prints {"data", "runtime"} as JSON.
  retry-queued   Retry the oldest request captured while offline (or one by --id).
  queue-status   Show pending offline requests.
  confirm        Submit a user-confirmed label as a training sample.

Usage:
  python main.py recognize [--label TEXT] [--image PATH] [--engine auto|on-device|backend] [--queue-offline]
  python main.py retry-queued [--id ID]
  python main.py queue-status
  python main.py confirm --final-label TEXT [--predicted-label TEXT] [--predicted-confidence X] [--image PATH]

- Settings come from config.yaml, .env and environment (API_BASE_URL, API_AUTH_TOKEN, ONDEVICE_*, ...).
- With --queue-offline, a likely-offline failure is written to the offline queue file for a later retry.
- Exit codes: 0 success, 1 recognition failed, 2 bad input.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from core.exceptions import ConfigError, RecognitionError
from core.models import EnginePreference, RecognitionOutcome
from core.schema import RecognitionRequest
from pipeline.dispatcher import RecognitionDispatcher, create_dispatcher
from pipeline.offline_queue import OfflineRetryQueue, queue_age_seconds
from services.training_sample_service import TrainingSampleService
from utils.config import AppConfig, load_config
from utils.image_utils import image_payload_from_path
from utils.logger import setup_logging

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BAD_INPUT = 2


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _report_failure(err: Exception) -> None:
    code = getattr(err, "code", None)
    suffix = f" [{code}]" if code is not None else ""
    print(f"Could not analyze right now: {err}{suffix}", file=sys.stderr)


def build_request(args: argparse.Namespace) -> RecognitionRequest:
    """Recognition payload from CLI flags. Image is re-encoded as JPEG base64."""
    image_data = image_payload_from_path(args.image) if args.image else None
    return RecognitionRequest(
        detected_label=args.label or "",
        image_data=image_data,
        confidence_hint=args.confidence_hint,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_recognize(args: argparse.Namespace, config: AppConfig, dispatcher: RecognitionDispatcher) -> int:
    try:
        request = build_request(args)
    except (FileNotFoundError, OSError) as e:
        print(f"Cannot read image: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT
    try:
        outcome = await dispatcher.recognize(
            request,
            base_url=config.api_base_url,
            preferred_engine=args.engine,
            auth_token=config.auth_token,
        )
    except RecognitionError as e:
        if args.queue_offline:
            queue = OfflineRetryQueue.load(
                config.offline_queue_path, dispatcher, capacity=config.offline_queue_capacity
            )
            if queue.capture(e, request, args.engine) is not None:
                queue.save(config.offline_queue_path)
                print("You appear offline. Scan request queued.", file=sys.stderr)
        _report_failure(e)
        return EXIT_FAILED
    _print_json(outcome.to_dict())
    return EXIT_OK


async def run_retry_queued(args: argparse.Namespace, config: AppConfig, dispatcher: RecognitionDispatcher) -> int:
    queue = OfflineRetryQueue.load(config.offline_queue_path, dispatcher, capacity=config.offline_queue_capacity)
    if not len(queue):
        print("Offline queue is empty.", file=sys.stderr)
        return EXIT_OK
    try:
        if args.id:
            outcome: RecognitionOutcome | None = await queue.retry(
                args.id, base_url=config.api_base_url, auth_token=config.auth_token
            )
        else:
            outcome = await queue.retry_oldest(base_url=config.api_base_url, auth_token=config.auth_token)
    except KeyError:
        print(f"No queued request with id {args.id}", file=sys.stderr)
        return EXIT_BAD_INPUT
    except RecognitionError as e:
        queue.save(config.offline_queue_path)
        print(f"Retry failed: {e}", file=sys.stderr)
        return EXIT_FAILED
    queue.save(config.offline_queue_path)
    print(f"Queued scan processed successfully. Pending: {len(queue)}", file=sys.stderr)
    if outcome is not None:
        _print_json(outcome.to_dict())
    return EXIT_OK


def run_queue_status(config: AppConfig, dispatcher: RecognitionDispatcher) -> int:
    queue = OfflineRetryQueue.load(config.offline_queue_path, dispatcher, capacity=config.offline_queue_capacity)
    oldest = queue.oldest()
    _print_json(
        {
            "pending": len(queue),
            "capacity": queue.capacity,
            "oldestQueuedAt": oldest.created_at if oldest else None,
            "oldestAgeSec": round(queue_age_seconds(oldest), 1) if oldest else None,
            "entries": [
                {**e.to_dict(), "payload": {k: v for k, v in e.payload.items() if k != "imageData"}}
                for e in queue.entries()
            ],
        }
    )
    return EXIT_OK


def run_confirm(args: argparse.Namespace, config: AppConfig) -> int:
    service = TrainingSampleService(config.api_base_url, config.auth_token)
    try:
        image_b64 = image_payload_from_path(args.image) if args.image else ""
    except (FileNotFoundError, OSError) as e:
        print(f"Cannot read image: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT
    try:
        saved = service.submit(
            final_label=args.final_label,
            user_id=args.user_id,
            image_base64=image_b64,
            predicted_label=args.predicted_label,
            predicted_confidence=args.predicted_confidence,
            source_engine=args.source_engine,
        )
    except RecognitionError as e:
        _report_failure(e)
        return EXIT_FAILED
    if saved is None:
        print("Final label is empty; nothing submitted.", file=sys.stderr)
        return EXIT_BAD_INPUT
    _print_json(saved)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Recognition dispatch: on-device first, backend fallback.")
    parser.add_argument("--config", default=None, help="YAML config file (default: config.yaml if present)")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    rec = sub.add_parser("recognize", help="Identify an item")
    rec.add_argument("--label", "-l", default="", help="Detected/declared label")
    rec.add_argument("--image", "-i", default=None, help="Image file to send as imageData")
    rec.add_argument("--confidence-hint", type=float, default=None, help="Caller confidence hint (0..1)")
    rec.add_argument(
        "--engine",
        "-e",
        default=EnginePreference.AUTO.value,
        choices=[e.value for e in EnginePreference],
        help="Engine preference (default: auto)",
    )
    rec.add_argument("--queue-offline", action="store_true", help="Queue the request if the network looks down")

    retry = sub.add_parser("retry-queued", help="Retry the oldest queued request")
    retry.add_argument("--id", default=None, help="Retry a specific queued request")

    sub.add_parser("queue-status", help="Show the offline queue")

    confirm = sub.add_parser("confirm", help="Submit a confirmed label as a training sample")
    confirm.add_argument("--final-label", required=True)
    confirm.add_argument("--predicted-label", default="")
    confirm.add_argument("--predicted-confidence", default=None)
    confirm.add_argument("--source-engine", default="")
    confirm.add_argument("--user-id", default="")
    confirm.add_argument("--image", default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(Path(args.config) if args.config else None)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT
    if args.log_level:
        config = config.with_overrides(log_level=args.log_level)
    setup_logging(config.log_level)

    if args.command == "confirm":
        return run_confirm(args, config)

    dispatcher = create_dispatcher(config)
    if args.command == "recognize":
        return asyncio.run(run_recognize(args, config, dispatcher))
    if args.command == "retry-queued":
        return asyncio.run(run_retry_queued(args, config, dispatcher))
    if args.command == "queue-status":
        return run_queue_status(config, dispatcher)
    log.error("Unknown command: %s", args.command)
    return EXIT_BAD_INPUT


if __name__ == "__main__":
    sys.exit(main())
