"""Shared utilities: config, logger, timeout guard, URL building, image encoding."""

from utils.config import AppConfig, load_config
from utils.logger import setup_logging, log_decision
from utils.timeout import with_timeout
from utils.api_url import build_api_url
from utils.image_utils import image_payload_from_path

__all__ = [
    "AppConfig",
    "load_config",
    "setup_logging",
    "log_decision",
    "with_timeout",
    "build_api_url",
    "image_payload_from_path",
]
