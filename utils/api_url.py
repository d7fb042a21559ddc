"""API URL joining for the recognition backend."""

from __future__ import annotations


def normalize_base_url(base_url: str | None) -> str:
    return str(base_url or "").strip().rstrip("/")


def build_api_url(base_url: str | None, path: str) -> str:
    """
    Join base and path. Empty base returns the bare path; a base already ending in /api
    does not get a second /api segment.
    """
    base = normalize_base_url(base_url)
    normalized_path = path if path.startswith("/") else f"/{path}"
    if not base:
        return normalized_path
    if base.endswith("/api") and normalized_path.startswith("/api/"):
        return f"{base}{normalized_path[4:]}"
    return f"{base}{normalized_path}"
