"""Shared HTTP response helpers for backend calls (requests)."""

from __future__ import annotations

from typing import Any

import requests


def decode_json_body(resp: requests.Response) -> Any:
    """Body as JSON, or None when it is empty or not JSON. Never raises."""
    try:
        return resp.json()
    except ValueError:
        return None


def server_message(data: Any) -> str:
    """Server-supplied `message` field, trimmed; empty when absent."""
    if not isinstance(data, dict):
        return ""
    return str(data.get("message") or "").strip()


def error_message_for_status(data: Any, status: int, generic: str = "Request failed") -> str:
    """Prefer the server message; otherwise '<generic> (<status>)'."""
    return server_message(data) or f"{generic} ({status})"


def auth_headers(auth_token: str | None) -> dict[str, str]:
    h: dict[str, str] = {"Content-Type": "application/json"}
    token = (auth_token or "").strip()
    if token:
        h["Authorization"] = f"Bearer {token}"
    return h
