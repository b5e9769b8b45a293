from __future__ import annotations

import json
from typing import Any


class HAApiError(Exception):
    """Error raised by the Home Assistant facing services.

    Carries the HTTP status the caller should receive, a short title in
    ``error`` and an optional longer ``details`` string.
    """

    def __init__(self, *, status_code: int, error: str, details: str | None = None) -> None:
        self.status_code = status_code
        self.error = error
        self.details = details
        super().__init__(f"{error}: {details}" if details else error)

    def to_error_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"error": self.error}
        if self.details:
            detail["details"] = self.details
        return detail


def missing_credentials_error() -> HAApiError:
    return HAApiError(
        status_code=500,
        error="Server configuration error: Missing Home Assistant credentials.",
    )


def extract_upstream_message(text: str, status_code: int) -> str:
    """Return the most useful message from an upstream error body.

    Home Assistant answers errors with ``{"message": ...}`` most of the time,
    but proxies in front of it often return plain text or HTML.
    """
    fallback = f"Home Assistant API returned status {status_code}"
    body = (text or "").strip()
    if not body:
        return fallback
    try:
        parsed = json.loads(body)
    except ValueError:
        return body
    if isinstance(parsed, dict):
        message = parsed.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return body
