"""Shared request utilities for API handlers."""

import base64
import json
import logging
from typing import Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)


def get_origin(event: dict) -> Optional[str]:
    """Extract Origin header from request (API Gateway may lowercase headers)."""
    headers = event.get("headers") or {}
    return headers.get("origin") or headers.get("Origin")


def get_header(event: dict, name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def get_raw_body(event: dict) -> str:
    """Return the request body as text, decoding base64 payloads."""
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")
    return body


def parse_json_body(event: dict) -> dict:
    """
    Parse a JSON object request body.

    Raises:
        ValidationError: body is not valid JSON or not an object
    """
    try:
        body = json.loads(get_raw_body(event) or "{}")
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        raise ValidationError("Request body must be valid JSON", code="invalid_json")

    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", code="invalid_json")

    return body
