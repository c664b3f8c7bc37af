"""Readable messages from the several error envelopes FAL returns."""

from __future__ import annotations

import json
from typing import Any, Mapping

TRUNCATE_AT = 500


def format_fal_error_body(body: bytes) -> str:
    """Turn a raw FAL error body into a short human-readable message."""
    if not body:
        return "(empty response body)"

    try:
        doc = json.loads(body)
    except ValueError:
        doc = None
    if isinstance(doc, dict):
        message = extract_fal_message(doc)
        if message:
            return message

    if len(body) > TRUNCATE_AT:
        return body[:TRUNCATE_AT].decode("utf-8", errors="replace") + "... (truncated)"
    return body.decode("utf-8", errors="replace")


def extract_fal_message(doc: Mapping[str, Any]) -> str:
    """Return the best message from a parsed error object, or ''."""
    err = doc.get("error")
    if isinstance(err, Mapping):
        message = _str(err.get("message"))
        if message:
            kind = _str(err.get("type"))
            request_id = _str(err.get("request_id"))
            out = f"{kind}: {message}" if kind else message
            if request_id:
                out += f" (request_id: {request_id})"
            return out

    message = doc.get("message")
    if isinstance(message, str) and message:
        return message

    if "detail" in doc:
        detail_message = extract_fastapi_detail(doc["detail"])
        if detail_message:
            return detail_message

    return ""


def extract_fastapi_detail(detail: Any) -> str:
    """Format a FastAPI 'detail' value, either a string or a list of errors."""
    if isinstance(detail, str):
        return detail
    if not isinstance(detail, list):
        return ""

    messages = []
    for item in detail:
        if not isinstance(item, Mapping):
            continue
        message = _str(item.get("msg")) or _str(item.get("message"))
        if not message:
            continue
        loc = item.get("loc")
        if isinstance(loc, list):
            # Integer indices add noise; keep only named path components.
            parts = [part for part in loc if isinstance(part, str)]
            if parts:
                message = f"{message}: {'.'.join(parts)}"
        messages.append(message)
    return "; ".join(messages)


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""