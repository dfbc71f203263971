# app/transport/responses.py
"""
Response helpers shared by the relay routes.

All JSON bodies are pretty-printed (2-space indent) and use the
``{status: true, result}`` / ``{status: false, error}`` envelope.
"""
from __future__ import annotations

import json
from typing import Any

from fastapi import Response

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def pretty_json(content: Any, status_code: int = 200, headers: dict | None = None) -> Response:
    return Response(
        content=json.dumps(content, indent=2, ensure_ascii=False),
        status_code=status_code,
        media_type="application/json",
        headers=headers,
    )


def success(result: dict, status_code: int = 200) -> Response:
    return pretty_json({"status": True, "result": result}, status_code)


def failure(error: str, status_code: int, request_id: str | None = None) -> Response:
    body: dict[str, Any] = {"status": False, "error": error}
    if request_id:
        body["request_id"] = request_id
    return pretty_json(body, status_code)


def inline_media(data: bytes, content_type: str, filename: str, headers: dict | None = None) -> Response:
    return Response(
        content=data,
        status_code=200,
        media_type=content_type,
        headers={
            "Content-Disposition": f'inline; filename="{filename}"',
            **(headers or {}),
        },
    )


def parse_flag(value: str | None, default: bool) -> bool:
    """Query-string boolean; anything unrecognised keeps the default."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


def result_url(public_base_url: str, slug: str, record_id: str) -> str:
    return f"{public_base_url.rstrip('/')}/api/result/{slug}/{record_id}"
