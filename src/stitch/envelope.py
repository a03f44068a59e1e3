"""Utilities for reading raw transport frames."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from stitch.errors import DecodeError
from stitch.types import FrameData, RawFrame

DEFAULT_PREVIEW_LIMIT = 200


def preview_of(raw: Any, limit: int = DEFAULT_PREVIEW_LIMIT) -> str:
    """Render a bounded one-line preview of a raw frame for diagnostics."""

    if isinstance(raw, bytes):
        text = raw.decode("utf-8", errors="replace")
    elif isinstance(raw, str):
        text = raw
    else:
        try:
            text = json.dumps(raw, ensure_ascii=False, default=str, sort_keys=True)
        except (TypeError, ValueError, RecursionError):
            text = f"<{type(raw).__name__}>"
    text = " ".join(text.split())
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def load_frame(raw: RawFrame, *, preview_limit: int = DEFAULT_PREVIEW_LIMIT) -> FrameData:
    """Turn JSON text, JSON bytes or a mapping into a mutable frame mapping."""

    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodeError(f"invalid JSON: {exc}", preview_of(raw, preview_limit)) from exc
        except RecursionError as exc:
            raise DecodeError("frame is nested too deeply", preview_of(raw, preview_limit)) from exc
        if not isinstance(data, dict):
            raise DecodeError("frame must be a JSON object", preview_of(raw, preview_limit))
        return data
    raise DecodeError(f"unsupported frame type {type(raw).__name__}", preview_of(raw, preview_limit))


def session_of(raw: RawFrame) -> str | None:
    """Best-effort session id lookup used by callers that route frames."""

    try:
        frame = load_frame(raw)
    except DecodeError:
        return None
    session_id = frame.get("sessionId", frame.get("session_id"))
    if session_id is None:
        payload = frame.get("payload")
        if isinstance(payload, Mapping):
            session_id = payload.get("sessionId", payload.get("session_id"))
    return str(session_id) if session_id is not None else None
