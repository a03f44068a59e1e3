"""Pure decoding of raw transport frames into typed protocol messages."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeAlias

from pydantic import TypeAdapter, ValidationError

from stitch.envelope import DEFAULT_PREVIEW_LIMIT, load_frame, preview_of
from stitch.errors import DecodeError, SessionMismatchError
from stitch.protocol.models import TURN_EVENT_TYPES, TurnEvent, Upsert
from stitch.types import FrameData, RawFrame

UPSERT_FRAME = "session:upsert"
TURN_FRAME = "session:turn"
HISTORY_FRAME = "session:history"

_UPSERT_ADAPTER: TypeAdapter[Upsert] = TypeAdapter(Upsert)
_TURN_ADAPTER: TypeAdapter[TurnEvent] = TypeAdapter(TurnEvent)


@dataclass(frozen=True)
class UpsertFrame:
    """One item upsert addressed to a session."""

    session_id: str
    upsert: Upsert


@dataclass(frozen=True)
class TurnFrame:
    """One turn lifecycle event addressed to a session."""

    session_id: str
    event: TurnEvent


@dataclass(frozen=True)
class HistoryFrame:
    """A batch of upserts replayed in list order."""

    session_id: str
    entries: tuple[Upsert, ...]


Frame: TypeAlias = UpsertFrame | TurnFrame | HistoryFrame


def describe_validation_error(exc: ValidationError, limit: int = 3) -> str:
    """Summarize a pydantic validation error as `field: message` pairs."""

    parts: list[str] = []
    for error in exc.errors(include_url=False)[:limit]:
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        parts.append(f"{location}: {error['msg']}")
    remaining = exc.error_count() - limit
    if remaining > 0:
        parts.append(f"(+{remaining} more)")
    return "; ".join(parts)


def decode_upsert(data: Any, *, preview_limit: int = DEFAULT_PREVIEW_LIMIT) -> Upsert:
    """Validate one upsert payload.

    Raises:
        DecodeError: If the payload has an unknown type/status or misses required fields.
    """
    if not isinstance(data, Mapping):
        raise DecodeError("upsert payload must be an object", preview_of(data, preview_limit))
    try:
        return _UPSERT_ADAPTER.validate_python(dict(data))
    except ValidationError as exc:
        raise DecodeError(f"invalid upsert: {describe_validation_error(exc)}", preview_of(data, preview_limit)) from exc
    except RecursionError as exc:
        raise DecodeError("upsert payload is nested too deeply", preview_of(data, preview_limit)) from exc


def decode_turn_event(data: Any, *, preview_limit: int = DEFAULT_PREVIEW_LIMIT) -> TurnEvent:
    """Validate one turn lifecycle event.

    Raises:
        DecodeError: If the event is malformed.
    """
    if not isinstance(data, Mapping):
        raise DecodeError("turn event must be an object", preview_of(data, preview_limit))
    try:
        return _TURN_ADAPTER.validate_python(dict(data))
    except ValidationError as exc:
        raise DecodeError(f"invalid turn event: {describe_validation_error(exc)}", preview_of(data, preview_limit)) from exc
    except RecursionError as exc:
        raise DecodeError("turn event is nested too deeply", preview_of(data, preview_limit)) from exc


def decode_frame(raw: RawFrame, *, preview_limit: int = DEFAULT_PREVIEW_LIMIT) -> Frame:
    """Decode one raw frame into an upsert, turn or history frame.

    Args:
        raw: JSON text, JSON bytes or an already-parsed mapping.
        preview_limit: Maximum length of the frame preview attached to failures.

    Returns:
        The typed frame.

    Raises:
        DecodeError: If the frame is malformed. No other side effects happen.
    """
    frame = load_frame(raw, preview_limit=preview_limit)
    frame_type = frame.get("type")
    decoder: Callable[[FrameData, int], Frame] | None = None
    if isinstance(frame_type, str):
        decoder = _FRAME_DECODERS.get(frame_type)
        if decoder is None and frame_type in TURN_EVENT_TYPES:
            decoder = _decode_bare_turn
    if decoder is None:
        raise DecodeError(f"unknown frame type {frame_type!r}", preview_of(frame, preview_limit))
    return decoder(frame, preview_limit)


def _envelope_session(frame: FrameData, preview_limit: int) -> str:
    session_id = frame.get("sessionId")
    if not isinstance(session_id, str) or not session_id:
        raise DecodeError("frame is missing sessionId", preview_of(frame, preview_limit))
    return session_id


def _check_same_session(envelope_session: str, payload_session: str, frame: FrameData, preview_limit: int) -> None:
    if envelope_session != payload_session:
        raise SessionMismatchError(envelope_session, payload_session, preview_of(frame, preview_limit))


def _decode_upsert_frame(frame: FrameData, preview_limit: int) -> UpsertFrame:
    session_id = _envelope_session(frame, preview_limit)
    upsert = decode_upsert(frame.get("payload"), preview_limit=preview_limit)
    _check_same_session(session_id, upsert.session_id, frame, preview_limit)
    return UpsertFrame(session_id=session_id, upsert=upsert)


def _decode_turn_frame(frame: FrameData, preview_limit: int) -> TurnFrame:
    session_id = _envelope_session(frame, preview_limit)
    event = decode_turn_event(frame.get("payload"), preview_limit=preview_limit)
    _check_same_session(session_id, event.session_id, frame, preview_limit)
    return TurnFrame(session_id=session_id, event=event)


def _decode_bare_turn(frame: FrameData, preview_limit: int) -> TurnFrame:
    event = decode_turn_event(frame, preview_limit=preview_limit)
    return TurnFrame(session_id=event.session_id, event=event)


def _decode_history_frame(frame: FrameData, preview_limit: int) -> HistoryFrame:
    session_id = _envelope_session(frame, preview_limit)
    raw_entries = frame.get("entries")
    if not isinstance(raw_entries, list):
        raise DecodeError("history frame requires an entries list", preview_of(frame, preview_limit))
    entries: list[Upsert] = []
    for index, raw_entry in enumerate(raw_entries):
        try:
            entry = decode_upsert(raw_entry, preview_limit=preview_limit)
        except DecodeError as exc:
            raise DecodeError(f"history entry {index}: {exc.reason}", exc.preview) from exc
        _check_same_session(session_id, entry.session_id, frame, preview_limit)
        entries.append(entry)
    return HistoryFrame(session_id=session_id, entries=tuple(entries))


_FRAME_DECODERS: dict[str, Callable[[FrameData, int], Frame]] = {
    UPSERT_FRAME: _decode_upsert_frame,
    TURN_FRAME: _decode_turn_frame,
    HISTORY_FRAME: _decode_history_frame,
}
