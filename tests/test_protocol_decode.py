from __future__ import annotations

import json
from datetime import UTC

import pytest

from stitch.errors import DecodeError, SessionMismatchError
from stitch.protocol import (
    HistoryFrame,
    ItemType,
    MessageUpsert,
    Origin,
    ToolCallUpsert,
    TurnComplete,
    TurnFrame,
    TurnStarted,
    UpsertFrame,
    UpsertStatus,
    decode_frame,
    decode_upsert,
    split_session_id,
)


def test_decode_message_upsert_frame(frames) -> None:
    frame = decode_frame(frames.message("msg-1", "create", "Hello"))

    assert isinstance(frame, UpsertFrame)
    assert frame.session_id == "claude-code:session-render"
    upsert = frame.upsert
    assert isinstance(upsert, MessageUpsert)
    assert upsert.item_type is ItemType.MESSAGE
    assert upsert.status is UpsertStatus.CREATE
    assert upsert.content == "Hello"
    assert upsert.origin is None
    assert upsert.emitted_at.tzinfo is not None


def test_decode_accepts_json_text_and_bytes(frames) -> None:
    text = json.dumps(frames.message("msg-1", "update", "Hi"))

    from_text = decode_frame(text)
    from_bytes = decode_frame(text.encode("utf-8"))

    assert from_text == from_bytes
    assert from_text.upsert.content == "Hi"


def test_naive_timestamps_are_read_as_utc() -> None:
    upsert = decode_upsert(
        {
            "type": "message",
            "sessionId": "claude-code:s1",
            "turnId": "t1",
            "itemId": "m1",
            "sourceTimestamp": "2026-01-01T12:00:00",
            "emittedAt": "2026-01-01T12:00:01",
            "status": "create",
            "content": "",
        }
    )

    assert upsert.emitted_at.tzinfo == UTC
    assert upsert.source_timestamp.tzinfo == UTC


def test_tool_call_create_defaults_arguments_but_update_does_not(frames) -> None:
    created = decode_frame(frames.tool("tool-1", "create", call_id="read_file", content="running")).upsert
    updated = decode_frame(frames.tool("tool-1", "update", call_id="read_file", at=1)).upsert

    assert isinstance(created, ToolCallUpsert)
    assert created.tool_arguments == {}
    assert created.content == "running"
    assert updated.tool_arguments is None


def test_decode_turn_frame_and_bare_turn_event(frames) -> None:
    wrapped = decode_frame(frames.turn_started())
    bare = decode_frame(frames.turn_started()["payload"])

    assert isinstance(wrapped, TurnFrame)
    assert isinstance(wrapped.event, TurnStarted)
    assert wrapped == bare
    assert wrapped.event.model_id == "claude-sonnet"


def test_decode_turn_complete_with_usage(frames) -> None:
    frame = decode_frame(
        frames.turn_complete(usage={"inputTokens": 120, "outputTokens": 40, "cacheReadInputTokens": 10})
    )

    event = frame.event
    assert isinstance(event, TurnComplete)
    assert event.status == "completed"
    assert event.usage is not None
    assert event.usage.input_tokens == 120
    assert event.usage.cache_read_input_tokens == 10
    assert event.usage.cache_creation_input_tokens is None


def test_decode_history_frame_keeps_entry_order(frames) -> None:
    frame = decode_frame(
        frames.history(
            frames.payload("msg-1", "complete", content="first"),
            frames.payload("msg-2", "complete", content="second", at=1),
        )
    )

    assert isinstance(frame, HistoryFrame)
    assert [entry.item_id for entry in frame.entries] == ["msg-1", "msg-2"]


def test_history_failure_names_the_entry(frames) -> None:
    with pytest.raises(DecodeError) as exc_info:
        decode_frame(
            frames.history(
                frames.payload("msg-1", "complete", content="ok"),
                frames.payload("msg-2", "bogus", content="bad"),
            )
        )

    assert exc_info.value.reason.startswith("history entry 1:")


@pytest.mark.parametrize(
    ("raw", "reason"),
    [
        ("{not json", "invalid JSON"),
        ("[1, 2, 3]", "frame must be a JSON object"),
        ({"type": "session:unknown", "sessionId": "a:b"}, "unknown frame type"),
        ({"type": ["session:upsert"], "sessionId": "a:b"}, "unknown frame type"),
        ({"type": "session:upsert", "payload": {}}, "frame is missing sessionId"),
        ({"type": "session:history", "sessionId": "a:b", "entries": "nope"}, "history frame requires an entries list"),
    ],
)
def test_malformed_frames_raise_decode_error(raw, reason) -> None:
    with pytest.raises(DecodeError) as exc_info:
        decode_frame(raw)

    assert exc_info.value.reason.startswith(reason)


def test_unknown_status_is_a_decode_failure(frames) -> None:
    with pytest.raises(DecodeError, match="invalid upsert"):
        decode_frame(frames.message("msg-1", "streaming", "x"))


def test_unknown_item_type_is_a_decode_failure(frames) -> None:
    with pytest.raises(DecodeError, match="invalid upsert"):
        decode_frame(frames.upsert("x-1", "create", type="image", content="x"))


def test_error_status_requires_error_code(frames) -> None:
    with pytest.raises(DecodeError, match="errorCode is required"):
        decode_frame(frames.message("msg-1", "error", "partial"))

    frame = decode_frame(frames.message("msg-1", "error", "partial", errorCode="RATE_LIMIT", errorMessage="slow down"))
    assert frame.upsert.error_code == "RATE_LIMIT"


def test_payload_session_must_match_envelope(frames) -> None:
    raw = frames.message("msg-1", "create", "x")
    raw["payload"]["sessionId"] = "claude-code:other"

    with pytest.raises(SessionMismatchError) as exc_info:
        decode_frame(raw)

    assert exc_info.value.expected == "claude-code:session-render"
    assert exc_info.value.actual == "claude-code:other"


def test_session_id_must_name_provider_kind(frames) -> None:
    raw = frames.message("msg-1", "create", "x")
    raw["sessionId"] = raw["payload"]["sessionId"] = "no-provider"

    with pytest.raises(DecodeError, match="sessionId"):
        decode_frame(raw)
    assert split_session_id("codex:abc:def") == ("codex", "abc:def")


def test_decode_error_preview_is_bounded() -> None:
    with pytest.raises(DecodeError) as exc_info:
        decode_frame("x" * 1000, preview_limit=40)

    assert len(exc_info.value.preview) <= 43
    assert exc_info.value.preview.endswith("...")


def test_explicit_origin_is_decoded(frames) -> None:
    upsert = decode_frame(frames.message("msg-1", "create", "Hi", origin="user")).upsert

    assert upsert.origin is Origin.USER


def test_deeply_nested_frame_text_is_a_decode_failure() -> None:
    depth = 100_000
    raw = '{"type":"session:upsert","sessionId":"claude-code:s1","payload":' + "[" * depth + "]" * depth + "}"

    with pytest.raises(DecodeError, match="nested too deeply"):
        decode_frame(raw)


def test_deeply_nested_tool_arguments_are_a_decode_failure(frames) -> None:
    arguments: dict = {}
    cursor = arguments
    for _ in range(100_000):
        cursor["next"] = {}
        cursor = cursor["next"]

    with pytest.raises(DecodeError):
        decode_frame(frames.tool("tool-1", "create", toolArguments=arguments))
