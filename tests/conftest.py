from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from stitch.protocol import HISTORY_FRAME, TURN_FRAME, UPSERT_FRAME

SESSION = "claude-code:session-render"
BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


def stamp(offset: float = 0) -> str:
    return (BASE_TIME + timedelta(seconds=offset)).isoformat().replace("+00:00", "Z")


class FrameFactory:
    """Builds wire frames for one session, with timestamps relative to BASE_TIME."""

    def __init__(self, session_id: str = SESSION, turn_id: str = "turn-1") -> None:
        self.session_id = session_id
        self.turn_id = turn_id

    def payload(
        self,
        item_id: str,
        status: str,
        *,
        type: str = "message",
        at: float = 0,
        turn_id: str | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        return {
            "type": type,
            "sessionId": self.session_id,
            "turnId": turn_id or self.turn_id,
            "itemId": item_id,
            "sourceTimestamp": stamp(at),
            "emittedAt": stamp(at),
            "status": status,
            **fields,
        }

    def upsert(self, item_id: str, status: str, **kwargs: Any) -> dict[str, Any]:
        return {"type": UPSERT_FRAME, "sessionId": self.session_id, "payload": self.payload(item_id, status, **kwargs)}

    def message(self, item_id: str, status: str, content: str, **kwargs: Any) -> dict[str, Any]:
        return self.upsert(item_id, status, content=content, **kwargs)

    def thinking(self, item_id: str, status: str, content: str, **kwargs: Any) -> dict[str, Any]:
        return self.upsert(item_id, status, type="thinking", content=content, **kwargs)

    def tool(self, item_id: str, status: str, call_id: str = "call-1", **kwargs: Any) -> dict[str, Any]:
        return self.upsert(item_id, status, type="tool_call", callId=call_id, **kwargs)

    def turn(self, event: dict[str, Any]) -> dict[str, Any]:
        return {"type": TURN_FRAME, "sessionId": self.session_id, "payload": event}

    def turn_started(self, turn_id: str | None = None, **kwargs: Any) -> dict[str, Any]:
        event = {
            "type": "turn_started",
            "sessionId": self.session_id,
            "turnId": turn_id or self.turn_id,
            "modelId": "claude-sonnet",
            "providerId": "anthropic",
            **kwargs,
        }
        return self.turn(event)

    def turn_complete(self, status: str = "completed", turn_id: str | None = None, **kwargs: Any) -> dict[str, Any]:
        event = {
            "type": "turn_complete",
            "sessionId": self.session_id,
            "turnId": turn_id or self.turn_id,
            "status": status,
            **kwargs,
        }
        return self.turn(event)

    def turn_error(
        self,
        code: str = "PROVIDER_ERROR",
        message: str = "upstream failed",
        turn_id: str | None = None,
    ) -> dict[str, Any]:
        event = {
            "type": "turn_error",
            "sessionId": self.session_id,
            "turnId": turn_id or self.turn_id,
            "errorCode": code,
            "errorMessage": message,
        }
        return self.turn(event)

    def history(self, *payloads: dict[str, Any]) -> dict[str, Any]:
        return {"type": HISTORY_FRAME, "sessionId": self.session_id, "entries": list(payloads)}


@pytest.fixture
def frames() -> FrameFactory:
    return FrameFactory()


@pytest.fixture
def make_frames() -> type[FrameFactory]:
    return FrameFactory
