"""Wire protocol: upserts, turn events and frame decoding."""

from .decode import (
    HISTORY_FRAME,
    TURN_FRAME,
    UPSERT_FRAME,
    Frame,
    HistoryFrame,
    TurnFrame,
    UpsertFrame,
    decode_frame,
    decode_turn_event,
    decode_upsert,
)
from .models import (
    ItemType,
    MessageUpsert,
    Origin,
    ThinkingUpsert,
    ToolCallUpsert,
    TurnComplete,
    TurnError,
    TurnEvent,
    TurnStarted,
    Upsert,
    UpsertStatus,
    Usage,
    split_session_id,
)

__all__ = [
    "HISTORY_FRAME",
    "TURN_FRAME",
    "UPSERT_FRAME",
    "Frame",
    "HistoryFrame",
    "ItemType",
    "MessageUpsert",
    "Origin",
    "ThinkingUpsert",
    "ToolCallUpsert",
    "TurnComplete",
    "TurnError",
    "TurnEvent",
    "TurnFrame",
    "TurnStarted",
    "Upsert",
    "UpsertFrame",
    "UpsertStatus",
    "Usage",
    "decode_frame",
    "decode_turn_event",
    "decode_upsert",
    "split_session_id",
]
