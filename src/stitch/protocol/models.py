"""Typed shapes for item upserts and turn lifecycle events."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SESSION_ID_SEPARATOR = ":"


class UpsertStatus(str, Enum):
    """Lifecycle status carried by one upsert."""

    CREATE = "create"
    UPDATE = "update"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (UpsertStatus.COMPLETE, UpsertStatus.ERROR)


class ItemType(str, Enum):
    """Kinds of conversational items."""

    MESSAGE = "message"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"


class Origin(str, Enum):
    """Who produced a message item."""

    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


def split_session_id(session_id: str) -> tuple[str, str]:
    """Split a `<providerKind>:<id>` session id into its two parts.

    Raises:
        ValueError: If either part is missing.
    """
    provider_kind, separator, local_id = session_id.partition(SESSION_ID_SEPARATOR)
    if not separator or not provider_kind or not local_id:
        raise ValueError(f"session id '{session_id}' is not of the form <providerKind>:<id>")
    return provider_kind, local_id


class WireModel(BaseModel):
    """Base for immutable wire models with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class SessionScoped(WireModel):
    session_id: str = Field(min_length=1)

    @field_validator("session_id")
    @classmethod
    def _check_session_id(cls, value: str) -> str:
        split_session_id(value)
        return value


class UpsertBase(SessionScoped):
    """Envelope fields shared by every upsert."""

    turn_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)
    source_timestamp: datetime
    emitted_at: datetime
    status: UpsertStatus
    error_code: str | None = None
    error_message: str | None = None

    @field_validator("source_timestamp", "emitted_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _check_error_fields(self) -> UpsertBase:
        if self.status is UpsertStatus.ERROR and not self.error_code:
            raise ValueError("errorCode is required when status is 'error'")
        return self

    @property
    def item_type(self) -> ItemType:
        return ItemType(getattr(self, "type"))


class MessageUpsert(UpsertBase):
    type: Literal["message"] = "message"
    content: str
    # Omitted on later emissions keeps the item's origin; a new item defaults to agent.
    origin: Origin | None = None


class ThinkingUpsert(UpsertBase):
    type: Literal["thinking"] = "thinking"
    content: str
    provider_id: str = ""


class ToolCallUpsert(UpsertBase):
    type: Literal["tool_call"] = "tool_call"
    call_id: str = Field(min_length=1)
    tool_name: str | None = None
    # Argument schemas are provider-specific and stay unvalidated.
    tool_arguments: dict[str, Any] | None = None
    tool_output: str | None = None
    tool_output_is_error: bool | None = None
    content: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_create_arguments(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if data.get("status") != UpsertStatus.CREATE:
            return data
        if data.get("toolArguments") is None and data.get("tool_arguments") is None:
            data = {**data, "toolArguments": {}}
        return data

    @field_validator("tool_arguments")
    @classmethod
    def _check_arguments_serializable(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        if value is None:
            return value
        try:
            json.dumps(value)
        except (TypeError, ValueError, RecursionError) as exc:
            raise ValueError(f"toolArguments must be plain JSON: {type(exc).__name__}") from None
        return value


Upsert = Annotated[MessageUpsert | ThinkingUpsert | ToolCallUpsert, Field(discriminator="type")]


class Usage(WireModel):
    """Token accounting reported when a turn completes."""

    input_tokens: int = Field(ge=0)
    output_tokens: int = Field(ge=0)
    cache_read_input_tokens: int | None = Field(default=None, ge=0)
    cache_creation_input_tokens: int | None = Field(default=None, ge=0)


class TurnStarted(SessionScoped):
    type: Literal["turn_started"] = "turn_started"
    turn_id: str = Field(min_length=1)
    model_id: str
    provider_id: str


class TurnComplete(SessionScoped):
    type: Literal["turn_complete"] = "turn_complete"
    turn_id: str = Field(min_length=1)
    status: Literal["completed", "cancelled"]
    usage: Usage | None = None


class TurnError(SessionScoped):
    type: Literal["turn_error"] = "turn_error"
    turn_id: str = Field(min_length=1)
    error_code: str
    error_message: str


TurnEvent = Annotated[TurnStarted | TurnComplete | TurnError, Field(discriminator="type")]

TURN_EVENT_TYPES = frozenset({"turn_started", "turn_complete", "turn_error"})
