"""Per-item reconciliation of an upsert stream into current snapshots."""

from __future__ import annotations

import copy
import hashlib
import itertools
import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from stitch.protocol.models import (
    ItemType,
    MessageUpsert,
    Origin,
    ThinkingUpsert,
    ToolCallUpsert,
    Upsert,
    UpsertStatus,
)


class ApplyOutcome(str, Enum):
    """What happened to one upsert handed to the store."""

    ACCEPTED = "accepted"
    STALE = "stale"
    DUPLICATE = "duplicate"
    TERMINAL = "terminal"
    TYPE_MISMATCH = "type_mismatch"
    TURN_CLOSED = "turn_closed"

    @property
    def discarded(self) -> bool:
        return self is not ApplyOutcome.ACCEPTED

    @property
    def anomaly(self) -> bool:
        """Whether the discard points at a producer or transport problem."""
        return self in (ApplyOutcome.TERMINAL, ApplyOutcome.TYPE_MISMATCH, ApplyOutcome.TURN_CLOSED)


@dataclass(frozen=True)
class ItemSnapshot:
    """Current reconciled state of one conversational item."""

    session_id: str
    item_id: str
    type: ItemType
    status: UpsertStatus
    turn_id: str
    last_emitted_at: datetime
    source_timestamp: datetime
    sequence: int
    content: str | None = None
    origin: Origin | None = None
    provider_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    call_id: str | None = None
    tool_name: str | None = None
    tool_arguments: Mapping[str, Any] | None = None
    tool_output: str | None = None
    tool_output_is_error: bool | None = None
    forced: bool = False

    @property
    def terminal(self) -> bool:
        return self.status.terminal


# Fields that keep their last provided value when a later upsert omits them.
ADDITIVE_FIELDS = ("origin", "tool_name", "tool_arguments", "tool_output", "tool_output_is_error")

_BOOKKEEPING_FIELDS = frozenset({"sequence", "last_emitted_at", "source_timestamp"})


@dataclass(frozen=True)
class ItemChange:
    """Result of applying one upsert: the outcome plus old and new snapshots."""

    outcome: ApplyOutcome
    item_id: str
    sequence: int
    previous: ItemSnapshot | None
    current: ItemSnapshot | None

    @property
    def accepted(self) -> bool:
        return self.outcome is ApplyOutcome.ACCEPTED

    @property
    def created(self) -> bool:
        return self.accepted and self.previous is None

    def changed_fields(self) -> tuple[str, ...]:
        """Names of content fields that differ between previous and current."""
        if self.current is None:
            return ()
        if self.previous is None:
            return tuple(
                f.name
                for f in fields(ItemSnapshot)
                if f.name not in _BOOKKEEPING_FIELDS and getattr(self.current, f.name) not in (None, False)
            )
        return tuple(
            f.name
            for f in fields(ItemSnapshot)
            if f.name not in _BOOKKEEPING_FIELDS and getattr(self.previous, f.name) != getattr(self.current, f.name)
        )


def fingerprint(upsert: Upsert) -> str:
    """Stable digest of an upsert's full payload, emittedAt included."""

    canonical = json.dumps(upsert.model_dump(mode="json", by_alias=True), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _frozen_arguments(arguments: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    if arguments is None:
        return None
    return MappingProxyType(copy.deepcopy(dict(arguments)))


def _payload_fields(upsert: Upsert, previous: ItemSnapshot | None) -> dict[str, Any]:
    values: dict[str, Any] = {
        "error_code": upsert.error_code,
        "error_message": upsert.error_message,
    }
    if isinstance(upsert, MessageUpsert):
        values["content"] = upsert.content
        if upsert.origin is not None:
            values["origin"] = upsert.origin
        else:
            values["origin"] = previous.origin if previous is not None else Origin.AGENT
    elif isinstance(upsert, ThinkingUpsert):
        values.update(content=upsert.content, provider_id=upsert.provider_id)
    elif isinstance(upsert, ToolCallUpsert):
        values.update(content=upsert.content, call_id=upsert.call_id)
        if upsert.tool_name is not None:
            values["tool_name"] = upsert.tool_name
        elif previous is not None:
            values["tool_name"] = previous.tool_name
        if upsert.tool_arguments is not None:
            values["tool_arguments"] = _frozen_arguments(upsert.tool_arguments)
        elif previous is not None:
            values["tool_arguments"] = previous.tool_arguments
        if upsert.tool_output is not None:
            values["tool_output"] = upsert.tool_output
            values["tool_output_is_error"] = upsert.tool_output_is_error
        elif previous is not None:
            values["tool_output"] = previous.tool_output
            values["tool_output_is_error"] = previous.tool_output_is_error
    else:
        raise TypeError(f"unsupported upsert type {type(upsert).__name__}")
    return values


class ItemStore:
    """Snapshots of every item seen in one session, keyed by item id.

    The store is not thread-safe; callers serialize access per session.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._snapshots: dict[str, ItemSnapshot] = {}
        self._fingerprints: dict[str, set[str]] = {}
        self._sequence = itertools.count(1)

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._snapshots

    def __iter__(self) -> Iterator[ItemSnapshot]:
        return iter(list(self._snapshots.values()))

    def get(self, item_id: str) -> ItemSnapshot | None:
        return self._snapshots.get(item_id)

    def items_for_turn(self, turn_id: str) -> list[ItemSnapshot]:
        return [snapshot for snapshot in self._snapshots.values() if snapshot.turn_id == turn_id]

    def next_sequence(self) -> int:
        return next(self._sequence)

    def apply(self, upsert: Upsert) -> ItemChange:
        """Merge one upsert into the snapshot for its item id."""

        sequence = self.next_sequence()
        digest = fingerprint(upsert)
        previous = self._snapshots.get(upsert.item_id)

        if previous is None:
            current = self._create(upsert, sequence)
            self._remember(upsert.item_id, current, digest)
            return ItemChange(ApplyOutcome.ACCEPTED, upsert.item_id, sequence, None, current)

        outcome = self._check(upsert, previous, digest)
        if outcome is not None:
            return ItemChange(outcome, upsert.item_id, sequence, previous, previous)

        current = replace(
            previous,
            status=upsert.status,
            turn_id=upsert.turn_id,
            last_emitted_at=upsert.emitted_at,
            source_timestamp=upsert.source_timestamp,
            sequence=sequence,
            **_payload_fields(upsert, previous),
        )
        self._remember(upsert.item_id, current, digest)
        return ItemChange(ApplyOutcome.ACCEPTED, upsert.item_id, sequence, previous, current)

    def reject(self, upsert: Upsert, outcome: ApplyOutcome) -> ItemChange:
        """Record a discard decided outside the store, leaving state untouched."""

        snapshot = self._snapshots.get(upsert.item_id)
        return ItemChange(outcome, upsert.item_id, self.next_sequence(), snapshot, snapshot)

    def finalize(
        self,
        item_id: str,
        status: UpsertStatus,
        *,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> ItemChange | None:
        """Force a non-terminal item into a terminal status.

        Returns:
            The change, or None when the item is unknown or already terminal.
        """
        if not status.terminal:
            raise ValueError(f"cannot finalize with non-terminal status '{status.value}'")
        previous = self._snapshots.get(item_id)
        if previous is None or previous.terminal:
            return None
        sequence = self.next_sequence()
        current = replace(
            previous,
            status=status,
            sequence=sequence,
            error_code=error_code,
            error_message=error_message,
            forced=True,
        )
        self._snapshots[item_id] = current
        return ItemChange(ApplyOutcome.ACCEPTED, item_id, sequence, previous, current)

    def clear(self) -> None:
        self._snapshots.clear()
        self._fingerprints.clear()

    def _check(self, upsert: Upsert, previous: ItemSnapshot, digest: str) -> ApplyOutcome | None:
        if digest in self._fingerprints.get(upsert.item_id, ()):
            return ApplyOutcome.DUPLICATE
        if upsert.item_type is not previous.type:
            return ApplyOutcome.TYPE_MISMATCH
        if upsert.emitted_at < previous.last_emitted_at:
            return ApplyOutcome.STALE
        if previous.terminal:
            return ApplyOutcome.TERMINAL
        return None

    def _create(self, upsert: Upsert, sequence: int) -> ItemSnapshot:
        return ItemSnapshot(
            session_id=self.session_id,
            item_id=upsert.item_id,
            type=upsert.item_type,
            status=upsert.status,
            turn_id=upsert.turn_id,
            last_emitted_at=upsert.emitted_at,
            source_timestamp=upsert.source_timestamp,
            sequence=sequence,
            **_payload_fields(upsert, None),
        )

    def _remember(self, item_id: str, snapshot: ItemSnapshot, digest: str) -> None:
        self._snapshots[item_id] = snapshot
        self._fingerprints.setdefault(item_id, set()).add(digest)
