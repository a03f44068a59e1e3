"""Diagnostic records for dropped frames and protocol anomalies."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from stitch.engine import ApplyOutcome, TurnOutcome
from stitch.hookspecs import hookimpl


class DiagnosticKind(str, Enum):
    DECODE_FAILURE = "decode_failure"
    STALE_UPSERT = "stale_upsert"
    DUPLICATE_UPSERT = "duplicate_upsert"
    TERMINAL_REJECTED = "terminal_rejected"
    TYPE_MISMATCH = "type_mismatch"
    TURN_CLOSED = "turn_closed"
    DUPLICATE_TURN_EVENT = "duplicate_turn_event"
    TURN_REJECTED = "turn_rejected"

    @property
    def level(self) -> str:
        """Loguru level this kind is logged at."""
        if self in _QUIET_KINDS:
            return "DEBUG"
        return "WARNING"


_QUIET_KINDS = frozenset({
    DiagnosticKind.STALE_UPSERT,
    DiagnosticKind.DUPLICATE_UPSERT,
    DiagnosticKind.DUPLICATE_TURN_EVENT,
})

_ITEM_KINDS: dict[ApplyOutcome, DiagnosticKind] = {
    ApplyOutcome.STALE: DiagnosticKind.STALE_UPSERT,
    ApplyOutcome.DUPLICATE: DiagnosticKind.DUPLICATE_UPSERT,
    ApplyOutcome.TERMINAL: DiagnosticKind.TERMINAL_REJECTED,
    ApplyOutcome.TYPE_MISMATCH: DiagnosticKind.TYPE_MISMATCH,
    ApplyOutcome.TURN_CLOSED: DiagnosticKind.TURN_CLOSED,
}

_TURN_KINDS: dict[TurnOutcome, DiagnosticKind] = {
    TurnOutcome.DUPLICATE: DiagnosticKind.DUPLICATE_TURN_EVENT,
    TurnOutcome.REJECTED: DiagnosticKind.TURN_REJECTED,
}


@dataclass(frozen=True)
class Diagnostic:
    """One observability record. Never shown to the rendering layer."""

    kind: DiagnosticKind
    session_id: str
    detail: str
    item_id: str | None = None
    turn_id: str | None = None

    @classmethod
    def for_item(cls, outcome: ApplyOutcome, session_id: str, item_id: str, turn_id: str, detail: str) -> Diagnostic:
        return cls(_ITEM_KINDS[outcome], session_id, detail, item_id=item_id, turn_id=turn_id)

    @classmethod
    def for_turn(cls, outcome: TurnOutcome, session_id: str, turn_id: str, detail: str) -> Diagnostic:
        return cls(_TURN_KINDS[outcome], session_id, detail, turn_id=turn_id)


def log_diagnostic(diagnostic: Diagnostic) -> None:
    """Write one diagnostic to the process log."""

    logger.log(
        diagnostic.kind.level,
        "stream.{} session={} item={} turn={} detail={}",
        diagnostic.kind.value,
        diagnostic.session_id,
        diagnostic.item_id or "-",
        diagnostic.turn_id or "-",
        diagnostic.detail,
    )


class DiagnosticCounter:
    """Observer that tallies diagnostics per kind, e.g. for a replay summary."""

    def __init__(self) -> None:
        self.counts: Counter[DiagnosticKind] = Counter()
        self.records: list[Diagnostic] = []

    @hookimpl
    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.counts[diagnostic.kind] += 1
        self.records.append(diagnostic)

    def total(self) -> int:
        return sum(self.counts.values())

    def anomalies(self) -> list[Diagnostic]:
        return [record for record in self.records if record.kind.level == "WARNING"]
