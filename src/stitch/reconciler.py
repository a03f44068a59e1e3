"""Session-scoped reconciliation facade: decode, apply, notify."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

import pluggy
from loguru import logger

from stitch.config import Settings, TurnEndPolicy
from stitch.diagnostics import Diagnostic, DiagnosticKind, log_diagnostic
from stitch.engine import (
    ApplyOutcome,
    ItemChange,
    ItemSnapshot,
    ItemStore,
    TurnChange,
    TurnState,
    TurnStatus,
    TurnTracker,
)
from stitch.envelope import DEFAULT_PREVIEW_LIMIT, preview_of
from stitch.errors import DecodeError, SessionMismatchError
from stitch.hook_runtime import HookRuntime
from stitch.hookspecs import STITCH_HOOK_NAMESPACE, StitchHookSpecs
from stitch.logging_utils import session_context
from stitch.protocol import (
    Frame,
    HistoryFrame,
    TurnEvent,
    TurnFrame,
    Upsert,
    UpsertFrame,
    UpsertStatus,
    decode_frame,
)
from stitch.types import RawFrame

TURN_CANCELLED_CODE = "TURN_CANCELLED"
TURN_CANCELLED_MESSAGE = "Turn was cancelled before this item finished"


@dataclass
class SessionState:
    """Everything the reconciler holds for one live session."""

    session_id: str
    items: ItemStore
    turns: TurnTracker
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @classmethod
    def create(cls, session_id: str) -> SessionState:
        return cls(session_id=session_id, items=ItemStore(session_id), turns=TurnTracker(session_id))


@dataclass(frozen=True)
class IngestReport:
    """What one ingested frame did."""

    session_id: str
    frame: Frame | None = None
    item_changes: tuple[ItemChange, ...] = ()
    turn_changes: tuple[TurnChange, ...] = ()
    failure: DecodeError | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def accepted(self) -> list[ItemChange]:
        return [change for change in self.item_changes if change.accepted]

    @property
    def discarded(self) -> list[ItemChange]:
        return [change for change in self.item_changes if change.outcome.discarded]


def is_orphaned(snapshot: ItemSnapshot, turn: TurnState | None) -> bool:
    """Whether an item is still open although its turn already ended."""

    return turn is not None and turn.terminal and not snapshot.terminal


class StreamReconciler:
    """Turn a per-session stream of raw frames into item and turn state.

    Processing within one session is serialized; different sessions share
    no mutable state and may be fed from different threads.
    """

    def __init__(
        self,
        *,
        policy: TurnEndPolicy = TurnEndPolicy.LEAVE_OPEN,
        preview_limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> None:
        self.policy = policy
        self.preview_limit = preview_limit
        self._plugin_manager = pluggy.PluginManager(STITCH_HOOK_NAMESPACE)
        self._plugin_manager.add_hookspecs(StitchHookSpecs)
        self._hooks = HookRuntime(self._plugin_manager)
        self._sessions: dict[str, SessionState] = {}
        self._sessions_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> StreamReconciler:
        return cls(policy=settings.turn_end_policy, preview_limit=settings.preview_limit)

    def register(self, observer: Any, name: str | None = None) -> str:
        """Attach a projection or other observer implementing stitch hooks."""

        plugin_name = self._plugin_manager.register(observer, name=name)
        if plugin_name is None:
            raise ValueError(f"observer {name or observer!r} is blocked")
        return plugin_name

    def unregister(self, observer: Any) -> None:
        self._plugin_manager.unregister(observer)

    def hook_report(self) -> dict[str, list[str]]:
        return self._hooks.hook_report()

    @property
    def session_ids(self) -> list[str]:
        with self._sessions_guard:
            return list(self._sessions)

    def session(self, session_id: str) -> SessionState | None:
        with self._sessions_guard:
            return self._sessions.get(session_id)

    def snapshot(self, session_id: str, item_id: str) -> ItemSnapshot | None:
        state = self.session(session_id)
        return state.items.get(item_id) if state is not None else None

    def turn(self, session_id: str, turn_id: str) -> TurnState | None:
        state = self.session(session_id)
        return state.turns.get(turn_id) if state is not None else None

    def ingest(self, session_id: str, raw: RawFrame) -> IngestReport:
        """Decode one received frame and apply it to the session's state.

        Decode failures are reported as diagnostics and returned in the
        report; they never raise.
        """
        with session_context(session_id):
            try:
                frame = decode_frame(raw, preview_limit=self.preview_limit)
                if frame.session_id != session_id:
                    raise SessionMismatchError(session_id, frame.session_id, preview_of(raw, self.preview_limit))
            except DecodeError as exc:
                self._report(Diagnostic(DiagnosticKind.DECODE_FAILURE, session_id, str(exc)))
                return IngestReport(session_id=session_id, failure=exc)
            return self.apply_frame(frame)

    def apply_frame(self, frame: Frame) -> IngestReport:
        state = self._session_for(frame.session_id)
        with state.lock:
            if isinstance(frame, UpsertFrame):
                change = self._apply_upsert(state, frame.upsert)
                return IngestReport(frame.session_id, frame, item_changes=(change,))
            if isinstance(frame, HistoryFrame):
                changes = tuple(self._apply_upsert(state, entry) for entry in frame.entries)
                return IngestReport(frame.session_id, frame, item_changes=changes)
            if isinstance(frame, TurnFrame):
                turn_change, item_changes = self._apply_turn_event(state, frame.event)
                return IngestReport(frame.session_id, frame, item_changes=item_changes, turn_changes=(turn_change,))
        raise TypeError(f"unsupported frame {type(frame).__name__}")

    def apply_upsert(self, upsert: Upsert) -> ItemChange:
        """Apply an already-decoded upsert to its session."""

        state = self._session_for(upsert.session_id)
        with session_context(upsert.session_id), state.lock:
            return self._apply_upsert(state, upsert)

    def apply_turn_event(self, event: TurnEvent) -> TurnChange:
        """Apply an already-decoded turn event to its session."""

        state = self._session_for(event.session_id)
        with session_context(event.session_id), state.lock:
            change, _ = self._apply_turn_event(state, event)
            return change

    def dispose(self, session_id: str) -> bool:
        """Drop all item and turn state of a session.

        Returns:
            True if the session existed.
        """
        with self._sessions_guard:
            state = self._sessions.pop(session_id, None)
        if state is None:
            return False
        with state.lock:
            item_count = len(state.items)
            state.items.clear()
            state.turns.clear()
        self._hooks.notify("on_session_disposed", session_id=session_id)
        logger.info("session.disposed session={} items={}", session_id, item_count)
        return True

    def _session_for(self, session_id: str) -> SessionState:
        with self._sessions_guard:
            state = self._sessions.get(session_id)
            if state is None:
                state = SessionState.create(session_id)
                self._sessions[session_id] = state
                logger.debug("session.created session={}", session_id)
            return state

    def _apply_upsert(self, state: SessionState, upsert: Upsert) -> ItemChange:
        turn = state.turns.get(upsert.turn_id)
        closed = (
            self.policy is TurnEndPolicy.FINALIZE
            and turn is not None
            and turn.terminal
            and upsert.item_id not in state.items
        )
        if closed:
            change = state.items.reject(upsert, ApplyOutcome.TURN_CLOSED)
        else:
            change = state.items.apply(upsert)

        if change.accepted and change.current is not None:
            state.turns.attach_item(upsert.turn_id, upsert.item_id)
            self._hooks.notify("on_item_change", session_id=state.session_id, snapshot=change.current)
            return change

        detail = _describe_discard(change, upsert, turn)
        self._report(Diagnostic.for_item(change.outcome, state.session_id, upsert.item_id, upsert.turn_id, detail))
        return change

    def _apply_turn_event(self, state: SessionState, event: TurnEvent) -> tuple[TurnChange, tuple[ItemChange, ...]]:
        change = state.turns.apply(event)
        if not change.applied:
            status = change.current.status.value if change.current is not None else "unknown"
            detail = f"{event.type} for turn already {status}"
            self._report(Diagnostic.for_turn(change.outcome, state.session_id, event.turn_id, detail))
            return change, ()

        item_changes: list[ItemChange] = []
        turns = change.changed_turns()
        if self.policy is TurnEndPolicy.FINALIZE:
            for turn in turns:
                if turn.terminal:
                    item_changes.extend(self._finalize_items(state, turn))
        for turn in turns:
            logger.debug("turn.{} session={} turn={}", turn.status.value, state.session_id, turn.turn_id)
            self._hooks.notify("on_turn_change", session_id=state.session_id, turn=turn)
        return change, tuple(item_changes)

    def _finalize_items(self, state: SessionState, turn: TurnState) -> list[ItemChange]:
        status, error_code, error_message = _finalization_for(turn)
        changes: list[ItemChange] = []
        for snapshot in state.items.items_for_turn(turn.turn_id):
            change = state.items.finalize(
                snapshot.item_id,
                status,
                error_code=error_code,
                error_message=error_message,
            )
            if change is None or change.current is None:
                continue
            logger.debug(
                "item.finalized session={} item={} status={}",
                state.session_id,
                snapshot.item_id,
                status.value,
            )
            self._hooks.notify("on_item_change", session_id=state.session_id, snapshot=change.current)
            changes.append(change)
        return changes

    def _report(self, diagnostic: Diagnostic) -> None:
        log_diagnostic(diagnostic)
        self._hooks.notify("on_diagnostic", diagnostic=diagnostic)


def _finalization_for(turn: TurnState) -> tuple[UpsertStatus, str | None, str | None]:
    if turn.status is TurnStatus.COMPLETED:
        return UpsertStatus.COMPLETE, None, None
    if turn.status is TurnStatus.ERRORED:
        return UpsertStatus.ERROR, turn.error_code, turn.error_message
    return UpsertStatus.ERROR, turn.error_code or TURN_CANCELLED_CODE, turn.error_message or TURN_CANCELLED_MESSAGE


def _describe_discard(change: ItemChange, upsert: Upsert, turn: TurnState | None) -> str:
    previous = change.previous
    if change.outcome is ApplyOutcome.TURN_CLOSED and turn is not None:
        return f"turn {turn.turn_id} already {turn.status.value}"
    if previous is None:
        return change.outcome.value
    if change.outcome is ApplyOutcome.STALE:
        return f"emittedAt {upsert.emitted_at.isoformat()} precedes {previous.last_emitted_at.isoformat()}"
    if change.outcome is ApplyOutcome.TERMINAL:
        return f"item already {previous.status.value}, incoming {upsert.status.value}"
    if change.outcome is ApplyOutcome.TYPE_MISMATCH:
        return f"item is {previous.type.value}, incoming {upsert.type}"
    return "identical upsert already applied"
