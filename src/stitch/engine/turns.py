"""Turn lifecycle tracking: one running turn per session."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from stitch.protocol.models import TurnComplete, TurnError, TurnEvent, TurnStarted, Usage


class TurnStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"

    @property
    def terminal(self) -> bool:
        return self is not TurnStatus.RUNNING


class TurnOutcome(str, Enum):
    """What happened to one turn event handed to the tracker."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"


SUPERSEDED_CODE = "TURN_SUPERSEDED"


@dataclass(frozen=True)
class TurnState:
    """Lifecycle state of one turn."""

    turn_id: str
    session_id: str
    status: TurnStatus
    model_id: str | None = None
    provider_id: str | None = None
    usage: Usage | None = None
    error_code: str | None = None
    error_message: str | None = None
    item_ids: tuple[str, ...] = ()
    superseded_by: str | None = None

    @property
    def terminal(self) -> bool:
        return self.status.terminal


@dataclass(frozen=True)
class TurnChange:
    """Result of applying one turn event.

    `superseded` holds the previously running turn when a new start displaced it.
    """

    outcome: TurnOutcome
    turn_id: str
    previous: TurnState | None
    current: TurnState | None
    superseded: TurnState | None = None

    @property
    def applied(self) -> bool:
        return self.outcome is TurnOutcome.APPLIED

    def changed_turns(self) -> tuple[TurnState, ...]:
        """Turn states to announce, in notification order."""
        if not self.applied:
            return ()
        states = [self.superseded] if self.superseded is not None else []
        if self.current is not None:
            states.append(self.current)
        return tuple(states)


def _terminal_fields(event: TurnComplete | TurnError) -> dict[str, object]:
    if isinstance(event, TurnError):
        return {
            "status": TurnStatus.ERRORED,
            "error_code": event.error_code,
            "error_message": event.error_message,
        }
    status = TurnStatus.COMPLETED if event.status == "completed" else TurnStatus.CANCELLED
    return {"status": status, "usage": event.usage}


class TurnTracker:
    """Turns of one session and the id of the active one.

    A start for a new turn replaces whatever was running, so a lost terminal
    event for one turn never blocks the next.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._turns: dict[str, TurnState] = {}
        self._active_id: str | None = None

    def __contains__(self, turn_id: object) -> bool:
        return turn_id in self._turns

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def active(self) -> TurnState | None:
        """The running turn, if any."""
        if self._active_id is None:
            return None
        state = self._turns.get(self._active_id)
        if state is None or state.terminal:
            return None
        return state

    def get(self, turn_id: str) -> TurnState | None:
        return self._turns.get(turn_id)

    def turns(self) -> list[TurnState]:
        return list(self._turns.values())

    def apply(self, event: TurnEvent) -> TurnChange:
        if isinstance(event, TurnStarted):
            return self._start(event)
        return self._finish(event)

    def attach_item(self, turn_id: str, item_id: str) -> TurnState | None:
        """Record that an item belongs to a known turn."""

        state = self._turns.get(turn_id)
        if state is None or item_id in state.item_ids:
            return state
        updated = replace(state, item_ids=(*state.item_ids, item_id))
        self._turns[turn_id] = updated
        return updated

    def clear(self) -> None:
        self._turns.clear()
        self._active_id = None

    def _start(self, event: TurnStarted) -> TurnChange:
        existing = self._turns.get(event.turn_id)
        if existing is not None:
            outcome = TurnOutcome.REJECTED if existing.terminal else TurnOutcome.DUPLICATE
            return TurnChange(outcome, event.turn_id, existing, existing)

        superseded: TurnState | None = None
        running = self.active
        if running is not None:
            superseded = replace(
                running,
                status=TurnStatus.CANCELLED,
                error_code=SUPERSEDED_CODE,
                error_message=f"superseded by turn {event.turn_id}",
                superseded_by=event.turn_id,
            )
            self._turns[running.turn_id] = superseded

        state = TurnState(
            turn_id=event.turn_id,
            session_id=self.session_id,
            status=TurnStatus.RUNNING,
            model_id=event.model_id,
            provider_id=event.provider_id,
        )
        self._turns[event.turn_id] = state
        self._active_id = event.turn_id
        return TurnChange(TurnOutcome.APPLIED, event.turn_id, None, state, superseded)

    def _finish(self, event: TurnComplete | TurnError) -> TurnChange:
        terminal = _terminal_fields(event)
        existing = self._turns.get(event.turn_id)
        if existing is None:
            # The start was never observed; record the outcome anyway.
            state = TurnState(turn_id=event.turn_id, session_id=self.session_id, **terminal)  # type: ignore[arg-type]
            self._turns[event.turn_id] = state
            return TurnChange(TurnOutcome.APPLIED, event.turn_id, None, state)

        if existing.terminal:
            candidate = replace(existing, **terminal)  # type: ignore[arg-type]
            outcome = TurnOutcome.DUPLICATE if candidate == existing else TurnOutcome.REJECTED
            return TurnChange(outcome, event.turn_id, existing, existing)

        state = replace(existing, **terminal)  # type: ignore[arg-type]
        self._turns[event.turn_id] = state
        if self._active_id == event.turn_id:
            self._active_id = None
        return TurnChange(TurnOutcome.APPLIED, event.turn_id, existing, state)
