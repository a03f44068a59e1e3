from __future__ import annotations

from stitch.engine import SUPERSEDED_CODE, TurnOutcome, TurnStatus, TurnTracker
from stitch.protocol import TurnEvent, decode_turn_event

SESSION = "claude-code:session-render"


def _event(frame: dict) -> TurnEvent:
    return decode_turn_event(frame["payload"])


def test_turn_runs_then_completes_with_usage(frames) -> None:
    tracker = TurnTracker(SESSION)

    started = tracker.apply(_event(frames.turn_started()))
    assert started.applied
    assert tracker.active is not None
    assert tracker.active.turn_id == "turn-1"

    finished = tracker.apply(_event(frames.turn_complete(usage={"inputTokens": 10, "outputTokens": 5})))

    assert finished.applied
    assert finished.current.status is TurnStatus.COMPLETED
    assert finished.current.usage.output_tokens == 5
    assert finished.current.model_id == "claude-sonnet"
    assert tracker.active is None


def test_cancelled_and_errored_turns(frames) -> None:
    tracker = TurnTracker(SESSION)
    tracker.apply(_event(frames.turn_started("t1")))
    tracker.apply(_event(frames.turn_complete("cancelled", turn_id="t1")))
    tracker.apply(_event(frames.turn_started("t2")))
    tracker.apply(_event(frames.turn_error("OVERLOADED", "try later", turn_id="t2")))

    assert tracker.get("t1").status is TurnStatus.CANCELLED
    errored = tracker.get("t2")
    assert errored.status is TurnStatus.ERRORED
    assert errored.error_code == "OVERLOADED"
    assert errored.error_message == "try later"


def test_new_start_supersedes_running_turn(frames) -> None:
    tracker = TurnTracker(SESSION)
    tracker.apply(_event(frames.turn_started("t1")))

    change = tracker.apply(_event(frames.turn_started("t2")))

    assert change.superseded is not None
    assert change.superseded.status is TurnStatus.CANCELLED
    assert change.superseded.error_code == SUPERSEDED_CODE
    assert change.superseded.superseded_by == "t2"
    assert [turn.turn_id for turn in change.changed_turns()] == ["t1", "t2"]
    assert tracker.active.turn_id == "t2"


def test_repeated_start_is_a_duplicate(frames) -> None:
    tracker = TurnTracker(SESSION)
    tracker.apply(_event(frames.turn_started()))

    change = tracker.apply(_event(frames.turn_started()))

    assert change.outcome is TurnOutcome.DUPLICATE
    assert change.changed_turns() == ()


def test_start_after_end_is_rejected(frames) -> None:
    tracker = TurnTracker(SESSION)
    tracker.apply(_event(frames.turn_started()))
    tracker.apply(_event(frames.turn_complete()))

    change = tracker.apply(_event(frames.turn_started()))

    assert change.outcome is TurnOutcome.REJECTED
    assert tracker.get("turn-1").status is TurnStatus.COMPLETED


def test_terminal_turn_ignores_other_terminal_events(frames) -> None:
    tracker = TurnTracker(SESSION)
    tracker.apply(_event(frames.turn_started()))
    tracker.apply(_event(frames.turn_complete("cancelled")))

    repeat = tracker.apply(_event(frames.turn_complete("cancelled")))
    conflicting = tracker.apply(_event(frames.turn_error()))

    assert repeat.outcome is TurnOutcome.DUPLICATE
    assert conflicting.outcome is TurnOutcome.REJECTED
    assert tracker.get("turn-1").status is TurnStatus.CANCELLED


def test_end_without_start_records_the_turn(frames) -> None:
    tracker = TurnTracker(SESSION)

    change = tracker.apply(_event(frames.turn_complete(turn_id="ghost")))

    assert change.applied
    assert tracker.get("ghost").status is TurnStatus.COMPLETED
    assert tracker.active is None


def test_attach_item_is_idempotent(frames) -> None:
    tracker = TurnTracker(SESSION)
    tracker.apply(_event(frames.turn_started()))

    tracker.attach_item("turn-1", "msg-1")
    tracker.attach_item("turn-1", "msg-1")
    tracker.attach_item("turn-1", "tool-1")

    assert tracker.get("turn-1").item_ids == ("msg-1", "tool-1")
    assert tracker.attach_item("unknown", "msg-1") is None
