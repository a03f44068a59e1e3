"""Keyed render projection: one stable handle per item, updated in place."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Generic, TypeAlias, TypeVar

from stitch.engine import ItemSnapshot, TurnState
from stitch.hookspecs import hookimpl

HandleT = TypeVar("HandleT")

ItemKey: TypeAlias = tuple[str, str]


class KeyedProjection(ABC, Generic[HandleT]):
    """Base for projections that map item ids to render handles.

    `create_handle` is called at most once per (session, item); every later
    change goes through `update_handle` on the same handle. Items are never
    looked up by inspecting rendered output. Hooks and accessors share one
    re-entrant lock so a render thread may read while frames are applied.
    """

    def __init__(self) -> None:
        self._handles: dict[ItemKey, HandleT] = {}
        self._snapshots: dict[ItemKey, ItemSnapshot] = {}
        self._turns: dict[tuple[str, str], TurnState] = {}
        self._lock = threading.RLock()

    @abstractmethod
    def create_handle(self, session_id: str, snapshot: ItemSnapshot) -> HandleT:
        """Allocate the render target for a newly seen item."""

    @abstractmethod
    def update_handle(self, handle: HandleT, snapshot: ItemSnapshot, turn: TurnState | None) -> None:
        """Redraw one handle from the item's full current snapshot."""

    def release_handle(self, handle: HandleT) -> None:
        """Free a handle when its session is torn down."""

    def turn_changed(self, session_id: str, turn: TurnState) -> None:
        """React to a turn transition after affected items were redrawn."""

    @hookimpl
    def on_item_change(self, session_id: str, snapshot: ItemSnapshot) -> None:
        key = (session_id, snapshot.item_id)
        with self._lock:
            self._snapshots[key] = snapshot
            handle = self._handles.get(key)
            if handle is None:
                handle = self.create_handle(session_id, snapshot)
                self._handles[key] = handle
            self.update_handle(handle, snapshot, self._turns.get((session_id, snapshot.turn_id)))

    @hookimpl
    def on_turn_change(self, session_id: str, turn: TurnState) -> None:
        with self._lock:
            self._turns[(session_id, turn.turn_id)] = turn
            for key, snapshot in self._snapshots.items():
                if key[0] != session_id or snapshot.turn_id != turn.turn_id or snapshot.terminal:
                    continue
                self.update_handle(self._handles[key], snapshot, turn)
            self.turn_changed(session_id, turn)

    @hookimpl
    def on_session_disposed(self, session_id: str) -> None:
        with self._lock:
            for key in [key for key in self._handles if key[0] == session_id]:
                self._snapshots.pop(key, None)
                self.release_handle(self._handles.pop(key))
            for turn_key in [turn_key for turn_key in self._turns if turn_key[0] == session_id]:
                del self._turns[turn_key]

    def handle_for(self, session_id: str, item_id: str) -> HandleT | None:
        with self._lock:
            return self._handles.get((session_id, item_id))

    def handles(self, session_id: str | None = None) -> list[HandleT]:
        """Handles in first-seen order, optionally limited to one session."""
        with self._lock:
            return [handle for key, handle in self._handles.items() if session_id is None or key[0] == session_id]

    def snapshot_for(self, session_id: str, item_id: str) -> ItemSnapshot | None:
        with self._lock:
            return self._snapshots.get((session_id, item_id))

    def turn_for(self, session_id: str, turn_id: str) -> TurnState | None:
        with self._lock:
            return self._turns.get((session_id, turn_id))

    def turns(self, session_id: str | None = None) -> list[TurnState]:
        with self._lock:
            return [turn for key, turn in self._turns.items() if session_id is None or key[0] == session_id]
