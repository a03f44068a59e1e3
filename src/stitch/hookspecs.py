"""Pluggy hook namespace and projection hook specifications."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from stitch.diagnostics import Diagnostic
    from stitch.engine import ItemSnapshot, TurnState

STITCH_HOOK_NAMESPACE = "stitch"
hookspec = pluggy.HookspecMarker(STITCH_HOOK_NAMESPACE)
hookimpl = pluggy.HookimplMarker(STITCH_HOOK_NAMESPACE)


class StitchHookSpecs:
    """Contract between the reconciler and whatever renders its state."""

    @hookspec
    def on_item_change(self, session_id: str, snapshot: ItemSnapshot) -> None:
        """Receive the full current snapshot of one item after an accepted change."""

    @hookspec
    def on_turn_change(self, session_id: str, turn: TurnState) -> None:
        """Receive the current state of one turn after a lifecycle transition."""

    @hookspec
    def on_session_disposed(self, session_id: str) -> None:
        """Release everything held for a torn-down session."""

    @hookspec
    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        """Observe discarded frames and protocol anomalies."""
