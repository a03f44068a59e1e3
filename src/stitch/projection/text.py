"""Plain-text rendering of item snapshots and an in-memory text view."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from stitch.engine import ItemSnapshot, TurnState
from stitch.protocol import ItemType, UpsertStatus
from stitch.reconciler import is_orphaned

from .keyed import KeyedProjection

INTERRUPTED_MARKER = "(interrupted)"
THINKING_SUMMARY = "Thinking..."


class RenderState(str, Enum):
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"
    INTERRUPTED = "interrupted"


def render_state(snapshot: ItemSnapshot, turn: TurnState | None) -> RenderState:
    if snapshot.status is UpsertStatus.ERROR:
        return RenderState.ERROR
    if snapshot.status is UpsertStatus.COMPLETE:
        return RenderState.DONE
    if is_orphaned(snapshot, turn):
        return RenderState.INTERRUPTED
    return RenderState.STREAMING


def truncate(text: str, limit: int) -> str:
    if limit > 0 and len(text) > limit:
        return text[:limit] + "..."
    return text


def _error_line(snapshot: ItemSnapshot) -> str:
    return f"Error: {snapshot.error_message or snapshot.error_code or 'Unknown error'}"


def _with_error(body: str, snapshot: ItemSnapshot) -> str:
    if snapshot.status is not UpsertStatus.ERROR:
        return body
    return f"{body}\n{_error_line(snapshot)}" if body else _error_line(snapshot)


def _render_message(snapshot: ItemSnapshot, output_limit: int) -> str:
    return _with_error(snapshot.content or "", snapshot)


def _render_thinking(snapshot: ItemSnapshot, output_limit: int) -> str:
    body = f"{THINKING_SUMMARY}\n{snapshot.content}" if snapshot.content else THINKING_SUMMARY
    return _with_error(body, snapshot)


def _render_tool_call(snapshot: ItemSnapshot, output_limit: int) -> str:
    name = snapshot.tool_name or snapshot.call_id or "tool"
    if snapshot.status is UpsertStatus.ERROR:
        return f"{name} {_error_line(snapshot)}"
    if snapshot.status is not UpsertStatus.COMPLETE:
        return f"{name} Running..."
    output = snapshot.tool_output if snapshot.tool_output is not None else (snapshot.content or "")
    header = f"{name} (failed)" if snapshot.tool_output_is_error else f"{name} (done)"
    return f"{header}\n{truncate(output, output_limit)}" if output else header


_RENDERERS: dict[ItemType, Callable[[ItemSnapshot, int], str]] = {
    ItemType.MESSAGE: _render_message,
    ItemType.THINKING: _render_thinking,
    ItemType.TOOL_CALL: _render_tool_call,
}


def render_item_text(snapshot: ItemSnapshot, *, orphaned: bool = False, output_limit: int = 0) -> str:
    """Render one snapshot as plain text, marking items cut off by their turn."""

    text = _RENDERERS[snapshot.type](snapshot, output_limit)
    if orphaned:
        return f"{text}\n{INTERRUPTED_MARKER}" if text else INTERRUPTED_MARKER
    return text


@dataclass
class TextHandle:
    """Mutable render target for one item."""

    session_id: str
    item_id: str
    type: ItemType
    text: str = ""
    state: RenderState = RenderState.STREAMING
    updates: int = 0


class TextProjection(KeyedProjection[TextHandle]):
    """In-memory text view, useful for tests and plain-text consumers."""

    def __init__(self, *, show_thinking: bool = True, output_limit: int = 0) -> None:
        super().__init__()
        self.show_thinking = show_thinking
        self.output_limit = output_limit

    def create_handle(self, session_id: str, snapshot: ItemSnapshot) -> TextHandle:
        return TextHandle(session_id=session_id, item_id=snapshot.item_id, type=snapshot.type)

    def update_handle(self, handle: TextHandle, snapshot: ItemSnapshot, turn: TurnState | None) -> None:
        handle.state = render_state(snapshot, turn)
        handle.text = render_item_text(
            snapshot,
            orphaned=handle.state is RenderState.INTERRUPTED,
            output_limit=self.output_limit,
        )
        handle.updates += 1

    def text_of(self, session_id: str, item_id: str) -> str | None:
        handle = self.handle_for(session_id, item_id)
        return handle.text if handle is not None else None

    def render(self, session_id: str | None = None) -> str:
        """Join visible items in first-seen order."""
        visible = [
            handle.text
            for handle in self.handles(session_id)
            if self.show_thinking or handle.type is not ItemType.THINKING
        ]
        return "\n\n".join(visible)
