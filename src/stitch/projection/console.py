"""Rich console projection."""

from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.text import Text

from stitch.engine import ItemSnapshot, TurnState, TurnStatus
from stitch.protocol import ItemType, Origin

from .keyed import KeyedProjection
from .text import RenderState, render_item_text, render_state

_BORDER_STYLES: dict[RenderState, str] = {
    RenderState.STREAMING: "yellow",
    RenderState.DONE: "green",
    RenderState.ERROR: "red",
    RenderState.INTERRUPTED: "magenta",
}

_TURN_STYLES: dict[TurnStatus, str] = {
    TurnStatus.RUNNING: "yellow",
    TurnStatus.COMPLETED: "green",
    TurnStatus.CANCELLED: "magenta",
    TurnStatus.ERRORED: "red",
}

_ORIGIN_LABELS: dict[Origin, str] = {
    Origin.USER: "You",
    Origin.AGENT: "Agent",
    Origin.SYSTEM: "System",
}


def _label_for(snapshot: ItemSnapshot) -> str:
    if snapshot.type is ItemType.THINKING:
        return "Thinking"
    if snapshot.type is ItemType.TOOL_CALL:
        return "Tool"
    return _ORIGIN_LABELS.get(snapshot.origin or Origin.AGENT, "Agent")


@dataclass
class ConsoleHandle:
    """Rich text block for one item, redrawn in place."""

    session_id: str
    item_id: str
    type: ItemType
    body: Text = field(default_factory=Text)
    title: str = ""
    state: RenderState = RenderState.STREAMING

    def __rich__(self) -> RenderableType:
        return Panel(self.body, title=self.title, title_align="left", border_style=_BORDER_STYLES[self.state])


class ConsoleProjection(KeyedProjection[ConsoleHandle]):
    """Projection rendered with Rich; pass it to `Console.print` or `Live`."""

    def __init__(self, *, show_thinking: bool = True, output_limit: int = 2000) -> None:
        super().__init__()
        self.show_thinking = show_thinking
        self.output_limit = output_limit

    def create_handle(self, session_id: str, snapshot: ItemSnapshot) -> ConsoleHandle:
        return ConsoleHandle(session_id=session_id, item_id=snapshot.item_id, type=snapshot.type)

    def update_handle(self, handle: ConsoleHandle, snapshot: ItemSnapshot, turn: TurnState | None) -> None:
        state = render_state(snapshot, turn)
        text = render_item_text(
            snapshot,
            orphaned=state is RenderState.INTERRUPTED,
            output_limit=self.output_limit,
        )
        style = "dim italic" if snapshot.type is ItemType.THINKING else ""
        handle.state = state
        handle.title = f"{_label_for(snapshot)} · {snapshot.item_id}"
        handle.body = Text(text, style=style)

    def render(self, session_id: str | None = None) -> RenderableType:
        with self._lock:
            blocks: list[RenderableType] = [
                handle.__rich__()
                for handle in self.handles(session_id)
                if self.show_thinking or handle.type is not ItemType.THINKING
            ]
            blocks.extend(_turn_line(turn) for turn in self.turns(session_id))
        return Group(*blocks)

    def __rich__(self) -> RenderableType:
        return self.render()


def _turn_line(turn: TurnState) -> Text:
    line = Text(f"turn {turn.turn_id} ", style="dim")
    line.append(turn.status.value, style=_TURN_STYLES[turn.status])
    if turn.usage is not None:
        line.append(f" in={turn.usage.input_tokens} out={turn.usage.output_tokens}", style="dim")
    if turn.error_code:
        line.append(f" {turn.error_code}: {turn.error_message or ''}".rstrip(), style="red")
    return line
