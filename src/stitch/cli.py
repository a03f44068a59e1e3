"""Command line tools for replaying and inspecting captured frame streams."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import typer
from rich.console import Console
from rich.live import Live
from rich.table import Table

from stitch.config import Settings, TurnEndPolicy, get_settings
from stitch.diagnostics import DiagnosticCounter
from stitch.envelope import session_of
from stitch.errors import ConfigurationError
from stitch.projection import ConsoleProjection
from stitch.projection.text import truncate
from stitch.reconciler import SessionState, StreamReconciler

UNKNOWN_SESSION = "-"
CONTENT_PREVIEW_LIMIT = 60

app = typer.Typer(
    name="stitch",
    help="Reconcile streamed agent upserts into a per-item view.",
    add_completion=False,
    rich_markup_mode="rich",
)


def _load_settings(policy: TurnEndPolicy | None, show_thinking: bool | None) -> Settings:
    overrides: dict[str, object] = {"log_profile": "console"}
    if policy is not None:
        overrides["turn_end_policy"] = policy
    if show_thinking is not None:
        overrides["show_thinking"] = show_thinking
    try:
        return get_settings(**overrides)
    except ConfigurationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(2) from exc


def _read_frames(path: Path) -> Iterator[tuple[int, str]]:
    with path.open("r", encoding="utf-8") as handle:
        for line_no, raw_line in enumerate(handle, start=1):
            line = raw_line.strip()
            if line:
                yield line_no, line


def _feed(reconciler: StreamReconciler, path: Path, session: str | None) -> int:
    count = 0
    for _line_no, line in _read_frames(path):
        session_id = session_of(line) or UNKNOWN_SESSION
        if session is not None and session_id != session:
            continue
        reconciler.ingest(session_id, line)
        count += 1
    return count


def _summary_table(counter: DiagnosticCounter) -> Table:
    table = Table(title="Diagnostics", show_header=True, header_style="bold")
    table.add_column("kind")
    table.add_column("count", justify="right")
    for kind, count in sorted(counter.counts.items(), key=lambda pair: pair[0].value):
        table.add_row(kind.value, str(count))
    return table


@app.command()
def replay(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON-lines capture of frames"),  # noqa: B008
    policy: TurnEndPolicy | None = typer.Option(None, "--policy", help="How open items of an ended turn are treated"),  # noqa: B008
    session: str | None = typer.Option(None, "--session", "-s", help="Only replay frames of this session"),
    show_thinking: bool | None = typer.Option(None, "--show-thinking/--hide-thinking", help="Render thinking traces"),
    live: bool = typer.Option(False, "--live", help="Redraw the view after every frame"),
    fail_on_anomaly: bool = typer.Option(False, "--fail-on-anomaly", help="Exit 1 if any protocol anomaly was seen"),
) -> None:
    """Replay a capture and render the reconciled view."""

    settings = _load_settings(policy, show_thinking)
    reconciler = StreamReconciler.from_settings(settings)
    projection = ConsoleProjection(show_thinking=settings.show_thinking, output_limit=settings.tool_output_limit)
    counter = DiagnosticCounter()
    reconciler.register(projection, name="console")
    reconciler.register(counter, name="diagnostics")
    console = Console()

    if live:
        with Live(projection, console=console, refresh_per_second=8):
            frames = _feed(reconciler, path, session)
    else:
        frames = _feed(reconciler, path, session)
        console.print(projection)

    console.print(f"[dim]{frames} frame(s), {len(reconciler.session_ids)} session(s)[/dim]")
    if counter.total():
        console.print(_summary_table(counter))
    if fail_on_anomaly and counter.anomalies():
        raise typer.Exit(1)


def _items_table(state: SessionState) -> Table:
    table = Table(title=f"Items · {state.session_id}", header_style="bold")
    for column in ("item", "type", "status", "turn", "emitted", "content"):
        table.add_column(column)
    for snapshot in state.items:
        preview = truncate(" ".join((snapshot.content or snapshot.tool_output or "").split()), CONTENT_PREVIEW_LIMIT)
        status = f"{snapshot.status.value} (forced)" if snapshot.forced else snapshot.status.value
        table.add_row(
            snapshot.item_id,
            snapshot.type.value,
            status,
            snapshot.turn_id,
            snapshot.last_emitted_at.isoformat(),
            preview,
        )
    return table


def _turns_table(state: SessionState) -> Table:
    table = Table(title=f"Turns · {state.session_id}", header_style="bold")
    for column in ("turn", "status", "model", "provider", "usage", "items"):
        table.add_column(column)
    for turn in state.turns.turns():
        usage = f"{turn.usage.input_tokens}/{turn.usage.output_tokens}" if turn.usage is not None else "-"
        table.add_row(
            turn.turn_id,
            turn.status.value,
            turn.model_id or "-",
            turn.provider_id or "-",
            usage,
            str(len(turn.item_ids)),
        )
    return table


@app.command()
def inspect(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON-lines capture of frames"),  # noqa: B008
    policy: TurnEndPolicy | None = typer.Option(None, "--policy", help="How open items of an ended turn are treated"),  # noqa: B008
    session: str | None = typer.Option(None, "--session", "-s", help="Only inspect this session"),
) -> None:
    """Print item and turn tables for every session in a capture."""

    settings = _load_settings(policy, None)
    reconciler = StreamReconciler.from_settings(settings)
    counter = DiagnosticCounter()
    reconciler.register(counter, name="diagnostics")
    _feed(reconciler, path, session)

    console = Console()
    for session_id in reconciler.session_ids:
        state = reconciler.session(session_id)
        if state is None:
            continue
        console.print(_items_table(state))
        console.print(_turns_table(state))
    if counter.total():
        console.print(_summary_table(counter))
