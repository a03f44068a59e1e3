from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from stitch.cli import app

runner = CliRunner()


def _write_capture(path: Path, raw_frames: list[dict]) -> Path:
    path.write_text("\n".join(json.dumps(frame) for frame in raw_frames) + "\n\n", encoding="utf-8")
    return path


def test_replay_renders_reconciled_items(tmp_path: Path, frames) -> None:
    capture = _write_capture(
        tmp_path / "capture.jsonl",
        [
            frames.turn_started(),
            frames.message("msg-1", "create", "Hello"),
            frames.message("msg-1", "update", "Hello world", at=1),
            frames.message("msg-1", "complete", "Hello world!", at=2),
            frames.turn_complete(),
        ],
    )

    result = runner.invoke(app, ["replay", str(capture)])

    assert result.exit_code == 0, result.output
    assert "Hello world!" in result.output
    assert "5 frame(s), 1 session(s)" in result.output


def test_replay_can_hide_thinking(tmp_path: Path, frames) -> None:
    capture = _write_capture(
        tmp_path / "capture.jsonl",
        [
            frames.thinking("think-1", "complete", "pondering deeply"),
            frames.message("msg-1", "complete", "visible answer", at=1),
        ],
    )

    result = runner.invoke(app, ["replay", str(capture), "--hide-thinking"])

    assert result.exit_code == 0, result.output
    assert "visible answer" in result.output
    assert "pondering deeply" not in result.output


def test_replay_fails_on_anomaly_when_asked(tmp_path: Path, frames) -> None:
    capture = _write_capture(
        tmp_path / "capture.jsonl",
        [
            frames.message("msg-1", "complete", "done"),
            frames.message("msg-1", "update", "reopened", at=1),
        ],
    )

    relaxed = runner.invoke(app, ["replay", str(capture)])
    strict = runner.invoke(app, ["replay", str(capture), "--fail-on-anomaly"])

    assert relaxed.exit_code == 0, relaxed.output
    assert "terminal_rejected" in relaxed.output
    assert strict.exit_code == 1


def test_replay_reports_undecodable_lines(tmp_path: Path, frames) -> None:
    capture = tmp_path / "capture.jsonl"
    capture.write_text(json.dumps(frames.message("msg-1", "create", "ok")) + "\n{broken\n", encoding="utf-8")

    result = runner.invoke(app, ["replay", str(capture)])

    assert result.exit_code == 0, result.output
    assert "decode_failure" in result.output


def test_inspect_shows_forced_items_under_finalize(tmp_path: Path, frames) -> None:
    capture = _write_capture(
        tmp_path / "capture.jsonl",
        [
            frames.turn_started(),
            frames.message("msg-1", "update", "partial"),
            frames.turn_complete("cancelled"),
        ],
    )

    result = runner.invoke(app, ["inspect", str(capture), "--policy", "finalize"])

    assert result.exit_code == 0, result.output
    assert "msg-1" in result.output
    assert "(forced)" in result.output
    assert "cancelled" in result.output


def test_inspect_can_filter_one_session(tmp_path: Path, make_frames) -> None:
    one = make_frames("claude-code:one")
    two = make_frames("codex:two")
    capture = _write_capture(
        tmp_path / "capture.jsonl",
        [one.message("msg-1", "create", "first"), two.message("msg-2", "create", "second")],
    )

    result = runner.invoke(app, ["inspect", str(capture), "--session", "codex:two"])

    assert result.exit_code == 0, result.output
    assert "msg-2" in result.output
    assert "msg-1" not in result.output


def test_invalid_settings_exit_with_usage_error(tmp_path: Path, frames, monkeypatch: pytest.MonkeyPatch) -> None:
    capture = _write_capture(tmp_path / "capture.jsonl", [frames.message("msg-1", "create", "x")])
    monkeypatch.setenv("STITCH_PREVIEW_LIMIT", "1")

    result = runner.invoke(app, ["replay", str(capture)])

    assert result.exit_code == 2
