"""Unit tests for the command-line entry point."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

import main
from agent_api import AuthExpiredError, SharedDataNotFoundError


PAYLOAD = {"data": {"agent_outputs": {"Summary": "short text", "Transcription": [{"SpeakerA": "hello"}]}}}


@pytest.fixture(autouse=True)
def _no_logo(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AGENTHUB_LOGO_PATH", raising=False)


def test_export_from_file_writes_pdf(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Exporting a local JSON file should write the PDF and a log file."""

    source = tmp_path / "output.json"
    source.write_text(json.dumps(PAYLOAD), encoding="utf-8")
    out_dir = tmp_path / "out"

    exit_code = main.main(["export", "--input", str(source), "--output_dir", str(out_dir), "--filename", "notes.pdf"])

    assert exit_code == 0
    assert (out_dir / "notes.pdf").read_bytes().startswith(b"%PDF")
    assert (out_dir / main.LOG_FILENAME).exists()
    assert "Report written to" in capsys.readouterr().out


def test_export_missing_input_reports_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """A missing input file should print a friendly error and exit with 1."""

    exit_code = main.main(["export", "--input", str(tmp_path / "missing.json"), "--output_dir", str(tmp_path)])

    assert exit_code == 1
    assert "Error: Input validation failed" in capsys.readouterr().out


def test_export_from_share_link(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Exporting by share UUID should fetch the payload from the backend."""

    requested: list[str] = []

    def _fake_fetch(share_uuid: str) -> dict:
        requested.append(share_uuid)
        return PAYLOAD["data"]

    monkeypatch.setattr(main, "fetch_shared_data", _fake_fetch)

    exit_code = main.main(
        ["export", "--share_uuid", "abc-123", "--output_dir", str(tmp_path), "--agent", "workout-planner"]
    )

    assert exit_code == 0
    assert requested == ["abc-123"]
    assert (tmp_path / "audio-analysis.pdf").exists()


def test_export_unknown_share_link(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    """An expired share link should print a friendly error."""

    def _missing(share_uuid: str) -> dict:
        raise SharedDataNotFoundError("gone")

    monkeypatch.setattr(main, "fetch_shared_data", _missing)

    assert main.main(["export", "--share_uuid", "gone", "--output_dir", str(tmp_path)]) == 1
    assert "Shared content not found" in capsys.readouterr().out


def test_export_and_share_are_mutually_exclusive(tmp_path: Path) -> None:
    """Only one payload source may be given."""

    with pytest.raises(SystemExit):
        main.parse_args(["export", "--input", "a.json", "--share_uuid", "abc"])


def test_rate_success(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    """A successful rating should thank the user."""

    calls: list[tuple] = []
    monkeypatch.setattr(main, "submit_rating", lambda *args: calls.append(args))

    exit_code = main.main(
        ["rate", "--agent_id", "a1", "--execution_id", "e1", "--rating", "4", "--output_dir", str(tmp_path)]
    )

    assert exit_code == 0
    assert calls == [("a1", "e1", 4, None)]
    assert "Thank you for your feedback!" in capsys.readouterr().out


def test_rate_expired_session(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    """An expired session should map to a sign-in message."""

    def _expired(*args: object) -> None:
        raise AuthExpiredError("expired")

    monkeypatch.setattr(main, "submit_rating", _expired)

    exit_code = main.main(
        ["rate", "--agent_id", "a1", "--execution_id", "e1", "--rating", "4", "--output_dir", str(tmp_path)]
    )

    assert exit_code == 1
    assert "Session expired" in capsys.readouterr().out


def test_rate_invalid_rating(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """An out-of-range rating should print the validation message."""

    exit_code = main.main(
        ["rate", "--agent_id", "a1", "--execution_id", "e1", "--rating", "9", "--output_dir", str(tmp_path)]
    )

    assert exit_code == 1
    assert "Rating must be an integer between 1 and 5" in capsys.readouterr().out
