"""Unit tests for report assembly, pagination and file output."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

import report
from layout import Picture, RenderCursor
from report import (
    AGENT_BRANDINGS,
    NO_DATA_MESSAGE,
    NO_DATA_TITLE,
    ReportBranding,
    build_document,
    plan_sections,
    render_report,
    unwrap_payload,
)


FIXED_NOW = datetime(2026, 3, 4, 15, 30)

SCENARIO = {
    "Summary": "short text",
    "Transcription": [{"SpeakerA": "hello"}],
    "Keyword_Frequency": ["AI: discussed extensively"],
    "score": 0,
}


def _body_texts(document: report.ReportDocument) -> list[str]:
    return [
        run.text
        for page in document.pages
        for run in page.text_runs()
        if run.role not in ("banner", "footer")
    ]


def _long_payload() -> dict[str, list[str]]:
    return {f"Topic_{index}": [f"point {index}.{item} " * 6 for item in range(6)] for index in range(15)}


def test_concrete_scenario_orders_sections_and_skips_zero() -> None:
    """Summary comes first, keywords next with term and description, transcript last, no zero row."""

    document = build_document(SCENARIO, now=FIXED_NOW)
    texts = _body_texts(document)

    assert texts.index("Summary:") < texts.index("short text")
    assert texts.index("short text") < texts.index("Key Topics & Keywords")
    assert texts.index("Key Topics & Keywords") < texts.index("AI:") < texts.index("discussed extensively")
    assert texts.index("discussed extensively") < texts.index("Transcription")
    assert texts.index("Transcription") < texts.index("SpeakerA:") < texts.index("hello")
    assert not any("Score" in text for text in texts)


def test_summary_first_and_transcription_last_regardless_of_key_order() -> None:
    """Priority and deferred keys should be placed independently of payload order."""

    payload = {
        "Transcription": "t" * 200,
        "Meeting_Notes": "n" * 200,
        "summary": "s" * 200,
        "Key_Topics": ["budget"],
    }

    document = build_document(payload, now=FIXED_NOW)

    assert document.texts(role="section") == ["Summary", "Key Topics", "Meeting Notes", "Transcription"]


def test_plan_sections_buffers_deferred_field_once() -> None:
    """The deferred field should be planned once, at the end."""

    output = {"Transcription": "text", "Summary": "s", "userId": "u1", "Extra": "e"}

    planned = plan_sections(output, output)

    assert [section.key for section in planned] == ["Summary", "Extra", "Transcription"]
    assert [section.deferred for section in planned] == [False, False, True]


@pytest.mark.parametrize(
    "payload",
    [
        {"data": {"Details": {"Summary": "wrapped"}}},
        {"data": {"agent_outputs": {"Summary": "wrapped"}}},
        {"Details": {"Summary": "wrapped"}},
        {"Summary": "wrapped"},
    ],
)
def test_envelopes_are_unwrapped(payload: dict) -> None:
    """Up to two envelope layers should be removed before rendering."""

    document = build_document(payload, now=FIXED_NOW)

    assert "Summary:" in document.texts(role="label")
    assert "wrapped" in document.texts()


def test_outer_transcription_is_preferred() -> None:
    """A transcription next to the inner output should win over one inside it."""

    payload = {
        "data": {
            "Transcription": "outer text",
            "agent_outputs": {"Summary": "s", "Transcription": "inner text"},
        }
    }

    texts = build_document(payload, now=FIXED_NOW).texts()

    assert "outer text" in texts
    assert "inner text" not in texts


@pytest.mark.parametrize("payload", [None, [], "text", {"data": 5}])
def test_unwrap_payload_without_object_yields_nothing(payload: object) -> None:
    """Values that are not objects carry no renderable output."""

    assert unwrap_payload(payload) == (None, None)


def test_missing_payload_renders_placeholder_page() -> None:
    """No data should produce a single page with an explicit placeholder."""

    document = build_document(None, now=FIXED_NOW)

    assert document.page_count == 1
    assert document.texts(role="section") == [NO_DATA_TITLE]
    assert NO_DATA_MESSAGE in document.texts()


def test_every_page_gets_numbered_footer() -> None:
    """Footers should carry the final page count on every page."""

    document = build_document(_long_payload(), now=FIXED_NOW)
    total = document.page_count

    assert total > 1
    for page in document.pages:
        footer = page.texts(role="footer")
        assert f"Page {page.number} of {total}" in footer
        assert "3/4/2026" in footer


def test_no_text_enters_footer_area() -> None:
    """Body text must be laid out above the footer reserve on every page."""

    document = build_document(_long_payload(), now=FIXED_NOW)
    limit = RenderCursor().limit

    for page in document.pages:
        for run in page.text_runs():
            if run.role in ("banner", "footer"):
                continue
            assert run.y <= limit


def test_section_header_is_never_last_on_a_page() -> None:
    """A section header must always share its page with some of its content."""

    document = build_document(_long_payload(), now=FIXED_NOW)

    for page in document.pages:
        body = [run for run in page.text_runs() if run.role not in ("banner", "footer")]
        assert body
        assert body[-1].role != "section"


def test_rendering_is_idempotent() -> None:
    """Rendering the same payload twice should give identical pages."""

    first = build_document(_long_payload(), now=FIXED_NOW)
    second = build_document(_long_payload(), now=FIXED_NOW)

    assert [page.texts() for page in first.pages] == [page.texts() for page in second.pages]


def test_missing_logo_falls_back_to_text_header(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    """An unloadable logo should produce a text-only header and footer, not an error."""

    document = build_document(SCENARIO, logo_path=tmp_path / "missing.png", now=FIXED_NOW)
    banner = document.texts(role="banner")

    assert "A" in banner
    assert "Audio Analysis Report" in banner
    assert "Generated: Mar 04, 2026, 03:30 PM" in banner
    assert "Audio Analysis Report" in document.pages[0].texts(role="footer")
    assert not any(isinstance(op, Picture) for page in document.pages for op in page.operations)
    assert "Error loading logo" in caplog.text


def test_logo_is_drawn_in_header_and_footer(tmp_path: Path) -> None:
    """A valid logo should be placed in the header band and in each footer."""

    image_module = pytest.importorskip("PIL.Image")
    logo = tmp_path / "logo.png"
    image_module.new("RGB", (32, 32), (59, 130, 246)).save(logo)

    document = build_document(SCENARIO, logo_path=logo, now=FIXED_NOW)
    pictures = [op for op in document.pages[0].operations if isinstance(op, Picture)]

    assert len(pictures) == 2
    assert "by Tryzent" in document.texts(role="banner")
    assert document.to_pdf_bytes().startswith(b"%PDF")


def test_branding_presets_change_header_text() -> None:
    """Each agent should be able to print its own name and report title."""

    document = build_document(SCENARIO, branding=AGENT_BRANDINGS["lesson-planner"], now=FIXED_NOW)
    banner = document.texts(role="banner")

    assert "Lesson Planner" in banner
    assert "Lesson Plan Report" in banner
    assert document.title == "AgentHub - Lesson Plan Report"


def test_render_report_writes_pdf(tmp_path: Path) -> None:
    """A successful render should write a PDF and report its path."""

    result = render_report(SCENARIO, "meeting.pdf", tmp_path, now=FIXED_NOW)

    assert result.success is True
    assert result.error is None
    assert result.path == tmp_path / "meeting.pdf"
    assert result.path.read_bytes().startswith(b"%PDF")


def test_render_report_appends_pdf_suffix(tmp_path: Path) -> None:
    """Filenames without a .pdf suffix should get one."""

    result = render_report(SCENARIO, "meeting", tmp_path, branding=ReportBranding(), now=FIXED_NOW)

    assert result.path == tmp_path / "meeting.pdf"


def test_render_report_failure_leaves_no_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A failure while producing the PDF should be reported, never raised, and write nothing."""

    def _broken_paint(*args: object, **kwargs: object) -> None:
        raise RuntimeError("canvas exploded")

    monkeypatch.setattr(report, "paint", _broken_paint)

    result = render_report(SCENARIO, "meeting.pdf", tmp_path, now=FIXED_NOW)

    assert result.success is False
    assert result.message == "Failed to generate PDF"
    assert isinstance(result.error, RuntimeError)
    assert not (tmp_path / "meeting.pdf").exists()


def test_render_report_write_failure_is_reported(tmp_path: Path) -> None:
    """An unwritable destination should surface as a failed result."""

    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    result = render_report(SCENARIO, "meeting.pdf", blocker, now=FIXED_NOW)

    assert result.success is False
    assert isinstance(result.error, report.ReportError)
