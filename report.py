"""Report assembly: turns an agent output payload into a paginated, branded PDF."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader

from layout import (
    FONTS,
    LIGHT_TEXT,
    PRIMARY,
    WHITE,
    Disc,
    FilledRect,
    ImageLoadError,
    Page,
    PageLayout,
    Picture,
    Rule,
    TextRun,
    load_image,
    paint,
)
from primitives import add_content, add_section_header
from sections import SYSTEM_FIELDS, is_renderable, render_value


logger = logging.getLogger(__name__)

PRIORITY_KEY = "Summary"
DEFERRED_KEY = "Transcription"
SECTION_ORDER: tuple[str, ...] = (
    "Speaker_Identification",
    "Entity_Detection",
    "Decisions",
    "Keyword_Frequency",
    "Sentiment_Analysis",
    "Key_Topics",
    "Action_Items",
    "Structured_Output",
)

SECTION_GAP: float = 5 * mm
DEFERRED_GAP: float = 10 * mm
DEFAULT_FILENAME = "audio-analysis.pdf"
NO_DATA_TITLE = "Analysis Results"
NO_DATA_MESSAGE = "No analysis data available."


class ReportError(Exception):
    """Raised when report generation fails."""


@dataclass(frozen=True)
class ReportBranding:
    """Names printed in the header and footer of every page."""

    brand: str = "AgentHub"
    vendor: str = "Tryzent"
    agent_name: str = "Audio Notes Summarizer"
    report_title: str = "Audio Analysis Report"


AGENT_BRANDINGS: dict[str, ReportBranding] = {
    "audio-note-summarizer": ReportBranding(),
    "lesson-planner": ReportBranding(agent_name="Lesson Planner", report_title="Lesson Plan Report"),
    "workout-planner": ReportBranding(agent_name="Workout Planner", report_title="Workout Plan Report"),
    "health-insurance-finder": ReportBranding(
        agent_name="Health Insurance Finder", report_title="Health Insurance Report"
    ),
}


@dataclass(frozen=True)
class PlannedSection:
    key: str
    value: Any
    deferred: bool = False


@dataclass
class ReportDocument:
    """Laid-out pages of a report, ready to be painted."""

    title: str
    pages: list[Page] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def texts(self, role: str | None = None) -> list[str]:
        return [text for page in self.pages for text in page.texts(role)]

    def to_pdf_bytes(self) -> bytes:
        buffer = io.BytesIO()
        paint(self.pages, buffer, title=self.title)
        return buffer.getvalue()


@dataclass
class RenderResult:
    success: bool
    message: str
    path: Path | None = None
    error: Exception | None = None


def _lookup(mapping: dict[str, Any], name: str) -> str | None:
    """Find ``name`` among the mapping keys, ignoring case."""
    if name in mapping:
        return name
    lowered = name.lower()
    for key in mapping:
        if isinstance(key, str) and key.lower() == lowered:
            return key
    return None


def unwrap_payload(data: Any) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    """Peel up to two envelope layers off an agent output payload.

    The outer layer is ``data["data"]`` when present; the inner one is
    ``Details`` (when it is an object) or else ``agent_outputs``.

    Returns:
        ``(processed, output)``; both are None when there is nothing to render.
    """
    if not isinstance(data, dict):
        return None, None

    inner = data.get("data")
    processed = inner if inner is not None else data
    if not isinstance(processed, dict):
        return None, None

    details = processed.get("Details")
    if isinstance(details, dict):
        return processed, details

    agent_outputs = processed.get("agent_outputs")
    if isinstance(agent_outputs, dict):
        return processed, agent_outputs
    return processed, processed


def plan_sections(processed: dict[str, Any], output: dict[str, Any]) -> list[PlannedSection]:
    """Order the top-level entries of ``output`` for rendering.

    The priority key comes first, then the known sections in their fixed
    order, then every other key in payload order. The deferred key is set aside
    while scanning and appended last; a copy on the outer envelope wins over
    one inside ``output``.
    """
    planned: list[PlannedSection] = []
    deferred: PlannedSection | None = None

    if processed is not output:
        outer_key = _lookup(processed, DEFERRED_KEY)
        if outer_key is not None and is_renderable(processed[outer_key]):
            deferred = PlannedSection(outer_key, processed[outer_key], deferred=True)

    claimed: set[str] = set()
    for name in (PRIORITY_KEY, *SECTION_ORDER):
        key = _lookup(output, name)
        if key is None:
            continue
        claimed.add(key)
        if is_renderable(output[key]):
            planned.append(PlannedSection(key, output[key]))

    deferred_key = _lookup(output, DEFERRED_KEY)
    for key, value in output.items():
        if key == deferred_key:
            if deferred is None and is_renderable(value):
                deferred = PlannedSection(key, value, deferred=True)
            continue
        if key in claimed or key in SYSTEM_FIELDS or not is_renderable(value):
            continue
        planned.append(PlannedSection(key, value))

    if deferred is not None:
        planned.append(deferred)
    return planned


def _load_logo(logo_path: Path | None) -> ImageReader | None:
    if logo_path is None:
        return None
    try:
        return load_image(Path(logo_path))
    except ImageLoadError as exc:
        logger.warning("Error loading logo, using text-only branding: %s", exc)
        return None


def _generated_label(now: datetime) -> str:
    return f"Generated: {now.strftime('%b %d, %Y, %I:%M %p')}"


def _draw_header(layout: PageLayout, branding: ReportBranding, logo: ImageReader | None, now: datetime) -> None:
    cursor = layout.cursor
    right_x = cursor.page_width - cursor.margin

    if logo is None:
        _draw_header_fallback(layout, branding, now)
        return

    logo_size = 10 * mm
    logo_x = cursor.margin
    logo_y = 6 * mm
    layout.emit(FilledRect(0, 0, cursor.page_width, 40 * mm, PRIMARY))
    layout.emit(Picture(logo, logo_x, logo_y, logo_size, logo_size))
    text_x = logo_x + logo_size + 3 * mm
    layout.emit(TextRun(branding.brand, text_x, logo_y + 4 * mm, FONTS["bold"], 12, WHITE, role="banner"))
    layout.emit(TextRun(f"by {branding.vendor}", text_x, logo_y + 8 * mm, FONTS["normal"], 8, WHITE, role="banner"))
    layout.emit(
        TextRun(branding.agent_name, right_x, logo_y + 7 * mm, FONTS["bold"], 18, WHITE, "right", role="banner")
    )
    layout.emit(TextRun(_generated_label(now), right_x, logo_y + 18 * mm, FONTS["normal"], 8, WHITE, "right", role="banner"))
    layout.emit(TextRun(branding.report_title, logo_x, logo_y + 20 * mm, FONTS["normal"], 10, WHITE, role="banner"))
    cursor.y = 50 * mm


def _draw_header_fallback(layout: PageLayout, branding: ReportBranding, now: datetime) -> None:
    cursor = layout.cursor
    right_x = cursor.page_width - cursor.margin

    layout.emit(FilledRect(0, 0, cursor.page_width, 45 * mm, PRIMARY))
    layout.emit(Disc(cursor.margin + 7 * mm, 19 * mm, 5 * mm, WHITE))
    layout.emit(
        TextRun(branding.brand[:1], cursor.margin + 7 * mm, 21 * mm, FONTS["bold"], 12, PRIMARY, "center", role="banner")
    )
    layout.emit(TextRun(branding.brand, cursor.margin + 16 * mm, 22 * mm, FONTS["bold"], 16, WHITE, role="banner"))
    layout.emit(
        TextRun(branding.agent_name, cursor.page_width / 2, 18 * mm, FONTS["normal"], 11, WHITE, "center", role="banner")
    )
    layout.emit(TextRun(branding.report_title, right_x, 22 * mm, FONTS["bold"], 18, WHITE, "right", role="banner"))
    layout.emit(TextRun(_generated_label(now), right_x, 32 * mm, FONTS["normal"], 9, WHITE, "right", role="banner"))
    cursor.y = 55 * mm


def _stamp_footer(layout: PageLayout, branding: ReportBranding, logo: ImageReader | None, now: datetime) -> None:
    """Stamp rule, branding, date and ``Page X of N`` on every page."""
    cursor = layout.cursor
    total = layout.page_count
    rule_y = cursor.page_height - 20 * mm
    text_y = cursor.page_height - 13.5 * mm
    right_x = cursor.page_width - cursor.margin
    date_text = f"{now.month}/{now.day}/{now.year}"

    for page in layout.pages:
        page.add(Rule(cursor.margin, rule_y, right_x, rule_y, PRIMARY, 0.3 * mm))
        if logo is not None:
            logo_size = 5 * mm
            page.add(Picture(logo, cursor.margin, cursor.page_height - 17 * mm, logo_size, logo_size))
            page.add(
                TextRun(branding.vendor, cursor.margin + logo_size + 1 * mm, text_y, FONTS["bold"], 8, LIGHT_TEXT, role="footer")
            )
        else:
            page.add(TextRun(branding.vendor, cursor.margin, text_y, FONTS["bold"], 8, LIGHT_TEXT, role="footer"))
            page.add(
                TextRun(branding.report_title, cursor.margin + 25 * mm, text_y, FONTS["normal"], 8, LIGHT_TEXT, role="footer")
            )
        page.add(TextRun(date_text, cursor.page_width / 2, text_y, FONTS["normal"], 8, LIGHT_TEXT, "center", role="footer"))
        page.add(
            TextRun(f"Page {page.number} of {total}", right_x, text_y, FONTS["normal"], 8, LIGHT_TEXT, "right", role="footer")
        )


def build_document(
    data: Any,
    branding: ReportBranding | None = None,
    logo_path: Path | None = None,
    now: datetime | None = None,
) -> ReportDocument:
    """Lay out a report for ``data`` without writing anything to disk.

    Args:
        data: Agent output payload, possibly wrapped in ``data`` and
            ``Details``/``agent_outputs`` envelopes.
        branding: Names for the header and footer.
        logo_path: Optional logo image; text-only branding is used when it
            cannot be loaded.
        now: Timestamp printed in the header and footer.

    Returns:
        The laid-out document.
    """
    branding = branding or ReportBranding()
    now = now or datetime.now()
    logo = _load_logo(logo_path)

    layout = PageLayout()
    _draw_header(layout, branding, logo, now)

    processed, output = unwrap_payload(data)
    if output is None:
        add_section_header(layout, NO_DATA_TITLE)
        add_content(layout, NO_DATA_MESSAGE, 8 * mm, "italic")
    else:
        for section in plan_sections(processed, output):
            if section.deferred:
                layout.advance(DEFERRED_GAP)
            render_value(layout, section.value, section.key, deferred=section.deferred)
            if not section.deferred:
                layout.advance(SECTION_GAP)

    _stamp_footer(layout, branding, logo, now)
    return ReportDocument(title=f"{branding.brand} - {branding.report_title}", pages=layout.pages)


def _output_filename(filename: str | None) -> str:
    name = Path(filename or DEFAULT_FILENAME).name or DEFAULT_FILENAME
    if Path(name).suffix.lower() != ".pdf":
        name = f"{name}.pdf"
    return name


def write_pdf_bytes(pdf_bytes: bytes, output_path: Path) -> None:
    """Write a finished PDF to disk.

    Args:
        pdf_bytes: Complete PDF document.
        output_path: Destination path for the PDF file.

    Raises:
        ReportError: If the file cannot be written. No partial file is left.
    """
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(pdf_bytes)
    except OSError as exc:
        if output_path.is_file():
            output_path.unlink()
        raise ReportError("Failed to write PDF report") from exc


def render_report(
    data: Any,
    filename: str | None = DEFAULT_FILENAME,
    output_dir: Path = Path("."),
    *,
    branding: ReportBranding | None = None,
    logo_path: Path | None = None,
    now: datetime | None = None,
) -> RenderResult:
    """Render ``data`` to ``output_dir/filename``.

    Never raises: any failure is logged and reported through the result, and
    the file is only written once the whole PDF has been produced in memory.
    """
    output_path = Path(output_dir) / _output_filename(filename)
    try:
        document = build_document(data, branding=branding, logo_path=logo_path, now=now)
        write_pdf_bytes(document.to_pdf_bytes(), output_path)
    except Exception as exc:
        logger.exception("Error generating PDF")
        return RenderResult(success=False, message="Failed to generate PDF", error=exc)

    logger.info("Wrote %d page report to %s", document.page_count, output_path)
    return RenderResult(success=True, message="PDF generated successfully", path=output_path)
