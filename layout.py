"""Page model, write cursor and PDF painting for paginated reports.

Layout uses a top-down ``y`` coordinate measured in PDF points from the top
edge of the page. Draw operations are recorded per page and only replayed onto
a ReportLab canvas once the whole document is known, so footers can carry the
final page count.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import BinaryIO, Union

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas


logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN: float = 15 * mm
FOOTER_RESERVE: float = 25 * mm

PRIMARY = "#3B82F6"
SECONDARY = "#6366F1"
ACCENT = "#9333EA"
TEXT = "#0F172A"
LIGHT_TEXT = "#475569"
BACKGROUND = "#F8FAFC"
WHITE = "#FFFFFF"

FONTS: dict[str, str] = {
    "normal": "Helvetica",
    "bold": "Helvetica-Bold",
    "italic": "Helvetica-Oblique",
}


class ImageLoadError(Exception):
    """Raised when a branding image cannot be decoded."""


@dataclass(frozen=True)
class TextRun:
    """A single line of text anchored at its baseline."""

    text: str
    x: float
    y: float
    font: str = FONTS["normal"]
    size: float = 10
    color: str = TEXT
    align: str = "left"
    role: str = "body"

    def shifted(self, dy: float) -> TextRun:
        return replace(self, y=self.y + dy)

    def draw(self, pdf: canvas.Canvas, page_height: float) -> None:
        pdf.setFillColor(colors.HexColor(self.color))
        pdf.setFont(self.font, self.size)
        baseline = page_height - self.y
        if self.align == "right":
            pdf.drawRightString(self.x, baseline, self.text)
        elif self.align == "center":
            pdf.drawCentredString(self.x, baseline, self.text)
        else:
            pdf.drawString(self.x, baseline, self.text)


@dataclass(frozen=True)
class FilledRect:
    x: float
    y: float
    width: float
    height: float
    color: str = BACKGROUND

    def shifted(self, dy: float) -> FilledRect:
        return replace(self, y=self.y + dy)

    def draw(self, pdf: canvas.Canvas, page_height: float) -> None:
        pdf.setFillColor(colors.HexColor(self.color))
        pdf.rect(self.x, page_height - self.y - self.height, self.width, self.height, stroke=0, fill=1)


@dataclass(frozen=True)
class Rule:
    x1: float
    y1: float
    x2: float
    y2: float
    color: str = PRIMARY
    width: float = 1

    def shifted(self, dy: float) -> Rule:
        return replace(self, y1=self.y1 + dy, y2=self.y2 + dy)

    def draw(self, pdf: canvas.Canvas, page_height: float) -> None:
        pdf.setStrokeColor(colors.HexColor(self.color))
        pdf.setLineWidth(self.width)
        pdf.line(self.x1, page_height - self.y1, self.x2, page_height - self.y2)


@dataclass(frozen=True)
class Disc:
    cx: float
    cy: float
    radius: float
    color: str = WHITE

    def shifted(self, dy: float) -> Disc:
        return replace(self, cy=self.cy + dy)

    def draw(self, pdf: canvas.Canvas, page_height: float) -> None:
        pdf.setFillColor(colors.HexColor(self.color))
        pdf.circle(self.cx, page_height - self.cy, self.radius, stroke=0, fill=1)


@dataclass(frozen=True)
class Picture:
    image: ImageReader
    x: float
    y: float
    width: float
    height: float

    def shifted(self, dy: float) -> Picture:
        return replace(self, y=self.y + dy)

    def draw(self, pdf: canvas.Canvas, page_height: float) -> None:
        pdf.drawImage(self.image, self.x, page_height - self.y - self.height, self.width, self.height)


DrawOperation = Union[TextRun, FilledRect, Rule, Disc, Picture]


@dataclass
class Page:
    """One physical page: an ordered list of draw operations."""

    number: int
    operations: list[DrawOperation] = field(default_factory=list)

    def add(self, operation: DrawOperation) -> None:
        self.operations.append(operation)

    def text_runs(self, role: str | None = None) -> list[TextRun]:
        return [
            operation
            for operation in self.operations
            if isinstance(operation, TextRun) and (role is None or operation.role == role)
        ]

    def texts(self, role: str | None = None) -> list[str]:
        return [run.text for run in self.text_runs(role)]


@dataclass
class RenderCursor:
    """Vertical write position on the current page."""

    x: float = MARGIN
    y: float = MARGIN
    page_width: float = PAGE_WIDTH
    page_height: float = PAGE_HEIGHT
    margin: float = MARGIN
    footer_reserve: float = FOOTER_RESERVE

    @property
    def limit(self) -> float:
        """Lowest ``y`` content may reach before the footer area."""
        return self.page_height - self.margin - self.footer_reserve

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin

    def fits(self, height: float) -> bool:
        return self.y + height <= self.limit


class PageLayout:
    """Tracks the cursor and the pages produced so far.

    Operations emitted with ``held=True`` after :meth:`keep_with_next` stay
    attached to the content that follows them: if a page break happens before
    any such content is emitted, they move to the top of the new page.
    """

    def __init__(self, cursor: RenderCursor | None = None) -> None:
        self.cursor = cursor or RenderCursor()
        self.pages: list[Page] = [Page(number=1)]
        self._held: tuple[int, float] | None = None

    @property
    def current_page(self) -> Page:
        return self.pages[-1]

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def new_page(self) -> None:
        previous = self.current_page
        carried: list[DrawOperation] = []
        top = self.cursor.margin
        if self._held is not None and self._held[0] > 0:
            start, top = self._held
            carried = previous.operations[start:]
            del previous.operations[start:]

        offset = self.cursor.y - top
        self.pages.append(Page(number=len(self.pages) + 1))
        self.cursor.y = self.cursor.margin
        self._held = None

        if carried:
            dy = self.cursor.margin - top
            for operation in carried:
                self.current_page.add(operation.shifted(dy))
            self.cursor.y = self.cursor.margin + offset
            self._held = (0, self.cursor.margin)
            logger.debug("Carried %d held operations to page %d", len(carried), self.page_count)

    def ensure_space(self, height: float) -> bool:
        """Start a new page when ``height`` does not fit below the cursor.

        Returns:
            True when a page break happened.
        """
        if self.cursor.fits(height):
            return False
        self.new_page()
        return True

    def advance(self, dy: float) -> None:
        self.cursor.y += dy

    def keep_with_next(self) -> None:
        if self._held is None:
            self._held = (len(self.current_page.operations), self.cursor.y)

    def emit(self, operation: DrawOperation, *, held: bool = False) -> None:
        if not held:
            self._held = None
        self.current_page.add(operation)


def split_lines(text: str, font: str, size: float, max_width: float) -> list[str]:
    return simpleSplit(text, font, size, max_width)


def load_image(path: Path) -> ImageReader:
    """Load an image for drawing.

    Args:
        path: Path to a PNG or JPEG file.

    Returns:
        A decoded ReportLab image reader.

    Raises:
        ImageLoadError: If the file is missing or cannot be decoded.
    """
    if not path.exists() or not path.is_file():
        raise ImageLoadError(f"Image not found: {path}")
    try:
        reader = ImageReader(str(path))
        reader.getSize()
    except Exception as exc:
        raise ImageLoadError(f"Failed to decode image: {path.name}") from exc
    return reader


def paint(pages: list[Page], stream: BinaryIO, *, title: str = "", cursor: RenderCursor | None = None) -> None:
    """Replay recorded pages onto a ReportLab canvas and save into ``stream``."""
    geometry = cursor or RenderCursor()
    pdf = canvas.Canvas(stream, pagesize=(geometry.page_width, geometry.page_height))
    if title:
        pdf.setTitle(title)
    for page in pages:
        for operation in page.operations:
            operation.draw(pdf, geometry.page_height)
        pdf.showPage()
    pdf.save()
