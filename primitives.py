"""Primitive draw helpers: wrapped text, key/value rows, bullets and section headers.

Every helper checks for space before it writes and advances the layout cursor
past whatever it drew.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from reportlab.lib.units import mm

from ingestion import sanitize_text
from layout import (
    ACCENT,
    BACKGROUND,
    FONTS,
    PRIMARY,
    SECONDARY,
    TEXT,
    FilledRect,
    PageLayout,
    TextRun,
    split_lines,
)


logger = logging.getLogger(__name__)

BODY_FONT_SIZE: float = 10
LINE_SPACING: float = 0.4 * mm
PARAGRAPH_GAP: float = 3 * mm
TRUNCATE_LENGTH: int = 100

CHARS_PER_LINE: int = 80
ESTIMATED_LINE_HEIGHT: float = 12 * mm
CONTENT_RESERVE_CAP: float = 50 * mm

KEY_COLUMN_WIDTH: float = 60 * mm
KEY_VALUE_RESERVE: float = 25 * mm
KEY_VALUE_GAP: float = 5 * mm

BULLET_INDENT: float = 10 * mm
BULLET_WIDTH: float = 8 * mm
BULLET_RESERVE: float = 15 * mm
BULLET_GLYPH = "•"

HEADER_BAND_HEIGHT: float = 16 * mm
HEADER_ADVANCE: float = 18 * mm
MIN_LOOKAHEAD: float = 50 * mm
MAX_LOOKAHEAD: float = 80 * mm

ESTIMATE_CAP: float = 150 * mm


def add_wrapped_text(
    layout: PageLayout,
    text: str,
    x: float,
    max_width: float,
    size: float = BODY_FONT_SIZE,
    style: str = "normal",
    color: str = TEXT,
) -> None:
    """Draw sanitized text wrapped to ``max_width``, one line at a time.

    A page break is taken before any line that would cross the footer area, so
    a line is never split across pages. If wrapping fails the first
    ``TRUNCATE_LENGTH`` characters are drawn on one line instead.
    """
    sanitized = sanitize_text(text)
    if not sanitized:
        return

    font = FONTS.get(style, FONTS["normal"])
    spacing = size * LINE_SPACING

    try:
        lines = split_lines(sanitized, font, size, max_width)
    except Exception as exc:
        logger.warning("Error wrapping text, truncating: %s", exc)
        truncated = sanitized[:TRUNCATE_LENGTH] + ("..." if len(sanitized) > TRUNCATE_LENGTH else "")
        layout.ensure_space(spacing)
        layout.emit(TextRun(truncated, x, layout.cursor.y, font, size, color))
        layout.advance(spacing + PARAGRAPH_GAP)
        return

    for line in lines:
        layout.ensure_space(spacing)
        layout.emit(TextRun(line, x, layout.cursor.y, font, size, color))
        layout.advance(spacing)
    layout.advance(PARAGRAPH_GAP)


def add_content(layout: PageLayout, content: str, indent: float = 0, style: str = "normal") -> None:
    """Draw a paragraph, keeping short paragraphs together on one page."""
    if not content:
        return

    estimated_lines = math.ceil(len(content) / CHARS_PER_LINE)
    layout.ensure_space(min(estimated_lines * ESTIMATED_LINE_HEIGHT + 10 * mm, CONTENT_RESERVE_CAP))

    cursor = layout.cursor
    add_wrapped_text(layout, content, cursor.margin + indent, cursor.content_width - indent, style=style)


def add_key_value(layout: PageLayout, key: str, value: str, indent: float = 0) -> None:
    """Draw a bold ``key:`` label with its value wrapped in a column beside it."""
    if not key or not value:
        return

    layout.ensure_space(KEY_VALUE_RESERVE)

    cursor = layout.cursor
    layout.emit(
        TextRun(
            f"{sanitize_text(key)}:",
            cursor.margin + indent,
            cursor.y,
            FONTS["bold"],
            BODY_FONT_SIZE,
            PRIMARY,
            role="label",
        )
    )
    value_width = cursor.content_width - indent - KEY_COLUMN_WIDTH - 8 * mm
    add_wrapped_text(layout, value, cursor.margin + indent + KEY_COLUMN_WIDTH, value_width)
    layout.advance(KEY_VALUE_GAP)


def add_bullet(layout: PageLayout, text: str, indent: float = BULLET_INDENT) -> None:
    if not text:
        return

    layout.ensure_space(BULLET_RESERVE)

    cursor = layout.cursor
    layout.emit(TextRun(BULLET_GLYPH, cursor.margin + indent, cursor.y, FONTS["normal"], BODY_FONT_SIZE, SECONDARY))
    max_width = cursor.content_width - indent - BULLET_WIDTH
    add_wrapped_text(layout, text, cursor.margin + indent + BULLET_WIDTH, max_width)
    layout.advance(1 * mm)


def add_label(layout: PageLayout, text: str, indent: float, size: float = 11, advance: float = 6 * mm) -> None:
    """Draw a bold accent label (speaker names, item numbers) on its own line."""
    cursor = layout.cursor
    layout.emit(TextRun(text, cursor.margin + indent, cursor.y, FONTS["bold"], size, ACCENT, role="label"))
    layout.advance(advance)


def header_height(level: int) -> float:
    return _top_padding(level) + HEADER_ADVANCE


def _top_padding(level: int) -> float:
    return 8 * mm if level == 1 else 6 * mm


def add_section_header(layout: PageLayout, title: str, level: int = 1, upcoming: float = 0) -> None:
    """Draw a tinted section header band.

    Space for the header plus a look-ahead of its first content is reserved up
    front so the header does not end a page on its own.
    """
    font_size = 14 if level == 1 else 12
    lookahead = max(MIN_LOOKAHEAD, min(upcoming, MAX_LOOKAHEAD))
    layout.ensure_space(header_height(level) + lookahead)

    cursor = layout.cursor
    layout.keep_with_next()
    layout.advance(_top_padding(level))

    band_x = cursor.margin - 3 * mm
    band_y = cursor.y - 6 * mm
    layout.emit(FilledRect(band_x, band_y, cursor.content_width + 6 * mm, HEADER_BAND_HEIGHT, BACKGROUND), held=True)
    layout.emit(FilledRect(band_x, band_y, 2 * mm, HEADER_BAND_HEIGHT, PRIMARY), held=True)
    layout.emit(
        TextRun(
            sanitize_text(title),
            cursor.margin + 3 * mm,
            cursor.y + 3 * mm,
            FONTS["bold"],
            font_size,
            PRIMARY,
            role="section",
        ),
        held=True,
    )
    layout.advance(HEADER_ADVANCE)


def estimate_height(content: Any) -> float:
    """Rough height a section will need, used as header look-ahead."""
    if content is None:
        return 0

    estimated = 25 * mm
    if isinstance(content, str):
        estimated += math.ceil(len(content) / CHARS_PER_LINE) * ESTIMATED_LINE_HEIGHT + 10 * mm
    elif isinstance(content, list):
        estimated += len(content) * 15 * mm + 20 * mm
    elif isinstance(content, dict):
        estimated += len(content) * 20 * mm + 30 * mm
    return min(estimated, ESTIMATE_CAP)
