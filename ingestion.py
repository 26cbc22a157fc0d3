"""Input module for loading agent output payloads and sanitizing report text."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any


TYPOGRAPHIC_REPLACEMENTS: tuple[tuple[str, str], ...] = (
    ("“", '"'),
    ("”", '"'),
    ("‘", "'"),
    ("’", "'"),
    ("–", "-"),
    ("—", "-"),
    ("…", "..."),
    (" ", " "),
    ("\r\n", "\n"),
    ("\r", "\n"),
)
UNPRINTABLE_PATTERN = re.compile("[^ -~¡-ÿ\n\t]")
WHITESPACE_PATTERN = re.compile(r"\s+")
WORD_START_PATTERN = re.compile(r"\b\w")


class IngestionError(Exception):
    """Raised when loading an agent output payload fails."""


class PayloadDecodeError(IngestionError):
    """Raised when a payload file does not contain valid JSON."""


def sanitize_text(text: Any) -> str:
    """Normalize text so the standard PDF fonts can draw it.

    Sanitization rules:
    - Non-string input becomes an empty string.
    - Curly quotes, dashes, ellipses and non-breaking spaces become ASCII.
    - Characters outside printable ASCII and Latin-1 are removed.
    - Whitespace runs, newlines included, collapse to a single space.

    Args:
        text: Raw text taken from an agent output.

    Returns:
        Sanitized single-line text.
    """
    if not text or not isinstance(text, str):
        return ""

    normalized = text
    for source, target in TYPOGRAPHIC_REPLACEMENTS:
        normalized = normalized.replace(source, target)

    normalized = UNPRINTABLE_PATTERN.sub("", normalized)
    return WHITESPACE_PATTERN.sub(" ", normalized).strip()


def humanize_key(key: str) -> str:
    """Turn a payload key such as ``Keyword_Frequency`` into a display title."""
    cleaned = sanitize_text(key).replace("_", " ")
    return WORD_START_PATTERN.sub(lambda match: match.group(0).upper(), cleaned)


def _validate_extension(file_path: Path) -> None:
    """Validate that the file path points to a JSON file.

    Args:
        file_path: Path to validate.

    Raises:
        IngestionError: If the path is not a JSON file.
    """
    if file_path.suffix.lower() != ".json":
        raise IngestionError(f"Invalid file extension for '{file_path.name}'. Expected .json")


def read_json_safely(file_path: Path) -> Any:
    """Read an agent output payload from disk.

    Args:
        file_path: Path to the JSON file.

    Returns:
        The decoded JSON value.

    Raises:
        IngestionError: If the file is missing or unreadable.
        PayloadDecodeError: If the file content is not valid JSON.
    """
    if not file_path.exists() or not file_path.is_file():
        raise IngestionError(f"JSON file not found: {file_path}")

    _validate_extension(file_path)

    try:
        with file_path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise PayloadDecodeError(f"Invalid JSON in '{file_path.name}' at line {exc.lineno}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise IngestionError("Failed to read JSON payload") from exc
