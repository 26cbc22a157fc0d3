"""Section strategies and the ordered rule table that picks one per payload entry."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, NamedTuple

from reportlab.lib.units import mm

from ingestion import humanize_key, sanitize_text
from layout import PageLayout
from primitives import (
    add_bullet,
    add_content,
    add_key_value,
    add_label,
    add_section_header,
    estimate_height,
)


logger = logging.getLogger(__name__)

SYSTEM_FIELDS: frozenset[str] = frozenset(
    {
        "userId",
        "agent_id",
        "execution_id",
        "user_inputs",
        "file_data",
        "response_rating",
        "response_feedback",
        "createdAt",
        "filename",
        "updatedAt",
    }
)

LONG_TEXT_THRESHOLD: int = 150
MARKUP_PATTERN = re.compile(r"^\s*#{1,6}\s|\*\*|__|\n", re.MULTILINE)

KEYWORD_SECTION_TITLE = "Key Topics & Keywords"
ACTION_SECTION_TITLE = "Action Items"
EMPTY_LIST_PLACEHOLDER = "No items found."

ASSIGNED_BY_MARKER = ". Assigned by: "
ASSIGNED_TO_MARKER = ". Assigned to: "
PRIORITY_PATTERN = re.compile(r"^([A-Za-z-]+):\s*(.+)$")

CONTENT_INDENT: float = 8 * mm
UTTERANCE_INDENT: float = 15 * mm
ACTION_DETAIL_INDENT: float = 18 * mm


@dataclass(frozen=True)
class SectionEntry:
    """A payload value together with the key and depth it was found at."""

    key: str
    value: Any
    level: int = 1
    deferred: bool = False
    in_list: bool = False

    @property
    def title(self) -> str:
        return humanize_key(self.key)

    def key_mentions(self, *fragments: str) -> bool:
        lowered = self.key.lower()
        return any(fragment in lowered for fragment in fragments)


@dataclass(frozen=True)
class ActionItem:
    description: str
    priority: str | None = None
    assigned_by: str | None = None
    assigned_to: str | None = None


class SectionRule(NamedTuple):
    name: str
    matches: Callable[[SectionEntry], bool]
    render: Callable[[PageLayout, SectionEntry], None]


def is_renderable(value: Any) -> bool:
    """Return False for values that must not produce any output."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, float) and not math.isfinite(value):
        return False
    if isinstance(value, (list, dict)):
        return len(value) > 0
    return True


def format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (int, float)):
        return format_number(value)
    return json.dumps(value, ensure_ascii=False)


def has_markup(text: str) -> bool:
    return MARKUP_PATTERN.search(text) is not None


def parse_action_item(text: str) -> ActionItem:
    """Split an action item string into description, priority and assignees.

    ``"Urgent: Send deck. Assigned by: Ana. Assigned to: Raj"`` yields
    priority ``Urgent``, description ``Send deck``, assignor ``Ana`` and
    assignee ``Raj``.
    """
    main, _, assignment = text.partition(ASSIGNED_BY_MARKER)

    priority = None
    description = main
    match = PRIORITY_PATTERN.match(main)
    if match:
        priority, description = match.group(1), match.group(2)

    assigned_by = None
    assigned_to = None
    if assignment:
        assigned_by, _, assigned_to = assignment.partition(ASSIGNED_TO_MARKER)

    return ActionItem(
        description=description,
        priority=priority,
        assigned_by=assigned_by or None,
        assigned_to=assigned_to or None,
    )


def _is_transcription(entry: SectionEntry) -> bool:
    return entry.deferred or entry.key_mentions("transcription")


def render_plain_text(layout: PageLayout, entry: SectionEntry) -> None:
    add_section_header(layout, entry.title, entry.level, estimate_height(entry.value))
    add_content(layout, entry.value, CONTENT_INDENT)


def render_key_value(layout: PageLayout, entry: SectionEntry) -> None:
    add_key_value(layout, entry.title, sanitize_text(entry.value))


def render_boolean(layout: PageLayout, entry: SectionEntry) -> None:
    add_key_value(layout, entry.title, "Yes" if entry.value else "No")


def render_number(layout: PageLayout, entry: SectionEntry) -> None:
    # Zero is treated as "no value" and left out of the report.
    if entry.value == 0:
        return
    add_key_value(layout, entry.title, format_number(entry.value))


def render_transcript(layout: PageLayout, entry: SectionEntry) -> None:
    add_section_header(layout, entry.title, entry.level, estimate_height(entry.value))

    for index, item in enumerate(entry.value):
        if not is_renderable(item):
            continue
        if index > 0:
            layout.advance(4 * mm)

        if isinstance(item, dict):
            for speaker, utterance in item.items():
                if not is_renderable(utterance):
                    continue
                layout.ensure_space(25 * mm)
                add_label(layout, f"{sanitize_text(speaker)}:", CONTENT_INDENT)
                add_content(layout, _as_text(utterance), UTTERANCE_INDENT)
                layout.advance(2 * mm)
        else:
            add_content(layout, _as_text(item), CONTENT_INDENT)


def render_keyword_frequency(layout: PageLayout, entry: SectionEntry) -> None:
    add_section_header(layout, KEYWORD_SECTION_TITLE, entry.level, estimate_height(entry.value))

    for keyword in entry.value:
        if not is_renderable(keyword):
            continue
        if isinstance(keyword, dict):
            for term, detail in keyword.items():
                add_key_value(layout, term, sanitize_text(_as_text(detail)), CONTENT_INDENT)
            continue

        text = _as_text(keyword)
        term, separator, description = text.partition(": ")
        if separator and term.strip() and description.strip():
            add_key_value(layout, term.strip(), sanitize_text(description), CONTENT_INDENT)
        else:
            add_bullet(layout, text, CONTENT_INDENT)


def _render_action_details(layout: PageLayout, description: str) -> None:
    for line in description.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        label, separator, value = stripped.partition(": ")
        if separator and label.strip() and value.strip():
            add_key_value(layout, label.strip(), sanitize_text(value), ACTION_DETAIL_INDENT)
        else:
            add_content(layout, stripped, ACTION_DETAIL_INDENT)


def render_action_items(layout: PageLayout, entry: SectionEntry) -> None:
    add_section_header(layout, ACTION_SECTION_TITLE, entry.level, estimate_height(entry.value))

    items = [item for item in entry.value if is_renderable(item)]
    for number, item in enumerate(items, start=1):
        layout.ensure_space(40 * mm)
        add_label(layout, f"{number}.", CONTENT_INDENT)

        if isinstance(item, dict):
            for label, value in item.items():
                if is_renderable(value):
                    add_key_value(layout, humanize_key(label), sanitize_text(_as_text(value)), ACTION_DETAIL_INDENT)
        else:
            parsed = parse_action_item(_as_text(item))
            if parsed.priority:
                add_key_value(layout, "Priority", sanitize_text(parsed.priority), ACTION_DETAIL_INDENT)
            _render_action_details(layout, parsed.description)
            if parsed.assigned_by:
                add_key_value(layout, "Assigned By", sanitize_text(parsed.assigned_by), ACTION_DETAIL_INDENT)
            if parsed.assigned_to:
                add_key_value(layout, "Assigned To", sanitize_text(parsed.assigned_to), ACTION_DETAIL_INDENT)

        if number < len(items):
            layout.advance(4 * mm)


def _render_list_items(layout: PageLayout, items: list[Any], level: int) -> None:
    for item in items:
        if isinstance(item, list) and not item:
            add_content(layout, EMPTY_LIST_PLACEHOLDER, CONTENT_INDENT, "italic")
        elif not is_renderable(item):
            continue
        elif isinstance(item, str):
            add_bullet(layout, item)
        elif isinstance(item, dict):
            for sub_key, sub_value in item.items():
                render_value(layout, sub_value, sub_key, level + 1, in_list=True)
        elif isinstance(item, list):
            _render_list_items(layout, item, level + 1)
        else:
            add_bullet(layout, _as_text(item))


def render_bullet_list(layout: PageLayout, entry: SectionEntry) -> None:
    add_section_header(layout, entry.title, entry.level, estimate_height(entry.value))
    _render_list_items(layout, entry.value, entry.level)


def render_object(layout: PageLayout, entry: SectionEntry) -> None:
    if entry.key in SYSTEM_FIELDS:
        return

    if entry.level == 1:
        add_section_header(layout, entry.title, entry.level, estimate_height(entry.value))

    for sub_key, sub_value in entry.value.items():
        if sub_key in SYSTEM_FIELDS:
            continue
        render_value(layout, sub_value, sub_key, entry.level + 1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


SECTION_RULES: tuple[SectionRule, ...] = (
    SectionRule(
        "transcript",
        lambda entry: isinstance(entry.value, list) and _is_transcription(entry),
        render_transcript,
    ),
    SectionRule(
        "transcript_text",
        lambda entry: isinstance(entry.value, str) and _is_transcription(entry),
        render_plain_text,
    ),
    SectionRule(
        "keyword_frequency",
        lambda entry: isinstance(entry.value, list) and entry.key_mentions("keyword", "frequency"),
        render_keyword_frequency,
    ),
    SectionRule(
        "action_items",
        lambda entry: isinstance(entry.value, list) and entry.key_mentions("action", "item"),
        render_action_items,
    ),
    SectionRule("boolean", lambda entry: isinstance(entry.value, bool), render_boolean),
    SectionRule("number", lambda entry: _is_number(entry.value), render_number),
    SectionRule(
        "plain_text",
        lambda entry: isinstance(entry.value, str)
        and (has_markup(entry.value) or len(sanitize_text(entry.value)) > LONG_TEXT_THRESHOLD),
        render_plain_text,
    ),
    SectionRule("key_value", lambda entry: isinstance(entry.value, str), render_key_value),
    SectionRule("bullet_list", lambda entry: isinstance(entry.value, list), render_bullet_list),
    SectionRule("object", lambda entry: isinstance(entry.value, dict), render_object),
)


def select_rule(entry: SectionEntry) -> SectionRule | None:
    """Return the first rule whose predicate accepts ``entry``."""
    for rule in SECTION_RULES:
        if rule.matches(entry):
            return rule
    return None


def render_value(
    layout: PageLayout,
    value: Any,
    key: str,
    level: int = 1,
    *,
    deferred: bool = False,
    in_list: bool = False,
) -> None:
    """Render one payload entry with the strategy its key and type select."""
    if not is_renderable(value):
        if in_list and isinstance(value, list):
            add_key_value(layout, humanize_key(key), EMPTY_LIST_PLACEHOLDER)
        return

    entry = SectionEntry(key=key, value=value, level=level, deferred=deferred, in_list=in_list)
    rule = select_rule(entry)
    if rule is None:
        logger.debug("No section strategy for key '%s' (%s)", key, type(value).__name__)
        return
    rule.render(layout, entry)
