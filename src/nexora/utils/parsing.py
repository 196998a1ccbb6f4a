"""Parsing of structured LLM output with deterministic fallbacks.

Malformed JSON from the model is not an error: each parser returns a
``ParseOutcome`` whose ``used_fallback`` flag marks the degraded branch.
"""

import json
import logging
from typing import Any

from ..models import OutlineEntry, ParseOutcome, TitleResult

logger = logging.getLogger(__name__)

DEFAULT_SUBTITLE = "A Practical Guide to Real Results"


def extract_json_block(text: str) -> str:
    """Remove markdown code fences and commentary around a JSON value.

    Some models wrap JSON in ```json ... ``` blocks or add a sentence before
    or after it. Returns the first balanced object or array found, or the
    stripped input when none is present.
    """
    cleaned = text
    if "```json" in cleaned:
        cleaned = cleaned.split("```json")[1].split("```")[0].strip()
    elif "```" in cleaned:
        cleaned = cleaned.split("```")[1].split("```")[0].strip()

    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    if not starts:
        return text.strip()

    start_idx = min(starts)
    opener = cleaned[start_idx]
    closer = "}" if opener == "{" else "]"

    depth = 0
    in_string = False
    escaped = False
    for i in range(start_idx, len(cleaned)):
        ch = cleaned[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return cleaned[start_idx : i + 1]

    return cleaned[start_idx:]


def _load_json(raw: str) -> Any:
    return json.loads(extract_json_block(raw))


def fallback_title(topic: str) -> TitleResult:
    return TitleResult(title=f"Mastering {topic}", subtitle=DEFAULT_SUBTITLE)


def parse_title(raw: str, topic: str) -> ParseOutcome[TitleResult]:
    """Parse ``{"title", "subtitle"}`` or fall back to a templated title."""
    try:
        data = _load_json(raw)
        if not isinstance(data, dict):
            raise ValueError("title payload is not an object")
        title = str(data.get("title") or "").strip()
        subtitle = str(data.get("subtitle") or "").strip()
        if not title:
            raise ValueError("title missing")
        return ParseOutcome[TitleResult](
            value=TitleResult(title=title, subtitle=subtitle or DEFAULT_SUBTITLE)
        )
    except (ValueError, TypeError) as e:
        logger.warning(f"Title JSON parse failed, using fallback: {e}")
        return ParseOutcome[TitleResult](
            value=fallback_title(topic), used_fallback=True, reason=str(e)
        )


def placeholder_entry(number: int, topic: str) -> OutlineEntry:
    return OutlineEntry(
        number=number,
        title=f"Chapter {number}",
        goal=f"Understand key aspect {number} of {topic}",
    )


def fallback_outline(topic: str, total: int) -> list[OutlineEntry]:
    return [placeholder_entry(i + 1, topic) for i in range(total)]


def _coerce_entry(item: Any, number: int, topic: str) -> OutlineEntry:
    if not isinstance(item, dict):
        return placeholder_entry(number, topic)

    words = item.get("estimated_words")
    try:
        words = int(words) if words is not None else None
    except (TypeError, ValueError):
        words = None

    return OutlineEntry(
        number=number,
        title=str(item.get("title") or f"Chapter {number}").strip(),
        goal=str(item.get("goal") or f"Understand key aspect {number} of {topic}").strip(),
        estimated_words=words,
    )


def parse_outline(raw: str, topic: str, total: int) -> ParseOutcome[list[OutlineEntry]]:
    """Parse a chapter list and normalise it to exactly ``total`` entries.

    Extra entries are dropped, missing ones are padded with placeholders and
    chapters are renumbered 1..total.
    """
    try:
        data = _load_json(raw)
        if isinstance(data, dict):
            data = data.get("chapters") or data.get("outline")
        if not isinstance(data, list) or not data:
            raise ValueError("outline payload is not a non-empty array")
    except (ValueError, TypeError) as e:
        logger.warning(f"Outline JSON parse failed, using fallback: {e}")
        return ParseOutcome[list[OutlineEntry]](
            value=fallback_outline(topic, total), used_fallback=True, reason=str(e)
        )

    entries = [_coerce_entry(item, i + 1, topic) for i, item in enumerate(data[:total])]
    reason = None
    if len(data) != total:
        reason = f"outline had {len(data)} entries, expected {total}"
        logger.info(reason)
    for number in range(len(entries) + 1, total + 1):
        entries.append(placeholder_entry(number, topic))

    return ParseOutcome[list[OutlineEntry]](value=entries, reason=reason)
