"""Input validation for user-supplied generation parameters."""

import logging
import re

from ..models import EbookLength, ValidationError

logger = logging.getLogger(__name__)

MAX_TOPIC_CHARS = 500
MAX_TITLE_CHARS = 200

# Common prompt injection and markup patterns
DANGEROUS_PATTERNS = re.compile(
    r"ignore\s+previous|ignore\s+all|system\s*:|assistant\s*:|<script|javascript:|data:",
    re.IGNORECASE,
)


def validate_ebook_input(topic: str | None, title: str | None = None) -> str:
    """Validate a topic (and optional title) and return the trimmed topic.

    Raises:
        ValidationError: If the topic is missing, too long or looks like a
            prompt injection attempt
    """
    if not topic or not isinstance(topic, str):
        raise ValidationError("topic is required")

    trimmed = topic.strip()
    if not trimmed:
        raise ValidationError("topic cannot be empty")
    if len(trimmed) > MAX_TOPIC_CHARS:
        raise ValidationError(f"Topic too long (max {MAX_TOPIC_CHARS} characters)")

    if title is not None:
        if not isinstance(title, str):
            raise ValidationError("Title must be a string")
        if len(title.strip()) > MAX_TITLE_CHARS:
            raise ValidationError(f"Title too long (max {MAX_TITLE_CHARS} characters)")
        if DANGEROUS_PATTERNS.search(title):
            raise ValidationError("Invalid characters in title")

    if DANGEROUS_PATTERNS.search(trimmed):
        logger.warning("Rejected topic matching injection pattern")
        raise ValidationError("Invalid characters in topic")

    return trimmed


def validate_length(length: str | None) -> EbookLength:
    if length is None:
        return EbookLength.MEDIUM
    try:
        return EbookLength(length)
    except ValueError:
        raise ValidationError(
            f"length must be one of {', '.join(e.value for e in EbookLength)}"
        )


def sanitize_input(text: str) -> str:
    """Trim, strip angle brackets and cap length for safe use in prompts."""
    return re.sub(r"[<>]", "", text.strip())[:MAX_TOPIC_CHARS]


def require(value, name: str):
    """Raise ``ValidationError`` when a required field is missing or blank."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{name} is required")
    return value
