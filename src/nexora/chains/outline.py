"""Outline stage: plan the chapter list for a job."""

import logging

from langchain_core.prompts import PromptTemplate

from ..models import EbookLength, OutlineEntry, ParseOutcome
from ..utils.llm_client import LLMClient
from ..utils.parsing import parse_outline

logger = logging.getLogger(__name__)

OUTLINE_MAX_TOKENS = 800

outline_prompt = PromptTemplate.from_template(
    """Create a clear, logical outline for an ebook titled "{title}" - {subtitle}
Topic: {topic}
Tone: {tone}
Length: {length} ({total_chapters} chapters)

Output ONLY a JSON array with exactly {total_chapters} entries:
[
  {{"number":1, "title":"Chapter Title", "goal":"What the reader achieves in this chapter", "estimated_words":1000}},
  ...
]"""
)


def generate_outline(
    llm: LLMClient,
    title: str,
    subtitle: str,
    topic: str,
    tone: str,
    length: EbookLength,
) -> ParseOutcome[list[OutlineEntry]]:
    """Generate an outline with exactly ``length.chapter_count`` entries."""
    total = length.chapter_count
    prompt = outline_prompt.format(
        title=title,
        subtitle=subtitle,
        topic=topic,
        tone=tone,
        length=length.value,
        total_chapters=total,
    )
    raw = llm.call(prompt, OUTLINE_MAX_TOKENS)
    return parse_outline(raw, topic, total)
