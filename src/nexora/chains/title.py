"""Title stage: ask the LLM for a title and subtitle."""

import logging

from langchain_core.prompts import PromptTemplate

from ..models import ParseOutcome, TitleResult
from ..utils.llm_client import LLMClient
from ..utils.parsing import parse_title

logger = logging.getLogger(__name__)

TITLE_MAX_TOKENS = 400
PREVIEW_MAX_TOKENS = 100

title_prompt = PromptTemplate.from_template(
    """You are a world-class nonfiction book title strategist.

Topic: {topic}
Tone: {tone}

Create ONE high-conversion title + subtitle.
Output ONLY valid JSON:
{{"title":"...", "subtitle":"..."}}"""
)

preview_prompt = PromptTemplate.from_template(
    """You are a professional book title generator. Respond with ONLY the title, nothing else. No quotes, no explanation.

Generate a professional, compelling ebook title for this topic: "{topic}". The title should be catchy, marketable, and promise value to readers."""
)


def generate_title(llm: LLMClient, topic: str, tone: str) -> ParseOutcome[TitleResult]:
    """Generate title and subtitle, falling back to a templated title."""
    raw = llm.call(title_prompt.format(topic=topic, tone=tone), TITLE_MAX_TOKENS)
    outcome = parse_title(raw, topic)
    if outcome.used_fallback:
        logger.debug(f"Unparseable title output: {raw[:200]!r}")
    return outcome


def preview_title(llm: LLMClient, topic: str) -> str:
    """Single-line title suggestion shown while the user types."""
    lines = llm.call(preview_prompt.format(topic=topic), PREVIEW_MAX_TOKENS).splitlines()
    return (lines[0].strip().strip('"').strip() if lines else "") or topic
