"""Cover stage: produce an image-generation prompt for the ebook cover."""

import logging

from langchain_core.prompts import PromptTemplate

from ..utils.llm_client import LLMClient

logger = logging.getLogger(__name__)

COVER_MAX_TOKENS = 600
DEFAULT_COVER_STYLE = "modern minimalist professional ebook cover"
DEFAULT_COVER_TOPIC = "nonfiction self-improvement / business / technology"

cover_prompt = PromptTemplate.from_template(
    """You are an expert book cover designer specializing in high-converting nonfiction ebooks.

Book title: "{title}"
Subtitle: "{subtitle}"
Main topic: {topic}

Create a **single, detailed image generation prompt** optimized for Flux.1, SD3 Medium, Midjourney v6, or DALL-E 3.

Style guidelines:
- {style}
- Clean, modern, premium look
- Strong typography (bold sans-serif title, elegant subtitle)
- High contrast, professional color palette
- Symbolic / metaphorical imagery that matches the book's promise
- No people faces (unless very abstract / silhouette)
- Vertical composition (suitable for ebook thumbnail ~1600x2560)
- Include space for title & subtitle in the design

Output **ONLY** the final prompt text - no explanations, no JSON wrapper, nothing else."""
)


def generate_cover_prompt(
    llm: LLMClient,
    title: str,
    subtitle: str,
    topic: str | None = None,
    style: str | None = None,
) -> str:
    """Ask the LLM for one image prompt matching the cover style guidelines."""
    prompt = cover_prompt.format(
        title=title,
        subtitle=subtitle,
        topic=topic or DEFAULT_COVER_TOPIC,
        style=style or DEFAULT_COVER_STYLE,
    )
    result = llm.call(prompt, COVER_MAX_TOKENS).strip()
    logger.info(f"Generated cover prompt for {title!r} ({len(result)} chars)")
    return result
