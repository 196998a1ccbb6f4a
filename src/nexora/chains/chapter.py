"""Chapter stage: write one chapter of a job from its outline entry."""

from langchain_core.prompts import PromptTemplate

from ..models import EbookJob
from ..utils.llm_client import LLMClient

DEFAULT_TARGET_WORDS = 1000
MAX_CHAPTER_TOKENS = 3500

chapter_prompt = PromptTemplate.from_template(
    """You are writing **Chapter {number}** of the ebook

**{title} - {subtitle}**

Tone: {tone} - clear, confident, no fluff, human expert voice
Previous chapters summary: {previous}

Chapter title: {chapter_title}
Main goal: {goal}

Target length: ~{target_words} words

Use **exactly** this structure with these headings:

## Hook
## The Current Reality
## The Framework
## Deep Explanation
## Real-World Examples
## Action Steps
## Identity Shift

Write clean markdown. Start directly with content. No meta comments."""
)


def previous_summary(job: EbookJob, index: int) -> str:
    """Summarise the goals of the chapters before ``index``."""
    parts = [
        f"Chapter {entry.number}: {entry.goal}" for entry in job.outline[:index]
    ]
    return " ".join(parts) or "This is the first chapter"


def chapter_token_budget(target_words: int) -> int:
    return min(MAX_CHAPTER_TOKENS, int(target_words * 1.6))


def build_chapter_prompt(job: EbookJob, index: int) -> str:
    entry = job.outline[index]
    return chapter_prompt.format(
        number=entry.number,
        title=job.title,
        subtitle=job.subtitle,
        tone=job.tone,
        previous=previous_summary(job, index),
        chapter_title=entry.title,
        goal=entry.goal,
        target_words=entry.estimated_words or DEFAULT_TARGET_WORDS,
    )


def write_chapter(llm: LLMClient, job: EbookJob, index: int) -> str:
    """Generate markdown for ``job.outline[index]``."""
    target = job.outline[index].estimated_words or DEFAULT_TARGET_WORDS
    return llm.call(build_chapter_prompt(job, index), chapter_token_budget(target))
