"""Finalize stage: assemble the full ebook markdown from a completed job."""

from ..models import EbookJob

AUTHOR_LINE = "By NexoraOS"
CLOSING_SECTION = "## Final Thoughts\n\nThank you for reading. Apply what you learned.\n"


def build_table_of_contents(job: EbookJob) -> str:
    lines = [f"- Chapter {entry.number}: {entry.title}" for entry in job.outline]
    return "## Table of Contents\n\n" + "\n".join(lines) + "\n"


def build_full_markdown(job: EbookJob) -> str:
    """Concatenate title, subtitle, table of contents and every chapter."""
    sections = [
        f"# {job.title}\n\n{job.subtitle}\n",
        f"{AUTHOR_LINE}\n",
        build_table_of_contents(job),
    ]
    for index, entry in enumerate(job.outline):
        content = job.content_parts.get(index, "")
        sections.append(f"## Chapter {entry.number}: {entry.title}\n\n{content}\n")
    sections.append(CLOSING_SECTION)
    return "\n".join(sections)
