"""Ebook generation pipeline: title, outline, chapters, cover and finalize.

Each stage is a single request-sized unit of work. Stages read the job,
call the LLM, and write new fields plus a status transition back through the
``JobStore``. The job moves ``pending -> outline_done -> writing -> complete``;
any stage failure moves it to ``error`` with a truncated message.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from .chains.chapter import write_chapter
from .chains.cover import generate_cover_prompt
from .chains.finalize import build_full_markdown
from .chains.outline import generate_outline
from .chains.title import generate_title, preview_title
from .config import settings
from .models import (
    ChapterResult,
    ConflictError,
    EbookJob,
    JobStatus,
    NotFoundError,
    ValidationError,
)
from .observability import append_log_entry
from .storage import JobStore
from .utils.llm_client import LLMClient
from .utils.validators import require, validate_ebook_input, validate_length

logger = logging.getLogger(__name__)

# Allowed status moves. Leaving ``error`` is only possible through an
# explicit retry of the chapter stage.
ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PENDING, JobStatus.OUTLINE_DONE, JobStatus.ERROR},
    JobStatus.OUTLINE_DONE: {JobStatus.WRITING, JobStatus.COMPLETE, JobStatus.ERROR},
    JobStatus.WRITING: {JobStatus.WRITING, JobStatus.COMPLETE, JobStatus.ERROR},
    JobStatus.COMPLETE: {JobStatus.COMPLETE},
    JobStatus.ERROR: {JobStatus.WRITING, JobStatus.COMPLETE, JobStatus.ERROR},
}

CHAPTER_WRITE_ATTEMPTS = 3


def ensure_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise ``ValidationError`` if the job may not move from ``current`` to ``target``."""
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ValidationError(
            f"Job cannot move from {current.value} to {target.value}"
        )


def job_snapshot(job: EbookJob) -> dict[str, Any]:
    """Client-facing view of a job, as returned by the status endpoint."""
    return {
        "jobId": job.id,
        "topic": job.topic,
        "tone": job.tone,
        "length": job.length.value,
        "status": job.status.value,
        "progress": job.progress,
        "totalChapters": job.total_chapters,
        "title": job.title,
        "subtitle": job.subtitle,
        "outline": [entry.model_dump() for entry in job.outline],
        "contentPartsCount": job.filled_count(),
        "errorMessage": job.error_message,
        "coverPrompt": job.cover_prompt,
        "createdAt": job.created_at.isoformat(),
        "updatedAt": job.updated_at.isoformat(),
    }


class EbookPipeline:
    """Runs ebook stages against an injected job store and LLM client."""

    def __init__(
        self,
        store: JobStore,
        llm: LLMClient,
        log_dir: str | Path | None = None,
        error_message_max_chars: int | None = None,
    ):
        self.store = store
        self.llm = llm
        self.log_dir = log_dir
        self.error_message_max_chars = (
            error_message_max_chars or settings.error_message_max_chars
        )

    def _log(self, job_id: str, entry: dict[str, Any]) -> None:
        append_log_entry(job_id, entry, self.log_dir)

    def _mark_error(self, job_id: str, error: Exception) -> None:
        """Record a stage failure unless the job completed meanwhile."""
        message = (str(error) or type(error).__name__)[: self.error_message_max_chars]
        for _ in range(CHAPTER_WRITE_ATTEMPTS):
            try:
                current = self.store.get(job_id)
                if current.status == JobStatus.COMPLETE:
                    logger.info(f"Job {job_id} completed concurrently; failure not recorded")
                    return
                self.store.update(
                    job_id,
                    {"status": JobStatus.ERROR, "error_message": message},
                    expected_revision=current.revision,
                )
                return
            except ConflictError:
                continue
            except Exception as store_error:
                logger.error(f"Could not record error on job {job_id}: {store_error}")
                return
        logger.error(f"Job {job_id} kept changing while recording error: {message}")

    @contextmanager
    def _stage(self, job: EbookJob | None, stage: str) -> Iterator[None]:
        """Log a stage and record any failure on the job before re-raising."""
        if job is None:
            yield
            return

        self._log(job.id, {"action": f"{stage}_started"})
        try:
            yield
        except Exception as e:
            logger.error(f"Stage {stage} failed for job {job.id}: {e}")
            self._mark_error(job.id, e)
            self._log(job.id, {"action": f"{stage}_failed", "error": str(e)})
            raise
        self._log(job.id, {"action": f"{stage}_completed"})

    def get(self, job_id: str, user_id: str | None = None) -> EbookJob:
        """Read a job, hiding jobs owned by another user."""
        job = self.store.get(require(job_id, "jobId"))
        if user_id and job.user_id and job.user_id != user_id:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def start(
        self,
        topic: str,
        tone: str | None = None,
        length: str | None = None,
        user_id: str | None = None,
    ) -> EbookJob:
        """Create a job and run the title and outline stages."""
        topic = validate_ebook_input(topic)
        ebook_length = validate_length(length or settings.default_length)
        tone = (tone or "").strip() or settings.default_tone

        job = self.store.create(topic, tone, ebook_length, user_id=user_id)
        self._log(job.id, {"action": "job_created", "topic": topic, "length": ebook_length.value})

        self.run_title(job.id)
        return self.run_outline(job.id)

    def run_title(self, job_id: str) -> EbookJob:
        job = self.store.get(job_id)
        if job.status != JobStatus.PENDING:
            raise ValidationError(f"Title stage requires a pending job, not {job.status.value}")

        with self._stage(job, "title"):
            outcome = generate_title(self.llm, job.topic, job.tone)
            job = self.store.update(
                job_id,
                {"title": outcome.value.title, "subtitle": outcome.value.subtitle},
            )

        if outcome.used_fallback:
            self._log(job_id, {"action": "title_fallback", "reason": outcome.reason})
        return job

    def run_outline(self, job_id: str) -> EbookJob:
        job = self.store.get(job_id)
        if not job.title:
            raise ValidationError("Title must be generated before the outline")
        if job.outline:
            raise ValidationError("Outline already generated")
        ensure_transition(job.status, JobStatus.OUTLINE_DONE)

        with self._stage(job, "outline"):
            outcome = generate_outline(
                self.llm, job.title, job.subtitle or "", job.topic, job.tone, job.length
            )
            job = self.store.update(
                job_id,
                {
                    "outline": outcome.value,
                    "total_chapters": len(outcome.value),
                    "content_parts": {},
                    "progress": 0,
                    "status": JobStatus.OUTLINE_DONE,
                },
            )

        if outcome.used_fallback:
            self._log(job_id, {"action": "outline_fallback", "reason": outcome.reason})
        logger.info(f"Job {job_id} outlined with {job.total_chapters} chapters")
        return job

    def generate_chapter(
        self, job_id: str, chapter_index: Any, user_id: str | None = None
    ) -> ChapterResult:
        """Write chapter ``chapter_index`` unless its slot is already filled."""
        if isinstance(chapter_index, bool) or not isinstance(chapter_index, int):
            raise ValidationError("jobId and chapterIndex are required")

        job = self.get(job_id, user_id)
        if not job.outline:
            raise ValidationError("Outline has not been generated yet")
        if chapter_index < 0 or chapter_index >= job.total_chapters:
            raise ValidationError("Invalid chapter index")

        if job.slot(chapter_index):
            return self._already_generated(job, chapter_index)

        if job.status not in (JobStatus.OUTLINE_DONE, JobStatus.WRITING, JobStatus.ERROR):
            raise ValidationError(f"Cannot write chapters while job is {job.status.value}")

        with self._stage(job, f"chapter_{chapter_index}"):
            content = write_chapter(self.llm, job, chapter_index)
            return self._store_chapter(job_id, chapter_index, content)

    def _already_generated(self, job: EbookJob, index: int) -> ChapterResult:
        return ChapterResult(
            chapter_index=index,
            progress=job.progress,
            status=job.status,
            already_generated=True,
        )

    def _store_chapter(self, job_id: str, index: int, content: str) -> ChapterResult:
        """Write one slot with compare-and-set on the job revision.

        The row is re-read before every attempt; a slot filled by a concurrent
        writer wins and this write is dropped.
        """
        for attempt in range(1, CHAPTER_WRITE_ATTEMPTS + 1):
            current = self.store.get(job_id)
            if current.slot(index):
                logger.info(f"Chapter {index} of job {job_id} was written concurrently")
                return self._already_generated(current, index)

            parts = dict(current.content_parts)
            parts[index] = content
            progress = sum(1 for i in range(current.total_chapters) if parts.get(i))
            status = (
                JobStatus.COMPLETE
                if progress == current.total_chapters
                else JobStatus.WRITING
            )
            ensure_transition(current.status, status)

            try:
                updated = self.store.update(
                    job_id,
                    {
                        "content_parts": parts,
                        "progress": progress,
                        "status": status,
                        "error_message": None,
                    },
                    expected_revision=current.revision,
                )
            except ConflictError:
                logger.info(
                    f"Job {job_id} changed while storing chapter {index} "
                    f"(attempt {attempt}/{CHAPTER_WRITE_ATTEMPTS})"
                )
                continue

            self._log(job_id, {"action": "chapter_stored", "chapter": index, "progress": progress})
            return ChapterResult(
                chapter_index=index, progress=updated.progress, status=updated.status
            )

        raise ConflictError(f"Job {job_id} kept changing while storing chapter {index}")

    def generate_cover(
        self,
        title: str | None,
        subtitle: str | None,
        topic: str | None = None,
        job_id: str | None = None,
        style: str | None = None,
        user_id: str | None = None,
    ) -> str:
        """Produce a cover image prompt; saved on the job when ``job_id`` is given."""
        if not title or not subtitle:
            raise ValidationError("title and subtitle are required")

        job = self.get(job_id, user_id) if job_id else None
        with self._stage(job, "cover"):
            cover = generate_cover_prompt(self.llm, title, subtitle, topic, style)
            if job is not None:
                self.store.update(job.id, {"cover_prompt": cover})
        return cover

    def finalize(self, job_id: str, user_id: str | None = None) -> str:
        """Assemble the full markdown document of a completed job."""
        job = self.get(job_id, user_id)
        if job.status != JobStatus.COMPLETE:
            raise ValidationError("Job not complete")
        markdown = build_full_markdown(job)
        self._log(job.id, {"action": "finalized", "chars": len(markdown)})
        return markdown

    def preview_title(self, topic: str) -> str:
        return preview_title(self.llm, validate_ebook_input(topic))
