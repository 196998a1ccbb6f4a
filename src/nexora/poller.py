"""Status polling loop that advances a job one chapter per tick.

The poller is the orchestrator: every ``interval`` seconds it reads the job
status and, while chapters remain, asks for chapter ``progress``. Since
``progress`` is computed by the server from filled slots, a failed or
duplicate trigger is corrected on the next tick.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import requests

from .config import settings
from .models import NexoraError
from .pipeline import EbookPipeline, job_snapshot

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("outline_done", "writing")
TERMINAL_STATUSES = ("complete", "error")


class PipelineClient(Protocol):
    """What the poller needs from a job backend."""

    def fetch_status(self, job_id: str) -> dict[str, Any]: ...

    def trigger_chapter(self, job_id: str, chapter_index: int) -> dict[str, Any]: ...


class LocalPipelineClient:
    """Drive an in-process ``EbookPipeline`` (CLI and tests)."""

    def __init__(self, pipeline: EbookPipeline, user_id: str | None = None):
        self.pipeline = pipeline
        self.user_id = user_id

    def fetch_status(self, job_id: str) -> dict[str, Any]:
        return job_snapshot(self.pipeline.get(job_id, self.user_id))

    def trigger_chapter(self, job_id: str, chapter_index: int) -> dict[str, Any]:
        result = self.pipeline.generate_chapter(job_id, chapter_index, self.user_id)
        return result.model_dump(mode="json")


class HttpPipelineClient:
    """Drive a remote NexoraOS API over HTTP."""

    def __init__(self, base_url: str, token: str | None = None, timeout: int = 330):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def fetch_status(self, job_id: str) -> dict[str, Any]:
        response = self.session.get(
            f"{self.base_url}/api/ebook-status",
            params={"jobId": job_id},
            timeout=30,
        )
        response.raise_for_status()
        return response.json()

    def trigger_chapter(self, job_id: str, chapter_index: int) -> dict[str, Any]:
        response = self.session.post(
            f"{self.base_url}/api/generate-chapter",
            json={"jobId": job_id, "chapterIndex": chapter_index},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def start(self, topic: str, tone: str | None = None, length: str | None = None) -> dict[str, Any]:
        body = {"topic": topic, "tone": tone, "length": length}
        response = self.session.post(
            f"{self.base_url}/api/generate-ebook",
            json={k: v for k, v in body.items() if v is not None},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def finalize(self, job_id: str) -> str:
        response = self.session.post(
            f"{self.base_url}/api/finalize-ebook",
            json={"jobId": job_id},
            timeout=30,
        )
        response.raise_for_status()
        return response.json()["finalMarkdown"]


@dataclass
class PollResult:
    snapshot: dict[str, Any]
    triggered_index: Optional[int] = None
    done: bool = False


def next_chapter_index(snapshot: dict[str, Any]) -> Optional[int]:
    """Chapter to request next, or ``None`` when nothing should be triggered."""
    status = snapshot.get("status")
    progress = snapshot.get("progress") or 0
    total = snapshot.get("totalChapters") or 0
    if status in ACTIVE_STATUSES and progress < total:
        return progress
    return None


class StatusPoller:
    """Fetch job status every ``interval`` seconds and trigger the next chapter."""

    def __init__(
        self,
        client: PipelineClient,
        job_id: str,
        interval: float | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.client = client
        self.job_id = job_id
        self.interval = settings.poll_interval_seconds if interval is None else interval
        self._sleep = sleep
        self._last_snapshot: dict[str, Any] = {}

    def poll_once(self) -> PollResult:
        try:
            snapshot = self.client.fetch_status(self.job_id)
        except (NexoraError, requests.RequestException) as e:
            logger.warning(f"Status fetch for job {self.job_id} failed: {e}")
            return PollResult(snapshot=self._last_snapshot)
        self._last_snapshot = snapshot

        if snapshot.get("status") in TERMINAL_STATUSES:
            return PollResult(snapshot=snapshot, done=True)

        index = next_chapter_index(snapshot)
        if index is None:
            return PollResult(snapshot=snapshot)

        try:
            self.client.trigger_chapter(self.job_id, index)
        except (NexoraError, requests.RequestException) as e:
            # next tick re-reads server state and retries the same index
            logger.warning(f"Chapter {index} trigger for job {self.job_id} failed: {e}")
        return PollResult(snapshot=snapshot, triggered_index=index)

    def run(
        self,
        stop_event: threading.Event | None = None,
        on_update: Callable[[dict[str, Any]], None] | None = None,
        max_ticks: int | None = None,
    ) -> dict[str, Any]:
        """Poll until the job completes or errors, or ``stop_event`` is set.

        Returns the last snapshot seen.
        """
        stop_event = stop_event or threading.Event()
        ticks = 0
        snapshot: dict[str, Any] = {}

        while not stop_event.is_set():
            result = self.poll_once()
            snapshot = result.snapshot
            ticks += 1
            if on_update:
                on_update(snapshot)
            if result.done:
                logger.info(f"Job {self.job_id} finished with status {snapshot.get('status')}")
                break
            if max_ticks is not None and ticks >= max_ticks:
                break
            self._wait(stop_event)

        return snapshot

    def _wait(self, stop_event: threading.Event) -> None:
        if self._sleep is not None:
            self._sleep(self.interval)
        else:
            stop_event.wait(self.interval)


def wait_for_subscription(
    check: Callable[[], bool],
    interval: float = 3.0,
    timeout: float = 60.0,
    stop_event: threading.Event | None = None,
) -> bool:
    """Poll ``check`` until it returns True, the timeout passes, or cancellation.

    Used after checkout while the payment webhook activates the subscription.
    """
    stop_event = stop_event or threading.Event()
    deadline = time.monotonic() + timeout
    while not stop_event.is_set():
        if check():
            return True
        if time.monotonic() >= deadline:
            logger.info("Subscription did not activate before timeout")
            return False
        stop_event.wait(interval)
    return False
