"""Logging, job event logs and optional Langfuse tracing."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import get_data_paths, settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the API server and CLI."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def append_log_entry(
    job_id: str, entry: dict[str, Any], base_dir: str | Path | None = None
) -> Path | None:
    """Append an event to the job's ``<job_id>.jsonl`` log.

    Without a ``base_dir`` (memory-backed deployments) the entry is only
    emitted through ``logging``.
    """
    entry = {**entry, "job_id": job_id}
    entry["timestamp"] = datetime.now(timezone.utc).isoformat()
    logger.debug(f"Job event: {entry}")

    if base_dir is None:
        return None

    log_dir = get_data_paths(base_dir)["logs"]
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{job_id}.jsonl"
    with open(log_file, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
    return log_file


def load_log_entries(job_id: str, base_dir: str | Path) -> list[dict]:
    """Read back a job's event log, oldest first."""
    log_file = get_data_paths(base_dir)["logs"] / f"{job_id}.jsonl"
    if not log_file.exists():
        return []

    entries = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                entries.append(json.loads(line))
    return entries


def is_langfuse_enabled() -> bool:
    """Check if Langfuse tracing is enabled and configured."""
    return (
        settings.langfuse_enabled
        and bool(settings.langfuse_public_key)
        and bool(settings.langfuse_secret_key)
    )


def get_langchain_callback_handler() -> Any | None:
    """Get a Langfuse callback handler for LangChain calls, if configured."""
    if not is_langfuse_enabled():
        return None

    try:
        from langfuse.callback import CallbackHandler
    except ImportError:
        logger.warning("Langfuse enabled but langfuse.callback is not importable")
        return None

    try:
        return CallbackHandler(
            public_key=settings.langfuse_public_key,
            secret_key=settings.langfuse_secret_key,
            host=settings.langfuse_host,
        )
    except Exception as e:
        logger.warning("Failed to create Langfuse callback: %s", e)
        return None
