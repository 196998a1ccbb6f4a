"""Tests for the status poller that drives chapter generation."""

import threading
from unittest.mock import MagicMock

import pytest
import requests

from nexora.poller import (
    HttpPipelineClient,
    LocalPipelineClient,
    StatusPoller,
    next_chapter_index,
    wait_for_subscription,
)


@pytest.mark.parametrize(
    "snapshot,expected",
    [
        ({"status": "outline_done", "progress": 0, "totalChapters": 5}, 0),
        ({"status": "writing", "progress": 3, "totalChapters": 5}, 3),
        ({"status": "writing", "progress": 5, "totalChapters": 5}, None),
        ({"status": "pending", "progress": 0, "totalChapters": 0}, None),
        ({"status": "complete", "progress": 5, "totalChapters": 5}, None),
        ({"status": "error", "progress": 2, "totalChapters": 5}, None),
    ],
)
def test_next_chapter_index(snapshot, expected):
    assert next_chapter_index(snapshot) == expected


def test_poller_drives_job_to_completion(pipeline):
    """One chapter per tick until the job completes."""
    job = pipeline.start("deep work", length="short")
    updates = []
    waits = []

    poller = StatusPoller(LocalPipelineClient(pipeline), job.id, interval=4.0, sleep=waits.append)
    final = poller.run(on_update=updates.append)

    assert final["status"] == "complete"
    assert final["progress"] == 3
    assert [u["progress"] for u in updates] == [0, 1, 2, 3]
    assert waits == [4.0, 4.0, 4.0]


def test_poller_stops_on_error(pipeline, chat_factory):
    job = pipeline.start("deep work", length="short")
    chat_factory.reply = lambda prompt: ConnectionError("provider down")

    poller = StatusPoller(LocalPipelineClient(pipeline), job.id, interval=0, sleep=lambda s: None)
    final = poller.run(max_ticks=5)

    assert final["status"] == "error"
    assert "provider down" in final["errorMessage"]


def test_failed_trigger_is_retried_next_tick():
    """A failed trigger does not advance; the same index is requested again."""
    client = MagicMock()
    client.fetch_status.return_value = {"status": "writing", "progress": 1, "totalChapters": 3}
    client.trigger_chapter.side_effect = [requests.ConnectionError("reset"), {"success": True}]

    poller = StatusPoller(client, "job-1", interval=0, sleep=lambda s: None)
    first = poller.poll_once()
    second = poller.poll_once()

    assert first.triggered_index == second.triggered_index == 1
    assert client.trigger_chapter.call_count == 2


def test_failed_status_fetch_keeps_polling():
    """A transient fetch error is logged and the loop carries on to the next tick."""
    complete = {"status": "complete", "progress": 3, "totalChapters": 3}
    client = MagicMock()
    client.fetch_status.side_effect = [requests.ConnectionError("blip"), complete]

    final = StatusPoller(client, "job-1", interval=0, sleep=lambda s: None).run()

    assert final == complete
    assert client.fetch_status.call_count == 2
    client.trigger_chapter.assert_not_called()


def test_failed_status_fetch_reports_last_snapshot():
    writing = {"status": "writing", "progress": 1, "totalChapters": 3}
    client = MagicMock()
    client.fetch_status.side_effect = [writing, requests.Timeout("slow")]

    poller = StatusPoller(client, "job-1", interval=0, sleep=lambda s: None)
    poller.poll_once()
    result = poller.poll_once()

    assert result.snapshot == writing
    assert not result.done
    assert result.triggered_index is None


def test_poller_does_not_trigger_for_terminal_job():
    client = MagicMock()
    client.fetch_status.return_value = {"status": "complete", "progress": 3, "totalChapters": 3}

    result = StatusPoller(client, "job-1", interval=0).poll_once()

    assert result.done
    client.trigger_chapter.assert_not_called()


def test_stop_event_cancels_polling():
    client = MagicMock()
    client.fetch_status.return_value = {"status": "pending", "progress": 0, "totalChapters": 0}
    stop = threading.Event()

    def stop_after_first(snapshot):
        stop.set()

    StatusPoller(client, "job-1", interval=60).run(stop_event=stop, on_update=stop_after_first)

    assert client.fetch_status.call_count == 1
    client.trigger_chapter.assert_not_called()


def test_http_client_calls_api_routes():
    client = HttpPipelineClient("http://api.test/", token="tok")
    response = MagicMock()
    response.json.return_value = {"status": "writing"}
    client.session = MagicMock()
    client.session.get.return_value = response
    client.session.post.return_value = response

    assert client.fetch_status("job-1") == {"status": "writing"}
    client.trigger_chapter("job-1", 2)

    client.session.get.assert_called_once_with(
        "http://api.test/api/ebook-status", params={"jobId": "job-1"}, timeout=30
    )
    args, kwargs = client.session.post.call_args
    assert args[0] == "http://api.test/api/generate-chapter"
    assert kwargs["json"] == {"jobId": "job-1", "chapterIndex": 2}


def test_http_client_sets_bearer_token():
    client = HttpPipelineClient("http://api.test", token="tok")
    assert client.session.headers["Authorization"] == "Bearer tok"


def test_wait_for_subscription_returns_when_active():
    checks = iter([False, False, True])
    assert wait_for_subscription(lambda: next(checks), interval=0, timeout=5)


def test_wait_for_subscription_times_out():
    assert not wait_for_subscription(lambda: False, interval=0, timeout=0)
