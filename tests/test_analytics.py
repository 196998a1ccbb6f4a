"""Tests for dashboard aggregations."""

from datetime import datetime, timedelta, timezone

import pytest

from nexora.analytics import (
    aggregate_metrics,
    build_dashboard,
    build_timeline,
    extract_keywords,
    rank_versions,
    section_insights,
)
from nexora.models import FeedbackRecord, MetricRecord, VersionRecord

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def metric(metric_type, when=NOW, value=1):
    return MetricRecord(
        id=f"m-{metric_type}-{when.isoformat()}",
        product_id="p1",
        metric_type=metric_type,
        value=value,
        recorded_at=when,
    )


def feedback(comment=None, rating=None, section=None):
    return FeedbackRecord(
        id="f",
        product_id="p1",
        user_id="u1",
        comment=comment,
        rating=rating,
        section_reference=section,
    )


def version(number, created_at):
    return VersionRecord(id=f"v{number}", product_id="p1", version_number=number, created_at=created_at)


class TestAggregateMetrics:
    """Test metric totals and trend."""

    def test_empty_inputs(self):
        result = aggregate_metrics([], [], now=NOW)

        assert result.model_dump() == {
            "total_views": 0,
            "total_downloads": 0,
            "conversion_rate": 0,
            "avg_rating": 0,
            "rating_count": 0,
            "trend": "neutral",
        }

    def test_conversion_rate(self):
        metrics = [metric("view", value=100), metric("download", value=20), metric("cover_download", value=5)]

        result = aggregate_metrics(metrics, [], now=NOW)

        assert result.total_views == 100
        assert result.total_downloads == 25
        assert result.conversion_rate == pytest.approx(25.0)

    def test_average_rating_ignores_unrated(self):
        result = aggregate_metrics([], [feedback(rating=5), feedback(rating=2), feedback(comment="hi")], now=NOW)

        assert result.avg_rating == pytest.approx(3.5)
        assert result.rating_count == 2

    def test_trend_up(self):
        metrics = [
            metric("download", NOW - timedelta(days=1)),
            metric("download", NOW - timedelta(days=2)),
            metric("download", NOW - timedelta(days=10)),
        ]
        assert aggregate_metrics(metrics, [], now=NOW).trend == "up"

    def test_trend_down(self):
        metrics = [
            metric("download", NOW - timedelta(days=8)),
            metric("download", NOW - timedelta(days=9)),
        ]
        assert aggregate_metrics(metrics, [], now=NOW).trend == "down"

    def test_trend_ignores_older_than_two_weeks_and_views(self):
        metrics = [
            metric("download", NOW - timedelta(days=30)),
            metric("view", NOW - timedelta(days=1)),
        ]
        assert aggregate_metrics(metrics, [], now=NOW).trend == "neutral"


def test_rank_versions_counts_downloads_after_creation():
    v1 = version(1, NOW - timedelta(days=10))
    v2 = version(2, NOW - timedelta(days=2))
    metrics = [
        metric("download", NOW - timedelta(days=5)),
        metric("download", NOW - timedelta(days=1)),
        metric("cover_download", NOW - timedelta(days=1)),
        metric("view", NOW - timedelta(days=1)),
    ]

    ranked = rank_versions([v2, v1], metrics)

    assert [(v.version_number, v.downloads) for v in ranked] == [(1, 2), (2, 1)]


def test_rank_versions_is_stable_on_ties():
    ranked = rank_versions([version(3, NOW), version(2, NOW)], [])
    assert [v.version_number for v in ranked] == [3, 2]


def test_build_timeline_buckets_by_day():
    metrics = [
        metric("view", datetime(2024, 1, 2, 9, tzinfo=timezone.utc)),
        metric("download", datetime(2024, 1, 2, 10, tzinfo=timezone.utc)),
        metric("view", datetime(2024, 1, 1, 9, tzinfo=timezone.utc)),
    ]

    timeline = build_timeline(metrics)

    assert [p.date for p in timeline] == ["2024-01-01", "2024-01-02"]
    assert timeline[0].conversion == 0
    assert timeline[1].views == 1
    assert timeline[1].downloads == 1
    assert timeline[1].conversion == 100


def test_build_timeline_rounds_conversion():
    day = datetime(2024, 1, 1, tzinfo=timezone.utc)
    metrics = [metric("view", day, value=3), metric("download", day, value=1)]

    assert build_timeline(metrics)[0].conversion == 33


def test_extract_keywords_ranks_repeated_words():
    result = extract_keywords(
        [feedback("This app is amazing"), feedback("This app is AMAZING and fast")]
    )

    words = [k.word for k in result]
    assert words[:2] == ["app", "amazing"]
    assert result[0].count == 2
    assert "fast" in words
    assert "this" not in words
    assert "and" not in words
    assert "is" not in words


def test_extract_keywords_limit_and_punctuation():
    comments = [feedback(" ".join(f"word{chr(97 + i)}x" for i in range(20)) + "!!! 123")]
    result = extract_keywords(comments)

    assert len(result) == 15
    assert all(k.word.isalpha() for k in result)


def test_section_insights_worst_first():
    result = section_insights(
        [
            feedback(rating=5, section="intro"),
            feedback(rating=1, section="chapter 2"),
            feedback(rating=3, section="chapter 2"),
            feedback(rating=4),
            feedback(section="intro"),
        ]
    )

    assert [(s.section, s.avg_rating, s.count) for s in result] == [
        ("chapter 2", 2.0, 2),
        ("intro", 5.0, 1),
    ]


def test_build_dashboard_payload():
    dashboard = build_dashboard(
        [metric("view"), metric("download")],
        [feedback("great read", rating=4, section="intro")],
        [version(1, NOW - timedelta(days=1))],
        now=NOW,
    )

    assert set(dashboard) == {"summary", "versions", "timeline", "keywords", "sections"}
    assert dashboard["summary"]["conversion_rate"] == pytest.approx(100.0)
    assert dashboard["versions"][0]["downloads"] == 1
    assert dashboard["keywords"][0]["word"] == "great"
