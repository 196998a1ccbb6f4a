"""Dashboard aggregations over metric and feedback records.

All functions are pure: they fold lists already fetched from the store and
never touch storage themselves.
"""

import math
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from .models import (
    AggregatedMetrics,
    FeedbackRecord,
    KeywordCount,
    MetricRecord,
    RankedVersion,
    SectionInsight,
    TimelinePoint,
    VersionRecord,
)

DOWNLOAD_TYPES = {"download", "cover_download"}
TREND_WINDOW = timedelta(days=7)
KEYWORD_LIMIT = 15

STOP_WORDS = {
    "the", "a", "an", "is", "it", "to", "and", "of", "in", "for",
    "on", "was", "i", "this", "that", "but", "with",
}


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def _is_download(metric: MetricRecord) -> bool:
    return metric.metric_type in DOWNLOAD_TYPES


def aggregate_metrics(
    metrics: list[MetricRecord],
    feedback: list[FeedbackRecord],
    now: Optional[datetime] = None,
) -> AggregatedMetrics:
    """Totals, conversion rate, average rating and 7-day download trend.

    The trend compares the number of download rows in the trailing 7 days with
    the 7 days before that.
    """
    now = _aware(now or datetime.now(timezone.utc))

    total_views = sum(m.value for m in metrics if m.metric_type == "view")
    total_downloads = sum(m.value for m in metrics if _is_download(m))
    conversion_rate = (total_downloads / total_views) * 100 if total_views > 0 else 0.0

    ratings = [f.rating for f in feedback if f.rating is not None]
    avg_rating = sum(ratings) / len(ratings) if ratings else 0.0

    recent_start = now - TREND_WINDOW
    previous_start = now - 2 * TREND_WINDOW
    recent = 0
    previous = 0
    for m in metrics:
        if not _is_download(m):
            continue
        recorded = _aware(m.recorded_at)
        if recorded > recent_start:
            recent += 1
        elif recorded > previous_start:
            previous += 1

    if recent > previous:
        trend = "up"
    elif recent < previous:
        trend = "down"
    else:
        trend = "neutral"

    return AggregatedMetrics(
        total_views=total_views,
        total_downloads=total_downloads,
        conversion_rate=conversion_rate,
        avg_rating=avg_rating,
        rating_count=len(ratings),
        trend=trend,
    )


def rank_versions(
    versions: list[VersionRecord], metrics: list[MetricRecord]
) -> list[RankedVersion]:
    """Versions ordered by downloads recorded at or after their creation, highest first."""
    ranked = []
    for version in versions:
        created = _aware(version.created_at)
        downloads = sum(
            m.value
            for m in metrics
            if m.metric_type == "download" and _aware(m.recorded_at) >= created
        )
        ranked.append(RankedVersion(**version.model_dump(), downloads=downloads))
    return sorted(ranked, key=lambda v: v.downloads, reverse=True)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def build_timeline(metrics: list[MetricRecord]) -> list[TimelinePoint]:
    """Bucket views and downloads by calendar day, ascending by date."""
    buckets: dict[str, dict[str, int]] = defaultdict(lambda: {"views": 0, "downloads": 0})

    for m in metrics:
        date = _aware(m.recorded_at).astimezone(timezone.utc).date().isoformat()
        bucket = buckets[date]
        if m.metric_type == "view":
            bucket["views"] += m.value
        if _is_download(m):
            bucket["downloads"] += m.value

    return [
        TimelinePoint(
            date=date,
            views=d["views"],
            downloads=d["downloads"],
            conversion=_round_half_up(d["downloads"] / d["views"] * 100) if d["views"] > 0 else 0,
        )
        for date, d in sorted(buckets.items())
    ]


def _words(comment: str) -> Iterable[str]:
    return re.sub(r"[^a-z\s]", "", comment.lower()).split()


def extract_keywords(
    feedback: list[FeedbackRecord], limit: int = KEYWORD_LIMIT
) -> list[KeywordCount]:
    """Most frequent comment words; ties keep first-seen order."""
    counts: dict[str, int] = {}
    for f in feedback:
        if not f.comment:
            continue
        for word in _words(f.comment):
            if len(word) > 2 and word not in STOP_WORDS:
                counts[word] = counts.get(word, 0) + 1

    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [KeywordCount(word=w, count=c) for w, c in ordered[:limit]]


def section_insights(feedback: list[FeedbackRecord]) -> list[SectionInsight]:
    """Average rating per referenced section, worst first."""
    sections: dict[str, list[int]] = {}
    for f in feedback:
        if not f.section_reference or f.rating is None:
            continue
        sections.setdefault(f.section_reference, []).append(f.rating)

    insights = [
        SectionInsight(section=s, avg_rating=sum(r) / len(r), count=len(r))
        for s, r in sections.items()
    ]
    return sorted(insights, key=lambda i: i.avg_rating)


def build_dashboard(
    metrics: list[MetricRecord],
    feedback: list[FeedbackRecord],
    versions: list[VersionRecord],
    now: Optional[datetime] = None,
) -> dict:
    """Everything the product dashboard renders, in one payload."""
    return {
        "summary": aggregate_metrics(metrics, feedback, now).model_dump(),
        "versions": [v.model_dump(mode="json") for v in rank_versions(versions, metrics)],
        "timeline": [p.model_dump() for p in build_timeline(metrics)],
        "keywords": [k.model_dump() for k in extract_keywords(feedback)],
        "sections": [s.model_dump() for s in section_insights(feedback)],
    }
