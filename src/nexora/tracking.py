"""Published ebook products with versions, metrics and reader feedback."""

import logging
from datetime import datetime
from typing import Any, Optional

from .analytics import build_dashboard
from .models import (
    FeedbackRecord,
    MetricRecord,
    NotFoundError,
    ProductRecord,
    ValidationError,
    VersionRecord,
    utcnow,
)
from .storage import RecordStore, new_id
from .utils.validators import require

logger = logging.getLogger(__name__)

PRODUCTS = "ebook_products"
VERSIONS = "product_versions"
METRICS = "product_metrics"
FEEDBACK = "product_feedback"


def _clean(row: dict[str, Any]) -> dict[str, Any]:
    row.pop("revision", None)
    return row


class TrackingService:
    """Record and read back everything the product dashboard shows."""

    def __init__(self, records: RecordStore):
        self.records = records

    def _owned_product(self, product_id: str, user_id: str) -> ProductRecord:
        row = self.records.get(PRODUCTS, require(product_id, "productId"))
        if row is None or row["user_id"] != user_id:
            raise NotFoundError("Product not found")
        return ProductRecord(**row)

    def create_product(
        self,
        user_id: str,
        title: str,
        topic: str,
        description: str | None = None,
        length: str | None = None,
        content: str | None = None,
        cover_image_url: str | None = None,
        pages: int | None = None,
    ) -> dict[str, Any]:
        """Publish a product together with its first version."""
        product = ProductRecord(
            id=new_id(),
            user_id=user_id,
            title=require(title, "title"),
            topic=require(topic, "topic"),
            description=description,
            length=length or "medium",
            status="published",
        )
        self.records.insert(PRODUCTS, product.model_dump(mode="json"))

        version = VersionRecord(
            id=new_id(),
            product_id=product.id,
            version_number=1,
            content=content or "",
            cover_image_url=cover_image_url or None,
            pages=pages or 0,
            change_summary="Initial version",
        )
        version_row = _clean(self.records.insert(VERSIONS, version.model_dump(mode="json")))

        product_row = self.records.update(
            PRODUCTS,
            product.id,
            {"current_version_id": version.id, "updated_at": utcnow().isoformat()},
        )
        logger.info(f"Published product {product.id} ({product.title!r})")
        return {"product": _clean(product_row), "version": version_row}

    def add_version(
        self,
        user_id: str,
        product_id: str,
        content: str | None = None,
        cover_image_url: str | None = None,
        pages: int | None = None,
        change_summary: str | None = None,
    ) -> dict[str, Any]:
        """Append the next version and make it current."""
        product = self._owned_product(product_id, user_id)
        numbers = [r["version_number"] for r in self.records.select(VERSIONS, product_id=product.id)]
        version = VersionRecord(
            id=new_id(),
            product_id=product.id,
            version_number=max(numbers, default=0) + 1,
            content=content or "",
            cover_image_url=cover_image_url or None,
            pages=pages or 0,
            change_summary=change_summary,
        )
        row = _clean(self.records.insert(VERSIONS, version.model_dump(mode="json")))
        self.records.update(
            PRODUCTS,
            product.id,
            {"current_version_id": version.id, "updated_at": utcnow().isoformat()},
        )
        return row

    def record_metric(
        self,
        product_id: str,
        metric_type: str,
        value: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if self.records.get(PRODUCTS, require(product_id, "productId")) is None:
            raise NotFoundError("Product not found")
        metric = MetricRecord(
            id=new_id(),
            product_id=product_id,
            metric_type=require(metric_type, "metricType"),
            value=value or 1,
            metadata=metadata or None,
        )
        self.records.insert(METRICS, metric.model_dump(mode="json"))

    def submit_feedback(
        self,
        user_id: str,
        product_id: str,
        rating: int | None = None,
        comment: str | None = None,
        section_reference: str | None = None,
        feedback_type: str | None = None,
    ) -> dict[str, Any]:
        if self.records.get(PRODUCTS, require(product_id, "productId")) is None:
            raise NotFoundError("Product not found")
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError("rating must be between 1 and 5")
        feedback = FeedbackRecord(
            id=new_id(),
            product_id=product_id,
            user_id=user_id,
            rating=rating or None,
            comment=comment or None,
            section_reference=section_reference or None,
            feedback_type=feedback_type or "general",
        )
        return _clean(self.records.insert(FEEDBACK, feedback.model_dump(mode="json")))

    def list_products(self, user_id: str) -> list[dict[str, Any]]:
        """The user's products, newest first, with a summary of each version."""
        products = sorted(
            (ProductRecord(**r) for r in self.records.select(PRODUCTS, user_id=user_id)),
            key=lambda p: p.created_at,
            reverse=True,
        )
        result = []
        for product in products:
            entry = product.model_dump(mode="json")
            entry["product_versions"] = [
                {
                    k: v[k]
                    for k in ("id", "version_number", "pages", "created_at", "change_summary")
                }
                for v in self.get_versions(user_id, product.id)
            ]
            result.append(entry)
        return result

    def _metrics(self, product_id: str) -> list[MetricRecord]:
        return sorted(
            (MetricRecord(**r) for r in self.records.select(METRICS, product_id=product_id)),
            key=lambda m: m.recorded_at,
            reverse=True,
        )

    def _feedback(self, product_id: str) -> list[FeedbackRecord]:
        return sorted(
            (FeedbackRecord(**r) for r in self.records.select(FEEDBACK, product_id=product_id)),
            key=lambda f: f.created_at,
            reverse=True,
        )

    def _versions(self, product_id: str) -> list[VersionRecord]:
        return sorted(
            (VersionRecord(**r) for r in self.records.select(VERSIONS, product_id=product_id)),
            key=lambda v: v.version_number,
            reverse=True,
        )

    def get_metrics(self, user_id: str, product_id: str) -> dict[str, Any]:
        """Metric rows newest first plus value totals per metric type."""
        self._owned_product(product_id, user_id)
        metrics = self._metrics(product_id)
        summary: dict[str, int] = {}
        for m in metrics:
            summary[m.metric_type] = summary.get(m.metric_type, 0) + m.value
        return {
            "metrics": [m.model_dump(mode="json") for m in metrics],
            "summary": summary,
        }

    def get_feedback(self, user_id: str, product_id: str) -> list[dict[str, Any]]:
        self._owned_product(product_id, user_id)
        return [f.model_dump(mode="json") for f in self._feedback(product_id)]

    def get_versions(self, user_id: str, product_id: str) -> list[dict[str, Any]]:
        self._owned_product(product_id, user_id)
        return [v.model_dump(mode="json") for v in self._versions(product_id)]

    def dashboard(
        self, user_id: str, product_id: str, now: Optional[datetime] = None
    ) -> dict[str, Any]:
        self._owned_product(product_id, user_id)
        return build_dashboard(
            self._metrics(product_id),
            self._feedback(product_id),
            self._versions(product_id),
            now,
        )
