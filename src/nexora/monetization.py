"""Monetization products, modules and their append-only generated versions."""

import logging
from typing import Any

from .chains.monetization import (
    MIN_CONTENT_CHARS,
    PROMPT_RECORD_MAX_CHARS,
    SYSTEM_PROMPT,
    build_module_prompt,
)
from .config import settings
from .models import (
    MODULE_TYPES,
    MonetizationFeedback,
    MonetizationMetric,
    MonetizationModule,
    MonetizationProduct,
    MonetizationVersion,
    NotFoundError,
    UpstreamGenerationError,
    ValidationError,
)
from .storage import RecordStore, new_id
from .utils.llm_client import LLMClient
from .utils.validators import require, sanitize_input

logger = logging.getLogger(__name__)

PRODUCTS = "monetization_products"
MODULES = "monetization_modules"
VERSIONS = "monetization_versions"
METRICS = "monetization_metrics"
FEEDBACK = "monetization_feedback"

VALID_MODULE_TYPES = {info.value for info in MODULE_TYPES}


class MonetizationService:
    """Turns a product into sellable assets, one module type at a time.

    Every generation appends a new ``MonetizationVersion``; earlier versions
    are never rewritten.
    """

    def __init__(self, records: RecordStore, llm: LLMClient, model: str | None = None):
        self.records = records
        self.llm = llm
        self.model = model or settings.monetization_model

    def _insert(self, table: str, model) -> dict[str, Any]:
        row = self.records.insert(table, model.model_dump(mode="json"))
        row.pop("revision", None)
        return row

    def _owned_product(self, product_id: str, user_id: str) -> MonetizationProduct:
        row = self.records.get(PRODUCTS, require(product_id, "productId"))
        if row is None or row["user_id"] != user_id:
            raise NotFoundError("Product not found")
        return MonetizationProduct(**row)

    def _owned_module(self, module_id: str, user_id: str) -> MonetizationModule:
        row = self.records.get(MODULES, require(module_id, "moduleId"))
        if row is None:
            raise NotFoundError("Module not found")
        module = MonetizationModule(**row)
        try:
            self._owned_product(module.product_id, user_id)
        except NotFoundError:
            raise NotFoundError("Module not found")
        return module

    def create_product(
        self,
        user_id: str,
        title: str,
        topic: str,
        description: str | None = None,
        source_type: str | None = None,
        source_product_id: str | None = None,
    ) -> dict[str, Any]:
        product = MonetizationProduct(
            id=new_id(),
            user_id=user_id,
            title=sanitize_input(require(title, "title")),
            topic=sanitize_input(require(topic, "topic")),
            description=description or None,
            source_type=source_type or "ebook",
            source_product_id=source_product_id or None,
        )
        logger.info(f"Created monetization product {product.id}")
        return self._insert(PRODUCTS, product)

    def create_module(
        self, user_id: str, product_id: str, module_type: str, title: str
    ) -> dict[str, Any]:
        self._owned_product(product_id, user_id)
        if module_type not in VALID_MODULE_TYPES:
            raise ValidationError(f"Unknown module type: {module_type}")

        module = MonetizationModule(
            id=new_id(),
            product_id=product_id,
            module_type=module_type,
            title=require(title, "title"),
            status="draft",
        )
        return self._insert(MODULES, module)

    def _next_version_number(self, module_id: str) -> int:
        numbers = [r["version_number"] for r in self.records.select(VERSIONS, module_id=module_id)]
        return max(numbers, default=0) + 1

    def generate_module(
        self,
        user_id: str,
        module_id: str,
        module_type: str | None = None,
        title: str | None = None,
        topic: str | None = None,
        description: str | None = None,
        source_content: str | None = None,
    ) -> dict[str, Any]:
        """Generate module content with the LLM and store it as the next version.

        Title, topic and description default to the owning product's values.
        """
        module = self._owned_module(module_id, user_id)
        product = self._owned_product(module.product_id, user_id)

        prompt = build_module_prompt(
            module_type or module.module_type,
            title or product.title,
            topic or product.topic,
            description if description is not None else product.description,
            source_content,
        )
        content = self.llm.call_with_system(SYSTEM_PROMPT, prompt, model=self.model)

        if not content or len(content) < MIN_CONTENT_CHARS:
            raise UpstreamGenerationError("Generated content too short. Please retry.")

        version = MonetizationVersion(
            id=new_id(),
            module_id=module.id,
            markdown=content,
            prompt_used=prompt[:PROMPT_RECORD_MAX_CHARS],
            model_used=self.model,
            version_number=self._next_version_number(module.id),
        )
        stored = self._insert(VERSIONS, version)
        self.records.update(MODULES, module.id, {"status": "generated"})

        logger.info(
            f"Module {module.id} ({module.module_type}) generated version {version.version_number}"
        )
        return {"version": stored, "content": content, "moduleId": module.id}

    def list_products(self, user_id: str) -> list[dict[str, Any]]:
        """The user's products, newest first, each with its modules."""
        products = sorted(
            (MonetizationProduct(**r) for r in self.records.select(PRODUCTS, user_id=user_id)),
            key=lambda p: p.created_at,
            reverse=True,
        )
        result = []
        for product in products:
            entry = product.model_dump(mode="json")
            entry["monetization_modules"] = [
                {k: m[k] for k in ("id", "module_type", "title", "status", "created_at")}
                for m in self._module_rows(product.id)
            ]
            result.append(entry)
        return result

    def _module_rows(self, product_id: str) -> list[dict[str, Any]]:
        modules = sorted(
            (MonetizationModule(**r) for r in self.records.select(MODULES, product_id=product_id)),
            key=lambda m: m.created_at,
            reverse=True,
        )
        return [m.model_dump(mode="json") for m in modules]

    def list_modules(self, user_id: str, product_id: str) -> list[dict[str, Any]]:
        self._owned_product(product_id, user_id)
        return self._module_rows(product_id)

    def get_module(self, user_id: str, module_id: str) -> dict[str, Any]:
        """A module with all of its versions, newest first."""
        module = self._owned_module(module_id, user_id)
        versions = sorted(
            (MonetizationVersion(**r) for r in self.records.select(VERSIONS, module_id=module.id)),
            key=lambda v: v.version_number,
            reverse=True,
        )
        return {
            "module": module.model_dump(mode="json"),
            "versions": [v.model_dump(mode="json") for v in versions],
        }

    def record_metric(
        self,
        user_id: str,
        module_id: str,
        event_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        module = self._owned_module(module_id, user_id)
        metric = MonetizationMetric(
            id=new_id(),
            module_id=module.id,
            event_type=require(event_type, "eventType"),
            metadata=metadata or None,
        )
        self._insert(METRICS, metric)

    def submit_feedback(
        self,
        user_id: str,
        module_id: str,
        rating: int | None = None,
        comment: str | None = None,
        section: str | None = None,
    ) -> None:
        module = self._owned_module(module_id, user_id)
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError("rating must be between 1 and 5")
        feedback = MonetizationFeedback(
            id=new_id(),
            module_id=module.id,
            user_id=user_id,
            rating=rating or None,
            comment=comment or None,
            section=section or None,
        )
        self._insert(FEEDBACK, feedback)
