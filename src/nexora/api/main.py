"""FastAPI application for the ebook pipeline, monetization and tracking."""

import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .. import __version__
from ..auth import SubscriptionRepository, get_current_user_id, require_subscription
from ..config import Settings, get_config
from ..models import NexoraError
from ..monetization import MonetizationService
from ..pipeline import EbookPipeline, job_snapshot
from ..storage import JobStore, RecordStore, create_record_store
from ..tracking import TrackingService
from ..utils.llm_client import LLMClient
from ..webhooks import handle_event, parse_event, verify_signature

logger = logging.getLogger(__name__)


# Request/Response models
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateEbookRequest(CamelModel):
    topic: Optional[str] = None
    tone: Optional[str] = None
    length: Optional[str] = None


class GenerateTitleRequest(CamelModel):
    topic: Optional[str] = None


class GenerateChapterRequest(CamelModel):
    job_id: Optional[str] = None
    # validated by the pipeline so a missing index is a 400, not a 422
    chapter_index: Any = None


class GenerateCoverRequest(CamelModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    topic: Optional[str] = None
    job_id: Optional[str] = None
    style: Optional[str] = None


class FinalizeRequest(CamelModel):
    job_id: Optional[str] = None


class CreateMonetizationProductRequest(CamelModel):
    title: Optional[str] = None
    topic: Optional[str] = None
    description: Optional[str] = None
    source_type: Optional[str] = None
    source_product_id: Optional[str] = None


class CreateModuleRequest(CamelModel):
    product_id: Optional[str] = None
    module_type: Optional[str] = None
    title: Optional[str] = None


class GenerateModuleRequest(CamelModel):
    module_id: Optional[str] = None
    module_type: Optional[str] = None
    title: Optional[str] = None
    topic: Optional[str] = None
    description: Optional[str] = None
    source_content: Optional[str] = None


class ModuleMetricRequest(CamelModel):
    module_id: Optional[str] = None
    event_type: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class ModuleFeedbackRequest(CamelModel):
    module_id: Optional[str] = None
    rating: Optional[int] = None
    comment: Optional[str] = None
    section: Optional[str] = None


class CreateTrackedProductRequest(CamelModel):
    title: Optional[str] = None
    topic: Optional[str] = None
    description: Optional[str] = None
    length: Optional[str] = None
    content: Optional[str] = None
    cover_image_url: Optional[str] = None
    pages: Optional[int] = None


class AddVersionRequest(CamelModel):
    product_id: Optional[str] = None
    content: Optional[str] = None
    cover_image_url: Optional[str] = None
    pages: Optional[int] = None
    change_summary: Optional[str] = None


class ProductMetricRequest(CamelModel):
    product_id: Optional[str] = None
    metric_type: Optional[str] = None
    value: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None


class ProductFeedbackRequest(CamelModel):
    product_id: Optional[str] = None
    rating: Optional[int] = None
    comment: Optional[str] = None
    section_reference: Optional[str] = None
    feedback_type: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    api_keys_configured: bool
    storage_ok: bool


def get_pipeline(request: Request) -> EbookPipeline:
    return request.app.state.pipeline


def get_monetization(request: Request) -> MonetizationService:
    return request.app.state.monetization


def get_tracking(request: Request) -> TrackingService:
    return request.app.state.tracking


def register_routes(app: FastAPI) -> None:
    @app.exception_handler(NexoraError)
    async def nexora_error_handler(request: Request, exc: NexoraError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "body"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": f"Invalid {field}: {first.get('msg', 'malformed request')}"},
        )

    # Ebook pipeline

    @app.post("/api/generate-ebook")
    def generate_ebook(
        body: GenerateEbookRequest,
        user_id: str = Depends(require_subscription),
        pipeline: EbookPipeline = Depends(get_pipeline),
    ) -> dict[str, Any]:
        """Create a job and run the title and outline stages."""
        job = pipeline.start(body.topic, body.tone, body.length, user_id=user_id)
        return {
            "jobId": job.id,
            "title": job.title,
            "subtitle": job.subtitle,
            "outline": [entry.model_dump() for entry in job.outline],
            "totalChapters": job.total_chapters,
            "status": job.status.value,
        }

    @app.post("/api/generate-title")
    def generate_title(
        body: GenerateTitleRequest,
        user_id: str = Depends(require_subscription),
        pipeline: EbookPipeline = Depends(get_pipeline),
    ) -> dict[str, Any]:
        return {"success": True, "title": pipeline.preview_title(body.topic)}

    @app.get("/api/ebook-status")
    def ebook_status(
        jobId: Optional[str] = None,
        user_id: str = Depends(require_subscription),
        pipeline: EbookPipeline = Depends(get_pipeline),
    ) -> dict[str, Any]:
        return job_snapshot(pipeline.get(jobId, user_id))

    @app.post("/api/generate-chapter")
    def generate_chapter(
        body: GenerateChapterRequest,
        user_id: str = Depends(require_subscription),
        pipeline: EbookPipeline = Depends(get_pipeline),
    ) -> dict[str, Any]:
        """Write one chapter; already written chapters are not regenerated."""
        result = pipeline.generate_chapter(body.job_id, body.chapter_index, user_id)
        if result.already_generated:
            return {
                "success": True,
                "alreadyGenerated": True,
                "chapterIndex": result.chapter_index,
                "progress": result.progress,
                "status": result.status.value,
            }
        return {
            "success": True,
            "chapterIndex": result.chapter_index,
            "progress": result.progress,
            "status": result.status.value,
        }

    @app.post("/api/generate-cover")
    def generate_cover(
        body: GenerateCoverRequest,
        user_id: str = Depends(require_subscription),
        pipeline: EbookPipeline = Depends(get_pipeline),
    ) -> dict[str, Any]:
        cover = pipeline.generate_cover(
            body.title, body.subtitle, body.topic, body.job_id, body.style, user_id
        )
        return {"success": True, "coverPrompt": cover}

    @app.post("/api/finalize-ebook")
    def finalize_ebook(
        body: FinalizeRequest,
        user_id: str = Depends(require_subscription),
        pipeline: EbookPipeline = Depends(get_pipeline),
    ) -> dict[str, Any]:
        return {"success": True, "finalMarkdown": pipeline.finalize(body.job_id, user_id)}

    # Monetization

    @app.post("/api/monetization/create-product")
    def create_monetization_product(
        body: CreateMonetizationProductRequest,
        user_id: str = Depends(get_current_user_id),
        service: MonetizationService = Depends(get_monetization),
    ) -> dict[str, Any]:
        product = service.create_product(
            user_id,
            body.title,
            body.topic,
            body.description,
            body.source_type,
            body.source_product_id,
        )
        return {"product": product}

    @app.post("/api/monetization/create-module")
    def create_module(
        body: CreateModuleRequest,
        user_id: str = Depends(get_current_user_id),
        service: MonetizationService = Depends(get_monetization),
    ) -> dict[str, Any]:
        module = service.create_module(user_id, body.product_id, body.module_type, body.title)
        return {"module": module}

    @app.post("/api/monetization/generate-module")
    def generate_module(
        body: GenerateModuleRequest,
        user_id: str = Depends(get_current_user_id),
        service: MonetizationService = Depends(get_monetization),
    ) -> dict[str, Any]:
        return service.generate_module(
            user_id,
            body.module_id,
            body.module_type,
            body.title,
            body.topic,
            body.description,
            body.source_content,
        )

    @app.get("/api/monetization/list-products")
    def list_monetization_products(
        user_id: str = Depends(get_current_user_id),
        service: MonetizationService = Depends(get_monetization),
    ) -> dict[str, Any]:
        return {"products": service.list_products(user_id)}

    @app.get("/api/monetization/list-modules")
    def list_modules(
        productId: Optional[str] = None,
        user_id: str = Depends(get_current_user_id),
        service: MonetizationService = Depends(get_monetization),
    ) -> dict[str, Any]:
        return {"modules": service.list_modules(user_id, productId)}

    @app.get("/api/monetization/get-module")
    def get_module(
        moduleId: Optional[str] = None,
        user_id: str = Depends(get_current_user_id),
        service: MonetizationService = Depends(get_monetization),
    ) -> dict[str, Any]:
        return service.get_module(user_id, moduleId)

    @app.post("/api/monetization/record-metric")
    def record_module_metric(
        body: ModuleMetricRequest,
        user_id: str = Depends(get_current_user_id),
        service: MonetizationService = Depends(get_monetization),
    ) -> dict[str, Any]:
        service.record_metric(user_id, body.module_id, body.event_type, body.metadata)
        return {"success": True}

    @app.post("/api/monetization/submit-feedback")
    def submit_module_feedback(
        body: ModuleFeedbackRequest,
        user_id: str = Depends(get_current_user_id),
        service: MonetizationService = Depends(get_monetization),
    ) -> dict[str, Any]:
        service.submit_feedback(
            user_id, body.module_id, body.rating, body.comment, body.section
        )
        return {"success": True}

    # Product tracking

    @app.post("/api/products/create-product")
    def create_tracked_product(
        body: CreateTrackedProductRequest,
        user_id: str = Depends(get_current_user_id),
        service: TrackingService = Depends(get_tracking),
    ) -> dict[str, Any]:
        return service.create_product(
            user_id,
            body.title,
            body.topic,
            body.description,
            body.length,
            body.content,
            body.cover_image_url,
            body.pages,
        )

    @app.post("/api/products/add-version")
    def add_version(
        body: AddVersionRequest,
        user_id: str = Depends(get_current_user_id),
        service: TrackingService = Depends(get_tracking),
    ) -> dict[str, Any]:
        return service.add_version(
            user_id,
            body.product_id,
            body.content,
            body.cover_image_url,
            body.pages,
            body.change_summary,
        )

    # any signed-in reader may report metrics for a product
    @app.post("/api/products/record-metric", dependencies=[Depends(get_current_user_id)])
    def record_product_metric(
        body: ProductMetricRequest,
        service: TrackingService = Depends(get_tracking),
    ) -> dict[str, Any]:
        service.record_metric(body.product_id, body.metric_type, body.value, body.metadata)
        return {"success": True}

    @app.post("/api/products/submit-feedback")
    def submit_product_feedback(
        body: ProductFeedbackRequest,
        user_id: str = Depends(get_current_user_id),
        service: TrackingService = Depends(get_tracking),
    ) -> dict[str, Any]:
        return service.submit_feedback(
            user_id,
            body.product_id,
            body.rating,
            body.comment,
            body.section_reference,
            body.feedback_type,
        )

    @app.get("/api/products/list-products")
    def list_tracked_products(
        user_id: str = Depends(get_current_user_id),
        service: TrackingService = Depends(get_tracking),
    ) -> list[dict[str, Any]]:
        return service.list_products(user_id)

    @app.get("/api/products/get-metrics")
    def get_metrics(
        productId: Optional[str] = None,
        user_id: str = Depends(get_current_user_id),
        service: TrackingService = Depends(get_tracking),
    ) -> dict[str, Any]:
        return service.get_metrics(user_id, productId)

    @app.get("/api/products/get-feedback")
    def get_feedback(
        productId: Optional[str] = None,
        user_id: str = Depends(get_current_user_id),
        service: TrackingService = Depends(get_tracking),
    ) -> list[dict[str, Any]]:
        return service.get_feedback(user_id, productId)

    @app.get("/api/products/get-versions")
    def get_versions(
        productId: Optional[str] = None,
        user_id: str = Depends(get_current_user_id),
        service: TrackingService = Depends(get_tracking),
    ) -> list[dict[str, Any]]:
        return service.get_versions(user_id, productId)

    @app.get("/api/products/dashboard")
    def product_dashboard(
        productId: Optional[str] = None,
        user_id: str = Depends(get_current_user_id),
        service: TrackingService = Depends(get_tracking),
    ) -> dict[str, Any]:
        return service.dashboard(user_id, productId)

    # Payments

    @app.post("/api/webhooks/whop")
    async def whop_webhook(request: Request) -> dict[str, Any]:
        """Verify the signature on the raw body, then apply the event."""
        settings: Settings = request.app.state.settings
        raw_body = await request.body()
        verify_signature(raw_body, request.headers, settings.whop_webhook_secret)
        event = parse_event(raw_body)
        return handle_event(event, request.app.state.subscriptions, settings)

    @app.get("/api/health", response_model=HealthResponse)
    def health_check(request: Request) -> HealthResponse:
        """Check API health and configuration."""
        settings: Settings = request.app.state.settings
        records: RecordStore = request.app.state.records

        api_keys_ok = bool(settings.openrouter_api_key)
        if settings.langfuse_enabled:
            api_keys_ok = api_keys_ok and bool(
                settings.langfuse_public_key and settings.langfuse_secret_key
            )

        try:
            storage_ok = records.ping()
        except OSError as e:
            logger.error(f"Storage health check failed: {e}")
            storage_ok = False

        return HealthResponse(
            status="healthy" if api_keys_ok and storage_ok else "degraded",
            api_keys_configured=api_keys_ok,
            storage_ok=storage_ok,
        )


def create_app(
    settings: Settings | None = None,
    records: RecordStore | None = None,
    llm: LLMClient | None = None,
) -> FastAPI:
    """Build the application with its services attached to ``app.state``."""
    settings = settings or get_config()
    records = records or create_record_store(settings.database_url)
    llm = llm or LLMClient(
        api_key=settings.openrouter_api_key,
        model=settings.openrouter_model,
        base_url=settings.openrouter_base_url,
        temperature=settings.llm_temperature,
        max_attempts=settings.llm_max_retries,
        backoff_seconds=settings.llm_backoff_seconds,
    )
    # job event logs sit beside the JSON tables; memory stores only log
    log_dir = getattr(records, "base_dir", None)

    app = FastAPI(
        title=f"{settings.app_title} API",
        description="LLM ebook generation, monetization assets and product tracking",
        version=__version__,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.records = records
    app.state.pipeline = EbookPipeline(
        JobStore(records),
        llm,
        log_dir=log_dir,
        error_message_max_chars=settings.error_message_max_chars,
    )
    app.state.monetization = MonetizationService(records, llm, model=settings.monetization_model)
    app.state.tracking = TrackingService(records)
    app.state.subscriptions = SubscriptionRepository(records)

    register_routes(app)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app, host="0.0.0.0", port=8000, factory=True)
