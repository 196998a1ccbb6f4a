"""Pydantic data models and error types for the NexoraOS backend."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NexoraError(Exception):
    """Base exception for request and pipeline failures."""

    status_code = 500

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ValidationError(NexoraError):
    """Raised when required input is missing or malformed."""

    status_code = 400


class NotFoundError(NexoraError):
    """Raised when a referenced job, product or module does not exist."""

    status_code = 404


class ConflictError(NexoraError):
    """Raised when a row changed between read and write."""

    status_code = 409


class UpstreamGenerationError(NexoraError):
    """Raised when the LLM call exhausted retries or returned unusable content."""

    status_code = 500


LLMFailure = UpstreamGenerationError


class AuthorizationError(NexoraError):
    """Raised for a missing or invalid bearer token or an inactive subscription."""

    status_code = 401


class SignatureError(NexoraError):
    """Raised when a webhook signature is missing or does not match."""

    status_code = 401


class EbookLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"

    @property
    def chapter_count(self) -> int:
        return {"short": 3, "medium": 5, "long": 7}[self.value]


class JobStatus(str, Enum):
    PENDING = "pending"
    OUTLINE_DONE = "outline_done"
    WRITING = "writing"
    COMPLETE = "complete"
    ERROR = "error"


class OutlineEntry(BaseModel):
    """A planned chapter produced by the outline stage."""

    number: int
    title: str
    goal: str
    estimated_words: int | None = None


class EbookJob(BaseModel):
    """One ebook generation request and its accumulating state."""

    id: str
    user_id: str | None = None
    topic: str
    tone: str
    length: EbookLength = EbookLength.MEDIUM
    title: str | None = None
    subtitle: str | None = None
    outline: list[OutlineEntry] = Field(default_factory=list)
    total_chapters: int = 0
    # chapter index -> markdown; a missing key is an unwritten slot
    content_parts: dict[int, str] = Field(default_factory=dict)
    progress: int = 0
    status: JobStatus = JobStatus.PENDING
    error_message: str | None = None
    cover_prompt: str | None = None
    revision: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def slot(self, index: int) -> str | None:
        content = self.content_parts.get(index)
        return content if content else None

    def filled_count(self) -> int:
        return sum(
            1 for i in range(self.total_chapters) if self.content_parts.get(i)
        )


class TitleResult(BaseModel):
    title: str
    subtitle: str


T = TypeVar("T")


class ParseOutcome(BaseModel, Generic[T]):
    """Result of parsing structured LLM output, with an explicit fallback branch."""

    value: T
    used_fallback: bool = False
    reason: str | None = None


class ChapterResult(BaseModel):
    success: bool = True
    chapter_index: int
    progress: int
    status: JobStatus
    already_generated: bool = False


# ─── Monetization ────────────────────────────────────────────────────────────

ModuleType = Literal[
    "course",
    "lead_magnet",
    "prompt_pack",
    "landing_page",
    "email_sequence",
    "affiliate_funnel",
    "upsell_offer",
    "micro_saas_blueprint",
]


class MonetizationModuleInfo(BaseModel):
    value: str
    label: str
    description: str


MODULE_TYPES: list[MonetizationModuleInfo] = [
    MonetizationModuleInfo(value="course", label="Online Course", description="Full course with modules, lessons, and exercises"),
    MonetizationModuleInfo(value="lead_magnet", label="Lead Magnet", description="High-value freebie to capture emails"),
    MonetizationModuleInfo(value="prompt_pack", label="Prompt Pack", description="Curated AI prompts for your niche"),
    MonetizationModuleInfo(value="landing_page", label="Landing Page", description="High-converting sales page copy"),
    MonetizationModuleInfo(value="email_sequence", label="Email Sequence", description="Welcome, nurture, and sales emails"),
    MonetizationModuleInfo(value="affiliate_funnel", label="Affiliate Funnel", description="Complete affiliate marketing system"),
    MonetizationModuleInfo(value="upsell_offer", label="Upsell / Downsell", description="Post-purchase offer strategy"),
    MonetizationModuleInfo(value="micro_saas_blueprint", label="Micro SaaS Blueprint", description="SaaS concept from your expertise"),
]


class MonetizationProduct(BaseModel):
    id: str
    user_id: str
    title: str
    topic: str
    description: str | None = None
    source_type: str = "ebook"
    source_product_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class MonetizationModule(BaseModel):
    id: str
    product_id: str
    module_type: str
    title: str
    status: Literal["draft", "generated"] = "draft"
    created_at: datetime = Field(default_factory=utcnow)


class MonetizationVersion(BaseModel):
    """Immutable markdown snapshot of a generated module."""

    id: str
    module_id: str
    markdown: str
    prompt_used: str | None = None
    model_used: str | None = None
    version_number: int
    created_at: datetime = Field(default_factory=utcnow)


class MonetizationMetric(BaseModel):
    id: str
    module_id: str
    event_type: str
    metadata: dict[str, Any] | None = None
    recorded_at: datetime = Field(default_factory=utcnow)


class MonetizationFeedback(BaseModel):
    id: str
    module_id: str
    user_id: str
    rating: int | None = None
    comment: str | None = None
    section: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


# ─── Product tracking ────────────────────────────────────────────────────────


class ProductRecord(BaseModel):
    id: str
    user_id: str
    title: str
    topic: str
    description: str | None = None
    status: str = "published"
    length: str = "medium"
    current_version_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class VersionRecord(BaseModel):
    id: str
    product_id: str
    version_number: int
    content: str = ""
    cover_image_url: str | None = None
    pages: int = 0
    change_summary: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class MetricRecord(BaseModel):
    id: str
    product_id: str
    metric_type: str
    value: int = 1
    recorded_at: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] | None = None


class FeedbackRecord(BaseModel):
    id: str
    product_id: str
    user_id: str
    rating: int | None = None
    comment: str | None = None
    section_reference: str | None = None
    feedback_type: str = "general"
    created_at: datetime = Field(default_factory=utcnow)


class AggregatedMetrics(BaseModel):
    total_views: int = 0
    total_downloads: int = 0
    conversion_rate: float = 0.0
    avg_rating: float = 0.0
    rating_count: int = 0
    trend: Literal["up", "down", "neutral"] = "neutral"


class RankedVersion(VersionRecord):
    downloads: int = 0


class TimelinePoint(BaseModel):
    date: str
    views: int = 0
    downloads: int = 0
    conversion: int = 0


class KeywordCount(BaseModel):
    word: str
    count: int


class SectionInsight(BaseModel):
    section: str
    avg_rating: float
    count: int


# ─── Subscriptions ───────────────────────────────────────────────────────────


class Profile(BaseModel):
    user_id: str
    email: str


class Subscription(BaseModel):
    id: str
    user_id: str
    plan_type: Literal["monthly", "annual"] = "monthly"
    status: Literal["active", "cancelled", "expired"] = "active"
    whop_order_id: str | None = None
    whop_user_id: str | None = None
    started_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None
    updated_at: datetime = Field(default_factory=utcnow)
