"""Asset API schemas."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class AssetStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    APPROVED = "APPROVED"
    ERROR = "ERROR"


class HighlightType(str, Enum):
    ROI_STAT = "ROI_STAT"
    CUSTOMER_QUOTE = "CUSTOMER_QUOTE"
    VALUE_PROP = "VALUE_PROP"
    COMPETITIVE_WEDGE = "COMPETITIVE_WEDGE"
    DEFINITION = "DEFINITION"


class Highlight(BaseModel):
    """Short quotable snippet lifted from the asset content."""

    type: HighlightType
    content: str = Field(max_length=280)
    context: str | None = None
    confidence: int | None = Field(default=None, ge=1, le=100)


class DerivedMetadata(BaseModel):
    """Enrichment output merged onto an asset; unset fields were not produced."""

    content_category: str | None = None
    funnel_stage: str | None = None
    audience_tags: list[str] | None = None
    positioning_tags: list[str] | None = Field(default=None, max_length=3)
    outreach_tip: str | None = None
    highlights: list[Highlight] | None = None
    quality_score: int | None = None
    suggested_expiry: date | None = None
    product_line_id: str | None = None
    analysis_model: str | None = None


class Asset(BaseModel):
    id: str
    title: str
    storage_key: str
    declared_type: str
    status: AssetStatus
    extracted_text: str | None = None
    content_category: str | None = None
    funnel_stage: str | None = None
    audience_tags: list[str] | None = None
    positioning_tags: list[str] | None = None
    outreach_tip: str | None = None
    highlights: list[Highlight] | None = None
    quality_score: int | None = None
    product_line_id: str | None = None
    dominant_color: str | None = None
    analysis_model: str | None = None
    processing_note: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    custom_created_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    expires_at: datetime | None = None
    analyzed_at: datetime | None = None


class CreateAssetRequest(BaseModel):
    storage_key: str = Field(min_length=1)
    declared_type: str = Field(min_length=1)
    title: str | None = None
    custom_created_at: datetime | None = None


class ProcessAssetResponse(BaseModel):
    asset_id: str
    status: AssetStatus
    accepted: bool
    already_running: bool = False
    message: str


class CancelAssetResponse(BaseModel):
    asset_id: str
    status: AssetStatus
    cancelled: bool
    message: str
