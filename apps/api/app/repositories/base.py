"""Persistence records and the store interface shared by every backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from app.schemas.asset import AssetStatus, DerivedMetadata, Highlight
from app.schemas.transcription import TranscriptionJobStatus

TRANSCRIPTION_ERROR_LIMIT = 1000


@dataclass(slots=True)
class AssetRecord:
    id: str
    account_id: str
    title: str
    storage_key: str
    declared_type: str
    status: AssetStatus
    created_at: datetime
    updated_at: datetime | None = None
    run_id: str | None = None
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
    custom_created_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    expires_at: datetime | None = None
    analyzed_at: datetime | None = None


@dataclass(slots=True)
class TranscriptionJobRecord:
    id: str
    asset_id: str
    status: TranscriptionJobStatus
    progress: int
    created_at: datetime
    error: str | None = None
    completed_at: datetime | None = None

    @property
    def is_live(self) -> bool:
        return self.status in (TranscriptionJobStatus.QUEUED, TranscriptionJobStatus.RUNNING)


@dataclass(slots=True)
class TranscriptSegmentRecord:
    asset_id: str
    sequence: int
    text: str
    start: float
    end: float
    speaker: str | None = None


@dataclass(frozen=True, slots=True)
class SegmentData:
    """One timed span handed to the store for appending."""

    text: str
    start: float
    end: float
    speaker: str | None = None


@dataclass(frozen=True, slots=True)
class RunResult:
    """Derived content written when a run finishes successfully."""

    extracted_text: str | None
    metadata: DerivedMetadata
    analyzed_at: datetime
    dominant_color: str | None = None


@dataclass(slots=True)
class ProductLineRecord:
    id: str
    name: str
    description: str | None = None
    value_proposition: str | None = None
    target_audience: str | None = None


@dataclass(slots=True)
class BrandContextRecord:
    """Account-level positioning the analysis is grounded on."""

    account_id: str
    updated_at: datetime
    brand_voice: list[str] = field(default_factory=list)
    value_proposition: str | None = None
    target_industries: list[str] = field(default_factory=list)
    competitors: list[str] = field(default_factory=list)
    pain_clusters: list[str] = field(default_factory=list)
    primary_icp_roles: list[str] = field(default_factory=list)
    key_differentiators: list[str] = field(default_factory=list)
    use_cases: list[str] = field(default_factory=list)
    roi_claims: list[str] = field(default_factory=list)
    product_lines: list[ProductLineRecord] = field(default_factory=list)


def clamp_progress(percent: int) -> int:
    return max(0, min(100, int(percent)))


def truncate_job_error(error: str) -> str:
    if len(error) > TRANSCRIPTION_ERROR_LIMIT:
        return error[:TRANSCRIPTION_ERROR_LIMIT] + "..."
    return error


class AssetStore(ABC):
    """Single source of truth for asset, transcription job and segment state.

    Every state-changing method is one atomic conditional update: it succeeds
    only if the stored pre-state matches, and reports whether it applied.
    Returned records are snapshots; mutating them never touches the store.
    """

    # Assets

    @abstractmethod
    def create_asset(
        self,
        *,
        account_id: str,
        title: str,
        storage_key: str,
        declared_type: str,
        custom_created_at: datetime | None = None,
    ) -> AssetRecord:
        """Persist a new PENDING asset."""

    @abstractmethod
    def get_asset(self, asset_id: str) -> AssetRecord | None:
        """Return the asset regardless of owner."""

    @abstractmethod
    def get_asset_for_account(self, account_id: str, asset_id: str) -> AssetRecord | None:
        """Return the asset only if it belongs to the account."""

    @abstractmethod
    def list_assets_for_account(self, account_id: str) -> list[AssetRecord]:
        """Return the account's assets ordered by creation time."""

    @abstractmethod
    def claim_asset_run(
        self,
        asset_id: str,
        *,
        expected_statuses: frozenset[AssetStatus],
        run_id: str,
    ) -> AssetRecord | None:
        """Move the asset to PROCESSING owned by ``run_id`` if its status is expected."""

    @abstractmethod
    def finalize_asset_run(
        self,
        asset_id: str,
        *,
        run_id: str,
        status: AssetStatus,
        result: RunResult | None = None,
        note: str | None = None,
    ) -> bool:
        """Close the run if it still owns the PROCESSING asset."""

    @abstractmethod
    def cancel_asset_run(self, asset_id: str, *, note: str) -> AssetRecord | None:
        """Move a PROCESSING asset to ERROR and release its run."""

    @abstractmethod
    def approve_asset(self, asset_id: str) -> AssetRecord | None:
        """Promote a PROCESSED asset to APPROVED."""

    @abstractmethod
    def is_current_run(self, asset_id: str, run_id: str) -> bool:
        """Return whether ``run_id`` still owns the asset's PROCESSING episode."""

    # Transcription jobs and segments

    @abstractmethod
    def reset_transcription_job(self, asset_id: str) -> TranscriptionJobRecord:
        """Replace the asset's job with a fresh QUEUED one and drop its segments."""

    @abstractmethod
    def get_transcription_job(self, job_id: str) -> TranscriptionJobRecord | None:
        """Return a job by id."""

    @abstractmethod
    def get_transcription_job_for_asset(self, asset_id: str) -> TranscriptionJobRecord | None:
        """Return the asset's current job."""

    @abstractmethod
    def mark_transcription_running(self, job_id: str) -> bool:
        """QUEUED -> RUNNING."""

    @abstractmethod
    def update_transcription_progress(self, job_id: str, percent: int) -> bool:
        """Raise progress of a live job; lower values are rejected."""

    @abstractmethod
    def append_transcript_segments(self, job_id: str, segments: list[SegmentData]) -> int:
        """Append segments in order for a live job; returns how many were stored."""

    @abstractmethod
    def finish_transcription_job(
        self,
        job_id: str,
        *,
        status: TranscriptionJobStatus,
        error: str | None = None,
    ) -> bool:
        """Move a live job to COMPLETED or FAILED."""

    @abstractmethod
    def count_transcript_segments(self, asset_id: str) -> int:
        """Count persisted segments for the asset."""

    @abstractmethod
    def list_transcript_segments(self, asset_id: str) -> list[TranscriptSegmentRecord]:
        """Return the asset's segments in insertion order."""

    # Brand context

    @abstractmethod
    def put_brand_context(self, record: BrandContextRecord) -> BrandContextRecord:
        """Create or replace the account's brand context, product lines included."""

    @abstractmethod
    def get_brand_context(self, account_id: str) -> BrandContextRecord | None:
        """Return the account's brand context."""


__all__ = [
    "AssetRecord",
    "AssetStore",
    "BrandContextRecord",
    "ProductLineRecord",
    "RunResult",
    "SegmentData",
    "TranscriptSegmentRecord",
    "TranscriptionJobRecord",
    "clamp_progress",
    "truncate_job_error",
]
