"""In-memory repositories used by the API scaffold and tests."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
import threading
from uuid import uuid4

from app.domain.asset_fsm import is_allowed_transition
from app.repositories.base import (
    AssetRecord,
    AssetStore,
    BrandContextRecord,
    RunResult,
    SegmentData,
    TranscriptionJobRecord,
    TranscriptSegmentRecord,
    clamp_progress,
    truncate_job_error,
)
from app.schemas.asset import AssetStatus
from app.schemas.transcription import TranscriptionJobStatus

_TERMINAL_JOB_STATUSES = frozenset({TranscriptionJobStatus.COMPLETED, TranscriptionJobStatus.FAILED})


def expiry_from_date(value: date | None) -> datetime | None:
    if value is None:
        return None
    return datetime.combine(value, time.min, tzinfo=UTC)


@dataclass(slots=True)
class InMemoryStore(AssetStore):
    """Simple, deterministic persistence layer for scaffolding and tests.

    One lock serializes every read-compare-write so each conditional update is
    atomic with respect to concurrent runs and request handlers.
    """

    assets: dict[str, AssetRecord] = field(default_factory=dict)
    transcription_jobs: dict[str, TranscriptionJobRecord] = field(default_factory=dict)
    job_id_by_asset: dict[str, str] = field(default_factory=dict)
    segments_by_asset: dict[str, list[TranscriptSegmentRecord]] = field(default_factory=dict)
    brand_contexts: dict[str, BrandContextRecord] = field(default_factory=dict)
    asset_write_count: int = 0
    job_write_count: int = 0
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def create_asset(
        self,
        *,
        account_id: str,
        title: str,
        storage_key: str,
        declared_type: str,
        custom_created_at: datetime | None = None,
    ) -> AssetRecord:
        now = datetime.now(UTC)
        asset = AssetRecord(
            id=str(uuid4()),
            account_id=account_id,
            title=title,
            storage_key=storage_key,
            declared_type=declared_type,
            status=AssetStatus.PENDING,
            created_at=now,
            updated_at=now,
            custom_created_at=custom_created_at,
        )
        with self._lock:
            self.assets[asset.id] = asset
            self.asset_write_count += 1
            return deepcopy(asset)

    def get_asset(self, asset_id: str) -> AssetRecord | None:
        with self._lock:
            asset = self.assets.get(asset_id)
            return deepcopy(asset) if asset is not None else None

    def get_asset_for_account(self, account_id: str, asset_id: str) -> AssetRecord | None:
        with self._lock:
            asset = self.assets.get(asset_id)
            if asset is None or asset.account_id != account_id:
                return None
            return deepcopy(asset)

    def list_assets_for_account(self, account_id: str) -> list[AssetRecord]:
        with self._lock:
            assets = [deepcopy(record) for record in self.assets.values() if record.account_id == account_id]
        assets.sort(key=lambda record: record.created_at)
        return assets

    def claim_asset_run(
        self,
        asset_id: str,
        *,
        expected_statuses: frozenset[AssetStatus],
        run_id: str,
    ) -> AssetRecord | None:
        with self._lock:
            asset = self.assets.get(asset_id)
            if asset is None or asset.status not in expected_statuses:
                return None
            if not is_allowed_transition(asset.status, AssetStatus.PROCESSING):
                return None
            asset.status = AssetStatus.PROCESSING
            asset.run_id = run_id
            asset.processing_note = None
            asset.updated_at = datetime.now(UTC)
            self.asset_write_count += 1
            return deepcopy(asset)

    def finalize_asset_run(
        self,
        asset_id: str,
        *,
        run_id: str,
        status: AssetStatus,
        result: RunResult | None = None,
        note: str | None = None,
    ) -> bool:
        if status not in (AssetStatus.PROCESSED, AssetStatus.ERROR):
            raise ValueError(f"Run cannot finish in {status}")
        with self._lock:
            asset = self.assets.get(asset_id)
            if asset is None or asset.status is not AssetStatus.PROCESSING or asset.run_id != run_id:
                return False
            if status is AssetStatus.PROCESSED and result is not None:
                self._apply_result(asset, result)
            asset.status = status
            asset.run_id = None
            asset.processing_note = note
            asset.updated_at = datetime.now(UTC)
            self.asset_write_count += 1
            return True

    @staticmethod
    def _apply_result(asset: AssetRecord, result: RunResult) -> None:
        metadata = result.metadata
        asset.extracted_text = result.extracted_text
        asset.content_category = metadata.content_category
        asset.funnel_stage = metadata.funnel_stage
        asset.audience_tags = list(metadata.audience_tags) if metadata.audience_tags is not None else None
        asset.positioning_tags = list(metadata.positioning_tags) if metadata.positioning_tags is not None else None
        asset.outreach_tip = metadata.outreach_tip
        asset.highlights = deepcopy(metadata.highlights)
        asset.quality_score = metadata.quality_score
        asset.product_line_id = metadata.product_line_id
        asset.dominant_color = result.dominant_color
        asset.analysis_model = metadata.analysis_model
        asset.expires_at = expiry_from_date(metadata.suggested_expiry)
        asset.analyzed_at = result.analyzed_at

    def cancel_asset_run(self, asset_id: str, *, note: str) -> AssetRecord | None:
        with self._lock:
            asset = self.assets.get(asset_id)
            if asset is None or asset.status is not AssetStatus.PROCESSING:
                return None
            asset.status = AssetStatus.ERROR
            asset.run_id = None
            asset.processing_note = note
            asset.updated_at = datetime.now(UTC)
            self.asset_write_count += 1
            return deepcopy(asset)

    def approve_asset(self, asset_id: str) -> AssetRecord | None:
        with self._lock:
            asset = self.assets.get(asset_id)
            if asset is None or asset.status is not AssetStatus.PROCESSED:
                return None
            now = datetime.now(UTC)
            asset.status = AssetStatus.APPROVED
            asset.last_reviewed_at = now
            asset.updated_at = now
            self.asset_write_count += 1
            return deepcopy(asset)

    def is_current_run(self, asset_id: str, run_id: str) -> bool:
        with self._lock:
            asset = self.assets.get(asset_id)
            return asset is not None and asset.status is AssetStatus.PROCESSING and asset.run_id == run_id

    def reset_transcription_job(self, asset_id: str) -> TranscriptionJobRecord:
        job = TranscriptionJobRecord(
            id=str(uuid4()),
            asset_id=asset_id,
            status=TranscriptionJobStatus.QUEUED,
            progress=0,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            previous_job_id = self.job_id_by_asset.get(asset_id)
            if previous_job_id is not None:
                self.transcription_jobs.pop(previous_job_id, None)
            self.transcription_jobs[job.id] = job
            self.job_id_by_asset[asset_id] = job.id
            self.segments_by_asset[asset_id] = []
            self.job_write_count += 1
            return deepcopy(job)

    def get_transcription_job(self, job_id: str) -> TranscriptionJobRecord | None:
        with self._lock:
            job = self.transcription_jobs.get(job_id)
            return deepcopy(job) if job is not None else None

    def get_transcription_job_for_asset(self, asset_id: str) -> TranscriptionJobRecord | None:
        with self._lock:
            job_id = self.job_id_by_asset.get(asset_id)
            if job_id is None:
                return None
            return deepcopy(self.transcription_jobs[job_id])

    def mark_transcription_running(self, job_id: str) -> bool:
        with self._lock:
            job = self.transcription_jobs.get(job_id)
            if job is None or job.status is not TranscriptionJobStatus.QUEUED:
                return False
            job.status = TranscriptionJobStatus.RUNNING
            self.job_write_count += 1
            return True

    def update_transcription_progress(self, job_id: str, percent: int) -> bool:
        value = clamp_progress(percent)
        with self._lock:
            job = self.transcription_jobs.get(job_id)
            if job is None or not job.is_live or value < job.progress:
                return False
            job.status = TranscriptionJobStatus.RUNNING
            job.progress = value
            self.job_write_count += 1
            return True

    def append_transcript_segments(self, job_id: str, segments: list[SegmentData]) -> int:
        with self._lock:
            job = self.transcription_jobs.get(job_id)
            if job is None or not job.is_live:
                return 0
            stored = self.segments_by_asset.setdefault(job.asset_id, [])
            for segment in segments:
                stored.append(
                    TranscriptSegmentRecord(
                        asset_id=job.asset_id,
                        sequence=len(stored),
                        text=segment.text,
                        start=segment.start,
                        end=segment.end,
                        speaker=segment.speaker,
                    )
                )
            return len(segments)

    def finish_transcription_job(
        self,
        job_id: str,
        *,
        status: TranscriptionJobStatus,
        error: str | None = None,
    ) -> bool:
        if status not in _TERMINAL_JOB_STATUSES:
            raise ValueError(f"Transcription job cannot finish in {status}")
        with self._lock:
            job = self.transcription_jobs.get(job_id)
            if job is None or not job.is_live:
                return False
            job.status = status
            if status is TranscriptionJobStatus.COMPLETED:
                job.progress = 100
            job.error = truncate_job_error(error) if error is not None else None
            job.completed_at = datetime.now(UTC)
            self.job_write_count += 1
            return True

    def count_transcript_segments(self, asset_id: str) -> int:
        with self._lock:
            return len(self.segments_by_asset.get(asset_id, []))

    def list_transcript_segments(self, asset_id: str) -> list[TranscriptSegmentRecord]:
        with self._lock:
            return deepcopy(self.segments_by_asset.get(asset_id, []))

    def put_brand_context(self, record: BrandContextRecord) -> BrandContextRecord:
        with self._lock:
            self.brand_contexts[record.account_id] = deepcopy(record)
            return deepcopy(record)

    def get_brand_context(self, account_id: str) -> BrandContextRecord | None:
        with self._lock:
            context = self.brand_contexts.get(account_id)
            return deepcopy(context) if context is not None else None
