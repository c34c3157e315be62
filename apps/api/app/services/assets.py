"""Asset service layer."""

from __future__ import annotations

import logging
import posixpath

from app.core.logging_safety import safe_log_identifier
from app.domain.asset_fsm import invalid_transition_error
from app.errors import ApiError, not_found_error
from app.repositories.base import AssetRecord, AssetStore, TranscriptionJobRecord, TranscriptSegmentRecord
from app.schemas.asset import (
    Asset,
    AssetStatus,
    CancelAssetResponse,
    CreateAssetRequest,
    ProcessAssetResponse,
)
from app.schemas.transcription import (
    TranscriptionJob,
    TranscriptionJobStatus,
    TranscriptionStatus,
    TranscriptPage,
    TranscriptSegment,
)
from app.services.pipeline import CANCEL_NOTE, PipelineController, StartOutcome
from app.services.transcription import TranscriptionJobManager

logger = logging.getLogger(__name__)

TRANSCRIPT_LIMIT_DEFAULT = 200
_TRANSCRIPT_LIMIT_MIN = 1
_TRANSCRIPT_LIMIT_MAX = 500


class AssetService:
    def __init__(
        self,
        store: AssetStore,
        *,
        pipeline: PipelineController,
        transcriptions: TranscriptionJobManager,
    ) -> None:
        self._store = store
        self._pipeline = pipeline
        self._transcriptions = transcriptions

    def _owned(self, account_id: str, asset_id: str) -> AssetRecord:
        record = self._store.get_asset_for_account(account_id, asset_id)
        if record is None:
            raise not_found_error()
        return record

    def create_asset(self, *, account_id: str, payload: CreateAssetRequest) -> Asset:
        title = (payload.title or "").strip() or posixpath.basename(payload.storage_key.rstrip("/")) or payload.storage_key
        record = self._store.create_asset(
            account_id=account_id,
            title=title,
            storage_key=payload.storage_key,
            declared_type=payload.declared_type,
            custom_created_at=payload.custom_created_at,
        )
        logger.info(
            "asset.created asset_id=%s account_id=%s declared_type=%s",
            record.id,
            safe_log_identifier(account_id, prefix="aid"),
            record.declared_type,
        )
        self._pipeline.start_processing(record.id, record.storage_key, record.declared_type)
        return self._to_asset(self._owned(account_id, record.id))

    def list_assets(self, *, account_id: str) -> list[Asset]:
        return [self._to_asset(record) for record in self._store.list_assets_for_account(account_id)]

    def get_asset(self, *, account_id: str, asset_id: str) -> Asset:
        return self._to_asset(self._owned(account_id, asset_id))

    def process_asset(self, *, account_id: str, asset_id: str) -> ProcessAssetResponse:
        record = self._owned(account_id, asset_id)
        outcome = self._pipeline.start_processing(record.id, record.storage_key, record.declared_type)
        return self._to_process_response(outcome)

    def retry_asset(self, *, account_id: str, asset_id: str) -> ProcessAssetResponse:
        record = self._owned(account_id, asset_id)
        outcome = self._pipeline.retry_processing(record.id)
        return self._to_process_response(outcome)

    def cancel_asset(self, *, account_id: str, asset_id: str) -> CancelAssetResponse:
        record = self._owned(account_id, asset_id)
        outcome = self._pipeline.cancel_processing(record.id)
        if outcome.cancelled:
            message = CANCEL_NOTE
        else:
            message = f"Asset is not processing (status {outcome.status.value}); nothing to cancel."
        return CancelAssetResponse(
            asset_id=outcome.asset_id,
            status=outcome.status,
            cancelled=outcome.cancelled,
            message=message,
        )

    def approve_asset(self, *, account_id: str, asset_id: str) -> Asset:
        record = self._owned(account_id, asset_id)
        approved = self._store.approve_asset(record.id)
        if approved is None:
            current = self._owned(account_id, asset_id)
            logger.warning(
                "asset.approve_rejected asset_id=%s code=FSM_TRANSITION_INVALID current_status=%s",
                asset_id,
                current.status,
            )
            raise invalid_transition_error(current.status, AssetStatus.APPROVED)
        logger.info("asset.approved asset_id=%s", asset_id)
        return self._to_asset(approved)

    def get_transcript_status(self, *, account_id: str, asset_id: str) -> TranscriptionStatus:
        record = self._owned(account_id, asset_id)
        snapshot = self._transcriptions.get_status(record.id)
        job = self._to_job(snapshot.job) if snapshot.job is not None else None
        return TranscriptionStatus(job=job, segment_count=snapshot.segment_count)

    def get_transcript(
        self,
        *,
        account_id: str,
        asset_id: str,
        limit: int,
        cursor: str | None,
    ) -> TranscriptPage:
        record = self._owned(account_id, asset_id)

        job = self._store.get_transcription_job_for_asset(record.id)
        if job is None or job.status is not TranscriptionJobStatus.COMPLETED:
            raise ApiError(
                status_code=409,
                code="TRANSCRIPT_NOT_READY",
                message="Transcript is not available until transcription completes.",
                details={"job_status": job.status if job is not None else None},
            )
        if limit < _TRANSCRIPT_LIMIT_MIN or limit > _TRANSCRIPT_LIMIT_MAX:
            raise ApiError(
                status_code=422,
                code="VALIDATION_ERROR",
                message="Invalid transcript query parameters",
                details={
                    "limit": limit,
                    "min_limit": _TRANSCRIPT_LIMIT_MIN,
                    "max_limit": _TRANSCRIPT_LIMIT_MAX,
                },
            )

        segments = [self._to_segment(segment) for segment in self._store.list_transcript_segments(record.id)]
        cursor_index = self._parse_transcript_cursor(cursor=cursor, total=len(segments))
        items, next_cursor = self._paginate_transcript_segments(
            segments=segments,
            limit=limit,
            cursor_index=cursor_index,
        )
        return TranscriptPage(items=items, limit=limit, next_cursor=next_cursor)

    @staticmethod
    def _parse_transcript_cursor(*, cursor: str | None, total: int) -> int:
        normalized = (cursor or "").strip()
        if not normalized.isdigit():
            return 0
        return min(int(normalized), total)

    @staticmethod
    def _paginate_transcript_segments(
        *,
        segments: list[TranscriptSegment],
        limit: int,
        cursor_index: int,
    ) -> tuple[list[TranscriptSegment], str | None]:
        start = max(0, cursor_index)
        end = min(start + limit, len(segments))
        next_cursor = str(end) if end < len(segments) else None
        return segments[start:end], next_cursor

    def _to_process_response(self, outcome: StartOutcome) -> ProcessAssetResponse:
        if outcome.already_running:
            message = "Processing is already running."
        elif outcome.status is AssetStatus.ERROR:
            message = outcome.note or "Processing could not start."
        else:
            message = "Processing started."
        return ProcessAssetResponse(
            asset_id=outcome.asset_id,
            status=outcome.status,
            accepted=outcome.accepted,
            already_running=outcome.already_running,
            message=message,
        )

    @staticmethod
    def _to_segment(record: TranscriptSegmentRecord) -> TranscriptSegment:
        return TranscriptSegment(
            sequence=record.sequence,
            text=record.text,
            start=record.start,
            end=record.end,
            speaker=record.speaker,
        )

    @staticmethod
    def _to_job(record: TranscriptionJobRecord) -> TranscriptionJob:
        return TranscriptionJob(
            id=record.id,
            asset_id=record.asset_id,
            status=record.status,
            progress=record.progress,
            error=record.error,
            created_at=record.created_at,
            completed_at=record.completed_at,
        )

    @staticmethod
    def _to_asset(record: AssetRecord) -> Asset:
        return Asset(
            id=record.id,
            title=record.title,
            storage_key=record.storage_key,
            declared_type=record.declared_type,
            status=record.status,
            extracted_text=record.extracted_text,
            content_category=record.content_category,
            funnel_stage=record.funnel_stage,
            audience_tags=record.audience_tags,
            positioning_tags=record.positioning_tags,
            outreach_tip=record.outreach_tip,
            highlights=record.highlights,
            quality_score=record.quality_score,
            product_line_id=record.product_line_id,
            dominant_color=record.dominant_color,
            analysis_model=record.analysis_model,
            processing_note=record.processing_note,
            created_at=record.created_at,
            updated_at=record.updated_at,
            custom_created_at=record.custom_created_at,
            last_reviewed_at=record.last_reviewed_at,
            expires_at=record.expires_at,
            analyzed_at=record.analyzed_at,
        )


__all__ = ["AssetService", "TRANSCRIPT_LIMIT_DEFAULT"]
