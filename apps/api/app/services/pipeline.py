"""Asset processing pipeline: run ownership, background runs, cancellation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
import logging
import time
from uuid import uuid4

from app.core.logging_safety import bounded_note
from app.domain.asset_fsm import RETRY_STATUSES, START_STATUSES, invalid_transition_error
from app.domain.file_types import ContentFamily, classify
from app.errors import PipelineError, TranscriptionFailure, UnsupportedType, not_found_error
from app.repositories.base import AssetStore, RunResult
from app.schemas.asset import AssetStatus
from app.schemas.transcription import TranscriptionJobStatus
from app.services.enrichment import EnrichmentInvoker
from app.services.executor import TaskExecutor
from app.services.extraction import ContentExtractor, ExtractedContent, PendingTranscription
from app.services.transcription import TranscriptionJobManager

logger = logging.getLogger(__name__)

CANCEL_NOTE = "Processing was cancelled by user. You can retry processing or upload a smaller/compressed version."
TRANSCRIPTION_CANCELLED = "Transcription cancelled"


class CancelRejection(str, Enum):
    NOT_PROCESSING = "NOT_PROCESSING"


@dataclass(frozen=True, slots=True)
class StartOutcome:
    asset_id: str
    status: AssetStatus
    accepted: bool
    already_running: bool = False
    run_id: str | None = None
    note: str | None = None


@dataclass(frozen=True, slots=True)
class CancelOutcome:
    asset_id: str
    status: AssetStatus
    cancelled: bool
    reason: CancelRejection | None = None


class RunSuperseded(Exception):
    """The run no longer owns its asset (cancelled or replaced by a newer run)."""


class PipelineController:
    """Moves assets through PROCESSING with one current owner per episode.

    Request handlers call ``start_processing``/``retry_processing``/
    ``cancel_processing`` and return immediately; the run itself executes on
    the task executor and talks to everything else only through the store.
    A run re-reads ownership at every checkpoint and stops silently once it
    has lost it, so cancel and retry never need to reach into a running task.
    """

    def __init__(
        self,
        *,
        store: AssetStore,
        extractor: ContentExtractor,
        transcriptions: TranscriptionJobManager,
        enrichment: EnrichmentInvoker,
        executor: TaskExecutor,
        poll_interval: float,
        transcription_timeout: float,
        max_note_length: int,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._transcriptions = transcriptions
        self._enrichment = enrichment
        self._executor = executor
        self._poll_interval = poll_interval
        self._transcription_timeout = transcription_timeout
        self._max_note_length = max_note_length
        self._sleep = sleep
        self._clock = clock

    def start_processing(self, asset_id: str, storage_key: str, declared_type: str) -> StartOutcome:
        return self._start(asset_id, storage_key, declared_type, expected=START_STATUSES)

    def retry_processing(self, asset_id: str) -> StartOutcome:
        asset = self._store.get_asset(asset_id)
        if asset is None:
            raise not_found_error()
        return self._start(asset_id, asset.storage_key, asset.declared_type, expected=RETRY_STATUSES)

    def _start(
        self,
        asset_id: str,
        storage_key: str,
        declared_type: str,
        *,
        expected: frozenset[AssetStatus],
    ) -> StartOutcome:
        run_id = str(uuid4())
        claimed = self._store.claim_asset_run(asset_id, expected_statuses=expected, run_id=run_id)
        if claimed is None:
            current = self._store.get_asset(asset_id)
            if current is None:
                raise not_found_error()
            if current.status is AssetStatus.PROCESSING:
                logger.info("pipeline.start_ignored asset_id=%s reason=already_running", asset_id)
                return StartOutcome(
                    asset_id=asset_id,
                    status=current.status,
                    accepted=False,
                    already_running=True,
                )
            logger.warning(
                "pipeline.start_rejected asset_id=%s code=FSM_TRANSITION_INVALID current_status=%s",
                asset_id,
                current.status,
            )
            raise invalid_transition_error(current.status, AssetStatus.PROCESSING)

        try:
            family = classify(declared_type)
        except UnsupportedType as exc:
            note = self._failure_note(exc)
            self.finalize(asset_id, run_id, error=exc)
            return StartOutcome(asset_id=asset_id, status=AssetStatus.ERROR, accepted=True, run_id=run_id, note=note)

        logger.info(
            "pipeline.run_submitted asset_id=%s run_id=%s family=%s expected_statuses=%s",
            asset_id,
            run_id,
            family.value,
            ",".join(sorted(status.value for status in expected)),
        )
        self._executor.submit(
            f"pipeline:{asset_id}",
            lambda: self.run(
                asset_id,
                run_id,
                storage_key,
                declared_type,
                account_id=claimed.account_id,
                title=claimed.title,
            ),
        )
        return StartOutcome(asset_id=asset_id, status=AssetStatus.PROCESSING, accepted=True, run_id=run_id)

    def cancel_processing(self, asset_id: str) -> CancelOutcome:
        cancelled = self._store.cancel_asset_run(asset_id, note=CANCEL_NOTE)
        if cancelled is None:
            current = self._store.get_asset(asset_id)
            if current is None:
                raise not_found_error()
            logger.info(
                "pipeline.cancel_ignored asset_id=%s reason=not_processing current_status=%s",
                asset_id,
                current.status,
            )
            return CancelOutcome(
                asset_id=asset_id,
                status=current.status,
                cancelled=False,
                reason=CancelRejection.NOT_PROCESSING,
            )

        job = self._store.get_transcription_job_for_asset(asset_id)
        if job is not None and job.is_live:
            self._transcriptions.fail(job.id, TRANSCRIPTION_CANCELLED)
        logger.info("pipeline.cancelled asset_id=%s", asset_id)
        return CancelOutcome(asset_id=asset_id, status=cancelled.status, cancelled=True)

    def finalize(
        self,
        asset_id: str,
        run_id: str,
        *,
        result: RunResult | None = None,
        error: PipelineError | None = None,
    ) -> bool:
        """Close the run's episode if it still owns the asset; stale runs are ignored."""
        if error is not None:
            applied = self._store.finalize_asset_run(
                asset_id,
                run_id=run_id,
                status=AssetStatus.ERROR,
                note=self._failure_note(error),
            )
            log = logger.warning if applied else logger.info
            log(
                "pipeline.run_failed asset_id=%s run_id=%s code=%s applied=%s",
                asset_id,
                run_id,
                error.code,
                applied,
            )
            return applied

        applied = self._store.finalize_asset_run(asset_id, run_id=run_id, status=AssetStatus.PROCESSED, result=result)
        logger.info("pipeline.run_processed asset_id=%s run_id=%s applied=%s", asset_id, run_id, applied)
        return applied

    def run(
        self,
        asset_id: str,
        run_id: str,
        storage_key: str,
        declared_type: str,
        *,
        account_id: str | None = None,
        title: str | None = None,
    ) -> None:
        job_id: str | None = None
        try:
            self._checkpoint(asset_id, run_id)
            extracted = self._extractor.extract(asset_id, storage_key, declared_type)
            if isinstance(extracted, PendingTranscription):
                job_id = extracted.job_id
                extracted = self._await_transcript(asset_id, run_id, job_id)

            self._checkpoint(asset_id, run_id)
            metadata = self._enrichment.enrich(extracted, account_id=account_id, title=title)

            self._checkpoint(asset_id, run_id)
            result = RunResult(
                extracted_text=extracted.stored_text,
                metadata=metadata,
                analyzed_at=datetime.now(UTC),
                dominant_color=extracted.dominant_color,
            )
            self.finalize(asset_id, run_id, result=result)
        except RunSuperseded:
            logger.info("pipeline.run_superseded asset_id=%s run_id=%s", asset_id, run_id)
            if job_id is not None:
                self._transcriptions.fail(job_id, TRANSCRIPTION_CANCELLED)
        except PipelineError as exc:
            self.finalize(asset_id, run_id, error=exc)
        except Exception as exc:
            logger.exception("pipeline.run_crashed asset_id=%s run_id=%s", asset_id, run_id)
            self.finalize(asset_id, run_id, error=PipelineError(str(exc) or type(exc).__name__))

    def _checkpoint(self, asset_id: str, run_id: str) -> None:
        if not self._store.is_current_run(asset_id, run_id):
            raise RunSuperseded(asset_id)

    def _await_transcript(self, asset_id: str, run_id: str, job_id: str) -> ExtractedContent:
        deadline = self._clock() + self._transcription_timeout
        while True:
            self._checkpoint(asset_id, run_id)
            job = self._transcriptions.get_job(job_id)
            if job is None:
                raise TranscriptionFailure("Transcription job was replaced")
            if job.status is TranscriptionJobStatus.COMPLETED:
                segments = self._store.list_transcript_segments(asset_id)
                text = "\n".join(segment.text for segment in segments).strip()
                if not text:
                    raise TranscriptionFailure("Transcript is empty")
                return ExtractedContent(family=ContentFamily.MEDIA, text=text)
            if job.status is TranscriptionJobStatus.FAILED:
                raise TranscriptionFailure(job.error or "Transcription job failed")
            if self._clock() >= deadline:
                self._transcriptions.fail(job_id, "Transcription timed out")
                raise TranscriptionFailure("Timed out waiting for transcription")
            self._sleep(self._poll_interval)

    def _failure_note(self, error: PipelineError) -> str:
        message = str(error).strip()
        text = f"{error.note_prefix}: {message}" if message else error.note_prefix
        return bounded_note(text, limit=self._max_note_length)


__all__ = [
    "CANCEL_NOTE",
    "CancelOutcome",
    "CancelRejection",
    "PipelineController",
    "RunSuperseded",
    "StartOutcome",
]
