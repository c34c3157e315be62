"""Transcription job lifecycle for audio and video assets."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import posixpath

from app.adapters.ai import AnalysisClient
from app.adapters.storage import ObjectStorage
from app.domain.file_types import normalize_declared_type
from app.errors import PipelineError, TooLarge
from app.repositories.base import AssetStore, SegmentData, TranscriptionJobRecord
from app.schemas.transcription import TranscriptionJobStatus
from app.services.executor import TaskExecutor

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 10
PROGRESS_DOWNLOADED = 20
PROGRESS_TRANSCRIBED = 50
PROGRESS_SEGMENTS_SAVED = 90

_SEGMENT_BATCH_SIZE = 50
_BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True, slots=True)
class TranscriptionSnapshot:
    job: TranscriptionJobRecord | None
    segment_count: int


class TranscriptionJobManager:
    """Owns the per-asset transcription job row and the work that fills it.

    Every mutation is addressed by job id; ``begin`` replaces the row, so
    anything still holding a superseded id becomes a no-op.
    """

    def __init__(
        self,
        *,
        store: AssetStore,
        storage: ObjectStorage,
        ai_client: AnalysisClient,
        executor: TaskExecutor,
        max_media_bytes: int,
        segment_batch_size: int = _SEGMENT_BATCH_SIZE,
    ) -> None:
        self._store = store
        self._storage = storage
        self._ai_client = ai_client
        self._executor = executor
        self._max_media_bytes = max_media_bytes
        self._segment_batch_size = max(1, segment_batch_size)

    def begin(self, asset_id: str, storage_key: str, declared_type: str) -> str:
        size = self._storage.get_size(storage_key)
        if size > self._max_media_bytes:
            raise TooLarge(
                f"{size / _BYTES_PER_MB:.1f} MB exceeds the "
                f"{self._max_media_bytes / _BYTES_PER_MB:.0f} MB transcription limit"
            )

        job = self._store.reset_transcription_job(asset_id)
        logger.info(
            "transcription.queued asset_id=%s job_id=%s size_bytes=%s",
            asset_id,
            job.id,
            size,
        )
        self._executor.submit(
            f"transcription:{job.id}",
            lambda: self._run(job.id, storage_key, declared_type),
        )
        return job.id

    def report_progress(self, job_id: str, percent: int) -> bool:
        applied = self._store.update_transcription_progress(job_id, percent)
        if not applied:
            logger.debug("transcription.progress_ignored job_id=%s percent=%s", job_id, percent)
        return applied

    def append_segments(self, job_id: str, segments: list[SegmentData]) -> int:
        return self._store.append_transcript_segments(job_id, segments)

    def complete(self, job_id: str) -> bool:
        applied = self._store.finish_transcription_job(job_id, status=TranscriptionJobStatus.COMPLETED)
        if applied:
            logger.info("transcription.completed job_id=%s", job_id)
        return applied

    def fail(self, job_id: str, error: str) -> bool:
        applied = self._store.finish_transcription_job(job_id, status=TranscriptionJobStatus.FAILED, error=error)
        if applied:
            logger.warning("transcription.failed job_id=%s", job_id)
        return applied

    def get_job(self, job_id: str) -> TranscriptionJobRecord | None:
        return self._store.get_transcription_job(job_id)

    def get_status(self, asset_id: str) -> TranscriptionSnapshot:
        job = self._store.get_transcription_job_for_asset(asset_id)
        if job is None or job.status is not TranscriptionJobStatus.COMPLETED:
            return TranscriptionSnapshot(job=job, segment_count=0)
        return TranscriptionSnapshot(job=job, segment_count=self._store.count_transcript_segments(asset_id))

    def _is_live(self, job_id: str) -> bool:
        job = self._store.get_transcription_job(job_id)
        return job is not None and job.is_live

    def _run(self, job_id: str, storage_key: str, declared_type: str) -> None:
        if not self._store.mark_transcription_running(job_id):
            logger.info("transcription.skipped job_id=%s reason=not_queued", job_id)
            return
        self.report_progress(job_id, PROGRESS_STARTED)

        try:
            media = self._storage.read(storage_key)
            self.report_progress(job_id, PROGRESS_DOWNLOADED)

            spoken = self._ai_client.transcribe(
                media=media,
                filename=posixpath.basename(storage_key) or "media",
                media_type=normalize_declared_type(declared_type),
            )
            if not spoken:
                self.fail(job_id, "No speech detected in media")
                return
            self.report_progress(job_id, PROGRESS_TRANSCRIBED)

            segments = [
                SegmentData(text=item.text, start=item.start, end=item.end, speaker=item.speaker) for item in spoken
            ]
            saved = 0
            for offset in range(0, len(segments), self._segment_batch_size):
                if not self._is_live(job_id):
                    logger.info("transcription.abandoned job_id=%s saved_segments=%s", job_id, saved)
                    return
                batch = segments[offset : offset + self._segment_batch_size]
                saved += self.append_segments(job_id, batch)
                span = PROGRESS_SEGMENTS_SAVED - PROGRESS_TRANSCRIBED
                self.report_progress(job_id, PROGRESS_TRANSCRIBED + span * saved // len(segments))
        except PipelineError as exc:
            self.fail(job_id, str(exc) or exc.note_prefix)
            return
        except Exception as exc:
            logger.exception("transcription.crashed job_id=%s", job_id)
            self.fail(job_id, str(exc) or type(exc).__name__)
            return

        self.complete(job_id)


__all__ = [
    "PROGRESS_DOWNLOADED",
    "PROGRESS_SEGMENTS_SAVED",
    "PROGRESS_STARTED",
    "PROGRESS_TRANSCRIBED",
    "TranscriptionJobManager",
    "TranscriptionSnapshot",
]
