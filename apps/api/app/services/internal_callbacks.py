"""Internal transcription worker event service layer."""

import logging

from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError, not_found_error
from app.repositories.base import SegmentData
from app.schemas.internal import TranscriptionEventRequest, TranscriptionEventResponse
from app.services.transcription import TranscriptionJobManager

logger = logging.getLogger(__name__)


def _validation_error(message: str) -> ApiError:
    return ApiError(status_code=422, code="VALIDATION_ERROR", message=message)


class InternalCallbackService:
    """Maps events from out-of-process transcription workers onto job operations.

    Events addressed to a superseded or finished job are rejected, never
    applied, so a stale worker cannot touch the asset's current transcript.
    """

    def __init__(self, transcriptions: TranscriptionJobManager) -> None:
        self._transcriptions = transcriptions

    def apply_transcription_event(self, *, job_id: str, payload: TranscriptionEventRequest) -> TranscriptionEventResponse:
        safe_correlation_id = safe_log_identifier(payload.correlation_id, prefix="cid")

        job = self._transcriptions.get_job(job_id)
        if job is None:
            logger.warning(
                "callback.rejected correlation_id=%s job_id=%s event=%s code=RESOURCE_NOT_FOUND",
                safe_correlation_id,
                job_id,
                payload.event,
            )
            raise not_found_error()

        if payload.event == "progress":
            if payload.progress is None:
                raise _validation_error("progress events require a progress value")
            applied = self._transcriptions.report_progress(job_id, payload.progress)
        elif payload.event == "segments":
            if not payload.segments:
                raise _validation_error("segments events require at least one segment")
            segments = [
                SegmentData(text=item.text, start=item.start, end=item.end, speaker=item.speaker)
                for item in payload.segments
            ]
            applied = self._transcriptions.append_segments(job_id, segments) > 0
        elif payload.event == "completed":
            applied = self._transcriptions.complete(job_id)
        else:
            applied = self._transcriptions.fail(job_id, payload.error or "Transcription worker reported a failure")

        current = self._transcriptions.get_job(job_id) or job
        if not applied:
            logger.warning(
                "callback.rejected correlation_id=%s job_id=%s event=%s code=TRANSCRIPTION_EVENT_REJECTED "
                "job_status=%s progress=%s",
                safe_correlation_id,
                job_id,
                payload.event,
                current.status,
                current.progress,
            )
            raise ApiError(
                status_code=409,
                code="TRANSCRIPTION_EVENT_REJECTED",
                message="Transcription event rejected for the current job state.",
                details={"job_status": current.status, "progress": current.progress},
            )

        logger.info(
            "callback.applied correlation_id=%s job_id=%s event=%s job_status=%s progress=%s",
            safe_correlation_id,
            job_id,
            payload.event,
            current.status,
            current.progress,
        )
        return TranscriptionEventResponse(job_id=job_id, status=current.status, progress=current.progress)
