"""Internal transcription worker routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from app.routes.dependencies import get_internal_callback_service, require_callback_secret
from app.schemas.error import ErrorResponse, NoLeakNotFoundError, TranscriptionEventRejectedError
from app.schemas.internal import TranscriptionEventRequest, TranscriptionEventResponse
from app.services.internal_callbacks import InternalCallbackService

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post(
    "/transcription-jobs/{jobId}/events",
    response_model=TranscriptionEventResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": TranscriptionEventRejectedError},
        422: {"model": ErrorResponse},
    },
)
def post_transcription_event(
    job_id: Annotated[str, Path(alias="jobId")],
    payload: TranscriptionEventRequest,
    __: Annotated[None, Depends(require_callback_secret)],
    callback_service: Annotated[InternalCallbackService, Depends(get_internal_callback_service)],
) -> TranscriptionEventResponse:
    return callback_service.apply_transcription_event(job_id=job_id, payload=payload)
