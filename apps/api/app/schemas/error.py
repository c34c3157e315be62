"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from app.schemas.asset import AssetStatus
from app.schemas.transcription import TranscriptionJobStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class TransitionErrorDetails(BaseModel):
    current_status: AssetStatus
    attempted_status: AssetStatus
    allowed_next_statuses: list[AssetStatus] | None = None


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID"]
    message: str
    details: TransitionErrorDetails


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class TranscriptNotReadyErrorDetails(BaseModel):
    job_status: TranscriptionJobStatus | None = None


class TranscriptNotReadyError(BaseModel):
    code: Literal["TRANSCRIPT_NOT_READY"]
    message: str
    details: TranscriptNotReadyErrorDetails


class TranscriptionEventRejectedErrorDetails(BaseModel):
    job_status: TranscriptionJobStatus
    progress: int


class TranscriptionEventRejectedError(BaseModel):
    code: Literal["TRANSCRIPTION_EVENT_REJECTED"]
    message: str
    details: TranscriptionEventRejectedErrorDetails
