"""Internal transcription worker event schemas."""

from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.transcription import TranscriptionJobStatus


class SegmentPayload(BaseModel):
    text: str
    start: float = Field(ge=0)
    end: float = Field(ge=0)
    speaker: str | None = None


class TranscriptionEventRequest(BaseModel):
    event: Literal["progress", "segments", "completed", "failed"]
    progress: int | None = None
    segments: list[SegmentPayload] | None = None
    error: str | None = None
    correlation_id: str | None = None


class TranscriptionEventResponse(BaseModel):
    job_id: str
    status: TranscriptionJobStatus
    progress: int
