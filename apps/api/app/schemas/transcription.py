"""Transcription API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class TranscriptionJobStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TranscriptionJob(BaseModel):
    id: str
    asset_id: str
    status: TranscriptionJobStatus
    progress: int
    error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class TranscriptionStatus(BaseModel):
    job: TranscriptionJob | None = None
    segment_count: int = 0


class TranscriptSegment(BaseModel):
    sequence: int
    text: str
    start: float
    end: float
    speaker: str | None = None


class TranscriptPage(BaseModel):
    items: list[TranscriptSegment]
    limit: int
    next_cursor: str | None = None
