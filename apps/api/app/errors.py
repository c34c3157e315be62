"""Application exception types."""

from app.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


def not_found_error() -> ApiError:
    return ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


class PipelineError(Exception):
    """Failure inside a background processing run.

    These never reach a synchronous caller. The run records them on the asset
    as ``<note_prefix>: <message>`` and moves it to ERROR.
    """

    code = "PROCESSING_FAILED"
    note_prefix = "Processing failed"


class UnsupportedType(PipelineError):
    code = "UNSUPPORTED_TYPE"
    note_prefix = "Unsupported file type"


class TooLarge(PipelineError):
    code = "TOO_LARGE"
    note_prefix = "File too large"


class RetrievalFailure(PipelineError):
    code = "RETRIEVAL_FAILED"
    note_prefix = "Could not retrieve file from storage"


class ExtractionFailure(PipelineError):
    code = "EXTRACTION_FAILED"
    note_prefix = "Processing failed"


class TranscriptionFailure(ExtractionFailure):
    code = "TRANSCRIPTION_FAILED"
    note_prefix = "Transcription failed"


class AnalysisServiceError(PipelineError):
    code = "ANALYSIS_FAILED"
    note_prefix = "Analysis failed"


__all__ = [
    "AnalysisServiceError",
    "ApiError",
    "ExtractionFailure",
    "PipelineError",
    "RetrievalFailure",
    "TooLarge",
    "TranscriptionFailure",
    "UnsupportedType",
    "not_found_error",
]
