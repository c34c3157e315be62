"""AI analysis service interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class SpeechSegment:
    text: str
    start: float
    end: float
    speaker: str | None = None


class AnalysisClient(ABC):
    """Black-box AI collaborator.

    Every method raises ``AnalysisServiceError`` when the service is unreachable
    or answers with something unusable.
    """

    model: str

    @abstractmethod
    def analyze(
        self,
        *,
        content: str,
        content_kind: str,
        title: str | None = None,
        brand_context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Return the raw structured marketing analysis as a JSON object.

        ``brand_context`` is the account's positioning; when it lists
        ``productLines`` the answer may carry a ``matchedProductLineId``.
        """

    @abstractmethod
    def describe_image(self, *, image: bytes, media_type: str) -> str:
        """Return a textual description (OCR plus visual summary) of an image."""

    @abstractmethod
    def transcribe(self, *, media: bytes, filename: str, media_type: str) -> list[SpeechSegment]:
        """Return timed speech segments for an audio or video file."""


__all__ = ["AnalysisClient", "SpeechSegment"]
