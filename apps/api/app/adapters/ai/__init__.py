"""AI analysis service adapters."""

from .base import AnalysisClient, SpeechSegment
from .openai_compat import OpenAICompatClient

__all__ = ["AnalysisClient", "OpenAICompatClient", "SpeechSegment"]
