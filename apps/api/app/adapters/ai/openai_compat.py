"""OpenAI-compatible analysis client (works with OpenAI, vLLM, LiteLLM proxies)."""

from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any

import httpx

from app.adapters.ai.base import AnalysisClient, SpeechSegment
from app.errors import AnalysisServiceError

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"

_ANALYSIS_PROMPT = """You are a B2B marketing analyst. Read the asset and answer with one JSON object:
- "assetType": one of Whitepaper, Case_Study, Blog_Post, Infographic, Webinar_Recording, Sales_Deck, Technical_Doc, Playbook
- "funnelStage": one of TOFU_AWARENESS, MOFU_CONSIDERATION, BOFU_DECISION, RETENTION
- "icpTargets": up to 5 job titles or roles (e.g. "CTO", "VP of Sales"), no market segments
- "painClusters": up to 3 strategic problems as 2-5 word Title Case noun phrases
- "outreachTip": one-sentence email hook, at most 240 characters
- "atomicSnippets": up to 8 objects {"type", "content", "context", "confidenceScore"} where type is one of
  ROI_STAT, CUSTOMER_QUOTE, VALUE_PROP, COMPETITIVE_WEDGE, DEFINITION, content is at most 280 characters
  and confidenceScore is 1-100
- "contentQualityScore": 1-100
- "suggestedExpiryDate": YYYY-MM-DD date when the content likely becomes outdated
Base every answer on the content itself."""

_BRAND_RULES = """Ground the analysis in the company context above, but judge THIS asset by its own content:
- painClusters: reuse exact painClusters terms when the content addresses them, otherwise infer new ones
- icpTargets: reuse primaryICPRoles or product line audiences only when the content targets those roles
- atomicSnippets: prefer ROI_STAT matching roiClaims and COMPETITIVE_WEDGE matching keyDifferentiators"""

_PRODUCT_LINE_RULE = """- "matchedProductLineId": the exact id of the productLines entry this asset is about, or null. Never invent an id."""

_IMAGE_PROMPT = """Extract everything useful from this marketing image. Read ALL visible text, including
chart labels, footnotes and small print, then briefly describe the visual layout and any data shown."""


def _analysis_prompt(brand_context: dict[str, Any] | None) -> str:
    if not brand_context:
        return _ANALYSIS_PROMPT
    sections = [
        _ANALYSIS_PROMPT,
        "COMPANY CONTEXT (JSON):\n" + json.dumps(brand_context, indent=2, ensure_ascii=False),
        _BRAND_RULES,
    ]
    if brand_context.get("productLines"):
        sections.append(_PRODUCT_LINE_RULE)
    return "\n\n".join(sections)


def _format_http_error(response: httpx.Response) -> str:
    detail = response.text.strip()
    if len(detail) > 500:
        detail = detail[:500] + "..."
    if detail:
        return f"HTTP {response.status_code} {response.reason_phrase}: {detail}"
    return f"HTTP {response.status_code} {response.reason_phrase}"


class OpenAICompatClient(AnalysisClient):
    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gpt-4o-mini",
        transcription_model: str = "whisper-1",
        base_url: str | None = None,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        resolved = str(base_url or "").strip()
        self.base_url = (resolved or DEFAULT_OPENAI_BASE_URL).rstrip("/")
        self.api_key = api_key
        self.model = model
        self.transcription_model = transcription_model
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _headers(self) -> dict[str, str]:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout, transport=self._transport)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _post(self, path: str, *, operation: str, **kwargs: Any) -> dict[str, Any]:
        started = time.perf_counter()
        try:
            response = self._get_client().post(f"{self.base_url}{path}", headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("ai.request_failed operation=%s error=%s", operation, type(exc).__name__)
            raise AnalysisServiceError(f"AI service unreachable: {exc}") from exc

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if response.status_code >= 400:
            logger.warning(
                "ai.request_rejected operation=%s status=%s elapsed_ms=%s",
                operation,
                response.status_code,
                elapsed_ms,
            )
            raise AnalysisServiceError(_format_http_error(response))

        logger.info("ai.request_completed operation=%s elapsed_ms=%s", operation, elapsed_ms)
        try:
            body = response.json()
        except ValueError as exc:
            raise AnalysisServiceError("AI service returned a non-JSON response") from exc
        if not isinstance(body, dict):
            raise AnalysisServiceError("AI service returned an unexpected payload")
        return body

    @staticmethod
    def _message_text(body: dict[str, Any]) -> str:
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise AnalysisServiceError("AI response has no completion choices") from exc
        if not isinstance(content, str) or not content.strip():
            raise AnalysisServiceError("AI response is empty")
        return content

    def analyze(
        self,
        *,
        content: str,
        content_kind: str,
        title: str | None = None,
        brand_context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        header = f"Title: {title}\n" if title else ""
        payload = {
            "model": self.model,
            "temperature": 0.4,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": _analysis_prompt(brand_context)},
                {"role": "user", "content": f"{header}Source: {content_kind}\n\n{content}"},
            ],
        }
        text = self._message_text(self._post("/chat/completions", operation="analyze", json=payload))
        try:
            result = json.loads(text)
        except json.JSONDecodeError as exc:
            raise AnalysisServiceError("AI analysis is not valid JSON") from exc
        if not isinstance(result, dict):
            raise AnalysisServiceError("AI analysis is not a JSON object")
        return result

    def describe_image(self, *, image: bytes, media_type: str) -> str:
        data_url = f"data:{media_type};base64,{base64.b64encode(image).decode('ascii')}"
        payload = {
            "model": self.model,
            "temperature": 0.1,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": _IMAGE_PROMPT},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                }
            ],
        }
        body = self._post("/chat/completions", operation="describe_image", json=payload)
        return self._message_text(body).strip()

    def transcribe(self, *, media: bytes, filename: str, media_type: str) -> list[SpeechSegment]:
        body = self._post(
            "/audio/transcriptions",
            operation="transcribe",
            data={"model": self.transcription_model, "response_format": "verbose_json"},
            files={"file": (filename, media, media_type)},
        )
        raw_segments = body.get("segments")
        if isinstance(raw_segments, list) and raw_segments:
            segments: list[SpeechSegment] = []
            for item in raw_segments:
                if not isinstance(item, dict):
                    continue
                text = str(item.get("text") or "").strip()
                if not text:
                    continue
                segments.append(
                    SpeechSegment(
                        text=text,
                        start=float(item.get("start") or 0.0),
                        end=float(item.get("end") or 0.0),
                        speaker=item.get("speaker"),
                    )
                )
            return segments

        # Models without segment timing only return the full text.
        text = str(body.get("text") or "").strip()
        if not text:
            return []
        return [SpeechSegment(text=text, start=0.0, end=float(body.get("duration") or 0.0))]


__all__ = ["OpenAICompatClient"]
