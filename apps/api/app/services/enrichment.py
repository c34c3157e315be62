"""Marketing metadata enrichment on top of the AI analysis service."""

from __future__ import annotations

from datetime import date
import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.adapters.ai import AnalysisClient
from app.domain.file_types import ContentFamily
from app.errors import AnalysisServiceError
from app.repositories.base import AssetStore, BrandContextRecord
from app.schemas.asset import DerivedMetadata, Highlight, HighlightType
from app.services.extraction import ExtractedContent

logger = logging.getLogger(__name__)

MAX_AUDIENCE_TAGS = 5
MAX_POSITIONING_TAGS = 3
MAX_HIGHLIGHTS = 8
MAX_OUTREACH_TIP = 240
MAX_HIGHLIGHT_CONTENT = 280

_ACRONYMS = frozenset(
    {
        "CEO", "CTO", "CFO", "CMO", "COO", "CIO", "CISO", "CPO", "CDO",
        "VP", "SVP", "EVP", "IT", "HR", "PR", "ROI", "KPI", "AI", "ML",
        "US", "UK", "EU", "B2B", "B2C", "SAAS", "API", "UI", "UX", "QA",
        "ISO", "SOC", "GDPR", "HIPAA", "PCI", "SSO", "MFA", "IAM",
    }
)
_VAGUE_TERMS = frozenset({"efficiency", "productivity", "quality", "performance"})
_TECHNICAL_TERM = re.compile(r"[0-9/_-]")
_SHORT_CAPS = re.compile(r"^[A-Z]{1,4}$")

_CONTENT_KIND = {
    ContentFamily.DOCUMENT: "document text",
    ContentFamily.IMAGE: "image description",
    ContentFamily.MEDIA: "audio/video transcript",
}


class AnalysisSnippet(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: HighlightType
    content: str
    context: str | None = None
    confidenceScore: int | None = Field(default=None, ge=1, le=100)


class AnalysisPayload(BaseModel):
    """Shape of the structured analysis the AI service answers with."""

    model_config = ConfigDict(extra="ignore")

    assetType: str | None = None
    funnelStage: str | None = None
    icpTargets: list[str] | None = None
    painClusters: list[str] | None = None
    outreachTip: str | None = None
    atomicSnippets: list[AnalysisSnippet] | None = None
    contentQualityScore: int | None = Field(default=None, ge=1, le=100)
    suggestedExpiryDate: date | None = None
    matchedProductLineId: str | None = None


def dedupe(values: list[str]) -> list[str]:
    """Drop case-insensitive duplicates, keeping the first spelling."""
    seen: set[str] = set()
    unique = []
    for value in values:
        key = value.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(value)
    return unique


def smart_title_case(phrase: str) -> str:
    """Title-case a phrase without mangling acronyms or technical terms like ``SOC 2``."""
    phrase = phrase.strip()
    if _TECHNICAL_TERM.search(phrase):
        return phrase

    words = []
    for word in phrase.split():
        upper = word.upper()
        if upper in _ACRONYMS:
            words.append("SaaS" if upper == "SAAS" else upper)
        elif _SHORT_CAPS.match(word):
            words.append(word)
        else:
            words.append(word[:1].upper() + word[1:].lower())
    return " ".join(words)


def normalize_audience_tags(values: list[str] | None) -> list[str] | None:
    if values is None:
        return None
    tags = [value.strip() for value in dedupe(values)]
    return [tag for tag in tags if 0 < len(tag) < 50][:MAX_AUDIENCE_TAGS]


def normalize_positioning_tags(values: list[str] | None) -> list[str] | None:
    if values is None:
        return None
    tags = []
    for value in dedupe(values):
        tag = smart_title_case(value)
        if not 2 <= len(tag.split()) <= 5 or tag.lower() in _VAGUE_TERMS:
            continue
        tags.append(tag)
    return tags[:MAX_POSITIONING_TAGS]


def normalize_highlights(snippets: list[AnalysisSnippet] | None) -> list[Highlight] | None:
    if snippets is None:
        return None
    highlights = []
    for snippet in snippets:
        content = snippet.content.strip()
        if not content:
            continue
        context = (snippet.context or "").strip() or None
        highlights.append(
            Highlight(
                type=snippet.type,
                content=content[:MAX_HIGHLIGHT_CONTENT],
                context=context,
                confidence=snippet.confidenceScore,
            )
        )
    return highlights[:MAX_HIGHLIGHTS]


def to_metadata(
    payload: AnalysisPayload,
    *,
    model: str | None,
    product_line_ids: frozenset[str] = frozenset(),
) -> DerivedMetadata:
    outreach_tip = (payload.outreachTip or "").strip()[:MAX_OUTREACH_TIP] or None
    product_line_id = payload.matchedProductLineId
    if product_line_id is not None and product_line_id not in product_line_ids:
        logger.info("enrichment.unknown_product_line ignored=true")
        product_line_id = None
    return DerivedMetadata(
        content_category=payload.assetType,
        funnel_stage=payload.funnelStage,
        audience_tags=normalize_audience_tags(payload.icpTargets),
        positioning_tags=normalize_positioning_tags(payload.painClusters),
        outreach_tip=outreach_tip,
        highlights=normalize_highlights(payload.atomicSnippets),
        quality_score=payload.contentQualityScore,
        suggested_expiry=payload.suggestedExpiryDate,
        product_line_id=product_line_id,
        analysis_model=model,
    )


def brand_context_prompt(record: BrandContextRecord) -> dict[str, Any]:
    """Compact JSON view of an account's brand context for the analysis prompt."""
    context: dict[str, Any] = {
        "brandVoice": ", ".join(record.brand_voice),
        "valueProposition": record.value_proposition,
        "targetIndustries": record.target_industries,
        "competitors": record.competitors,
        "painClusters": record.pain_clusters,
        "primaryICPRoles": record.primary_icp_roles,
        "keyDifferentiators": record.key_differentiators,
        "useCases": record.use_cases,
        "roiClaims": record.roi_claims,
    }
    if record.product_lines:
        context["productLines"] = [
            {
                "id": line.id,
                "name": line.name,
                "description": line.description,
                "valueProposition": line.value_proposition,
                "targetAudience": line.target_audience,
            }
            for line in record.product_lines
        ]
    return context


class EnrichmentInvoker:
    def __init__(self, *, ai_client: AnalysisClient, store: AssetStore, max_input_chars: int) -> None:
        self._ai_client = ai_client
        self._store = store
        self._max_input_chars = max_input_chars

    def enrich(
        self,
        content: ExtractedContent,
        *,
        account_id: str | None = None,
        title: str | None = None,
    ) -> DerivedMetadata:
        text = content.text.strip()
        if len(text) > self._max_input_chars:
            logger.info(
                "enrichment.input_truncated chars=%s limit=%s",
                len(text),
                self._max_input_chars,
            )
            text = text[: self._max_input_chars]

        brand = self._store.get_brand_context(account_id) if account_id else None
        product_line_ids = frozenset(line.id for line in brand.product_lines) if brand is not None else frozenset()
        logger.info(
            "enrichment.requested brand_context=%s product_lines=%s",
            brand is not None,
            len(product_line_ids),
        )

        raw = self._ai_client.analyze(
            content=text,
            content_kind=_CONTENT_KIND[content.family],
            title=title,
            brand_context=brand_context_prompt(brand) if brand is not None else None,
        )
        try:
            payload = AnalysisPayload.model_validate(raw)
        except ValidationError as exc:
            logger.warning("enrichment.malformed_response errors=%s", exc.error_count())
            raise AnalysisServiceError("AI analysis response did not match the expected schema") from exc

        return to_metadata(
            payload,
            model=getattr(self._ai_client, "model", None),
            product_line_ids=product_line_ids,
        )


__all__ = [
    "AnalysisPayload",
    "EnrichmentInvoker",
    "brand_context_prompt",
    "dedupe",
    "normalize_audience_tags",
    "normalize_highlights",
    "normalize_positioning_tags",
    "smart_title_case",
    "to_metadata",
]
