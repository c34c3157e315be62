"""Account brand context service layer."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from uuid import uuid4

from app.core.logging_safety import safe_log_identifier
from app.errors import not_found_error
from app.repositories.base import AssetStore, BrandContextRecord, ProductLineRecord
from app.schemas.brand import BrandContext, ProductLine, UpsertBrandContextRequest

logger = logging.getLogger(__name__)


def _clean(values: list[str]) -> list[str]:
    return [value for value in (item.strip() for item in values) if value]


class BrandContextService:
    def __init__(self, store: AssetStore) -> None:
        self._store = store

    def get_brand_context(self, *, account_id: str) -> BrandContext:
        record = self._store.get_brand_context(account_id)
        if record is None:
            raise not_found_error()
        return self._to_brand_context(record)

    def put_brand_context(self, *, account_id: str, payload: UpsertBrandContextRequest) -> BrandContext:
        existing = self._store.get_brand_context(account_id)
        known_ids = {line.id for line in existing.product_lines} if existing is not None else set()

        # Product line ids are only kept when they already belong to this account.
        product_lines = [
            ProductLineRecord(
                id=line.id if line.id in known_ids else str(uuid4()),
                name=line.name,
                description=line.description or None,
                value_proposition=line.value_proposition or None,
                target_audience=line.target_audience or None,
            )
            for line in payload.product_lines
        ]
        record = self._store.put_brand_context(
            BrandContextRecord(
                account_id=account_id,
                updated_at=datetime.now(UTC),
                brand_voice=_clean(payload.brand_voice),
                value_proposition=payload.value_proposition or None,
                target_industries=_clean(payload.target_industries),
                competitors=_clean(payload.competitors),
                pain_clusters=_clean(payload.pain_clusters),
                primary_icp_roles=_clean(payload.primary_icp_roles),
                key_differentiators=_clean(payload.key_differentiators),
                use_cases=_clean(payload.use_cases),
                roi_claims=_clean(payload.roi_claims),
                product_lines=product_lines,
            )
        )
        logger.info(
            "brand_context.saved account_id=%s product_lines=%s",
            safe_log_identifier(account_id, prefix="aid"),
            len(record.product_lines),
        )
        return self._to_brand_context(record)

    @staticmethod
    def _to_brand_context(record: BrandContextRecord) -> BrandContext:
        return BrandContext(
            brand_voice=record.brand_voice,
            value_proposition=record.value_proposition,
            target_industries=record.target_industries,
            competitors=record.competitors,
            pain_clusters=record.pain_clusters,
            primary_icp_roles=record.primary_icp_roles,
            key_differentiators=record.key_differentiators,
            use_cases=record.use_cases,
            roi_claims=record.roi_claims,
            product_lines=[
                ProductLine(
                    id=line.id,
                    name=line.name,
                    description=line.description,
                    value_proposition=line.value_proposition,
                    target_audience=line.target_audience,
                )
                for line in record.product_lines
            ],
            updated_at=record.updated_at,
        )


__all__ = ["BrandContextService"]
