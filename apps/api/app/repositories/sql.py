"""SQLAlchemy-backed store.

State transitions are single ``UPDATE ... WHERE <pre-state>`` statements whose
rowcount decides whether the transition applied, so the guards hold even when
runs execute in separate worker processes against the same database.
"""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.repositories.base import (
    AssetRecord,
    AssetStore,
    BrandContextRecord,
    ProductLineRecord,
    RunResult,
    SegmentData,
    TranscriptionJobRecord,
    TranscriptSegmentRecord,
    clamp_progress,
    truncate_job_error,
)
from app.repositories.memory import expiry_from_date
from app.schemas.asset import AssetStatus, Highlight
from app.schemas.transcription import TranscriptionJobStatus

logger = logging.getLogger(__name__)

Base = declarative_base()

_LIVE_JOB_STATUSES = (TranscriptionJobStatus.QUEUED.value, TranscriptionJobStatus.RUNNING.value)


class AssetRow(Base):
    __tablename__ = "assets"

    id = Column(String, primary_key=True)
    account_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    storage_key = Column(String, nullable=False)
    declared_type = Column(String, nullable=False)
    status = Column(String, nullable=False, default=AssetStatus.PENDING.value, index=True)
    run_id = Column(String, nullable=True)
    extracted_text = Column(Text, nullable=True)
    content_category = Column(String, nullable=True)
    funnel_stage = Column(String, nullable=True)
    audience_tags = Column(JSON, nullable=True)
    positioning_tags = Column(JSON, nullable=True)
    outreach_tip = Column(Text, nullable=True)
    highlights = Column(JSON, nullable=True)
    quality_score = Column(Integer, nullable=True)
    product_line_id = Column(String, nullable=True)
    dominant_color = Column(String(7), nullable=True)
    analysis_model = Column(String, nullable=True)
    processing_note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    custom_created_at = Column(DateTime(timezone=True), nullable=True)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    analyzed_at = Column(DateTime(timezone=True), nullable=True)


class TranscriptionJobRow(Base):
    __tablename__ = "transcription_jobs"

    id = Column(String, primary_key=True)
    asset_id = Column(String, ForeignKey("assets.id"), nullable=False, unique=True)
    status = Column(String, nullable=False, default=TranscriptionJobStatus.QUEUED.value)
    progress = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class TranscriptSegmentRow(Base):
    __tablename__ = "transcript_segments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset_id = Column(String, ForeignKey("assets.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    start = Column(Float, nullable=False)
    end = Column(Float, nullable=False)
    speaker = Column(String, nullable=True)


class BrandContextRow(Base):
    __tablename__ = "brand_contexts"

    account_id = Column(String, primary_key=True)
    brand_voice = Column(JSON, nullable=False, default=list)
    value_proposition = Column(Text, nullable=True)
    target_industries = Column(JSON, nullable=False, default=list)
    competitors = Column(JSON, nullable=False, default=list)
    pain_clusters = Column(JSON, nullable=False, default=list)
    primary_icp_roles = Column(JSON, nullable=False, default=list)
    key_differentiators = Column(JSON, nullable=False, default=list)
    use_cases = Column(JSON, nullable=False, default=list)
    roi_claims = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ProductLineRow(Base):
    __tablename__ = "product_lines"

    id = Column(String, primary_key=True)
    account_id = Column(String, ForeignKey("brand_contexts.account_id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    value_proposition = Column(Text, nullable=True)
    target_audience = Column(Text, nullable=True)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _asset_record(row: AssetRow) -> AssetRecord:
    return AssetRecord(
        id=row.id,
        account_id=row.account_id,
        title=row.title,
        storage_key=row.storage_key,
        declared_type=row.declared_type,
        status=AssetStatus(row.status),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        run_id=row.run_id,
        extracted_text=row.extracted_text,
        content_category=row.content_category,
        funnel_stage=row.funnel_stage,
        audience_tags=list(row.audience_tags) if row.audience_tags is not None else None,
        positioning_tags=list(row.positioning_tags) if row.positioning_tags is not None else None,
        outreach_tip=row.outreach_tip,
        highlights=[Highlight.model_validate(item) for item in row.highlights] if row.highlights is not None else None,
        quality_score=row.quality_score,
        product_line_id=row.product_line_id,
        dominant_color=row.dominant_color,
        analysis_model=row.analysis_model,
        processing_note=row.processing_note,
        custom_created_at=_aware(row.custom_created_at),
        last_reviewed_at=_aware(row.last_reviewed_at),
        expires_at=_aware(row.expires_at),
        analyzed_at=_aware(row.analyzed_at),
    )


def _job_record(row: TranscriptionJobRow) -> TranscriptionJobRecord:
    return TranscriptionJobRecord(
        id=row.id,
        asset_id=row.asset_id,
        status=TranscriptionJobStatus(row.status),
        progress=row.progress,
        created_at=_aware(row.created_at),
        error=row.error,
        completed_at=_aware(row.completed_at),
    )


_BRAND_LIST_FIELDS = (
    "brand_voice",
    "target_industries",
    "competitors",
    "pain_clusters",
    "primary_icp_roles",
    "key_differentiators",
    "use_cases",
    "roi_claims",
)


def _brand_context_record(row: BrandContextRow, lines: list[ProductLineRow]) -> BrandContextRecord:
    return BrandContextRecord(
        account_id=row.account_id,
        updated_at=_aware(row.updated_at),
        value_proposition=row.value_proposition,
        product_lines=[
            ProductLineRecord(
                id=line.id,
                name=line.name,
                description=line.description,
                value_proposition=line.value_proposition,
                target_audience=line.target_audience,
            )
            for line in lines
        ],
        **{name: list(getattr(row, name) or []) for name in _BRAND_LIST_FIELDS},
    )

def _result_values(result: RunResult) -> dict[str, Any]:
    metadata = result.metadata
    return {
        "extracted_text": result.extracted_text,
        "content_category": metadata.content_category,
        "funnel_stage": metadata.funnel_stage,
        "audience_tags": metadata.audience_tags,
        "positioning_tags": metadata.positioning_tags,
        "outreach_tip": metadata.outreach_tip,
        "highlights": (
            [highlight.model_dump(mode="json") for highlight in metadata.highlights]
            if metadata.highlights is not None
            else None
        ),
        "quality_score": metadata.quality_score,
        "product_line_id": metadata.product_line_id,
        "dominant_color": result.dominant_color,
        "analysis_model": metadata.analysis_model,
        "expires_at": expiry_from_date(metadata.suggested_expiry),
        "analyzed_at": result.analyzed_at,
    }


class SqlAlchemyStore(AssetStore):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str) -> "SqlAlchemyStore":
        if url == "sqlite://" or (url.startswith("sqlite") and ":memory:" in url):
            engine = create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
        else:
            engine = create_engine(url, pool_pre_ping=True)
        Base.metadata.create_all(engine)
        logger.info("store.ready backend=sqlalchemy dialect=%s", engine.dialect.name)
        return cls(engine)

    def _session(self) -> Session:
        return self._sessions()

    def create_asset(
        self,
        *,
        account_id: str,
        title: str,
        storage_key: str,
        declared_type: str,
        custom_created_at: datetime | None = None,
    ) -> AssetRecord:
        now = datetime.now(UTC)
        row = AssetRow(
            id=str(uuid4()),
            account_id=account_id,
            title=title,
            storage_key=storage_key,
            declared_type=declared_type,
            status=AssetStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            custom_created_at=custom_created_at,
        )
        with self._session() as session, session.begin():
            session.add(row)
        return _asset_record(row)

    def get_asset(self, asset_id: str) -> AssetRecord | None:
        with self._session() as session:
            row = session.get(AssetRow, asset_id)
            return _asset_record(row) if row is not None else None

    def get_asset_for_account(self, account_id: str, asset_id: str) -> AssetRecord | None:
        with self._session() as session:
            row = session.scalars(
                select(AssetRow).where(AssetRow.id == asset_id, AssetRow.account_id == account_id)
            ).first()
            return _asset_record(row) if row is not None else None

    def list_assets_for_account(self, account_id: str) -> list[AssetRecord]:
        with self._session() as session:
            rows = session.scalars(
                select(AssetRow).where(AssetRow.account_id == account_id).order_by(AssetRow.created_at)
            ).all()
            return [_asset_record(row) for row in rows]

    def claim_asset_run(
        self,
        asset_id: str,
        *,
        expected_statuses: frozenset[AssetStatus],
        run_id: str,
    ) -> AssetRecord | None:
        statement = (
            update(AssetRow)
            .where(
                AssetRow.id == asset_id,
                AssetRow.status.in_([status.value for status in expected_statuses]),
            )
            .values(
                status=AssetStatus.PROCESSING.value,
                run_id=run_id,
                processing_note=None,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        with self._session() as session, session.begin():
            if session.execute(statement).rowcount != 1:
                return None
            row = session.get(AssetRow, asset_id)
            return _asset_record(row)

    def finalize_asset_run(
        self,
        asset_id: str,
        *,
        run_id: str,
        status: AssetStatus,
        result: RunResult | None = None,
        note: str | None = None,
    ) -> bool:
        if status not in (AssetStatus.PROCESSED, AssetStatus.ERROR):
            raise ValueError(f"Run cannot finish in {status}")
        values: dict[str, Any] = {
            "status": status.value,
            "run_id": None,
            "processing_note": note,
            "updated_at": datetime.now(UTC),
        }
        if status is AssetStatus.PROCESSED and result is not None:
            values.update(_result_values(result))
        statement = (
            update(AssetRow)
            .where(
                AssetRow.id == asset_id,
                AssetRow.status == AssetStatus.PROCESSING.value,
                AssetRow.run_id == run_id,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session() as session, session.begin():
            return session.execute(statement).rowcount == 1

    def cancel_asset_run(self, asset_id: str, *, note: str) -> AssetRecord | None:
        statement = (
            update(AssetRow)
            .where(AssetRow.id == asset_id, AssetRow.status == AssetStatus.PROCESSING.value)
            .values(
                status=AssetStatus.ERROR.value,
                run_id=None,
                processing_note=note,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        with self._session() as session, session.begin():
            if session.execute(statement).rowcount != 1:
                return None
            return _asset_record(session.get(AssetRow, asset_id))

    def approve_asset(self, asset_id: str) -> AssetRecord | None:
        now = datetime.now(UTC)
        statement = (
            update(AssetRow)
            .where(AssetRow.id == asset_id, AssetRow.status == AssetStatus.PROCESSED.value)
            .values(status=AssetStatus.APPROVED.value, last_reviewed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        with self._session() as session, session.begin():
            if session.execute(statement).rowcount != 1:
                return None
            return _asset_record(session.get(AssetRow, asset_id))

    def is_current_run(self, asset_id: str, run_id: str) -> bool:
        with self._session() as session:
            owner = session.scalar(
                select(AssetRow.id).where(
                    AssetRow.id == asset_id,
                    AssetRow.status == AssetStatus.PROCESSING.value,
                    AssetRow.run_id == run_id,
                )
            )
            return owner is not None

    def reset_transcription_job(self, asset_id: str) -> TranscriptionJobRecord:
        row = TranscriptionJobRow(
            id=str(uuid4()),
            asset_id=asset_id,
            status=TranscriptionJobStatus.QUEUED.value,
            progress=0,
            created_at=datetime.now(UTC),
        )
        with self._session() as session, session.begin():
            session.execute(delete(TranscriptSegmentRow).where(TranscriptSegmentRow.asset_id == asset_id))
            session.execute(delete(TranscriptionJobRow).where(TranscriptionJobRow.asset_id == asset_id))
            session.add(row)
        return _job_record(row)

    def get_transcription_job(self, job_id: str) -> TranscriptionJobRecord | None:
        with self._session() as session:
            row = session.get(TranscriptionJobRow, job_id)
            return _job_record(row) if row is not None else None

    def get_transcription_job_for_asset(self, asset_id: str) -> TranscriptionJobRecord | None:
        with self._session() as session:
            row = session.scalars(
                select(TranscriptionJobRow).where(TranscriptionJobRow.asset_id == asset_id)
            ).first()
            return _job_record(row) if row is not None else None

    def mark_transcription_running(self, job_id: str) -> bool:
        statement = (
            update(TranscriptionJobRow)
            .where(
                TranscriptionJobRow.id == job_id,
                TranscriptionJobRow.status == TranscriptionJobStatus.QUEUED.value,
            )
            .values(status=TranscriptionJobStatus.RUNNING.value)
            .execution_options(synchronize_session=False)
        )
        with self._session() as session, session.begin():
            return session.execute(statement).rowcount == 1

    def update_transcription_progress(self, job_id: str, percent: int) -> bool:
        value = clamp_progress(percent)
        statement = (
            update(TranscriptionJobRow)
            .where(
                TranscriptionJobRow.id == job_id,
                TranscriptionJobRow.status.in_(_LIVE_JOB_STATUSES),
                TranscriptionJobRow.progress <= value,
            )
            .values(status=TranscriptionJobStatus.RUNNING.value, progress=value)
            .execution_options(synchronize_session=False)
        )
        with self._session() as session, session.begin():
            return session.execute(statement).rowcount == 1

    def append_transcript_segments(self, job_id: str, segments: list[SegmentData]) -> int:
        with self._session() as session, session.begin():
            job = session.scalars(
                select(TranscriptionJobRow)
                .where(
                    TranscriptionJobRow.id == job_id,
                    TranscriptionJobRow.status.in_(_LIVE_JOB_STATUSES),
                )
                .with_for_update()
            ).first()
            if job is None:
                return 0
            next_sequence = session.scalar(
                select(func.count()).select_from(TranscriptSegmentRow).where(TranscriptSegmentRow.asset_id == job.asset_id)
            )
            session.add_all(
                TranscriptSegmentRow(
                    asset_id=job.asset_id,
                    sequence=next_sequence + offset,
                    text=segment.text,
                    start=segment.start,
                    end=segment.end,
                    speaker=segment.speaker,
                )
                for offset, segment in enumerate(segments)
            )
            return len(segments)

    def finish_transcription_job(
        self,
        job_id: str,
        *,
        status: TranscriptionJobStatus,
        error: str | None = None,
    ) -> bool:
        if status not in (TranscriptionJobStatus.COMPLETED, TranscriptionJobStatus.FAILED):
            raise ValueError(f"Transcription job cannot finish in {status}")
        values: dict[str, Any] = {
            "status": status.value,
            "error": truncate_job_error(error) if error is not None else None,
            "completed_at": datetime.now(UTC),
        }
        if status is TranscriptionJobStatus.COMPLETED:
            values["progress"] = 100
        statement = (
            update(TranscriptionJobRow)
            .where(
                TranscriptionJobRow.id == job_id,
                TranscriptionJobRow.status.in_(_LIVE_JOB_STATUSES),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session() as session, session.begin():
            return session.execute(statement).rowcount == 1

    def count_transcript_segments(self, asset_id: str) -> int:
        with self._session() as session:
            return session.scalar(
                select(func.count()).select_from(TranscriptSegmentRow).where(TranscriptSegmentRow.asset_id == asset_id)
            )

    def list_transcript_segments(self, asset_id: str) -> list[TranscriptSegmentRecord]:
        with self._session() as session:
            rows = session.scalars(
                select(TranscriptSegmentRow)
                .where(TranscriptSegmentRow.asset_id == asset_id)
                .order_by(TranscriptSegmentRow.sequence)
            ).all()
            return [
                TranscriptSegmentRecord(
                    asset_id=row.asset_id,
                    sequence=row.sequence,
                    text=row.text,
                    start=row.start,
                    end=row.end,
                    speaker=row.speaker,
                )
                for row in rows
            ]

    def put_brand_context(self, record: BrandContextRecord) -> BrandContextRecord:
        row = BrandContextRow(
            account_id=record.account_id,
            value_proposition=record.value_proposition,
            updated_at=record.updated_at,
            **{name: list(getattr(record, name)) for name in _BRAND_LIST_FIELDS},
        )
        lines = [
            ProductLineRow(
                id=line.id,
                account_id=record.account_id,
                position=position,
                name=line.name,
                description=line.description,
                value_proposition=line.value_proposition,
                target_audience=line.target_audience,
            )
            for position, line in enumerate(record.product_lines)
        ]
        with self._session() as session, session.begin():
            session.execute(delete(ProductLineRow).where(ProductLineRow.account_id == record.account_id))
            session.merge(row)
            session.flush()
            session.add_all(lines)
        return _brand_context_record(row, lines)

    def get_brand_context(self, account_id: str) -> BrandContextRecord | None:
        with self._session() as session:
            row = session.get(BrandContextRow, account_id)
            if row is None:
                return None
            lines = session.scalars(
                select(ProductLineRow)
                .where(ProductLineRow.account_id == account_id)
                .order_by(ProductLineRow.position)
            ).all()
            return _brand_context_record(row, list(lines))
