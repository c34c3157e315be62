"""Wiring of the processing pipeline from settings."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging

from app.adapters.ai import AnalysisClient, OpenAICompatClient
from app.adapters.storage import ObjectStorage, S3ObjectStorage
from app.core.config import Settings
from app.repositories.base import AssetStore
from app.repositories.memory import InMemoryStore
from app.repositories.sql import SqlAlchemyStore
from app.services.enrichment import EnrichmentInvoker
from app.services.executor import TaskExecutor, ThreadPoolTaskExecutor
from app.services.extraction import ContentExtractor
from app.services.pipeline import PipelineController
from app.services.transcription import TranscriptionJobManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineRuntime:
    pipeline: PipelineController
    transcriptions: TranscriptionJobManager
    executors: list[TaskExecutor] = field(default_factory=list)
    ai_client: AnalysisClient | None = None

    def shutdown(self, *, wait: bool = True) -> None:
        for executor in self.executors:
            executor.shutdown(wait=wait)
        if isinstance(self.ai_client, OpenAICompatClient):
            self.ai_client.close()


def build_store(settings: Settings) -> AssetStore:
    if settings.database_url:
        return SqlAlchemyStore.from_url(settings.database_url)
    logger.info("store.ready backend=memory")
    return InMemoryStore()


def build_storage(settings: Settings) -> ObjectStorage:
    if not settings.s3_bucket:
        raise RuntimeError("ASSETPIPE_S3_BUCKET must be configured to process assets")
    return S3ObjectStorage(
        settings.s3_bucket,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
        access_key=settings.aws_access_key_id,
        secret_key=settings.aws_secret_access_key,
    )


def build_ai_client(settings: Settings) -> AnalysisClient:
    return OpenAICompatClient(
        settings.ai_api_key,
        model=settings.ai_analysis_model,
        transcription_model=settings.ai_transcription_model,
        base_url=settings.ai_base_url,
        timeout=settings.ai_timeout_seconds,
    )


def build_runtime(
    settings: Settings,
    store: AssetStore,
    *,
    storage: ObjectStorage | None = None,
    ai_client: AnalysisClient | None = None,
    run_executor: TaskExecutor | None = None,
    transcription_executor: TaskExecutor | None = None,
) -> PipelineRuntime:
    storage = storage or build_storage(settings)
    ai_client = ai_client or build_ai_client(settings)
    run_executor = run_executor or ThreadPoolTaskExecutor(settings.worker_count, thread_name_prefix="asset-run")
    transcription_executor = transcription_executor or ThreadPoolTaskExecutor(
        settings.transcription_worker_count,
        thread_name_prefix="transcription",
    )

    transcriptions = TranscriptionJobManager(
        store=store,
        storage=storage,
        ai_client=ai_client,
        executor=transcription_executor,
        max_media_bytes=settings.max_media_bytes,
    )
    pipeline = PipelineController(
        store=store,
        extractor=ContentExtractor(storage=storage, ai_client=ai_client, transcriptions=transcriptions),
        transcriptions=transcriptions,
        enrichment=EnrichmentInvoker(
            ai_client=ai_client,
            store=store,
            max_input_chars=settings.max_analysis_chars,
        ),
        executor=run_executor,
        poll_interval=settings.transcription_poll_interval_seconds,
        transcription_timeout=settings.transcription_timeout_seconds,
        max_note_length=settings.max_note_length,
    )
    return PipelineRuntime(
        pipeline=pipeline,
        transcriptions=transcriptions,
        executors=[run_executor, transcription_executor],
        ai_client=ai_client,
    )


__all__ = ["PipelineRuntime", "build_ai_client", "build_runtime", "build_storage", "build_store"]
