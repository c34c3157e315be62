"""Transcription job lifecycle tests."""

from __future__ import annotations

import unittest

from app.adapters.ai import SpeechSegment
from app.errors import AnalysisServiceError, TooLarge
from app.repositories.base import SegmentData
from app.repositories.memory import InMemoryStore
from app.schemas.transcription import TranscriptionJobStatus
from app.services.transcription import TranscriptionJobManager
from pipeline_fakes import FakeAnalysisClient, FakeStorage, ManualExecutor

MEDIA_KEY = "uploads/webinar.mp3"


class TranscriptionJobManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.asset = self.store.create_asset(
            account_id="acct-1",
            title="Webinar",
            storage_key=MEDIA_KEY,
            declared_type="audio/mpeg",
        )
        self.storage = FakeStorage({MEDIA_KEY: b"ID3fake-audio"})
        self.ai = FakeAnalysisClient()
        self.executor = ManualExecutor()
        self.manager = self._manager()

    def _manager(self, **overrides) -> TranscriptionJobManager:
        options = {
            "store": self.store,
            "storage": self.storage,
            "ai_client": self.ai,
            "executor": self.executor,
            "max_media_bytes": 1024,
        }
        options.update(overrides)
        return TranscriptionJobManager(**options)

    def _begin(self) -> str:
        return self.manager.begin(self.asset.id, MEDIA_KEY, "audio/mpeg")

    def test_oversized_media_is_rejected_before_any_job_exists(self) -> None:
        self.storage.sizes[MEDIA_KEY] = 30 * 1024 * 1024
        manager = self._manager(max_media_bytes=25 * 1024 * 1024)

        with self.assertRaises(TooLarge) as context:
            manager.begin(self.asset.id, MEDIA_KEY, "audio/mpeg")

        self.assertEqual(str(context.exception), "30.0 MB exceeds the 25 MB transcription limit")
        self.assertIsNone(self.store.get_transcription_job_for_asset(self.asset.id))
        self.assertEqual(self.executor.pending, 0)

    def test_full_run_stores_segments_and_completes(self) -> None:
        job_id = self._begin()
        self.assertEqual(self.manager.get_job(job_id).status, TranscriptionJobStatus.QUEUED)

        self.executor.run_pending()

        job = self.manager.get_job(job_id)
        self.assertEqual(job.status, TranscriptionJobStatus.COMPLETED)
        self.assertEqual(job.progress, 100)
        self.assertIsNone(job.error)
        segments = self.store.list_transcript_segments(self.asset.id)
        self.assertEqual([s.text for s in segments], [s.text for s in self.ai.segments])
        self.assertEqual(segments[2].speaker, "host")
        self.assertEqual(self.manager.get_status(self.asset.id).segment_count, 3)

    def test_segments_are_written_in_batches(self) -> None:
        manager = self._manager(segment_batch_size=1)
        job_id = manager.begin(self.asset.id, MEDIA_KEY, "audio/mpeg")
        self.executor.run_pending()

        self.assertEqual(manager.get_job(job_id).status, TranscriptionJobStatus.COMPLETED)
        self.assertEqual([s.sequence for s in self.store.list_transcript_segments(self.asset.id)], [0, 1, 2])

    def test_no_speech_fails_job(self) -> None:
        self.ai.segments = []
        job_id = self._begin()
        self.executor.run_pending()

        job = self.manager.get_job(job_id)
        self.assertEqual(job.status, TranscriptionJobStatus.FAILED)
        self.assertEqual(job.error, "No speech detected in media")
        self.assertEqual(self.store.count_transcript_segments(self.asset.id), 0)

    def test_service_error_fails_job_with_message(self) -> None:
        self.ai.transcribe_error = AnalysisServiceError("HTTP 429 Too Many Requests")
        job_id = self._begin()
        self.executor.run_pending()

        job = self.manager.get_job(job_id)
        self.assertEqual(job.status, TranscriptionJobStatus.FAILED)
        self.assertEqual(job.error, "HTTP 429 Too Many Requests")

    def test_unexpected_error_fails_job_with_type_name(self) -> None:
        self.ai.transcribe_error = RuntimeError()
        job_id = self._begin()
        with self.assertLogs("app.services.transcription", level="ERROR"):
            self.executor.run_pending()

        self.assertEqual(self.manager.get_job(job_id).error, "RuntimeError")

    def test_superseded_job_run_is_skipped(self) -> None:
        first_id = self._begin()
        second_id = self._begin()
        self.assertNotEqual(first_id, second_id)
        self.assertIsNone(self.manager.get_job(first_id))
        self.assertFalse(self.manager.report_progress(first_id, 50))
        self.assertEqual(self.manager.append_segments(first_id, [SegmentData(text="x", start=0, end=1)]), 0)

        self.executor.run_pending()

        self.assertEqual(self.ai.transcribe_calls, 1)
        self.assertEqual(self.manager.get_job(second_id).status, TranscriptionJobStatus.COMPLETED)
        self.assertEqual(self.store.count_transcript_segments(self.asset.id), 3)

    def test_job_failed_while_queued_never_runs(self) -> None:
        job_id = self._begin()
        self.assertTrue(self.manager.fail(job_id, "Transcription cancelled"))
        self.executor.run_pending()

        self.assertEqual(self.ai.transcribe_calls, 0)
        job = self.manager.get_job(job_id)
        self.assertEqual(job.status, TranscriptionJobStatus.FAILED)
        self.assertEqual(job.error, "Transcription cancelled")

    def test_job_failed_during_transcription_stores_no_segments(self) -> None:
        manager = self.manager

        class CancellingClient(FakeAnalysisClient):
            job_id = ""

            def transcribe(self, *, media: bytes, filename: str, media_type: str) -> list[SpeechSegment]:
                manager.fail(self.job_id, "Transcription cancelled")
                return super().transcribe(media=media, filename=filename, media_type=media_type)

        client = CancellingClient()
        manager._ai_client = client
        client.job_id = self._begin()
        self.executor.run_pending()

        job = manager.get_job(client.job_id)
        self.assertEqual(job.status, TranscriptionJobStatus.FAILED)
        self.assertEqual(job.error, "Transcription cancelled")
        self.assertEqual(self.store.count_transcript_segments(self.asset.id), 0)

    def test_status_hides_segment_count_until_completed(self) -> None:
        self.assertIsNone(self.manager.get_status(self.asset.id).job)

        job_id = self._begin()
        self.store.mark_transcription_running(job_id)
        self.manager.append_segments(job_id, [SegmentData(text="partial", start=0.0, end=1.0)])

        snapshot = self.manager.get_status(self.asset.id)
        self.assertEqual(snapshot.job.status, TranscriptionJobStatus.RUNNING)
        self.assertEqual(snapshot.segment_count, 0)

        self.assertTrue(self.manager.complete(job_id))
        self.assertEqual(self.manager.get_status(self.asset.id).segment_count, 1)

    def test_progress_reports_are_monotonic(self) -> None:
        job_id = self._begin()
        self.assertTrue(self.manager.report_progress(job_id, 40))
        self.assertFalse(self.manager.report_progress(job_id, 20))
        self.assertEqual(self.manager.get_job(job_id).progress, 40)


if __name__ == "__main__":
    unittest.main()
