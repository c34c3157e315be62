"""Asset API tests: ownership, processing lifecycle and transcripts."""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import create_app
from app.repositories.memory import InMemoryStore
from app.services.pipeline import CANCEL_NOTE
from pipeline_fakes import (
    FakeAnalysisClient,
    FakeStorage,
    InlineExecutor,
    ManualExecutor,
    SettingsEnvCase,
    build_test_runtime,
)

OWNER = {"Authorization": "Bearer test:acct-owner:editor"}
OTHER = {"Authorization": "Bearer test:acct-other:editor"}
DOC_KEY = "uploads/acme-case-study.txt"
MEDIA_KEY = "uploads/webinar.mp3"


class AssetApiTests(SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = InMemoryStore()
        self.storage = FakeStorage(
            {
                DOC_KEY: b"Acme cut cloud spend by 30% in one quarter.",
                MEDIA_KEY: b"ID3fake-audio",
            }
        )
        self.ai = FakeAnalysisClient()
        self.runs = ManualExecutor()
        self.app = create_app()
        self.app.state.store = self.store
        self.app.state.runtime = build_test_runtime(
            self.store,
            storage=self.storage,
            ai_client=self.ai,
            run_executor=self.runs,
            transcription_executor=InlineExecutor(),
        )
        self.client = TestClient(self.app)

    def _create(self, storage_key: str = DOC_KEY, declared_type: str = "text/plain", headers=OWNER, **extra) -> dict:
        response = self.client.post(
            "/api/v1/assets",
            headers=headers,
            json={"storage_key": storage_key, "declared_type": declared_type, **extra},
        )
        self.assertEqual(response.status_code, 201)
        return response.json()

    def _processed(self) -> dict:
        created = self._create()
        self.runs.run_pending()
        return created

    def test_create_starts_processing_and_defaults_title(self) -> None:
        body = self._create()

        self.assertEqual(body["status"], "PROCESSING")
        self.assertEqual(body["title"], "acme-case-study.txt")
        self.assertEqual(self.runs.pending, 1)

        self.runs.run_pending()

        asset = self.client.get(f"/api/v1/assets/{body['id']}", headers=OWNER).json()
        self.assertEqual(asset["status"], "PROCESSED")
        self.assertEqual(asset["extracted_text"], "Acme cut cloud spend by 30% in one quarter.")
        self.assertEqual(asset["content_category"], "Case_Study")
        self.assertEqual(asset["audience_tags"], ["CTO", "VP of Sales"])
        self.assertEqual(asset["positioning_tags"], ["Technical Debt", "SOC 2 compliance gaps"])
        self.assertEqual(asset["quality_score"], 82)
        self.assertEqual(asset["highlights"][0]["type"], "ROI_STAT")
        self.assertTrue(asset["expires_at"].startswith("2027-06-30T00:00:00"))
        self.assertIsNone(asset["processing_note"])
        self.assertNotIn("run_id", asset)
        self.assertNotIn("account_id", asset)

    def test_create_uses_explicit_title(self) -> None:
        body = self._create(title="Acme Case Study", custom_created_at="2025-11-02T10:00:00Z")
        self.assertEqual(body["title"], "Acme Case Study")
        self.assertTrue(body["custom_created_at"].startswith("2025-11-02T10:00:00"))

    def test_create_with_invalid_payload_returns_validation_error(self) -> None:
        response = self.client.post("/api/v1/assets", headers=OWNER, json={"storage_key": ""})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertEqual(response.json()["message"], "Invalid asset payload")
        self.assertEqual(self.store.asset_write_count, 0)

    def test_create_with_unsupported_type_lands_in_error(self) -> None:
        body = self._create("uploads/archive.zip", "application/zip")

        self.assertEqual(body["status"], "ERROR")
        self.assertTrue(body["processing_note"].startswith("Unsupported file type"))
        self.assertEqual(self.runs.pending, 0)

    def test_list_returns_only_own_assets(self) -> None:
        first = self._create()
        second = self._create(MEDIA_KEY, "audio/mpeg")
        self._create(headers=OTHER)

        response = self.client.get("/api/v1/assets", headers=OWNER)
        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["id"] for item in response.json()], [first["id"], second["id"]])

    def test_other_account_gets_no_leak_404_everywhere(self) -> None:
        asset_id = self._processed()["id"]
        writes_before = self.store.asset_write_count

        requests = [
            ("get", f"/api/v1/assets/{asset_id}"),
            ("post", f"/api/v1/assets/{asset_id}/process"),
            ("post", f"/api/v1/assets/{asset_id}/retry"),
            ("post", f"/api/v1/assets/{asset_id}/cancel"),
            ("post", f"/api/v1/assets/{asset_id}/approve"),
            ("get", f"/api/v1/assets/{asset_id}/transcript-status"),
            ("get", f"/api/v1/assets/{asset_id}/transcript"),
            ("get", "/api/v1/assets/does-not-exist"),
        ]
        for method, path in requests:
            with self.subTest(method=method, path=path):
                response = getattr(self.client, method)(path, headers=OTHER)
                self.assertEqual(response.status_code, 404)
                self.assertEqual(response.json(), {"code": "RESOURCE_NOT_FOUND", "message": "Resource not found"})

        self.assertEqual(self.store.asset_write_count, writes_before)
        self.assertEqual(self.runs.pending, 0)

    def test_process_while_running_returns_200_without_new_run(self) -> None:
        asset_id = self._create()["id"]

        response = self.client.post(f"/api/v1/assets/{asset_id}/process", headers=OWNER)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["accepted"])
        self.assertTrue(body["already_running"])
        self.assertEqual(body["message"], "Processing is already running.")
        self.assertEqual(self.runs.pending, 1)

    def test_process_after_error_returns_202(self) -> None:
        self.ai.analysis_error = RuntimeError("socket closed")
        asset_id = self._create()["id"]
        with self.assertLogs("app.services.pipeline", level="ERROR"):
            self.runs.run_pending()
        self.assertEqual(self.store.get_asset(asset_id).processing_note, "Processing failed: socket closed")

        self.ai.analysis_error = None
        response = self.client.post(f"/api/v1/assets/{asset_id}/process", headers=OWNER)

        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json()["status"], "PROCESSING")
        self.assertEqual(response.json()["message"], "Processing started.")
        self.runs.run_pending()
        self.assertEqual(self.store.get_asset(asset_id).status.value, "PROCESSED")

    def test_process_on_processed_asset_returns_409(self) -> None:
        asset_id = self._processed()["id"]

        response = self.client.post(f"/api/v1/assets/{asset_id}/process", headers=OWNER)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "FSM_TRANSITION_INVALID")
        self.assertEqual(response.json()["details"]["current_status"], "PROCESSED")
        self.assertEqual(response.json()["details"]["attempted_status"], "PROCESSING")

    def test_retry_reanalyzes_processed_asset(self) -> None:
        asset_id = self._processed()["id"]

        response = self.client.post(f"/api/v1/assets/{asset_id}/retry", headers=OWNER)

        self.assertEqual(response.status_code, 202)
        self.assertTrue(response.json()["accepted"])
        self.assertEqual(self.runs.pending, 1)

    def test_cancel_processing_asset(self) -> None:
        asset_id = self._create()["id"]

        response = self.client.post(f"/api/v1/assets/{asset_id}/cancel", headers=OWNER)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"asset_id": asset_id, "status": "ERROR", "cancelled": True, "message": CANCEL_NOTE},
        )
        self.runs.run_pending()
        asset = self.client.get(f"/api/v1/assets/{asset_id}", headers=OWNER).json()
        self.assertEqual(asset["status"], "ERROR")
        self.assertEqual(asset["processing_note"], CANCEL_NOTE)
        self.assertIsNone(asset["extracted_text"])

    def test_cancel_when_not_processing_is_a_no_op(self) -> None:
        asset_id = self._processed()["id"]

        response = self.client.post(f"/api/v1/assets/{asset_id}/cancel", headers=OWNER)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["cancelled"])
        self.assertEqual(body["status"], "PROCESSED")
        self.assertEqual(body["message"], "Asset is not processing (status PROCESSED); nothing to cancel.")

    def test_approve_processed_asset_once(self) -> None:
        asset_id = self._processed()["id"]

        approved = self.client.post(f"/api/v1/assets/{asset_id}/approve", headers=OWNER)
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.json()["status"], "APPROVED")
        self.assertIsNotNone(approved.json()["last_reviewed_at"])

        again = self.client.post(f"/api/v1/assets/{asset_id}/approve", headers=OWNER)
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["code"], "FSM_TRANSITION_INVALID")
        self.assertEqual(again.json()["details"]["current_status"], "APPROVED")

        retry = self.client.post(f"/api/v1/assets/{asset_id}/retry", headers=OWNER)
        self.assertEqual(retry.status_code, 409)

    def test_approve_while_processing_returns_409(self) -> None:
        asset_id = self._create()["id"]

        response = self.client.post(f"/api/v1/assets/{asset_id}/approve", headers=OWNER)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["details"]["current_status"], "PROCESSING")

    def test_transcript_is_unavailable_before_completion(self) -> None:
        asset_id = self._create(MEDIA_KEY, "audio/mpeg")["id"]

        status_response = self.client.get(f"/api/v1/assets/{asset_id}/transcript-status", headers=OWNER)
        self.assertEqual(status_response.status_code, 200)
        self.assertEqual(status_response.json(), {"job": None, "segment_count": 0})

        transcript = self.client.get(f"/api/v1/assets/{asset_id}/transcript", headers=OWNER)
        self.assertEqual(transcript.status_code, 409)
        self.assertEqual(transcript.json()["code"], "TRANSCRIPT_NOT_READY")

    def test_failed_transcription_reports_job_status(self) -> None:
        self.ai.transcribe_error = RuntimeError("decoder crashed")
        asset_id = self._create(MEDIA_KEY, "audio/mpeg")["id"]
        with self.assertLogs("app.services.transcription", level="ERROR"):
            self.runs.run_pending()

        status_body = self.client.get(f"/api/v1/assets/{asset_id}/transcript-status", headers=OWNER).json()
        self.assertEqual(status_body["job"]["status"], "FAILED")
        self.assertEqual(status_body["job"]["error"], "decoder crashed")
        self.assertEqual(status_body["segment_count"], 0)

        transcript = self.client.get(f"/api/v1/assets/{asset_id}/transcript", headers=OWNER)
        self.assertEqual(transcript.status_code, 409)
        self.assertEqual(transcript.json()["details"], {"job_status": "FAILED"})

        asset = self.client.get(f"/api/v1/assets/{asset_id}", headers=OWNER).json()
        self.assertEqual(asset["status"], "ERROR")
        self.assertEqual(asset["processing_note"], "Transcription failed: decoder crashed")

    def test_completed_transcript_pages_by_cursor(self) -> None:
        asset_id = self._create(MEDIA_KEY, "audio/mpeg")["id"]
        self.runs.run_pending()

        status_body = self.client.get(f"/api/v1/assets/{asset_id}/transcript-status", headers=OWNER).json()
        self.assertEqual(status_body["job"]["status"], "COMPLETED")
        self.assertEqual(status_body["job"]["progress"], 100)
        self.assertEqual(status_body["segment_count"], 3)

        first = self.client.get(f"/api/v1/assets/{asset_id}/transcript?limit=2", headers=OWNER)
        self.assertEqual(first.status_code, 200)
        self.assertEqual([item["sequence"] for item in first.json()["items"]], [0, 1])
        self.assertEqual(first.json()["limit"], 2)
        self.assertEqual(first.json()["next_cursor"], "2")

        second = self.client.get(f"/api/v1/assets/{asset_id}/transcript?limit=2&cursor=2", headers=OWNER)
        self.assertEqual([item["text"] for item in second.json()["items"]], ["Acme saved 30 percent."])
        self.assertEqual(second.json()["items"][0]["speaker"], "host")
        self.assertIsNone(second.json()["next_cursor"])

        default_page = self.client.get(f"/api/v1/assets/{asset_id}/transcript", headers=OWNER).json()
        self.assertEqual(default_page["limit"], 200)
        self.assertEqual(len(default_page["items"]), 3)

    def test_transcript_limit_bounds_are_validated(self) -> None:
        asset_id = self._create(MEDIA_KEY, "audio/mpeg")["id"]
        self.runs.run_pending()

        for query in ("limit=0", "limit=501"):
            with self.subTest(query=query):
                response = self.client.get(f"/api/v1/assets/{asset_id}/transcript?{query}", headers=OWNER)
                self.assertEqual(response.status_code, 422)
                self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

        response = self.client.get(f"/api/v1/assets/{asset_id}/transcript?limit=many", headers=OWNER)
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["message"], "Invalid transcript query parameters")
