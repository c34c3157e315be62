"""Authentication dependency and adapter tests."""

from __future__ import annotations

from datetime import UTC, datetime
import sys
import types
import unittest
from unittest.mock import patch

from fastapi import Request
from fastapi.testclient import TestClient

from app.adapters.auth.base import AuthVerificationError
from app.adapters.auth.firebase_auth import FirebaseTokenVerifier
from app.adapters.auth.mock_auth import MockTokenVerifier
from app.core.config import Settings
from app.main import create_app
from app.repositories.memory import InMemoryStore
from app.routes.dependencies import get_asset_service, get_token_verifier
from app.schemas.asset import Asset, AssetStatus, CreateAssetRequest
from pipeline_fakes import CALLBACK_SECRET, ManualExecutor, SettingsEnvCase, build_test_runtime


class _CapturingAssetService:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def create_asset(self, *, account_id: str, payload: CreateAssetRequest) -> Asset:
        self.calls.append((account_id, payload.storage_key))
        return Asset(
            id="asset-1",
            title=payload.title or "asset",
            storage_key=payload.storage_key,
            declared_type=payload.declared_type,
            status=AssetStatus.PENDING,
            created_at=datetime.now(UTC),
        )


class AuthApiTests(SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.app = create_app()
        self.store = InMemoryStore()
        self.app.state.store = self.store
        self.app.state.runtime = build_test_runtime(
            self.store,
            run_executor=ManualExecutor(),
            transcription_executor=ManualExecutor(),
        )
        self.client = TestClient(self.app)

    def test_openapi_includes_asset_paths_and_contract_response_codes(self) -> None:
        response = self.client.get("/openapi.json")
        self.assertEqual(response.status_code, 200)
        paths = response.json()["paths"]

        self.assertEqual(set(paths["/api/v1/assets"]["post"]["responses"].keys()), {"201", "401", "422"})
        self.assertEqual(set(paths["/api/v1/assets"]["get"]["responses"].keys()), {"200", "401"})
        self.assertEqual(
            set(paths["/api/v1/assets/{assetId}/process"]["post"]["responses"].keys()),
            {"200", "202", "401", "404", "409"},
        )
        self.assertEqual(
            set(paths["/api/v1/assets/{assetId}/cancel"]["post"]["responses"].keys()),
            {"200", "401", "404"},
        )
        self.assertEqual(
            set(paths["/api/v1/internal/transcription-jobs/{jobId}/events"]["post"]["responses"].keys()),
            {"200", "401", "404", "409", "422"},
        )
        self.assertEqual(set(paths["/api/v1/brand-context"]["get"]["responses"].keys()), {"200", "401", "404"})
        self.assertEqual(set(paths["/api/v1/brand-context"]["put"]["responses"].keys()), {"200", "401", "422"})
        self.assertEqual(
            paths["/api/v1/assets/{assetId}"]["get"]["responses"]["404"]["content"]["application/json"]["schema"]["$ref"],
            "#/components/schemas/NoLeakNotFoundError",
        )
        self.assertEqual(
            paths["/api/v1/assets/{assetId}/transcript"]["get"]["responses"]["409"]["content"]["application/json"]["schema"]["$ref"],
            "#/components/schemas/TranscriptNotReadyError",
        )
        limit_parameter = next(
            parameter
            for parameter in paths["/api/v1/assets/{assetId}/transcript"]["get"]["parameters"]
            if parameter["name"] == "limit"
        )
        self.assertEqual(limit_parameter["schema"]["minimum"], 1)
        self.assertEqual(limit_parameter["schema"]["maximum"], 500)

    def test_missing_authorization_header_returns_401_and_no_asset_side_effect(self) -> None:
        response = self.client.post(
            "/api/v1/assets",
            json={"storage_key": "uploads/a.pdf", "declared_type": "application/pdf"},
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")
        self.assertEqual(self.store.asset_write_count, 0)

    def test_invalid_bearer_token_returns_401_and_no_asset_side_effect(self) -> None:
        response = self.client.post(
            "/api/v1/assets",
            headers={"Authorization": "Bearer not-a-valid-token"},
            json={"storage_key": "uploads/a.pdf", "declared_type": "application/pdf"},
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")
        self.assertEqual(self.store.asset_write_count, 0)

    def test_valid_bearer_token_resolves_account_id_for_downstream_handler(self) -> None:
        capturing_service = _CapturingAssetService()
        self.app.dependency_overrides[get_asset_service] = lambda: capturing_service

        response = self.client.post(
            "/api/v1/assets",
            headers={"Authorization": "Bearer test:acct-123:editor"},
            json={"storage_key": "uploads/owned.pdf", "declared_type": "application/pdf"},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(capturing_service.calls, [("acct-123", "uploads/owned.pdf")])

    def test_auth_principal_is_attached_to_request_state(self) -> None:
        capturing_service = _CapturingAssetService()
        observed_account_id: dict[str, str] = {}

        def _override_asset_service(request: Request) -> _CapturingAssetService:
            observed_account_id["value"] = request.state.auth_principal.account_id
            return capturing_service

        self.app.dependency_overrides[get_asset_service] = _override_asset_service

        response = self.client.post(
            "/api/v1/assets",
            headers={"Authorization": "Bearer test:acct-state:editor"},
            json={"storage_key": "uploads/state.pdf", "declared_type": "application/pdf"},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(observed_account_id.get("value"), "acct-state")

    def test_internal_events_use_callback_secret_not_bearer(self) -> None:
        asset = self.store.create_asset(
            account_id="acct-1",
            title="Webinar",
            storage_key="uploads/webinar.mp3",
            declared_type="audio/mpeg",
        )
        job = self.store.reset_transcription_job(asset.id)
        body = {"event": "progress", "progress": 40}

        bearer_only = self.client.post(
            f"/api/v1/internal/transcription-jobs/{job.id}/events",
            headers={"Authorization": "Bearer test:acct-1:editor"},
            json=body,
        )
        self.assertEqual(bearer_only.status_code, 401)
        self.assertEqual(bearer_only.json()["code"], "UNAUTHORIZED")

        authorized = self.client.post(
            f"/api/v1/internal/transcription-jobs/{job.id}/events",
            headers={"X-Callback-Secret": CALLBACK_SECRET},
            json=body,
        )
        self.assertEqual(authorized.status_code, 200)
        self.assertEqual(self.store.get_transcription_job(job.id).progress, 40)

    def test_invalid_callback_secret_causes_no_mutation_side_effects(self) -> None:
        asset = self.store.create_asset(
            account_id="acct-1",
            title="Webinar",
            storage_key="uploads/webinar.mp3",
            declared_type="audio/mpeg",
        )
        job = self.store.reset_transcription_job(asset.id)
        before_job_writes = self.store.job_write_count

        response = self.client.post(
            f"/api/v1/internal/transcription-jobs/{job.id}/events",
            headers={"X-Callback-Secret": "wrong-secret"},
            json={"event": "completed"},
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")
        self.assertEqual(self.store.job_write_count, before_job_writes)
        self.assertEqual(self.store.get_transcription_job(job.id).status.value, "QUEUED")


class AuthAdapterUnitTests(unittest.TestCase):
    def test_mock_token_verifier_normalizes_principal(self) -> None:
        verifier = MockTokenVerifier()
        principal = verifier.verify_token("test:acct-42:admin")

        self.assertEqual(principal.account_id, "acct-42")
        self.assertEqual(principal.role, "admin")
        self.assertEqual(verifier.verify_token("test:acct-42").role, "editor")

    def test_mock_token_verifier_rejects_invalid_token(self) -> None:
        verifier = MockTokenVerifier()
        for token in ("bad-token", "test:", "test: :editor", "test:a:b:c"):
            with self.subTest(token=token):
                with self.assertRaises(AuthVerificationError):
                    verifier.verify_token(token)

    def test_dependency_selects_firebase_verifier(self) -> None:
        settings = Settings(
            auth_provider="firebase",
            firebase_project_id="project-a",
            firebase_audience="aud-a",
            callback_secret="secret",
        )
        verifier = get_token_verifier(settings)
        self.assertIsInstance(verifier, FirebaseTokenVerifier)

        settings = Settings(auth_provider="mock", callback_secret="secret")
        self.assertIsInstance(get_token_verifier(settings), MockTokenVerifier)


class FirebaseVerifierUnitTests(unittest.TestCase):
    @staticmethod
    def _fake_firebase_modules(decoded_token: dict[str, str]) -> dict[str, types.ModuleType]:
        fake_admin = types.ModuleType("firebase_admin")
        fake_auth = types.ModuleType("firebase_admin.auth")

        fake_admin._apps = []

        def initialize_app() -> object:
            app_handle = object()
            fake_admin._apps.append(app_handle)
            return app_handle

        def verify_id_token(token: str, check_revoked: bool = True) -> dict[str, str]:
            if token != "valid-jwt":
                raise ValueError("invalid token")
            if not check_revoked:
                raise ValueError("must validate revoked tokens")
            return decoded_token

        fake_admin.initialize_app = initialize_app
        fake_admin.auth = fake_auth
        fake_auth.verify_id_token = verify_id_token

        return {
            "firebase_admin": fake_admin,
            "firebase_admin.auth": fake_auth,
        }

    def _verify(self, claims: dict[str, str], token: str = "valid-jwt"):
        with patch.dict(sys.modules, self._fake_firebase_modules(claims)):
            verifier = FirebaseTokenVerifier(project_id="project-a", audience="aud-a")
            return verifier.verify_token(token)

    def test_firebase_verifier_uses_uid_as_account(self) -> None:
        principal = self._verify(
            {
                "uid": "firebase-user-1",
                "aud": "aud-a",
                "iss": "https://securetoken.google.com/project-a",
                "role": "editor",
            }
        )

        self.assertEqual(principal.account_id, "firebase-user-1")
        self.assertEqual(principal.role, "editor")

    def test_firebase_verifier_prefers_account_claim(self) -> None:
        principal = self._verify(
            {
                "uid": "firebase-user-1",
                "account_id": "acct-shared",
                "aud": "aud-a",
                "iss": "https://securetoken.google.com/project-a",
            }
        )

        self.assertEqual(principal.account_id, "acct-shared")
        self.assertEqual(principal.role, "editor")

    def test_firebase_verifier_rejects_invalid_audience(self) -> None:
        with self.assertRaises(AuthVerificationError):
            self._verify(
                {
                    "uid": "firebase-user-1",
                    "aud": "unexpected-aud",
                    "iss": "https://securetoken.google.com/project-a",
                }
            )

    def test_firebase_verifier_rejects_unverifiable_token(self) -> None:
        with self.assertRaises(AuthVerificationError):
            self._verify({"uid": "firebase-user-1", "aud": "aud-a"}, token="forged-jwt")


if __name__ == "__main__":
    unittest.main()
