"""Firebase Auth token verifier adapter."""

from __future__ import annotations

from app.adapters.auth.base import AuthVerificationError, TokenVerifier
from app.schemas.auth import AuthPrincipal


class FirebaseTokenVerifier(TokenVerifier):
    """Verifies Firebase ID tokens and maps them onto an owning account.

    The ``account_id`` custom claim wins when present so several Firebase users
    can share one asset library; otherwise the Firebase uid is the account.
    """

    def __init__(self, project_id: str | None, audience: str | None) -> None:
        self._project_id = project_id
        self._audience = audience

    def _decode(self, token: str) -> dict:
        try:
            import firebase_admin
            from firebase_admin import auth as firebase_auth
        except ImportError as exc:  # pragma: no cover - depends on optional package
            raise AuthVerificationError("Firebase auth verifier is unavailable") from exc

        if not firebase_admin._apps:
            firebase_admin.initialize_app()

        try:
            return firebase_auth.verify_id_token(token, check_revoked=True)
        except Exception as exc:  # pragma: no cover - provider exception surface
            raise AuthVerificationError("Invalid bearer token") from exc

    def verify_token(self, token: str) -> AuthPrincipal:
        claims = self._decode(token)

        audience = str(claims.get("aud", ""))
        if self._audience and audience != self._audience:
            raise AuthVerificationError("Invalid bearer token audience")
        if self._project_id and self._project_id not in str(claims.get("iss", "")) and audience != self._project_id:
            raise AuthVerificationError("Invalid bearer token issuer")

        account_id = str(claims.get("account_id") or claims.get("uid") or claims.get("sub") or "").strip()
        if not account_id:
            raise AuthVerificationError("Bearer token missing account identity")

        return AuthPrincipal(account_id=account_id, role=str(claims.get("role") or "editor").strip())


__all__ = ["FirebaseTokenVerifier"]
