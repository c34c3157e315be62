"""Mock auth verifier for local development and tests."""

from app.adapters.auth.base import AuthVerificationError, TokenVerifier
from app.schemas.auth import AuthPrincipal


class MockTokenVerifier(TokenVerifier):
    """Accepts deterministic test tokens only.

    Expected token format:
    - ``test:<account_id>``
    - ``test:<account_id>:<role>``
    """

    def verify_token(self, token: str) -> AuthPrincipal:
        scheme, _, remainder = token.partition(":")
        if scheme != "test" or not remainder:
            raise AuthVerificationError("Invalid bearer token")

        account_id, _, role = remainder.partition(":")
        account_id = account_id.strip()
        if not account_id:
            raise AuthVerificationError("Bearer token missing account identity")
        if ":" in role:
            raise AuthVerificationError("Invalid bearer token")

        return AuthPrincipal(account_id=account_id, role=role.strip() or "editor")


__all__ = ["MockTokenVerifier"]
