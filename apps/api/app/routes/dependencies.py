"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from secrets import compare_digest
import threading
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from app.adapters.auth import (
    AuthVerificationError,
    FirebaseTokenVerifier,
    MockTokenVerifier,
    TokenVerifier,
)
from app.core.config import Settings, get_settings
from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError
from app.repositories.base import AssetStore
from app.schemas.auth import AuthPrincipal
from app.services.assets import AssetService
from app.services.brand_context import BrandContextService
from app.services.internal_callbacks import InternalCallbackService
from app.services.runtime import PipelineRuntime, build_runtime, build_store

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
callback_secret_scheme = APIKeyHeader(
    name="X-Callback-Secret",
    auto_error=False,
    scheme_name="internalCallbackSecret",
)
logger = logging.getLogger(__name__)
_state_lock = threading.Lock()


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def get_token_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> TokenVerifier:
    """Resolve provider adapter from configuration."""
    if settings.auth_provider == "firebase":
        return FirebaseTokenVerifier(
            project_id=settings.firebase_project_id,
            audience=settings.firebase_audience,
        )
    return MockTokenVerifier()


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Validate bearer token and attach normalized principal to request context."""
    correlation_id = _request_correlation_id(request)
    safe_correlation_id = safe_log_identifier(correlation_id, prefix="cid")
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=invalid_or_missing_bearer",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid or missing bearer token")

    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error(str(exc) or "Invalid bearer token") from exc

    safe_account_id = safe_log_identifier(principal.account_id, prefix="aid")
    logger.info(
        "auth.accepted correlation_id=%s method=%s path=%s account_id=%s role=%s",
        safe_correlation_id,
        request.method,
        request.url.path,
        safe_account_id,
        principal.role,
    )
    request.state.auth_principal = principal
    return principal


async def require_callback_secret(
    request: Request,
    callback_secret: Annotated[str | None, Security(callback_secret_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Validate callback secret for internal endpoints."""
    correlation_id = _request_correlation_id(request)
    safe_correlation_id = safe_log_identifier(correlation_id, prefix="cid")
    if callback_secret is None or not compare_digest(callback_secret, settings.callback_secret):
        logger.warning(
            "callback.auth_rejected correlation_id=%s method=%s path=%s reason=invalid_callback_secret",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid callback authentication")


def get_store(request: Request) -> AssetStore:
    state = request.app.state
    if state.store is None:
        with _state_lock:
            if state.store is None:
                state.store = build_store(get_settings())
    return state.store


def get_runtime(
    request: Request,
    store: Annotated[AssetStore, Depends(get_store)],
) -> PipelineRuntime:
    state = request.app.state
    if state.runtime is None:
        with _state_lock:
            if state.runtime is None:
                state.runtime = build_runtime(get_settings(), store)
    return state.runtime


def get_asset_service(
    store: Annotated[AssetStore, Depends(get_store)],
    runtime: Annotated[PipelineRuntime, Depends(get_runtime)],
) -> AssetService:
    return AssetService(store, pipeline=runtime.pipeline, transcriptions=runtime.transcriptions)


def get_brand_context_service(
    store: Annotated[AssetStore, Depends(get_store)],
) -> BrandContextService:
    return BrandContextService(store)

def get_internal_callback_service(
    runtime: Annotated[PipelineRuntime, Depends(get_runtime)],
) -> InternalCallbackService:
    return InternalCallbackService(runtime.transcriptions)
