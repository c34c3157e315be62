"""FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.errors import ApiError
from app.routes import assets_router, brand_router, internal_router
from app.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)

_OPENAPI_RESPONSE_CODES: dict[str, dict[str, set[str]]] = {
    "/api/v1/assets": {"post": {"201", "401", "422"}, "get": {"200", "401"}},
    "/api/v1/assets/{assetId}": {"get": {"200", "401", "404"}},
    "/api/v1/assets/{assetId}/process": {"post": {"200", "202", "401", "404", "409"}},
    "/api/v1/assets/{assetId}/retry": {"post": {"200", "202", "401", "404", "409"}},
    "/api/v1/assets/{assetId}/cancel": {"post": {"200", "401", "404"}},
    "/api/v1/assets/{assetId}/approve": {"post": {"200", "401", "404", "409"}},
    "/api/v1/assets/{assetId}/transcript-status": {"get": {"200", "401", "404"}},
    "/api/v1/assets/{assetId}/transcript": {"get": {"200", "401", "404", "409", "422"}},
    "/api/v1/brand-context": {"get": {"200", "401", "404"}, "put": {"200", "401", "422"}},
    "/api/v1/internal/transcription-jobs/{jobId}/events": {"post": {"200", "401", "404", "409", "422"}},
}

_VALIDATION_MESSAGES: dict[tuple[str, str], str] = {
    ("POST", "/api/v1/assets"): "Invalid asset payload",
    ("GET", "/api/v1/assets/{assetId}/transcript"): "Invalid transcript query parameters",
    ("PUT", "/api/v1/brand-context"): "Invalid brand context payload",
    ("POST", "/api/v1/internal/transcription-jobs/{jobId}/events"): "Invalid transcription event payload",
}


def _apply_contract_response_codes(schema: dict) -> None:
    """Limit documented response codes to the ones each endpoint can return."""
    for path, methods in _OPENAPI_RESPONSE_CODES.items():
        path_item = schema.get("paths", {}).get(path)
        if not path_item:
            continue

        for method, allowed_codes in methods.items():
            operation = path_item.get(method)
            if not operation:
                continue

            responses = operation.setdefault("responses", {})
            for status_code in list(responses.keys()):
                if status_code not in allowed_codes:
                    responses.pop(status_code, None)

            for status_code in sorted(allowed_codes):
                responses.setdefault(status_code, {"description": "See API contract"})


def _apply_transcript_contract_schema(schema: dict) -> None:
    """Document transcript pagination bounds on the query parameters."""
    path_item = schema.get("paths", {}).get("/api/v1/assets/{assetId}/transcript")
    if not path_item:
        return

    operation = path_item.get("get")
    if not operation:
        return

    for parameter in operation.get("parameters", []):
        if parameter.get("name") == "limit" and parameter.get("in") == "query":
            parameter.setdefault("schema", {}).update({"type": "integer", "default": 200, "minimum": 1, "maximum": 500})
        if parameter.get("name") == "cursor" and parameter.get("in") == "query":
            parameter["schema"] = {"type": "string"}


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    runtime = getattr(app.state, "runtime", None)
    if runtime is not None:
        logger.info("app.shutdown draining background runs")
        runtime.shutdown(wait=True)


def create_app() -> FastAPI:
    app = FastAPI(title="Asset Pipeline API", version="1.0.0", lifespan=_lifespan)
    # Built on first use from settings; tests may inject their own.
    app.state.store = None
    app.state.runtime = None

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        message = _VALIDATION_MESSAGES.get((request.method.upper(), route_path))
        if message is not None:
            payload = ErrorResponse(
                code="VALIDATION_ERROR",
                message=message,
                details={"errors": len(exc.errors())},
            )
            return JSONResponse(status_code=422, content=payload.model_dump())

        return await request_validation_exception_handler(request, exc)

    api_prefix = "/api/v1"
    app.include_router(assets_router, prefix=api_prefix)
    app.include_router(brand_router, prefix=api_prefix)
    app.include_router(internal_router, prefix=api_prefix)

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_contract_response_codes(schema)
        _apply_transcript_contract_schema(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
