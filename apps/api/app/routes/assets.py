"""Asset routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Response, status

from app.routes.dependencies import get_asset_service, get_authenticated_principal
from app.schemas.asset import Asset, CancelAssetResponse, CreateAssetRequest, ProcessAssetResponse
from app.schemas.auth import AuthPrincipal
from app.schemas.error import ErrorResponse, FsmTransitionError, NoLeakNotFoundError, TranscriptNotReadyError
from app.schemas.transcription import TranscriptionStatus, TranscriptPage
from app.services.assets import TRANSCRIPT_LIMIT_DEFAULT, AssetService

router = APIRouter(tags=["Assets"])


def _process_status(response: Response, result: ProcessAssetResponse) -> ProcessAssetResponse:
    response.status_code = status.HTTP_200_OK if result.already_running else status.HTTP_202_ACCEPTED
    return result


@router.post(
    "/assets",
    response_model=Asset,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}},
)
def create_asset(
    payload: CreateAssetRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> Asset:
    return service.create_asset(account_id=principal.account_id, payload=payload)


@router.get("/assets", response_model=list[Asset])
def list_assets(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> list[Asset]:
    return service.list_assets(account_id=principal.account_id)


@router.get(
    "/assets/{assetId}",
    response_model=Asset,
    responses={404: {"model": NoLeakNotFoundError}},
)
def get_asset(
    asset_id: Annotated[str, Path(alias="assetId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> Asset:
    return service.get_asset(account_id=principal.account_id, asset_id=asset_id)


@router.post(
    "/assets/{assetId}/process",
    response_model=ProcessAssetResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        200: {"model": ProcessAssetResponse, "description": "Processing already running"},
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError},
    },
)
def process_asset(
    asset_id: Annotated[str, Path(alias="assetId")],
    response: Response,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> ProcessAssetResponse:
    return _process_status(response, service.process_asset(account_id=principal.account_id, asset_id=asset_id))


@router.post(
    "/assets/{assetId}/retry",
    response_model=ProcessAssetResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        200: {"model": ProcessAssetResponse, "description": "Processing already running"},
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError},
    },
)
def retry_asset(
    asset_id: Annotated[str, Path(alias="assetId")],
    response: Response,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> ProcessAssetResponse:
    return _process_status(response, service.retry_asset(account_id=principal.account_id, asset_id=asset_id))


@router.post(
    "/assets/{assetId}/cancel",
    response_model=CancelAssetResponse,
    responses={404: {"model": NoLeakNotFoundError}},
)
def cancel_asset(
    asset_id: Annotated[str, Path(alias="assetId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> CancelAssetResponse:
    return service.cancel_asset(account_id=principal.account_id, asset_id=asset_id)


@router.post(
    "/assets/{assetId}/approve",
    response_model=Asset,
    responses={404: {"model": NoLeakNotFoundError}, 409: {"model": FsmTransitionError}},
)
def approve_asset(
    asset_id: Annotated[str, Path(alias="assetId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> Asset:
    return service.approve_asset(account_id=principal.account_id, asset_id=asset_id)


@router.get(
    "/assets/{assetId}/transcript-status",
    response_model=TranscriptionStatus,
    responses={404: {"model": NoLeakNotFoundError}},
)
def get_transcript_status(
    asset_id: Annotated[str, Path(alias="assetId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> TranscriptionStatus:
    return service.get_transcript_status(account_id=principal.account_id, asset_id=asset_id)


@router.get(
    "/assets/{assetId}/transcript",
    response_model=TranscriptPage,
    responses={
        404: {"model": NoLeakNotFoundError},
        409: {"model": TranscriptNotReadyError},
        422: {"model": ErrorResponse},
    },
)
def get_transcript(
    asset_id: Annotated[str, Path(alias="assetId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AssetService, Depends(get_asset_service)],
    limit: Annotated[int, Query()] = TRANSCRIPT_LIMIT_DEFAULT,
    cursor: str | None = None,
) -> TranscriptPage:
    return service.get_transcript(
        account_id=principal.account_id,
        asset_id=asset_id,
        limit=limit,
        cursor=cursor,
    )
