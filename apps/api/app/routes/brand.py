"""Brand context routes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.routes.dependencies import get_authenticated_principal, get_brand_context_service
from app.schemas.auth import AuthPrincipal
from app.schemas.brand import BrandContext, UpsertBrandContextRequest
from app.schemas.error import ErrorResponse, NoLeakNotFoundError
from app.services.brand_context import BrandContextService

router = APIRouter(tags=["Brand Context"])


@router.get(
    "/brand-context",
    response_model=BrandContext,
    responses={404: {"model": NoLeakNotFoundError}},
)
def get_brand_context(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[BrandContextService, Depends(get_brand_context_service)],
) -> BrandContext:
    return service.get_brand_context(account_id=principal.account_id)


@router.put(
    "/brand-context",
    response_model=BrandContext,
    responses={401: {"model": ErrorResponse}},
)
def put_brand_context(
    payload: UpsertBrandContextRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[BrandContextService, Depends(get_brand_context_service)],
) -> BrandContext:
    return service.put_brand_context(account_id=principal.account_id, payload=payload)
