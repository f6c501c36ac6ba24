"""Federation API router – mounted at ``/federation``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sesame.auth import schemas as auth_schemas
from sesame.auth.dependencies import api_gate, csrf_check
from sesame.auth.federation import schemas
from sesame.auth.federation.service import FederationCeremonies
from sesame.auth.session import ApiType, SessionService
from sesame.db.session import get_db

router = APIRouter(prefix="/federation", tags=["federation"], dependencies=[Depends(csrf_check)])


def _ceremonies(request: Request) -> FederationCeremonies:
    return request.app.state.federation_ceremonies  # type: ignore[no-any-return]


@router.post(
    "/idp",
    response_model=list[schemas.ProviderInfo],
    summary="Look up identity providers",
    description="Resolve provider URLs against the configured directory. Secrets are stripped.",
    responses={404: {"model": auth_schemas.ErrorResponse, "description": "Unknown provider."}},
)
async def idp(
    body: schemas.ProviderLookupRequest,
    request: Request,
    session: SessionService = api_gate(ApiType.NO_AUTH),
):
    providers = _ceremonies(request).lookup_providers(body.urls)
    return [
        schemas.ProviderInfo(origin=p.origin, config_url=p.config_url, client_id=p.client_id)
        for p in providers
    ]


@router.post(
    "/verify",
    response_model=schemas.VerifyResponse,
    summary="Verify an identity token",
    description=(
        "Verify the token against the nonce bound when the page was rendered, link or "
        "create the local account, and sign in."
    ),
    responses={
        401: {"model": auth_schemas.ErrorResponse, "description": "Nonce or token invalid."},
        404: {"model": auth_schemas.ErrorResponse, "description": "Unknown provider."},
    },
)
async def verify(
    body: schemas.VerifyRequest,
    request: Request,
    session: SessionService = api_gate(ApiType.NO_AUTH),
    db: AsyncSession = Depends(get_db),
):
    result = await _ceremonies(request).verify(db, session, body.token, body.url)
    return schemas.VerifyResponse(
        user=auth_schemas.UserResponse.from_user(result.user), outcome=result.outcome.value
    )
