"""FedCM identity-provider endpoints – mounted at ``/fedcm``.

Browser-initiated calls must carry ``Sec-Fetch-Dest: webidentity``. Assertion and
disconnect requests arrive as credentialed cross-origin form posts; CORS for them is
handled by ``FedCMCORSMiddleware``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from sesame.auth import schemas as auth_schemas
from sesame.auth.dependencies import api_gate, fedcm_check
from sesame.auth.federation import schemas
from sesame.auth.federation.service import FederationCeremonies
from sesame.auth.session import ApiType, SessionService
from sesame.db.session import get_db

router = APIRouter(prefix="/fedcm", tags=["fedcm"])

_errors = {
    400: {"model": auth_schemas.ErrorResponse, "description": "Invalid FedCM request."},
    401: {"model": auth_schemas.ErrorResponse, "description": "Not signed in or wrong account."},
}


class FedCMCORSMiddleware(CORSMiddleware):
    """Credentialed CORS for ``/fedcm/*`` only, echoing whichever origin calls.

    Relying parties are checked by client ID and origin in the ceremonies, not here.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(
            app,
            allow_origin_regex=r"https?://.+",
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Content-Type"],
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"].startswith(router.prefix + "/"):
            await super().__call__(scope, receive, send)
            return
        await self.app(scope, receive, send)


def _ceremonies(request: Request) -> FederationCeremonies:
    return request.app.state.federation_ceremonies  # type: ignore[no-any-return]


@router.get("/config.json", summary="FedCM configuration")
async def config(request: Request) -> dict:
    return _ceremonies(request).fedcm_config()


@router.get("/metadata", summary="FedCM client metadata")
async def metadata(request: Request) -> dict:
    return _ceremonies(request).client_metadata()


@router.get(
    "/accounts",
    summary="FedCM accounts",
    description="List the signed-in account for the browser account chooser.",
    dependencies=[Depends(fedcm_check)],
    responses=_errors,
)
async def accounts(
    request: Request,
    session: SessionService = api_gate(ApiType.SIGNED_IN),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return {"accounts": await _ceremonies(request).accounts(db, session)}


@router.post(
    "/idtokens",
    response_model=schemas.IdTokenResponse,
    summary="Issue an identity token",
    description="Issue a token for a registered relying party, recording consent.",
    dependencies=[Depends(fedcm_check)],
    responses=_errors,
)
async def idtokens(
    body: Annotated[schemas.IdTokenRequest, Form()],
    request: Request,
    session: SessionService = api_gate(ApiType.SIGNED_IN),
    db: AsyncSession = Depends(get_db),
):
    token = await _ceremonies(request).issue_id_token(
        db,
        session,
        client_id=body.client_id,
        nonce=body.nonce,
        account_id=body.account_id,
        consent_acquired=body.consent_acquired or body.disclosure_text_shown,
        origin=request.headers.get("origin"),
    )
    return schemas.IdTokenResponse(token=token)


@router.post(
    "/disconnect",
    response_model=schemas.DisconnectResponse,
    summary="Disconnect a relying party",
    description="Remove the client from the signed-in user's approved clients.",
    dependencies=[Depends(fedcm_check)],
    responses=_errors,
)
async def disconnect(
    body: Annotated[schemas.DisconnectRequest, Form()],
    request: Request,
    session: SessionService = api_gate(ApiType.SIGNED_IN),
    db: AsyncSession = Depends(get_db),
):
    account_id = await _ceremonies(request).disconnect(
        db, session, account_hint=body.account_hint, client_id=body.client_id
    )
    return schemas.DisconnectResponse(account_id=account_id)
