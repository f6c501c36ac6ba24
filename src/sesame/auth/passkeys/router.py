"""Passkey (WebAuthn) API router – mounted at ``/webauthn``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sesame.auth import schemas as auth_schemas
from sesame.auth.dependencies import api_gate, csrf_check
from sesame.auth.models import PublicKeyCredential
from sesame.auth.passkeys import schemas
from sesame.auth.passkeys.service import CredentialCeremonies
from sesame.auth.session import ApiType, SessionService
from sesame.db.session import get_db

router = APIRouter(prefix="/webauthn", tags=["passkey"], dependencies=[Depends(csrf_check)])


def _ceremonies(request: Request) -> CredentialCeremonies:
    return request.app.state.passkey_ceremonies  # type: ignore[no-any-return]


def _info(cred: PublicKeyCredential) -> schemas.PasskeyInfo:
    return schemas.PasskeyInfo(
        id=cred.id,
        name=cred.name,
        aaguid=cred.aaguid,
        device_type=cred.device_type,
        backed_up=cred.backed_up,
        registered_at=cred.registered_at,
        last_used_at=cred.last_used_at,
    )


# ---------------------------------------------------------------------------
# Registration  (signing up, or adding a passkey while signed in)
# ---------------------------------------------------------------------------


@router.post(
    "/registerRequest",
    summary="Start passkey registration",
    description=(
        "Return PublicKeyCredentialCreationOptions. While SIGNING_UP a fresh passkey "
        "handle is minted; while signed in the account's handle is used and its existing "
        "passkeys are excluded."
    ),
    responses={
        400: {"model": auth_schemas.ErrorResponse, "description": "Wrong sign-in state."},
    },
)
async def register_request(
    request: Request,
    session: SessionService = api_gate(ApiType.PASSKEY_REGISTRATION),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await _ceremonies(request).start_registration(db, session)


@router.post(
    "/registerResponse",
    response_model=schemas.PasskeyRegisterResponse,
    summary="Finish passkey registration",
    description=(
        "Verify the attestation against the session challenge and store the passkey. "
        "Completes sign-up when the session is SIGNING_UP."
    ),
    responses={
        400: {"model": auth_schemas.ErrorResponse, "description": "Wrong state or duplicate."},
        401: {"model": auth_schemas.ErrorResponse, "description": "Missing challenge or invalid."},
    },
)
async def register_response(
    body: schemas.CredentialResponseRequest,
    request: Request,
    session: SessionService = api_gate(ApiType.PASSKEY_REGISTRATION),
    db: AsyncSession = Depends(get_db),
):
    user, cred = await _ceremonies(request).finish_registration(
        db, session, body.as_credential(), request.headers.get("user-agent")
    )
    return schemas.PasskeyRegisterResponse(
        user=auth_schemas.UserResponse.from_user(user), credential=_info(cred)
    )


# ---------------------------------------------------------------------------
# Authentication  (sign-in or re-authentication)
# ---------------------------------------------------------------------------


@router.post(
    "/signinRequest",
    summary="Start passkey sign-in",
    description=(
        "Return PublicKeyCredentialRequestOptions. Anonymous visitors get an empty allow "
        "list; signed-in visitors may only use their own passkeys."
    ),
    responses={
        400: {"model": auth_schemas.ErrorResponse, "description": "No passkeys registered."},
    },
)
async def signin_request(
    request: Request,
    session: SessionService = api_gate(ApiType.NO_AUTH),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await _ceremonies(request).start_authentication(db, session)


@router.post(
    "/signinResponse",
    response_model=auth_schemas.UserResponse,
    summary="Finish passkey sign-in",
    description="Verify the assertion against the session challenge and sign in.",
    responses={
        401: {"model": auth_schemas.ErrorResponse, "description": "Verification failed."},
        404: {"model": auth_schemas.ErrorResponse, "description": "Unknown credential."},
    },
)
async def signin_response(
    body: schemas.CredentialResponseRequest,
    request: Request,
    session: SessionService = api_gate(ApiType.NO_AUTH),
    db: AsyncSession = Depends(get_db),
):
    user = await _ceremonies(request).finish_authentication(
        db, session, body.as_credential(), request.headers.get("user-agent")
    )
    return auth_schemas.UserResponse.from_user(user)


# ---------------------------------------------------------------------------
# Management
# ---------------------------------------------------------------------------


@router.post(
    "/getKeys",
    response_model=schemas.PasskeyListResponse,
    summary="List passkeys",
    description="List the signed-in user's passkeys.",
    responses={401: {"model": auth_schemas.ErrorResponse, "description": "Not signed in."}},
)
async def get_keys(
    request: Request,
    session: SessionService = api_gate(ApiType.SIGNED_IN),
    db: AsyncSession = Depends(get_db),
):
    creds = await _ceremonies(request).list_credentials(db, session)
    return schemas.PasskeyListResponse(passkeys=[_info(c) for c in creds])


@router.post(
    "/renameKey",
    response_model=auth_schemas.MessageResponse,
    summary="Rename a passkey",
    description="Rename one of the signed-in user's passkeys.",
    responses={
        401: {"model": auth_schemas.ErrorResponse, "description": "Not signed in."},
        404: {"model": auth_schemas.ErrorResponse, "description": "Passkey not found."},
    },
)
async def rename_key(
    body: schemas.PasskeyRenameRequest,
    request: Request,
    session: SessionService = api_gate(ApiType.SIGNED_IN),
    db: AsyncSession = Depends(get_db),
):
    await _ceremonies(request).rename_credential(db, session, body.credential_id, body.new_name)
    return auth_schemas.MessageResponse(message="Passkey renamed.")


@router.post(
    "/removeKey",
    response_model=auth_schemas.MessageResponse,
    summary="Remove a passkey",
    description="Remove one of the signed-in user's passkeys. Requires a recent sign-in.",
    responses={
        401: {"model": auth_schemas.ErrorResponse, "description": "Recent sign-in required."},
        404: {"model": auth_schemas.ErrorResponse, "description": "Passkey not found."},
    },
)
async def remove_key(
    body: schemas.PasskeyRemoveRequest,
    request: Request,
    session: SessionService = api_gate(ApiType.SENSITIVE),
    db: AsyncSession = Depends(get_db),
):
    await _ceremonies(request).remove_credential(db, session, body.credential_id)
    return auth_schemas.MessageResponse(message="Passkey removed.")
