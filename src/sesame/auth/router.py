"""Account and session API router – mounted at ``/auth``.

Every route requires ``X-Requested-With: XMLHttpRequest``; the check runs
before any sign-in status gate.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sesame.auth import schemas
from sesame.auth.dependencies import api_gate, csrf_check, get_session
from sesame.auth.errors import (
    CredentialVerificationFailed,
    InvalidIdentifier,
    InvalidPassword,
    InvalidState,
    NotSignedIn,
    UsernameTaken,
    UserNotFound,
)
from sesame.auth.ids import new_passkey_user_id
from sesame.auth.models import User
from sesame.auth.session import ApiType, SessionService
from sesame.auth.users import Users
from sesame.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(csrf_check)])

_errors = {
    400: {"model": schemas.ErrorResponse, "description": "Invalid input or sign-in state."},
    401: {"model": schemas.ErrorResponse, "description": "Not signed in or verification failed."},
}

_SIGN_IN_FAILED = "Failed to sign in."


def _status_response(session: SessionService) -> schemas.StatusResponse:
    username = session.user.username if session.user is not None else session.username
    return schemas.StatusResponse(status=session.status.name, username=username)


async def _current_user(db: AsyncSession, session: SessionService) -> User:
    if session.user is None:
        raise NotSignedIn()
    user = await Users(db).find_by_id(session.user.id)
    if user is None:
        # The account was deleted behind this session.
        session.sign_out()
        raise UserNotFound()
    return user


def _require_password(password: str) -> None:
    if not Users.is_valid_password(password):
        raise InvalidPassword()


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


@router.post(
    "/status",
    response_model=schemas.StatusResponse,
    summary="Sign-in status",
    description="Return the sign-in status derived from the current session.",
)
async def session_status(session: SessionService = Depends(get_session)):
    return _status_response(session)


# ---------------------------------------------------------------------------
# Sign-up
# ---------------------------------------------------------------------------


@router.post(
    "/new-user",
    response_model=schemas.StatusResponse,
    summary="Begin passkey sign-up",
    description=(
        "Record the candidate username and a pending passkey handle. The session moves "
        "to SIGNING_UP and may request passkey registration options."
    ),
    responses=_errors,
)
async def new_user(
    body: schemas.UsernameRequest,
    session: SessionService = api_gate(ApiType.SIGN_UP),
    db: AsyncSession = Depends(get_db),
):
    if await Users(db).find_by_username(body.username) is not None:
        raise UsernameTaken()
    session.begin_signing_up(body.username)
    session.set_pending_passkey_handle(new_passkey_user_id())
    return _status_response(session)


@router.post(
    "/signup",
    response_model=schemas.StatusResponse,
    summary="Begin password sign-up",
    description="Record the candidate username; the password is submitted to /auth/new-password.",
    responses=_errors,
)
async def signup(
    body: schemas.UsernameRequest,
    session: SessionService = api_gate(ApiType.SIGN_UP),
    db: AsyncSession = Depends(get_db),
):
    if await Users(db).find_by_username(body.username) is not None:
        raise UsernameTaken()
    session.begin_signing_up(body.username)
    return _status_response(session)


@router.post(
    "/new-password",
    response_model=schemas.UserResponse,
    summary="Set the first password",
    description="Create the account for the candidate username with a password and sign in.",
    responses=_errors,
)
async def new_password(
    body: schemas.PasswordRequest,
    request: Request,
    session: SessionService = api_gate(ApiType.SIGN_UP_CREDENTIAL),
    db: AsyncSession = Depends(get_db),
):
    settings = request.app.state.settings
    _require_password(body.password)
    if not session.username:
        raise InvalidState()
    user = await Users(db).create(
        session.username, lifetime=settings.account_lifetime, password=body.password
    )
    await db.commit()
    session.commit_signed_in(user)
    return schemas.UserResponse.from_user(user)


@router.post(
    "/new-username-password",
    response_model=schemas.UserResponse,
    summary="Password sign-up in one step",
    description="Create an account from a username and password and sign in.",
    responses=_errors,
)
async def new_username_password(
    body: schemas.UsernamePasswordRequest,
    request: Request,
    session: SessionService = api_gate(ApiType.SIGN_UP),
    db: AsyncSession = Depends(get_db),
):
    settings = request.app.state.settings
    if not Users.is_valid_username(body.username):
        raise InvalidIdentifier()
    _require_password(body.password)
    user = await Users(db).create(
        body.username, lifetime=settings.account_lifetime, password=body.password
    )
    await db.commit()
    session.commit_signed_in(user)
    return schemas.UserResponse.from_user(user)


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------


@router.post(
    "/username",
    response_model=schemas.StatusResponse,
    summary="Begin sign-in",
    description="Record the username to sign in as. Does not reveal whether it exists.",
    responses=_errors,
)
async def username(
    body: schemas.UsernameRequest,
    session: SessionService = api_gate(ApiType.SIGN_IN),
):
    session.begin_signing_in(body.username)
    return _status_response(session)


@router.post(
    "/password",
    response_model=schemas.UserResponse,
    summary="Verify password",
    description=(
        "Verify the password for the candidate username, or re-authenticate the "
        "signed-in user."
    ),
    responses=_errors,
)
async def password(
    body: schemas.PasswordRequest,
    session: SessionService = api_gate(ApiType.FIRST_CREDENTIAL),
    db: AsyncSession = Depends(get_db),
):
    users = Users(db)
    name = session.user.username if session.user is not None else session.username
    user = await users.find_by_username(name) if name else None
    if user is None or not users.validate_password(user, body.password):
        raise CredentialVerificationFailed(_SIGN_IN_FAILED)
    session.commit_signed_in(user)
    return schemas.UserResponse.from_user(user)


@router.post(
    "/username-password",
    response_model=schemas.UserResponse,
    summary="Password sign-in in one step",
    description="Verify a username and password pair and sign in.",
    responses=_errors,
)
async def username_password(
    body: schemas.UsernamePasswordRequest,
    session: SessionService = api_gate(ApiType.SIGN_IN),
    db: AsyncSession = Depends(get_db),
):
    session.begin_signing_in(body.username)
    users = Users(db)
    user = await users.find_by_username(body.username)
    if user is None or not users.validate_password(user, body.password):
        raise CredentialVerificationFailed(_SIGN_IN_FAILED)
    session.commit_signed_in(user)
    return schemas.UserResponse.from_user(user)


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@router.post(
    "/password-change",
    response_model=schemas.MessageResponse,
    summary="Change password",
    description="Set a new password. Requires a recent sign-in.",
    responses=_errors,
)
async def password_change(
    body: schemas.PasswordChangeRequest,
    session: SessionService = api_gate(ApiType.SENSITIVE),
    db: AsyncSession = Depends(get_db),
):
    _require_password(body.password)
    user = await _current_user(db, session)
    await Users(db).set_password(user, body.password)
    await db.commit()
    return schemas.MessageResponse(message="Password updated.")


@router.post(
    "/userinfo",
    response_model=schemas.UserResponse,
    summary="Current user",
    description="Return the signed-in user's profile.",
    responses=_errors,
)
async def userinfo(
    session: SessionService = api_gate(ApiType.SIGNED_IN),
    db: AsyncSession = Depends(get_db),
):
    user = await _current_user(db, session)
    return schemas.UserResponse.from_user(user)


@router.post(
    "/updateDisplayName",
    response_model=schemas.UserResponse,
    summary="Update display name",
    description="Rename the signed-in user.",
    responses=_errors,
)
async def update_display_name(
    body: schemas.DisplayNameRequest,
    session: SessionService = api_gate(ApiType.SIGNED_IN),
    db: AsyncSession = Depends(get_db),
):
    user = await _current_user(db, session)
    await Users(db).update_display_name(user, body.new_name)
    await db.commit()
    session.refresh_user(user)
    return schemas.UserResponse.from_user(user)


@router.post(
    "/delete-user",
    response_model=schemas.MessageResponse,
    summary="Delete account",
    description=(
        "Delete the signed-in account with its passkeys and federation mappings, then "
        "sign out. Requires a recent sign-in."
    ),
    responses={**_errors, 404: {"model": schemas.ErrorResponse, "description": "No account."}},
)
async def delete_user(
    session: SessionService = api_gate(ApiType.SENSITIVE),
    db: AsyncSession = Depends(get_db),
):
    await Users(db).delete(session.user.id)  # type: ignore[union-attr]
    await db.commit()
    session.sign_out()
    return schemas.MessageResponse(message="Account deleted.")


@router.post(
    "/signout",
    response_model=schemas.MessageResponse,
    summary="Sign out",
    description="Destroy the session. A new session is issued on the next request.",
)
async def signout(session: SessionService = Depends(get_session)):
    session.sign_out()
    return schemas.MessageResponse(message="Signed out.")
