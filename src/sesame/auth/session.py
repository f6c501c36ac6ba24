"""Session authentication state machine.

The sign-in status is never stored.  It is derived on every request from the
session document alone::

    SIGNED_OUT < SIGNING_UP < SIGNING_IN < SIGNED_IN < RECENTLY_SIGNED_IN

``SessionService`` is the only object allowed to mutate a session; ceremony
orchestrators receive it and call its operations instead of touching fields.
``commit_signed_in`` is the only way to reach ``SIGNED_IN`` or above.

Page and API gates are expressed as pure functions over a status
(:func:`page_redirect_for`, :func:`api_error_for`) and wrapped into FastAPI
dependencies in :mod:`sesame.auth.dependencies`.
"""

from __future__ import annotations

import enum
import logging
from datetime import UTC, datetime, timedelta
from urllib.parse import quote

from pydantic import BaseModel, Field

from sesame.auth.errors import (
    InsufficientPrivilege,
    InvalidIdentifier,
    InvalidState,
    NotSignedIn,
    SesameError,
)
from sesame.auth.models import User
from sesame.auth.users import Users

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SignInStatus(enum.IntEnum):
    SIGNED_OUT = 1
    SIGNING_UP = 2
    SIGNING_IN = 3
    SIGNED_IN = 4
    RECENTLY_SIGNED_IN = 5


# ---------------------------------------------------------------------------
# Session document
# ---------------------------------------------------------------------------


class UserSnapshot(BaseModel):
    id: str
    username: str
    display_name: str
    email: str
    picture: str
    passkey_user_id: str

    @classmethod
    def of(cls, user: User) -> UserSnapshot:
        return cls(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            email=user.email,
            picture=user.picture,
            passkey_user_id=user.passkey_user_id,
        )


class SessionData(BaseModel):
    """Fields persisted for one visitor."""

    username: str | None = Field(None, description="Candidate username before sign-in.")
    user: UserSnapshot | None = Field(None, description="Signed-in user snapshot.")
    last_signedin_at: float | None = Field(None, description="Epoch seconds of last sign-in.")
    challenge: str | None = Field(None, description="Pending one-time challenge or nonce.")
    passkey_user_id: str | None = Field(None, description="Pending sign-up passkey handle.")
    entrance: str | None = Field(None, description="Page where the current flow started.")


def derive_sign_in_status(
    data: SessionData,
    short_session_duration: timedelta,
    now: datetime,
) -> SignInStatus:
    """Derive the sign-in status from session fields only."""
    if data.user is None:
        if not data.username:
            return SignInStatus.SIGNED_OUT
        if data.passkey_user_id:
            return SignInStatus.SIGNING_UP
        return SignInStatus.SIGNING_IN
    if data.last_signedin_at is None:
        return SignInStatus.SIGNED_IN
    if data.last_signedin_at < (now - short_session_duration).timestamp():
        return SignInStatus.SIGNED_IN
    return SignInStatus.RECENTLY_SIGNED_IN


# ---------------------------------------------------------------------------
# Session service
# ---------------------------------------------------------------------------


class SessionService:
    """Owns one visitor's :class:`SessionData` for the span of a request."""

    def __init__(self, data: SessionData, short_session_duration: timedelta) -> None:
        self._data = data
        self._short = short_session_duration
        self.dirty = False
        self.destroyed = False
        self.login_status: str | None = None

    @property
    def data(self) -> SessionData:
        return self._data

    @property
    def status(self) -> SignInStatus:
        return derive_sign_in_status(self._data, self._short, _utcnow())

    @property
    def user(self) -> UserSnapshot | None:
        return self._data.user

    @property
    def username(self) -> str | None:
        return self._data.username

    def _touch(self) -> None:
        self.dirty = True

    # -- sign-up / sign-in --

    def begin_signing_up(self, username: str) -> None:
        if not Users.is_valid_username(username):
            raise InvalidIdentifier()
        self._data.username = username
        self._data.passkey_user_id = None
        self._touch()

    def begin_signing_in(self, username: str) -> None:
        if not Users.is_valid_username(username):
            raise InvalidIdentifier()
        self._data.username = username
        self._data.passkey_user_id = None
        self._touch()

    # -- pending passkey handle --

    def set_pending_passkey_handle(self, handle: str) -> None:
        self._data.passkey_user_id = handle
        self._touch()

    @property
    def pending_passkey_handle(self) -> str | None:
        return self._data.passkey_user_id

    def clear_pending_passkey_handle(self) -> None:
        if self._data.passkey_user_id is not None:
            self._data.passkey_user_id = None
            self._touch()

    # -- challenge ledger --

    def set_challenge(self, challenge: str) -> None:
        self._data.challenge = challenge
        self._touch()

    @property
    def challenge(self) -> str | None:
        return self._data.challenge

    def consume_challenge(self) -> str | None:
        """Return the bound challenge and clear it. A second call returns ``None``."""
        challenge = self._data.challenge
        if challenge is not None:
            self._data.challenge = None
            self._touch()
        return challenge

    # -- terminal transitions --

    def commit_signed_in(self, user: User) -> None:
        self._data.challenge = None
        self._data.passkey_user_id = None
        self._data.username = None
        self._data.user = UserSnapshot.of(user)
        self._data.last_signedin_at = _utcnow().timestamp()
        self.login_status = "logged-in"
        self._touch()
        logger.info("user %s signed in", user.id)

    def refresh_user(self, user: User) -> None:
        """Update the signed-in snapshot without re-stamping the sign-in time."""
        self._data.user = UserSnapshot.of(user)
        self._touch()

    def sign_out(self) -> None:
        if self._data.user is not None:
            logger.info("user %s signed out", self._data.user.id)
        self._data = SessionData()
        self.destroyed = True
        self.login_status = "logged-out"

    # -- entrance --

    def remember_entrance(self, path: str) -> None:
        if self._data.entrance != path:
            self._data.entrance = path
            self._touch()

    def recall_entrance(self) -> str:
        return self._data.entrance or "/"


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------


class PageType(enum.Enum):
    NO_AUTH = "no_auth"
    SIGN_UP = "sign_up"
    SIGN_UP_CREDENTIAL = "sign_up_credential"
    SIGN_IN = "sign_in"
    REAUTH = "reauth"
    SIGNED_IN = "signed_in"
    SENSITIVE = "sensitive"


class ApiType(enum.Enum):
    NO_AUTH = "no_auth"
    SIGN_UP = "sign_up"
    SIGN_IN = "sign_in"
    SIGN_UP_CREDENTIAL = "sign_up_credential"
    FIRST_CREDENTIAL = "first_credential"
    PASSKEY_REGISTRATION = "passkey_registration"
    SIGNED_IN = "signed_in"
    SENSITIVE = "sensitive"


def step_up_page(entrance: str) -> str:
    """Return the re-authentication page matching the flow the visitor started from."""
    if entrance == "/signin-form":
        return "/password-reauth"
    return "/passkey-reauth"


def page_redirect_for(
    page_type: PageType,
    status: SignInStatus,
    entrance: str,
    target: str,
    query: str = "",
) -> str | None:
    """Return where a page request must be redirected, or ``None`` to serve it.

    *target* is the requested path including its query string, *query* the
    raw query string alone.
    """
    suffix = f"?{query}" if query else ""
    if page_type is PageType.NO_AUTH:
        return None
    if page_type is PageType.SIGN_UP:
        return "/home" if status >= SignInStatus.SIGNED_IN else None
    if page_type is PageType.SIGN_UP_CREDENTIAL:
        if status >= SignInStatus.SIGNED_IN:
            return "/home"
        if status < SignInStatus.SIGNING_UP:
            return entrance
        return None
    if page_type is PageType.SIGN_IN:
        if status >= SignInStatus.SIGNED_IN:
            return step_up_page(entrance) + suffix
        return None
    if page_type is PageType.REAUTH:
        if status < SignInStatus.SIGNING_IN:
            return entrance
        if status >= SignInStatus.RECENTLY_SIGNED_IN:
            return "/home"
        return None
    if page_type is PageType.SIGNED_IN:
        return entrance if status < SignInStatus.SIGNED_IN else None
    if page_type is PageType.SENSITIVE:
        if status >= SignInStatus.RECENTLY_SIGNED_IN:
            return None
        if status < SignInStatus.SIGNED_IN:
            return entrance
        return f"{step_up_page(entrance)}?r={quote(target, safe='')}"
    raise ValueError(f"Unknown page type: {page_type}")


def api_error_for(api_type: ApiType, status: SignInStatus) -> SesameError | None:
    """Return the error an API request must fail with, or ``None`` to proceed."""
    if api_type is ApiType.NO_AUTH:
        return None
    if api_type in (ApiType.SIGN_UP, ApiType.SIGN_IN):
        return InvalidState() if status >= SignInStatus.SIGNED_IN else None
    if api_type is ApiType.SIGN_UP_CREDENTIAL:
        if status in (SignInStatus.SIGNING_UP, SignInStatus.SIGNING_IN):
            return None
        return InvalidState()
    if api_type is ApiType.FIRST_CREDENTIAL:
        if status in (SignInStatus.SIGNING_IN, SignInStatus.SIGNED_IN):
            return None
        return InvalidState()
    if api_type is ApiType.PASSKEY_REGISTRATION:
        if status == SignInStatus.SIGNING_UP or status >= SignInStatus.SIGNED_IN:
            return None
        return InvalidState()
    if api_type is ApiType.SIGNED_IN:
        return NotSignedIn() if status < SignInStatus.SIGNED_IN else None
    if api_type is ApiType.SENSITIVE:
        if status < SignInStatus.SIGNED_IN:
            return NotSignedIn()
        if status < SignInStatus.RECENTLY_SIGNED_IN:
            return InsufficientPrivilege()
        return None
    raise ValueError(f"Unknown API type: {api_type}")
