"""Tests for sign-in status derivation, session mutations and the gate tables."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from sesame.auth.errors import (
    InsufficientPrivilege,
    InvalidIdentifier,
    InvalidState,
    NotSignedIn,
)
from sesame.auth.models import User
from sesame.auth.session import (
    ApiType,
    PageType,
    SessionData,
    SessionService,
    SignInStatus,
    UserSnapshot,
    api_error_for,
    derive_sign_in_status,
    page_redirect_for,
    step_up_page,
)

SHORT = timedelta(minutes=3)
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _snapshot() -> UserSnapshot:
    return UserSnapshot(
        id="uabc",
        username="alice",
        display_name="Alice",
        email="alice",
        picture="",
        passkey_user_id="handle",
    )


def _user() -> User:
    return User(
        id="uabc",
        username="alice",
        display_name="Alice",
        email="alice",
        picture="",
        passkey_user_id="handle",
    )


# ---------------------------------------------------------------------------
# Status derivation
# ---------------------------------------------------------------------------


class TestDeriveStatus:
    def test_empty_session_is_signed_out(self):
        assert derive_sign_in_status(SessionData(), SHORT, NOW) == SignInStatus.SIGNED_OUT

    def test_username_only_is_signing_in(self):
        data = SessionData(username="alice")
        assert derive_sign_in_status(data, SHORT, NOW) == SignInStatus.SIGNING_IN

    def test_username_with_pending_handle_is_signing_up(self):
        data = SessionData(username="alice", passkey_user_id="handle")
        assert derive_sign_in_status(data, SHORT, NOW) == SignInStatus.SIGNING_UP

    def test_pending_handle_without_username_is_signed_out(self):
        data = SessionData(passkey_user_id="handle")
        assert derive_sign_in_status(data, SHORT, NOW) == SignInStatus.SIGNED_OUT

    def test_recent_sign_in(self):
        data = SessionData(user=_snapshot(), last_signedin_at=(NOW - timedelta(minutes=1)).timestamp())
        assert derive_sign_in_status(data, SHORT, NOW) == SignInStatus.RECENTLY_SIGNED_IN

    def test_old_sign_in(self):
        data = SessionData(user=_snapshot(), last_signedin_at=(NOW - timedelta(minutes=10)).timestamp())
        assert derive_sign_in_status(data, SHORT, NOW) == SignInStatus.SIGNED_IN

    def test_signed_in_without_timestamp(self):
        data = SessionData(user=_snapshot())
        assert derive_sign_in_status(data, SHORT, NOW) == SignInStatus.SIGNED_IN

    def test_derivation_does_not_mutate(self):
        data = SessionData(username="alice", challenge="c")
        before = data.model_dump()
        derive_sign_in_status(data, SHORT, NOW)
        assert data.model_dump() == before


# ---------------------------------------------------------------------------
# Session service
# ---------------------------------------------------------------------------


class TestSessionService:
    def test_begin_signing_in_records_username(self):
        svc = SessionService(SessionData(), SHORT)
        svc.begin_signing_in("alice")
        assert svc.status == SignInStatus.SIGNING_IN
        assert svc.dirty

    def test_begin_signing_up_rejects_invalid_username(self):
        svc = SessionService(SessionData(), SHORT)
        with pytest.raises(InvalidIdentifier):
            svc.begin_signing_up("not valid")
        assert svc.username is None

    def test_pending_handle_moves_to_signing_up(self):
        svc = SessionService(SessionData(), SHORT)
        svc.begin_signing_up("alice")
        svc.set_pending_passkey_handle("handle")
        assert svc.status == SignInStatus.SIGNING_UP
        svc.clear_pending_passkey_handle()
        assert svc.status == SignInStatus.SIGNING_IN

    def test_challenge_is_single_use(self):
        svc = SessionService(SessionData(), SHORT)
        svc.set_challenge("abc")
        assert svc.consume_challenge() == "abc"
        assert svc.consume_challenge() is None

    def test_commit_signed_in_clears_transient_fields(self):
        svc = SessionService(SessionData(), SHORT)
        svc.begin_signing_up("alice")
        svc.set_pending_passkey_handle("pending")
        svc.set_challenge("abc")
        svc.commit_signed_in(_user())
        assert svc.status == SignInStatus.RECENTLY_SIGNED_IN
        assert svc.challenge is None
        assert svc.pending_passkey_handle is None
        assert svc.username is None
        assert svc.user is not None and svc.user.id == "uabc"
        assert svc.login_status == "logged-in"

    def test_sign_out_destroys(self):
        svc = SessionService(SessionData(user=_snapshot(), entrance="/signin-form"), SHORT)
        svc.sign_out()
        assert svc.destroyed
        assert svc.status == SignInStatus.SIGNED_OUT
        assert svc.recall_entrance() == "/"
        assert svc.login_status == "logged-out"

    def test_entrance_defaults_to_root(self):
        svc = SessionService(SessionData(), SHORT)
        assert svc.recall_entrance() == "/"
        svc.remember_entrance("/signin-form")
        assert svc.recall_entrance() == "/signin-form"

    def test_remembering_same_entrance_is_not_a_write(self):
        svc = SessionService(SessionData(entrance="/"), SHORT)
        svc.remember_entrance("/")
        assert not svc.dirty


# ---------------------------------------------------------------------------
# Page gate table
# ---------------------------------------------------------------------------


class TestPageRedirect:
    def test_step_up_page_follows_entrance(self):
        assert step_up_page("/signin-form") == "/password-reauth"
        assert step_up_page("/") == "/passkey-reauth"

    def test_no_auth_always_passes(self):
        for status in SignInStatus:
            assert page_redirect_for(PageType.NO_AUTH, status, "/", "/x") is None

    def test_sign_up_redirects_signed_in_home(self):
        assert page_redirect_for(PageType.SIGN_UP, SignInStatus.SIGNED_IN, "/", "/signup-form") == "/home"
        assert page_redirect_for(PageType.SIGN_UP, SignInStatus.SIGNING_IN, "/", "/signup-form") is None

    def test_sign_up_credential_needs_signing_up(self):
        page = PageType.SIGN_UP_CREDENTIAL
        assert page_redirect_for(page, SignInStatus.SIGNED_OUT, "/signin-form", "/new-password") == "/signin-form"
        assert page_redirect_for(page, SignInStatus.SIGNING_UP, "/", "/new-password") is None
        assert page_redirect_for(page, SignInStatus.RECENTLY_SIGNED_IN, "/", "/new-password") == "/home"

    def test_sign_in_page_steps_up_keeping_query(self):
        location = page_redirect_for(
            PageType.SIGN_IN, SignInStatus.SIGNED_IN, "/signin-form", "/signin-form?a=1", "a=1"
        )
        assert location == "/password-reauth?a=1"

    def test_reauth_bounds(self):
        page = PageType.REAUTH
        assert page_redirect_for(page, SignInStatus.SIGNING_UP, "/", "/password") == "/"
        assert page_redirect_for(page, SignInStatus.SIGNING_IN, "/", "/password") is None
        assert page_redirect_for(page, SignInStatus.SIGNED_IN, "/", "/password") is None
        assert page_redirect_for(page, SignInStatus.RECENTLY_SIGNED_IN, "/", "/password") == "/home"

    def test_signed_in_page_redirects_to_entrance(self):
        assert page_redirect_for(PageType.SIGNED_IN, SignInStatus.SIGNING_IN, "/passkey-one-button", "/home") == "/passkey-one-button"
        assert page_redirect_for(PageType.SIGNED_IN, SignInStatus.SIGNED_IN, "/", "/home") is None

    def test_sensitive_page_carries_return_target(self):
        location = page_redirect_for(
            PageType.SENSITIVE, SignInStatus.SIGNED_IN, "/signin-form", "/settings/passkeys"
        )
        assert location == "/password-reauth?r=%2Fsettings%2Fpasskeys"
        assert page_redirect_for(PageType.SENSITIVE, SignInStatus.SIGNED_OUT, "/", "/settings/passkeys") == "/"
        assert page_redirect_for(PageType.SENSITIVE, SignInStatus.RECENTLY_SIGNED_IN, "/", "/settings/passkeys") is None


# ---------------------------------------------------------------------------
# API gate table
# ---------------------------------------------------------------------------


class TestApiError:
    def test_sign_up_and_sign_in_reject_signed_in(self):
        for api in (ApiType.SIGN_UP, ApiType.SIGN_IN):
            assert isinstance(api_error_for(api, SignInStatus.SIGNED_IN), InvalidState)
            assert api_error_for(api, SignInStatus.SIGNED_OUT) is None

    def test_sign_up_credential(self):
        api = ApiType.SIGN_UP_CREDENTIAL
        assert api_error_for(api, SignInStatus.SIGNING_UP) is None
        assert api_error_for(api, SignInStatus.SIGNING_IN) is None
        assert isinstance(api_error_for(api, SignInStatus.SIGNED_OUT), InvalidState)
        assert isinstance(api_error_for(api, SignInStatus.SIGNED_IN), InvalidState)

    def test_first_credential(self):
        api = ApiType.FIRST_CREDENTIAL
        assert api_error_for(api, SignInStatus.SIGNING_IN) is None
        assert api_error_for(api, SignInStatus.SIGNED_IN) is None
        assert isinstance(api_error_for(api, SignInStatus.RECENTLY_SIGNED_IN), InvalidState)

    def test_passkey_registration(self):
        api = ApiType.PASSKEY_REGISTRATION
        assert api_error_for(api, SignInStatus.SIGNING_UP) is None
        assert api_error_for(api, SignInStatus.SIGNED_IN) is None
        assert isinstance(api_error_for(api, SignInStatus.SIGNING_IN), InvalidState)

    def test_signed_in_and_sensitive(self):
        assert isinstance(api_error_for(ApiType.SIGNED_IN, SignInStatus.SIGNING_IN), NotSignedIn)
        assert api_error_for(ApiType.SIGNED_IN, SignInStatus.SIGNED_IN) is None
        assert isinstance(api_error_for(ApiType.SENSITIVE, SignInStatus.SIGNED_OUT), NotSignedIn)
        assert isinstance(
            api_error_for(ApiType.SENSITIVE, SignInStatus.SIGNED_IN), InsufficientPrivilege
        )
        assert api_error_for(ApiType.SENSITIVE, SignInStatus.RECENTLY_SIGNED_IN) is None
