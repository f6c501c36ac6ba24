"""FastAPI dependencies for request checks and session gates."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, Request

from sesame.auth.errors import InvalidAccess, PageRedirect
from sesame.auth.session import (
    ApiType,
    PageType,
    SessionService,
    api_error_for,
    page_redirect_for,
)


def get_session(request: Request) -> SessionService:
    """Return the session loaded by ``SessionMiddleware``."""
    return request.state.session  # type: ignore[no-any-return]


def csrf_check(request: Request) -> None:
    """Reject mutating requests that do not carry ``X-Requested-With: XMLHttpRequest``."""
    if request.headers.get("x-requested-with") != "XMLHttpRequest":
        raise InvalidAccess("Invalid XHR request.")


def fedcm_check(request: Request) -> None:
    """Reject identity-provider calls that were not issued by the browser's FedCM layer."""
    if request.headers.get("sec-fetch-dest") != "webidentity":
        raise InvalidAccess("Invalid FedCM request.")


def api_gate(api_type: ApiType) -> Any:
    """Dependency that fails the request when the sign-in status does not fit *api_type*."""

    def _gate(session: SessionService = Depends(get_session)) -> SessionService:
        error = api_error_for(api_type, session.status)
        if error is not None:
            raise error
        return session

    return Depends(_gate)


def page_gate(page_type: PageType) -> Any:
    """Dependency that redirects page requests the sign-in status does not allow.

    Sign-in pages record themselves as the visitor's entrance.
    """

    def _gate(request: Request, session: SessionService = Depends(get_session)) -> SessionService:
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        location = page_redirect_for(
            page_type,
            session.status,
            session.recall_entrance(),
            target,
            request.url.query,
        )
        if location is not None:
            raise PageRedirect(location)
        if page_type is PageType.SIGN_IN:
            session.remember_entrance(request.url.path)
        return session

    return Depends(_gate)
