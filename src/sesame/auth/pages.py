"""Page routes.

Pages return the JSON context a template layer renders; the page gate turns
sign-in status violations into 307 redirects before the handler runs.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from sesame.auth.dependencies import page_gate
from sesame.auth.session import PageType, SessionService

router = APIRouter(tags=["pages"])


class PageContext(BaseModel):
    title: str = Field(..., description="Page title.")
    status: str = Field(..., description="Derived sign-in status name.")
    username: str | None = Field(None, description="Candidate or signed-in username.")
    display_name: str | None = Field(None, description="Signed-in user's display name.")
    nonce: str | None = Field(None, description="Federation nonce bound to the session.")
    r: str | None = Field(None, description="Page to return to after re-authentication.")


def _context(session: SessionService, title: str, **extra: str | None) -> PageContext:
    user = session.user
    return PageContext(
        title=title,
        status=session.status.name,
        username=user.username if user is not None else session.username,
        display_name=user.display_name if user is not None else None,
        **extra,
    )


def _page(path: str, title: str, page_type: PageType) -> None:
    async def handler(request: Request, session: SessionService = page_gate(page_type)):
        return _context(session, title, r=request.query_params.get("r"))

    handler.__name__ = "page_" + (path.strip("/").replace("/", "_").replace("-", "_") or "index")
    router.add_api_route(
        path,
        handler,
        methods=["GET"],
        response_model=PageContext,
        summary=title,
    )


# -- sign-in entrances --
_page("/", "Sign in", PageType.SIGN_IN)
_page("/signin-form", "Sign in with a password", PageType.SIGN_IN)
_page("/passkey-form-autofill", "Sign in with a passkey", PageType.SIGN_IN)
_page("/passkey-one-button", "Sign in with a passkey", PageType.SIGN_IN)

# -- sign-up --
_page("/signup-form", "Sign up", PageType.SIGN_UP)
_page("/passkey-signup", "Create a passkey", PageType.SIGN_UP_CREDENTIAL)
_page("/new-password", "Set a password", PageType.SIGN_UP_CREDENTIAL)

# -- re-authentication --
_page("/password", "Enter your password", PageType.REAUTH)
_page("/password-reauth", "Confirm your password", PageType.REAUTH)
_page("/passkey-reauth", "Confirm with a passkey", PageType.REAUTH)

# -- signed in --
_page("/home", "Home", PageType.SIGNED_IN)
_page("/settings/identity-providers", "Connected accounts", PageType.SIGNED_IN)
_page("/settings/passkeys", "Passkeys", PageType.SENSITIVE)
_page("/settings/password-change", "Change password", PageType.SENSITIVE)
_page("/settings/delete-account", "Delete account", PageType.SENSITIVE)


@router.get(
    "/fedcm-rp",
    response_model=PageContext,
    summary="Sign in with an identity provider",
    description="Entrance page for federated sign-in; binds a fresh nonce to the session.",
)
async def fedcm_rp(request: Request, session: SessionService = page_gate(PageType.SIGN_IN)):
    nonce = request.app.state.federation_ceremonies.issue_nonce(session)
    return _context(session, "Sign in with an identity provider", nonce=nonce)


@router.get(
    "/signout",
    summary="Sign out",
    description="Destroy the session and return to the page the flow started from.",
    response_class=RedirectResponse,
    status_code=307,
)
async def signout(session: SessionService = page_gate(PageType.NO_AUTH)):
    entrance = session.recall_entrance()
    session.sign_out()
    return RedirectResponse(entrance, status_code=307)
