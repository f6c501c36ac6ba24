"""Authentication: session state machine, gates, and credential ceremonies."""

from sesame.auth.dependencies import api_gate, csrf_check, fedcm_check, page_gate
from sesame.auth.session import ApiType, PageType, SessionService, SignInStatus

__all__ = [
    "ApiType",
    "PageType",
    "SessionService",
    "SignInStatus",
    "api_gate",
    "csrf_check",
    "fedcm_check",
    "page_gate",
]
