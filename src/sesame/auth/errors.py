"""Named authentication failures.

Every failure a gate, repository or ceremony can raise is a ``SesameError``
subclass carrying the HTTP status it maps to.  Routers let them propagate and
the application-level handler renders ``{"error": message}``.
"""

from __future__ import annotations

from fastapi import status


class SesameError(Exception):
    """Base class for all user-facing authentication failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Bad request."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# -- input validation (400) --


class InvalidAccess(SesameError):
    default_message = "Invalid access."


class InvalidIdentifier(SesameError):
    default_message = "Invalid username."


class InvalidPassword(SesameError):
    default_message = "Invalid password."


class UsernameTaken(SesameError):
    default_message = "The username is already taken."


# -- flow state (400) --


class InvalidState(SesameError):
    default_message = "Invalid request for the current sign-in state."


class NoCredentialsRegistered(SesameError):
    default_message = "No passkeys are registered for this account."


class CredentialAlreadyRegistered(SesameError):
    default_message = "This passkey is already registered."


class ClientNotConnected(SesameError):
    default_message = "The client is not connected to this account."


class RelyingPartyNotFound(SesameError):
    default_message = "Relying party is not registered."


# -- authentication / authorization (401) --


class NotSignedIn(SesameError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not signed in."


class InsufficientPrivilege(SesameError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Recent sign-in required."


class MissingChallenge(SesameError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Challenge has expired or was not requested."


class CredentialVerificationFailed(SesameError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Credential verification failed."


class AccountMismatch(SesameError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "The credential belongs to a different account."


class UserNotFound(SesameError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "User not found."


class MissingNonce(SesameError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid nonce."


class TokenVerificationFailed(SesameError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "ID token verification failed."


class MissingEmailClaim(SesameError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "`email` is missing in the ID token."


# -- not found (404) --


class CredentialNotFound(SesameError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Matching credential not found."


class AccountNotFound(SesameError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Account not found."


class ProviderNotFound(SesameError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "No matching identity provider found."


# -- page-level ACL --


class PageRedirect(Exception):
    """Raised by page gates; rendered as a 307 redirect to ``location``."""

    def __init__(self, location: str) -> None:
        self.location = location
        super().__init__(location)
