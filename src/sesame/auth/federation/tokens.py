"""Identity token verification and issuance (PyJWT).

Tokens from a configured provider are HS256 signed with the provider's
shared secret.  Providers marked ``vendor="google"`` are verified with RS256
against Google's published JWKS instead.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import PyJWKClient

from sesame.auth.errors import TokenVerificationFailed
from sesame.config import IdentityProviderConfig

logger = logging.getLogger(__name__)

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
_GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")


class IdTokenVerifier:
    """Verify identity tokens bound to an issuer, an audience and a session nonce."""

    def __init__(self, jwks_client: PyJWKClient | None = None) -> None:
        self._jwks_client = jwks_client

    @property
    def jwks_client(self) -> PyJWKClient:
        if self._jwks_client is None:
            self._jwks_client = PyJWKClient(GOOGLE_JWKS_URL)
        return self._jwks_client

    async def verify(
        self, raw_token: str, idp: IdentityProviderConfig, nonce: str
    ) -> dict[str, Any]:
        """Return the verified claims or raise :class:`TokenVerificationFailed`."""
        try:
            if idp.vendor == "google":
                # PyJWKClient fetches keys with blocking I/O.
                claims = await asyncio.to_thread(self._decode_vendor, raw_token, idp)
            else:
                claims = jwt.decode(
                    raw_token,
                    idp.secret,
                    algorithms=["HS256"],
                    issuer=idp.origin,
                    audience=idp.client_id,
                )
        except (jwt.InvalidTokenError, jwt.PyJWKClientError) as exc:
            logger.warning("identity token rejected for %s: %s", idp.origin, exc)
            raise TokenVerificationFailed() from exc
        if claims.get("nonce") != nonce:
            logger.warning("identity token nonce mismatch for %s", idp.origin)
            raise TokenVerificationFailed()
        return claims

    def _decode_vendor(self, raw_token: str, idp: IdentityProviderConfig) -> dict[str, Any]:
        signing_key = self.jwks_client.get_signing_key_from_jwt(raw_token)
        claims: dict[str, Any] = jwt.decode(
            raw_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=idp.client_id,
        )
        if claims.get("iss") not in _GOOGLE_ISSUERS:
            raise jwt.InvalidIssuerError("Invalid issuer")
        return claims


def issue_id_token(
    *,
    secret: str,
    issuer: str,
    audience: str,
    subject: str,
    nonce: str,
    lifetime: timedelta,
    claims: dict[str, Any] | None = None,
) -> str:
    """Sign an HS256 identity token for a relying party."""
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "iss": issuer,
        "sub": subject,
        "aud": audience,
        "nonce": nonce,
        "iat": now,
        "exp": now + lifetime,
        **(claims or {}),
    }
    return jwt.encode(payload, secret, algorithm="HS256")
