"""Federation ceremonies: provider lookup, identity token sign-in, and the FedCM IdP side.

As a relying party this system verifies tokens from configured identity
providers and reconciles them with local users.  As an identity provider it
lists the signed-in account, issues tokens to registered relying parties and
lets users disconnect them.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from sesame.auth.errors import (
    AccountMismatch,
    ClientNotConnected,
    InvalidAccess,
    MissingEmailClaim,
    MissingNonce,
    NotSignedIn,
    ProviderNotFound,
    RelyingPartyNotFound,
    UserNotFound,
)
from sesame.auth.federation.directory import IdentityProviders, RelyingParties, url_origin
from sesame.auth.federation.mappings import FederationMappings
from sesame.auth.federation.tokens import IdTokenVerifier, issue_id_token
from sesame.auth.ids import new_challenge
from sesame.auth.models import User
from sesame.auth.session import SessionService
from sesame.auth.users import Users
from sesame.config import IdentityProviderConfig, Settings

logger = logging.getLogger(__name__)


class FederationOutcome(enum.Enum):
    CREATED_USER = "created_user"
    LINKED_EXISTING = "linked_existing"
    ALREADY_LINKED = "already_linked"
    # More than one mapping for (issuer, user); left untouched for the caller to resolve.
    DUPLICATE_MAPPINGS = "duplicate_mappings"


@dataclass
class FederationResult:
    user: User
    outcome: FederationOutcome


class FederationCeremonies:
    def __init__(
        self,
        settings: Settings,
        providers: IdentityProviders | None = None,
        relying_parties: RelyingParties | None = None,
        verifier: IdTokenVerifier | None = None,
    ) -> None:
        self.settings = settings
        self.providers = providers or IdentityProviders(settings.identity_providers)
        self.relying_parties = relying_parties or RelyingParties(settings.relying_parties)
        self.verifier = verifier or IdTokenVerifier()

    # -----------------------------------------------------------------------
    # Relying-party side
    # -----------------------------------------------------------------------

    def lookup_providers(self, urls: list[str]) -> list[IdentityProviderConfig]:
        """Resolve every URL to a provider, without its shared secret."""
        found: list[IdentityProviderConfig] = []
        for url in urls:
            idp = self.providers.find_by_origin(url)
            if idp is None:
                raise ProviderNotFound()
            idp.secret = ""
            found.append(idp)
        return found

    def issue_nonce(self, session: SessionService) -> str:
        """Bind a fresh nonce to the session for the next token verification."""
        nonce = new_challenge()
        session.set_challenge(nonce)
        return nonce

    async def verify(
        self, db: AsyncSession, session: SessionService, token: str, url: str
    ) -> FederationResult:
        """Verify an identity token against the session nonce and sign its owner in."""
        nonce = session.consume_challenge()
        if nonce is None:
            raise MissingNonce()
        idp = self.providers.find_by_origin(url)
        if idp is None:
            raise ProviderNotFound()

        claims = await self.verifier.verify(token, idp, nonce)
        email = claims.get("email")
        if not email:
            raise MissingEmailClaim()
        issuer = str(claims.get("iss", idp.origin))

        users = Users(db)
        mappings = FederationMappings(db)
        user = await users.find_by_username(email)
        if user is None:
            user = await users.create(
                email,
                lifetime=self.settings.account_lifetime,
                display_name=claims.get("name"),
                email=email,
                picture=claims.get("picture"),
            )
            await mappings.create(user.id, claims)
            outcome = FederationOutcome.CREATED_USER
        else:
            existing = await mappings.find_by_issuer(issuer, user.id)
            if not existing:
                await mappings.create(user.id, claims)
                outcome = FederationOutcome.LINKED_EXISTING
            elif len(existing) == 1:
                outcome = FederationOutcome.ALREADY_LINKED
            else:
                logger.warning(
                    "%d federation mappings found for user %s and issuer %s",
                    len(existing),
                    user.id,
                    issuer,
                )
                outcome = FederationOutcome.DUPLICATE_MAPPINGS
        await db.commit()
        session.commit_signed_in(user)
        return FederationResult(user=user, outcome=outcome)

    # -----------------------------------------------------------------------
    # Identity-provider side (FedCM)
    # -----------------------------------------------------------------------

    def fedcm_config(self) -> dict[str, Any]:
        origin = self.settings.effective_origin()
        return {
            "accounts_endpoint": "/fedcm/accounts",
            "client_metadata_endpoint": "/fedcm/metadata",
            "id_assertion_endpoint": "/fedcm/idtokens",
            "disconnect_endpoint": "/fedcm/disconnect",
            "login_url": "/passkey-form-autofill",
            "branding": {
                "background_color": "#6200ee",
                "color": "#ffffff",
                "icons": [{"url": f"{origin}/images/idp-logo-512.png", "size": 512}],
            },
        }

    def client_metadata(self) -> dict[str, str]:
        origin = self.settings.effective_origin()
        return {
            "privacy_policy_url": f"{origin}/privacy_policy",
            "terms_of_service_url": f"{origin}/terms_of_service",
        }

    async def _signed_in_user(self, db: AsyncSession, session: SessionService) -> User:
        if session.user is None:
            raise NotSignedIn()
        user = await Users(db).find_by_id(session.user.id)
        if user is None:
            raise UserNotFound()
        return user

    async def accounts(self, db: AsyncSession, session: SessionService) -> list[dict[str, Any]]:
        # Only one account can be signed in at a time.
        user = await self._signed_in_user(db, session)
        return [
            {
                "id": user.id,
                "name": user.display_name,
                "email": user.username,
                "picture": user.picture,
                "approved_clients": list(user.approved_clients or []),
            }
        ]

    async def issue_id_token(
        self,
        db: AsyncSession,
        session: SessionService,
        *,
        client_id: str,
        nonce: str,
        account_id: str,
        consent_acquired: bool,
        origin: str | None,
    ) -> str:
        """Issue an identity token for a registered relying party."""
        user = await self._signed_in_user(db, session)
        rp = self.relying_parties.find_by_client_id(client_id)
        if rp is None:
            raise RelyingPartyNotFound(f"RP not registered. Client ID: {client_id}")
        if url_origin(rp.origin) != url_origin(origin or ""):
            raise InvalidAccess(f"RP origin doesn't match: {rp.origin}")
        if account_id != user.id:
            raise InvalidAccess(f"Account ID doesn't match: {account_id}")

        approved = list(user.approved_clients or [])
        if consent_acquired and rp.client_id not in approved:
            logger.info("user %s approved client %s", user.id, rp.client_id)
            await Users(db).set_approved_clients(user, [*approved, rp.client_id])
            await db.commit()

        return issue_id_token(
            secret=self.settings.effective_secret(),
            issuer=self.settings.effective_origin(),
            audience=client_id,
            subject=user.id,
            nonce=nonce,
            lifetime=self.settings.id_token_lifetime,
            claims={"name": user.display_name, "email": user.username, "picture": user.picture},
        )

    async def disconnect(
        self, db: AsyncSession, session: SessionService, *, account_hint: str, client_id: str
    ) -> str:
        """Remove *client_id* from the user's approved clients. Returns the account id."""
        user = await self._signed_in_user(db, session)
        if account_hint != user.id:
            raise AccountMismatch("Account hint doesn't match.")
        approved = list(user.approved_clients or [])
        if client_id not in approved:
            raise ClientNotConnected()
        await Users(db).set_approved_clients(user, [c for c in approved if c != client_id])
        await db.commit()
        logger.info("user %s disconnected client %s", user.id, client_id)
        return user.id
