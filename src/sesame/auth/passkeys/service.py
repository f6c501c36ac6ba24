"""Passkey (WebAuthn) ceremonies - challenge lifecycle, sign-up, credential management.

Challenges live in the session, not the database.  Every response phase
consumes the bound challenge before the verifier runs, so a replayed
response always fails with :class:`MissingChallenge`.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from sesame.auth.errors import (
    AccountMismatch,
    CredentialNotFound,
    InvalidState,
    MissingChallenge,
    NoCredentialsRegistered,
    NotSignedIn,
    UserNotFound,
)
from sesame.auth.ids import new_challenge, new_passkey_user_id
from sesame.auth.models import PublicKeyCredential, User
from sesame.auth.passkeys.aaguids import credential_name
from sesame.auth.passkeys.credentials import PublicKeyCredentials
from sesame.auth.passkeys.webauthn import WebAuthnVerifier, resolve_expected_origin
from sesame.auth.session import SessionService, SignInStatus
from sesame.auth.users import Users
from sesame.config import Settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _descriptors(creds: list[PublicKeyCredential]) -> list[tuple[str, list[str]]]:
    return [(c.id, list(c.transports or [])) for c in creds]


class CredentialCeremonies:
    """Registration and authentication ceremonies bound to one configuration."""

    def __init__(self, settings: Settings, verifier: WebAuthnVerifier | None = None) -> None:
        self.settings = settings
        self.verifier = verifier or WebAuthnVerifier(settings)

    def expected_origin(self, user_agent: str | None) -> str:
        return resolve_expected_origin(
            user_agent, self.settings.android_apps, self.settings.effective_origin()
        )

    # -----------------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------------

    async def start_registration(self, db: AsyncSession, session: SessionService) -> dict:
        """Return creation options for the signing-up visitor or the signed-in account."""
        status = session.status
        if status == SignInStatus.SIGNING_UP:
            handle = new_passkey_user_id()
            session.set_pending_passkey_handle(handle)
            user_name = display_name = session.username or ""
        elif status >= SignInStatus.SIGNED_IN and session.user is not None:
            user = await Users(db).find_by_id(session.user.id)
            if user is None:
                raise UserNotFound()
            handle = user.passkey_user_id
            user_name, display_name = user.username, user.display_name
        else:
            raise InvalidState()

        existing = await PublicKeyCredentials(db).find_by_passkey_user_id(handle)
        challenge = new_challenge()
        session.set_challenge(challenge)
        return self.verifier.registration_options(
            user_handle=handle,
            user_name=user_name,
            user_display_name=display_name,
            challenge=challenge,
            exclude=_descriptors(existing),
        )

    async def finish_registration(
        self,
        db: AsyncSession,
        session: SessionService,
        credential: dict[str, Any],
        user_agent: str | None,
    ) -> tuple[User, PublicKeyCredential]:
        """Verify an attestation, store the credential and, on sign-up, create the user."""
        expected_challenge = session.consume_challenge()
        if expected_challenge is None:
            raise MissingChallenge()

        status = session.status
        signing_up = status == SignInStatus.SIGNING_UP
        if signing_up:
            handle = session.pending_passkey_handle
            username = session.username
        elif status >= SignInStatus.SIGNED_IN and session.user is not None:
            handle = session.user.passkey_user_id
            username = session.user.username
        else:
            raise InvalidState()
        if not handle or not username:
            raise InvalidState()

        result = self.verifier.verify_registration(
            credential=credential,
            expected_challenge=expected_challenge,
            expected_origin=self.expected_origin(user_agent),
        )

        transports = credential.get("response", {}).get("transports") or []
        cred = PublicKeyCredential(
            id=result.credential_id,
            passkey_user_id=handle,
            name=credential_name(result.aaguid, user_agent),
            public_key=result.public_key,
            credential_type=result.credential_type,
            aaguid=result.aaguid,
            transports=[str(t) for t in transports],
            user_verified=result.user_verified,
            device_type=result.device_type,
            backed_up=result.backed_up,
            sign_count=result.sign_count,
            registered_at=_utcnow(),
        )
        await PublicKeyCredentials(db).add(cred)

        users = Users(db)
        if signing_up:
            # A retry after a partial failure finds the user already bound to the handle.
            user = await users.find_by_passkey_user_id(handle)
            if user is None:
                user = await users.create(
                    username, lifetime=self.settings.account_lifetime, passkey_user_id=handle
                )
            await db.commit()
            session.commit_signed_in(user)
        else:
            await db.commit()
            found = await users.find_by_passkey_user_id(handle)
            if found is None:
                raise UserNotFound()
            user = found
        logger.info("registered passkey for user %s", user.id)
        return user, cred

    # -----------------------------------------------------------------------
    # Authentication
    # -----------------------------------------------------------------------

    async def start_authentication(self, db: AsyncSession, session: SessionService) -> dict:
        """Return request options; signed-in visitors may only use their own passkeys."""
        allow: list[tuple[str, list[str]]] = []
        if session.status >= SignInStatus.SIGNED_IN and session.user is not None:
            creds = await PublicKeyCredentials(db).find_by_passkey_user_id(
                session.user.passkey_user_id
            )
            if not creds:
                raise NoCredentialsRegistered()
            allow = _descriptors(creds)
        challenge = new_challenge()
        session.set_challenge(challenge)
        return self.verifier.authentication_options(challenge=challenge, allow=allow)

    async def finish_authentication(
        self,
        db: AsyncSession,
        session: SessionService,
        credential: dict[str, Any],
        user_agent: str | None,
    ) -> User:
        """Verify an assertion against the stored credential and sign the owner in."""
        expected_challenge = session.consume_challenge()
        if expected_challenge is None:
            raise MissingChallenge()

        credential_id = credential.get("rawId") or credential.get("id")
        if not isinstance(credential_id, str) or not credential_id:
            raise CredentialNotFound()
        creds = PublicKeyCredentials(db)
        stored = await creds.find_by_id(credential_id)
        if stored is None:
            raise CredentialNotFound()
        if session.user is not None and stored.passkey_user_id != session.user.passkey_user_id:
            raise AccountMismatch()

        user = await Users(db).find_by_passkey_user_id(stored.passkey_user_id)
        if user is None:
            raise UserNotFound()

        new_sign_count = self.verifier.verify_authentication(
            credential=credential,
            expected_challenge=expected_challenge,
            expected_origin=self.expected_origin(user_agent),
            public_key=stored.public_key,
            sign_count=stored.sign_count,
        )

        stored.sign_count = new_sign_count
        stored.last_used_at = _utcnow()
        await db.commit()
        session.commit_signed_in(user)
        return user

    # -----------------------------------------------------------------------
    # Management
    # -----------------------------------------------------------------------

    @staticmethod
    def _handle(session: SessionService) -> str:
        if session.user is None:
            raise NotSignedIn()
        return session.user.passkey_user_id

    async def list_credentials(
        self, db: AsyncSession, session: SessionService
    ) -> list[PublicKeyCredential]:
        return await PublicKeyCredentials(db).find_by_passkey_user_id(self._handle(session))

    async def rename_credential(
        self, db: AsyncSession, session: SessionService, credential_id: str, name: str
    ) -> None:
        await PublicKeyCredentials(db).rename(credential_id, self._handle(session), name)
        await db.commit()

    async def remove_credential(
        self, db: AsyncSession, session: SessionService, credential_id: str
    ) -> None:
        await PublicKeyCredentials(db).remove(credential_id, self._handle(session))
        await db.commit()
        logger.info("removed passkey for user %s", session.user.id)  # type: ignore[union-attr]
