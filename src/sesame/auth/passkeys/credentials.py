"""PublicKeyCredentials repository."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sesame.auth.errors import CredentialAlreadyRegistered, CredentialNotFound
from sesame.auth.models import PublicKeyCredential


class PublicKeyCredentials:
    """Async repository over the ``public_key_credentials`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_id(self, credential_id: str) -> PublicKeyCredential | None:
        result = await self.db.execute(
            select(PublicKeyCredential).filter(PublicKeyCredential.id == credential_id)
        )
        return result.scalars().first()

    async def find_by_passkey_user_id(self, passkey_user_id: str) -> list[PublicKeyCredential]:
        result = await self.db.execute(
            select(PublicKeyCredential)
            .filter(PublicKeyCredential.passkey_user_id == passkey_user_id)
            .order_by(PublicKeyCredential.registered_at)
        )
        return list(result.scalars().all())

    async def add(self, credential: PublicKeyCredential) -> PublicKeyCredential:
        """Persist a new credential. Raises if the credential id is already stored."""
        if await self.find_by_id(credential.id) is not None:
            raise CredentialAlreadyRegistered()
        self.db.add(credential)
        await self.db.flush()
        return credential

    async def rename(self, credential_id: str, passkey_user_id: str, name: str) -> None:
        cred = await self._owned(credential_id, passkey_user_id)
        cred.name = name
        await self.db.flush()

    async def remove(self, credential_id: str, passkey_user_id: str) -> None:
        cred = await self._owned(credential_id, passkey_user_id)
        await self.db.delete(cred)
        await self.db.flush()

    async def _owned(self, credential_id: str, passkey_user_id: str) -> PublicKeyCredential:
        cred = await self.find_by_id(credential_id)
        if cred is None or cred.passkey_user_id != passkey_user_id:
            raise CredentialNotFound()
        return cred
