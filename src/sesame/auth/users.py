"""Users repository.

Writes only ``flush``; the caller owns the transaction so that a credential
row and the user row it belongs to can be committed together.
"""

from __future__ import annotations

import hashlib
import logging
import re
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sesame.auth.errors import AccountNotFound, UsernameTaken
from sesame.auth.ids import new_passkey_user_id
from sesame.auth.models import FederationMapping, PublicKeyCredential, User

logger = logging.getLogger(__name__)

_USERNAME_RE = re.compile(r"^[a-zA-Z0-9@.\-_]+$")
_PASSWORD_RE = re.compile(r"^[a-zA-Z0-9@.\-_]+$")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _aware(dt: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def gravatar_url(username: str) -> str:
    digest = hashlib.md5(username.strip().lower().encode("utf-8")).hexdigest()  # noqa: S324
    return f"https://www.gravatar.com/avatar/{digest}?s=200"


class Users:
    """Async repository over the ``users`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -- validation --

    @staticmethod
    def is_valid_username(username: str | None) -> bool:
        return bool(username) and _USERNAME_RE.match(username) is not None  # type: ignore[arg-type]

    @staticmethod
    def is_valid_password(password: str | None) -> bool:
        return bool(password) and _PASSWORD_RE.match(password) is not None  # type: ignore[arg-type]

    # -- reads --

    async def find_by_id(self, user_id: str) -> User | None:
        result = await self.db.execute(select(User).filter(User.id == user_id))
        return result.scalars().first()

    async def find_by_username(self, username: str) -> User | None:
        result = await self.db.execute(select(User).filter(User.username == username))
        return result.scalars().first()

    async def find_by_passkey_user_id(self, passkey_user_id: str) -> User | None:
        result = await self.db.execute(
            select(User).filter(User.passkey_user_id == passkey_user_id)
        )
        return result.scalars().first()

    async def list_all(self, *, offset: int = 0, limit: int = 100) -> list[User]:
        result = await self.db.execute(
            select(User).order_by(User.registered_at).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    # -- writes --

    async def create(
        self,
        username: str,
        *,
        lifetime: timedelta,
        display_name: str | None = None,
        email: str | None = None,
        picture: str | None = None,
        password: str | None = None,
        passkey_user_id: str | None = None,
    ) -> User:
        """Create a user. Raises :class:`UsernameTaken` if *username* exists."""
        if await self.find_by_username(username) is not None:
            raise UsernameTaken()
        now = _utcnow()
        user = User(
            username=username,
            display_name=display_name or username,
            email=email or username,
            picture=picture or gravatar_url(username),
            password=password,
            passkey_user_id=passkey_user_id or new_passkey_user_id(),
            approved_clients=[],
            registered_at=now,
            expires_at=now + lifetime,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info("created user %s", user.id)
        return user

    async def set_password(self, user: User, password: str) -> None:
        user.password = password
        await self.db.flush()

    def validate_password(self, user: User, password: str) -> bool:
        if user.password is None:
            return False
        return secrets.compare_digest(user.password.encode("utf-8"), password.encode("utf-8"))

    async def update_display_name(self, user: User, display_name: str) -> None:
        user.display_name = display_name
        await self.db.flush()

    async def set_approved_clients(self, user: User, clients: list[str]) -> None:
        # Assign a new list so the JSON column is marked dirty.
        user.approved_clients = list(clients)
        await self.db.flush()

    async def delete(self, user_id: str) -> None:
        """Delete a user together with its credentials and federation mappings.

        Raises :class:`AccountNotFound` before touching dependents when the
        user does not exist.
        """
        user = await self.find_by_id(user_id)
        if user is None:
            raise AccountNotFound()
        await self.db.execute(
            delete(PublicKeyCredential).where(
                PublicKeyCredential.passkey_user_id == user.passkey_user_id
            )
        )
        await self.db.execute(delete(FederationMapping).where(FederationMapping.user_id == user.id))
        await self.db.delete(user)
        await self.db.flush()
        logger.info("deleted user %s", user_id)

    async def sweep_expired(self, now: datetime | None = None) -> list[str]:
        """Delete every user past its expiry. Returns the deleted ids."""
        now = now or _utcnow()
        result = await self.db.execute(select(User).filter(User.expires_at.is_not(None)))
        expired = [u.id for u in result.scalars().all() if _aware(u.expires_at) <= now]  # type: ignore[arg-type]
        for user_id in expired:
            await self.delete(user_id)
        return expired
