"""FederationMappings repository."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sesame.auth.models import FederationMapping


class FederationMappings:
    """Async repository over the ``federation_mappings`` table.

    Uniqueness per (issuer, user) is checked by callers, not enforced here.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(self, user_id: str, claims: dict[str, Any]) -> FederationMapping:
        mapping = FederationMapping(
            user_id=user_id,
            issuer=str(claims.get("iss", "")),
            subject=str(claims.get("sub", "")),
            name=claims.get("name"),
            email=claims.get("email"),
            picture=claims.get("picture"),
            locale=claims.get("locale"),
        )
        self.db.add(mapping)
        await self.db.flush()
        return mapping

    async def find_by_issuer(self, issuer: str, user_id: str) -> list[FederationMapping]:
        result = await self.db.execute(
            select(FederationMapping).filter(
                FederationMapping.issuer == issuer,
                FederationMapping.user_id == user_id,
            )
        )
        return list(result.scalars().all())

    async def find_by_user_id(self, user_id: str) -> list[FederationMapping]:
        result = await self.db.execute(
            select(FederationMapping)
            .filter(FederationMapping.user_id == user_id)
            .order_by(FederationMapping.created_at)
        )
        return list(result.scalars().all())
