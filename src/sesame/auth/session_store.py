"""Server-side session persistence and the cookie-binding middleware."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import Request, Response
from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from sesame.auth.ids import new_session_token
from sesame.auth.models import SessionRecord
from sesame.auth.session import SessionData, SessionService
from sesame.config import Settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


class SessionStore:
    """Session documents in the ``sessions`` table, keyed by cookie token."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._factory = session_factory

    async def load(self, token: str) -> SessionData | None:
        async with self._factory() as db:
            result = await db.execute(select(SessionRecord).filter(SessionRecord.id == token))
            record = result.scalars().first()
        if record is None or _aware(record.expires_at) <= _utcnow():
            return None
        try:
            return SessionData.model_validate_json(record.data)
        except ValidationError:
            logger.warning("discarding unreadable session document")
            return None

    async def save(self, token: str, data: SessionData, expires_at: datetime) -> None:
        async with self._factory() as db:
            record = await db.get(SessionRecord, token)
            if record is None:
                record = SessionRecord(id=token)
                db.add(record)
            record.data = data.model_dump_json()
            record.expires_at = expires_at
            await db.commit()

    async def delete(self, token: str) -> None:
        async with self._factory() as db:
            await db.execute(delete(SessionRecord).where(SessionRecord.id == token))
            await db.commit()

    async def purge_expired(self) -> int:
        """Delete expired session documents. Returns count deleted."""
        async with self._factory() as db:
            result = await db.execute(
                delete(SessionRecord).where(SessionRecord.expires_at < _utcnow())
            )
            await db.commit()
        count: int = result.rowcount  # type: ignore[attr-defined]
        return count


class SessionMiddleware(BaseHTTPMiddleware):
    """Load the visitor's session into ``request.state.session`` and persist it afterwards.

    Sessions are only written when modified; a session that was never touched
    does not get a record or a cookie.
    """

    def __init__(self, app: ASGIApp, settings: Settings) -> None:
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        store = SessionStore(request.app.state.async_session_factory)
        cookie_name = self.settings.effective_cookie_name()

        token = request.cookies.get(cookie_name)
        data = await store.load(token) if token else None
        if data is None:
            token = None
            data = SessionData()
        service = SessionService(data, self.settings.short_session_duration)
        request.state.session = service

        try:
            response = await call_next(request)
        except Exception:
            await self._persist(store, service, token)
            raise

        new_token = await self._persist(store, service, token)
        if service.destroyed:
            response.delete_cookie(cookie_name, path="/")
        elif new_token is not None and new_token != token:
            response.set_cookie(
                cookie_name,
                new_token,
                max_age=self.settings.long_session_duration_seconds,
                path="/",
                httponly=True,
                secure=self.settings.cookie_secure,
                samesite="lax",
            )
        if service.login_status is not None:
            response.headers["Set-Login"] = service.login_status
        return response

    async def _persist(
        self, store: SessionStore, service: SessionService, token: str | None
    ) -> str | None:
        if service.destroyed:
            if token is not None:
                await store.delete(token)
            return None
        if not service.dirty:
            return token
        token = token or new_session_token()
        await store.save(token, service.data, _utcnow() + self.settings.long_session_duration)
        return token
