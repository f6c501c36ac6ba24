"""Identity SQLAlchemy models.

Four collections back the whole system: ``users``, ``public_key_credentials``,
``federation_mappings`` and ``sessions``.  Public-key credentials point at
their owner through the passkey-scoped user handle, not the primary user id,
so the stable account id never reaches an authenticator.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sesame.auth.ids import new_mapping_id, new_user_id
from sesame.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_user_id)
    username: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    picture: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Cleartext on purpose: this system demonstrates flows, not password storage.
    password: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    passkey_user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    approved_clients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )


# ---------------------------------------------------------------------------
# PublicKeyCredential  (many-to-one with User via passkey_user_id)
# ---------------------------------------------------------------------------


class PublicKeyCredential(Base):
    __tablename__ = "public_key_credentials"

    id: Mapped[str] = mapped_column(String(1024), primary_key=True)  # base64url credential id
    passkey_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    credential_type: Mapped[str] = mapped_column(String(32), nullable=False, default="public-key")
    aaguid: Mapped[str | None] = mapped_column(String(36), nullable=True)
    transports: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    user_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    device_type: Mapped[str] = mapped_column(String(20), nullable=False, default="single_device")
    backed_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sign_count: Mapped[int] = mapped_column(nullable=False, default=0)
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# FederationMapping  (many-to-one with User)
# ---------------------------------------------------------------------------


class FederationMapping(Base):
    __tablename__ = "federation_mappings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_mapping_id)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    issuer: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    name: Mapped[str | None] = mapped_column(String(320), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    picture: Mapped[str | None] = mapped_column(Text, nullable=True)
    locale: Mapped[str | None] = mapped_column(String(35), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ---------------------------------------------------------------------------
# SessionRecord  (server-held session document keyed by cookie token)
# ---------------------------------------------------------------------------


class SessionRecord(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[str] = mapped_column(Text, nullable=False, default="{}")  # JSON document
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
