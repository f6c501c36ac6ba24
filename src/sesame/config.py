"""Environment-driven configuration using pydantic-settings."""

from __future__ import annotations

import secrets
import warnings
from datetime import timedelta

from pydantic import BaseModel, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict


class AndroidApp(BaseModel):
    """An Android app allowed to run WebAuthn ceremonies against this relying party."""

    package_name: str
    sha256_cert_fingerprint: str  # colon-separated hex, as printed by keytool


class IdentityProviderConfig(BaseModel):
    """Static directory entry for an external identity provider."""

    origin: str
    config_url: str
    client_id: str
    secret: str = ""
    vendor: str | None = None  # "google" routes through the vendor JWKS verifier


class RelyingPartyConfig(BaseModel):
    """A relying party allowed to request identity tokens from this system."""

    origin: str
    client_id: str
    name: str = ""


class Settings(BaseSettings):
    """Central configuration. All values can be overridden via env vars prefixed ``SESAME_``."""

    model_config = SettingsConfigDict(
        env_prefix="SESAME_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- environment ---
    env: str = "development"
    log_level: str = "INFO"

    # --- database ---
    database_url: str = "sqlite:///./sesame.db"

    # --- sessions ---
    session_cookie_name: str = "SESAME_SESSION"
    short_session_duration_seconds: int = 180
    long_session_duration_seconds: int = 60 * 60 * 24 * 90

    # --- accounts ---
    account_lifetime_days: int = 30

    # --- WebAuthn / Passkeys ---
    rp_id: str = ""
    rp_name: str = "Sesame"
    origin: str = ""
    webauthn_ttl_seconds: int = 300
    user_verification: str = "preferred"
    attestation: str = "none"
    android_apps: list[AndroidApp] = []
    associated_sites: list[str] = []  # published as web targets in assetlinks.json

    # --- federation ---
    secret: str = ""
    id_token_lifetime_seconds: int = 60 * 60 * 24
    identity_providers: list[IdentityProviderConfig] = []
    relying_parties: list[RelyingPartyConfig] = []

    _ephemeral_secret: str | None = PrivateAttr(default=None)

    @property
    def short_session_duration(self) -> timedelta:
        return timedelta(seconds=self.short_session_duration_seconds)

    @property
    def long_session_duration(self) -> timedelta:
        return timedelta(seconds=self.long_session_duration_seconds)

    @property
    def account_lifetime(self) -> timedelta:
        return timedelta(days=self.account_lifetime_days)

    @property
    def id_token_lifetime(self) -> timedelta:
        return timedelta(seconds=self.id_token_lifetime_seconds)

    @property
    def cookie_secure(self) -> bool:
        return self.env == "production"

    def effective_cookie_name(self) -> str:
        """Return the session cookie name, ``__Secure-`` prefixed outside development."""
        if self.cookie_secure:
            return f"__Secure-{self.session_cookie_name}"
        return self.session_cookie_name

    def effective_secret(self) -> str:
        """Return the token signing secret, generating an ephemeral one in dev mode."""
        if self.secret:
            return self.secret
        if self.env == "production":
            raise RuntimeError("SESAME_SECRET must be set in production mode.")
        if self._ephemeral_secret is None:
            self._ephemeral_secret = secrets.token_urlsafe(32)
            warnings.warn(
                "Using an ephemeral identity token secret. Set SESAME_SECRET for production.",
                UserWarning,
                stacklevel=2,
            )
        return self._ephemeral_secret

    def effective_rp_id(self) -> str:
        """Return the WebAuthn relying party ID."""
        if self.rp_id:
            return self.rp_id
        if self.env == "production":
            raise RuntimeError("SESAME_RP_ID must be set in production mode.")
        warnings.warn(
            "Using 'localhost' as WebAuthn RP ID. Set SESAME_RP_ID for production.",
            UserWarning,
            stacklevel=2,
        )
        return "localhost"

    def effective_origin(self) -> str:
        """Return the expected WebAuthn origin."""
        if self.origin:
            return self.origin
        if self.env == "production":
            raise RuntimeError("SESAME_ORIGIN must be set in production mode.")
        warnings.warn(
            "Using 'http://localhost:8000' as WebAuthn origin. Set SESAME_ORIGIN for production.",
            UserWarning,
            stacklevel=2,
        )
        return "http://localhost:8000"
