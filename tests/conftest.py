"""Common test fixtures and helpers."""

from __future__ import annotations

import os
import subprocess
import sys
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from sesame.app import create_app
from sesame.auth.errors import CredentialVerificationFailed
from sesame.auth.ids import bytes_to_base64url
from sesame.auth.passkeys.aaguids import ZERO_AAGUID
from sesame.auth.passkeys.webauthn import RegistrationResult, WebAuthnVerifier
from sesame.config import IdentityProviderConfig, RelyingPartyConfig, Settings

XHR = {"X-Requested-With": "XMLHttpRequest"}
FEDCM = {"Sec-Fetch-Dest": "webidentity"}

IDP_ORIGIN = "https://idp.example"
IDP_CLIENT_ID = "sesame-rp"
IDP_SECRET = "idp-shared-secret-0123456789abcdef"
RP_ORIGIN = "https://rp.example"
RP_CLIENT_ID = "rp-client-1"
TOKEN_SECRET = "sesame-token-secret-0123456789abcdef"


def run_cli(*args: str, env_override: dict[str, str] | None = None) -> subprocess.CompletedProcess:
    """Run the CLI via ``python -m sesame``."""
    env = os.environ.copy()
    if env_override:
        env.update(env_override)
    return subprocess.run(
        [sys.executable, "-m", "sesame", *args],
        capture_output=True,
        text=True,
        env=env,
    )


class FakeWebAuthnVerifier(WebAuthnVerifier):
    """Builds real options but accepts any response that echoes the bound challenge.

    Test credentials carry ``response.challenge`` (and optionally
    ``response.aaguid``) in place of authenticator data.
    """

    def verify_registration(
        self, *, credential: dict[str, Any], expected_challenge: str, expected_origin: str
    ) -> RegistrationResult:
        response = credential.get("response", {})
        if response.get("challenge") != expected_challenge:
            raise CredentialVerificationFailed()
        return RegistrationResult(
            credential_id=credential["rawId"],
            public_key=b"public-key:" + credential["rawId"].encode(),
            sign_count=0,
            aaguid=response.get("aaguid", ZERO_AAGUID),
            credential_type="public-key",
            user_verified=True,
            device_type="multi_device",
            backed_up=True,
        )

    def verify_authentication(
        self,
        *,
        credential: dict[str, Any],
        expected_challenge: str,
        expected_origin: str,
        public_key: bytes,
        sign_count: int,
    ) -> int:
        if credential.get("response", {}).get("challenge") != expected_challenge:
            raise CredentialVerificationFailed()
        return sign_count + 1


def credential_id(label: str) -> str:
    return bytes_to_base64url(label.encode())


def fake_credential(cred_id: str, challenge: str, **response: Any) -> dict[str, Any]:
    return {
        "id": cred_id,
        "rawId": cred_id,
        "type": "public-key",
        "response": {"challenge": challenge, **response},
    }


def idp_token(nonce: str | None, **claims: Any) -> str:
    """Sign an identity token the way the configured test provider would."""
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "iss": IDP_ORIGIN,
        "aud": IDP_CLIENT_ID,
        "sub": "idp-subject-1",
        "iat": now,
        "exp": now + timedelta(minutes=5),
        **claims,
    }
    if nonce is not None:
        payload["nonce"] = nonce
    return jwt.encode(payload, IDP_SECRET, algorithm="HS256")


def age_session(monkeypatch: pytest.MonkeyPatch, seconds: int = 600) -> None:
    """Move the session clock forward so a recent sign-in is no longer recent."""
    later = datetime.now(UTC) + timedelta(seconds=seconds)
    monkeypatch.setattr("sesame.auth.session._utcnow", lambda: later)


def password_signup(client: TestClient, username: str, password: str = "s3cret") -> dict:
    r = client.post(
        "/auth/new-username-password",
        json={"username": username, "password": password},
        headers=XHR,
    )
    assert r.status_code == 200, r.text
    return r.json()


def passkey_signup(client: TestClient, username: str, cred_id: str) -> dict:
    r = client.post("/auth/new-user", json={"username": username}, headers=XHR)
    assert r.status_code == 200, r.text
    opts = client.post("/webauthn/registerRequest", headers=XHR).json()
    r = client.post(
        "/webauthn/registerResponse",
        json=fake_credential(cred_id, opts["challenge"]),
        headers=XHR,
    )
    assert r.status_code == 200, r.text
    return r.json()


def signout(client: TestClient) -> None:
    assert client.post("/auth/signout", headers=XHR).status_code == 200


def status_of(client: TestClient) -> str:
    return client.post("/auth/status", headers=XHR).json()["status"]


@pytest.fixture()
def settings(tmp_path):
    db_path = tmp_path / "test.db"
    return Settings(
        database_url=f"sqlite:///{db_path}",
        env="development",
        rp_id="localhost",
        origin="http://localhost:8000",
        secret=TOKEN_SECRET,
        identity_providers=[
            IdentityProviderConfig(
                origin=IDP_ORIGIN,
                config_url=f"{IDP_ORIGIN}/fedcm.json",
                client_id=IDP_CLIENT_ID,
                secret=IDP_SECRET,
            )
        ],
        relying_parties=[
            RelyingPartyConfig(origin=RP_ORIGIN, client_id=RP_CLIENT_ID, name="Example RP")
        ],
    )


@pytest.fixture()
def app(settings):
    application = create_app(settings)
    application.state.passkey_ceremonies.verifier = FakeWebAuthnVerifier(settings)
    return application


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def sync_db(settings, client):
    """Synchronous session on the app's database, for seeding and inspection."""
    engine = create_engine(settings.database_url)
    with Session(engine) as session:
        yield session
    engine.dispose()
