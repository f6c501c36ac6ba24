"""Thin wrapper around py_webauthn for option construction and verification."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import (
    parse_authentication_credential_json,
    parse_registration_credential_json,
)
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorAttachment,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from sesame.auth.errors import CredentialVerificationFailed
from sesame.auth.ids import base64url_to_bytes, bytes_to_base64url
from sesame.config import AndroidApp, Settings

_APP_NAME_RE = re.compile(r"^[a-zA-Z0-9_.]+")
_TRANSPORTS = {t.value for t in AuthenticatorTransport}


def resolve_expected_origin(
    user_agent: str | None,
    android_apps: list[AndroidApp],
    default_origin: str,
) -> str:
    """Return the origin a ceremony must have been run from.

    Android apps identify themselves by package name at the start of the
    user agent; their origin is the base64url SHA-256 of the signing cert.
    """
    match = _APP_NAME_RE.match(user_agent or "")
    if match is None:
        return default_origin
    for app in android_apps:
        if app.package_name == match.group(0):
            digest = bytes.fromhex(app.sha256_cert_fingerprint.replace(":", ""))
            return f"android:apk-key-hash:{bytes_to_base64url(digest)}"
    return default_origin


@dataclass(frozen=True)
class RegistrationResult:
    credential_id: str  # base64url
    public_key: bytes
    sign_count: int
    aaguid: str
    credential_type: str
    user_verified: bool
    device_type: str
    backed_up: bool


def _descriptor(credential_id: str, transports: list[str] | None) -> PublicKeyCredentialDescriptor:
    return PublicKeyCredentialDescriptor(
        id=base64url_to_bytes(credential_id),
        transports=[AuthenticatorTransport(t) for t in transports or [] if t in _TRANSPORTS],
    )


class WebAuthnVerifier:
    """Builds ceremony options and verifies authenticator responses for one relying party."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def rp_id(self) -> str:
        return self.settings.effective_rp_id()

    def _uv(self) -> UserVerificationRequirement:
        return UserVerificationRequirement(self.settings.user_verification)

    def registration_options(
        self,
        *,
        user_handle: str,
        user_name: str,
        user_display_name: str,
        challenge: str,
        exclude: list[tuple[str, list[str]]],
    ) -> dict[str, Any]:
        """Build PublicKeyCredentialCreationOptions and return as JSON-safe dict."""
        opts = generate_registration_options(
            rp_id=self.rp_id,
            rp_name=self.settings.rp_name,
            user_id=base64url_to_bytes(user_handle),
            user_name=user_name,
            user_display_name=user_display_name,
            challenge=base64url_to_bytes(challenge),
            timeout=self.settings.webauthn_ttl_seconds * 1000,
            attestation=AttestationConveyancePreference(self.settings.attestation),
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=AuthenticatorAttachment.PLATFORM,
                resident_key=ResidentKeyRequirement.REQUIRED,
                user_verification=self._uv(),
            ),
            exclude_credentials=[_descriptor(cid, tr) for cid, tr in exclude],
        )
        result: dict[str, Any] = json.loads(options_to_json(opts))
        return result

    def authentication_options(
        self,
        *,
        challenge: str,
        allow: list[tuple[str, list[str]]],
    ) -> dict[str, Any]:
        """Build PublicKeyCredentialRequestOptions and return as JSON-safe dict."""
        opts = generate_authentication_options(
            rp_id=self.rp_id,
            challenge=base64url_to_bytes(challenge),
            timeout=self.settings.webauthn_ttl_seconds * 1000,
            user_verification=self._uv(),
            allow_credentials=[_descriptor(cid, tr) for cid, tr in allow],
        )
        result: dict[str, Any] = json.loads(options_to_json(opts))
        return result

    def verify_registration(
        self,
        *,
        credential: dict[str, Any],
        expected_challenge: str,
        expected_origin: str,
    ) -> RegistrationResult:
        try:
            cred = parse_registration_credential_json(json.dumps(credential))
            verified = verify_registration_response(
                credential=cred,
                expected_challenge=base64url_to_bytes(expected_challenge),
                expected_rp_id=self.rp_id,
                expected_origin=expected_origin,
            )
        except (WebAuthnException, ValueError, KeyError, TypeError) as exc:
            raise CredentialVerificationFailed() from exc
        return RegistrationResult(
            credential_id=bytes_to_base64url(verified.credential_id),
            public_key=verified.credential_public_key,
            sign_count=verified.sign_count,
            aaguid=verified.aaguid,
            credential_type=str(verified.credential_type.value),
            user_verified=verified.user_verified,
            device_type=str(verified.credential_device_type.value),
            backed_up=verified.credential_backed_up,
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
        """Verify an authentication response. Returns the new signature counter."""
        try:
            cred = parse_authentication_credential_json(json.dumps(credential))
            verified = verify_authentication_response(
                credential=cred,
                expected_challenge=base64url_to_bytes(expected_challenge),
                expected_rp_id=self.rp_id,
                expected_origin=expected_origin,
                credential_public_key=public_key,
                credential_current_sign_count=sign_count,
            )
        except (WebAuthnException, ValueError, KeyError, TypeError) as exc:
            raise CredentialVerificationFailed() from exc
        new_sign_count: int = verified.new_sign_count
        return new_sign_count
