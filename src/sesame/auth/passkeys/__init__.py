"""Passkey (WebAuthn) ceremonies and credential storage."""

from sesame.auth.passkeys.service import CredentialCeremonies
from sesame.auth.passkeys.webauthn import WebAuthnVerifier, resolve_expected_origin

__all__ = ["CredentialCeremonies", "WebAuthnVerifier", "resolve_expected_origin"]
