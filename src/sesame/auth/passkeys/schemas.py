"""Pydantic schemas for passkey (WebAuthn) endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from sesame.auth.schemas import UserResponse

# -- Ceremonies --


class CredentialResponseRequest(BaseModel):
    """Browser ``PublicKeyCredential`` serialized with ``toJSON()``."""

    id: str = Field(..., description="Credential ID, base64url.")
    raw_id: str = Field(..., alias="rawId", description="Credential ID, base64url.")
    type: str = Field("public-key", description="Credential type.")
    response: dict = Field(..., description="Attestation or assertion response.")
    authenticator_attachment: str | None = Field(
        None, alias="authenticatorAttachment", description="Reported authenticator attachment."
    )
    client_extension_results: dict = Field(
        default_factory=dict,
        alias="clientExtensionResults",
        description="Client extension outputs.",
    )

    model_config = {"populate_by_name": True}

    def as_credential(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# -- Management --


class PasskeyInfo(BaseModel):
    id: str = Field(..., description="Credential ID, base64url.")
    name: str = Field(..., description="Human-readable passkey name.")
    aaguid: str | None = Field(None, description="Authenticator model identifier.")
    device_type: str = Field(..., description="single_device or multi_device.")
    backed_up: bool = Field(..., description="Whether the passkey is synced.")
    registered_at: datetime = Field(..., description="Registration timestamp in UTC.")
    last_used_at: datetime | None = Field(None, description="Last successful use timestamp.")


class PasskeyRegisterResponse(BaseModel):
    user: UserResponse = Field(..., description="Account the passkey was registered to.")
    credential: PasskeyInfo = Field(..., description="The newly stored passkey.")


class PasskeyListResponse(BaseModel):
    passkeys: list[PasskeyInfo] = Field(..., description="Passkeys for the current user.")


class PasskeyRenameRequest(BaseModel):
    credential_id: str = Field(..., alias="credId", description="Credential ID to rename.")
    new_name: str = Field(
        ..., alias="newName", min_length=1, max_length=64, description="New passkey name."
    )

    # Stripped before the length check, so blank names are rejected.
    model_config = {"str_strip_whitespace": True}


class PasskeyRemoveRequest(BaseModel):
    credential_id: str = Field(..., alias="credId", description="Credential ID to remove.")

