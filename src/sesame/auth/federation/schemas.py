"""Pydantic schemas for federation and FedCM endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from sesame.auth.schemas import UserResponse

# -- Relying-party side --


class ProviderLookupRequest(BaseModel):
    urls: list[str] = Field(..., min_length=1, description="Identity provider URLs to resolve.")


class ProviderInfo(BaseModel):
    origin: str = Field(..., description="Identity provider origin.")
    config_url: str = Field(..., alias="configURL", description="FedCM config file URL.")
    client_id: str = Field(..., alias="clientId", description="Client ID registered at the IdP.")

    model_config = {"populate_by_name": True}


class VerifyRequest(BaseModel):
    token: str = Field(..., description="Raw identity token returned by the provider.")
    url: str = Field(..., description="Identity provider URL that issued the token.")


class VerifyResponse(BaseModel):
    user: UserResponse = Field(..., description="Signed-in user.")
    outcome: str = Field(
        ...,
        description=(
            "created_user, linked_existing, already_linked, or duplicate_mappings when "
            "more than one mapping exists for the issuer."
        ),
    )


# -- Identity-provider side --


class IdTokenRequest(BaseModel):
    client_id: str = Field(..., description="Client ID of the requesting relying party.")
    nonce: str = Field(..., description="Nonce to bind into the token.")
    account_id: str = Field(..., description="Account the user picked in the browser.")
    consent_acquired: bool = Field(False, description="Whether the browser showed consent.")
    disclosure_text_shown: bool = Field(False, description="Whether disclosure text was shown.")


class IdTokenResponse(BaseModel):
    token: str = Field(..., description="Signed identity token.")


class DisconnectRequest(BaseModel):
    client_id: str = Field(..., description="Relying party client ID to disconnect.")
    account_hint: str = Field(..., description="Account ID the relying party knows.")


class DisconnectResponse(BaseModel):
    account_id: str = Field(..., description="Account that was disconnected.")
