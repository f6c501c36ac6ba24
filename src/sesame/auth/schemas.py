"""Pydantic schemas for account and session endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class UsernameRequest(BaseModel):
    username: str = Field(..., description="Username to sign up or sign in with.")


class PasswordRequest(BaseModel):
    password: str = Field(..., description="Cleartext password to set or verify.")


class UsernamePasswordRequest(BaseModel):
    username: str = Field(..., description="Username for a one-shot password flow.")
    password: str = Field(..., description="Cleartext password.")


class PasswordChangeRequest(BaseModel):
    password: str = Field(..., description="New cleartext password.")


class DisplayNameRequest(BaseModel):
    new_name: str = Field(
        ...,
        alias="newName",
        min_length=1,
        description="New display name for the signed-in user.",
    )


class UserResponse(BaseModel):
    id: str = Field(..., description="User ID that starts with the u prefix.")
    username: str = Field(..., description="Unique username.")
    display_name: str = Field(..., alias="displayName", description="Display name.")
    email: str = Field(..., description="Contact email.")
    picture: str = Field(..., description="Avatar URL.")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_user(cls, user: Any) -> UserResponse:
        return cls(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            email=user.email,
            picture=user.picture,
        )


class StatusResponse(BaseModel):
    status: str = Field(..., description="Derived sign-in status name.")
    username: str | None = Field(None, description="Candidate or signed-in username.")


class MessageResponse(BaseModel):
    message: str = Field(..., description="Human-readable response message.")


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str = Field(..., description="User-facing error message.")
