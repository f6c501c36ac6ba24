"""Federated sign-in as a relying party and FedCM identity-provider endpoints."""

from sesame.auth.federation.service import (
    FederationCeremonies,
    FederationOutcome,
    FederationResult,
)
from sesame.auth.federation.tokens import IdTokenVerifier

__all__ = ["FederationCeremonies", "FederationOutcome", "FederationResult", "IdTokenVerifier"]
