"""Static identity-provider and relying-party directories."""

from __future__ import annotations

from urllib.parse import urlsplit

from sesame.config import IdentityProviderConfig, RelyingPartyConfig


def url_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for *url*, or ``""`` if it has no host or is malformed."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}".lower()


class IdentityProviders:
    def __init__(self, providers: list[IdentityProviderConfig]) -> None:
        self._providers = list(providers)

    def find_by_origin(self, url: str) -> IdentityProviderConfig | None:
        origin = url_origin(url)
        if not origin:
            return None
        for idp in self._providers:
            if url_origin(idp.origin) == origin:
                return idp.model_copy()
        return None


class RelyingParties:
    def __init__(self, parties: list[RelyingPartyConfig]) -> None:
        self._parties = list(parties)

    def find_by_client_id(self, client_id: str) -> RelyingPartyConfig | None:
        for rp in self._parties:
            if rp.client_id == client_id:
                return rp.model_copy()
        return None
