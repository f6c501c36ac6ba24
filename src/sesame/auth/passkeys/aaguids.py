"""Human-readable passkey names from authenticator model identifiers."""

from __future__ import annotations

import re

ZERO_AAGUID = "00000000-0000-0000-0000-000000000000"

# Passkey providers commonly seen in the wild.
KNOWN_AAGUIDS: dict[str, str] = {
    "ea9b8d66-4d01-1d21-3ce4-b6b48cb575d4": "Google Password Manager",
    "adce0002-35bc-c60a-648b-0b25f1f05503": "Chrome on Mac",
    "fbfc3007-154e-4ecc-8c0b-6e020557d7bd": "iCloud Keychain",
    "08987058-cadc-4b81-b6e1-30de50dcbe96": "Windows Hello",
    "9ddd1817-af5a-4672-a2b9-3e3dd95000a9": "Windows Hello",
    "6028b017-b1d4-4c02-b4b3-afcdafc96bb2": "Windows Hello",
    "bada5566-a7aa-401f-bd96-45619a55120d": "1Password",
    "d548826e-79b4-db40-a3d8-11116f7e8349": "Bitwarden",
}

_PLATFORMS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"Android"), "Android"),
    (re.compile(r"iPhone|iPad|iPod"), "iOS"),
    (re.compile(r"CrOS"), "ChromeOS"),
    (re.compile(r"Macintosh|Mac OS X"), "macOS"),
    (re.compile(r"Windows"), "Windows"),
    (re.compile(r"Linux"), "Linux"),
]


def platform_from_user_agent(user_agent: str | None) -> str:
    for pattern, name in _PLATFORMS:
        if user_agent and pattern.search(user_agent):
            return name
    return "Unknown"


def credential_name(aaguid: str | None, user_agent: str | None) -> str:
    """Name a credential after its provider, falling back to the client platform."""
    if aaguid and aaguid != ZERO_AAGUID and aaguid in KNOWN_AAGUIDS:
        return KNOWN_AAGUIDS[aaguid]
    return platform_from_user_agent(user_agent)
