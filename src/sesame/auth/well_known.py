"""``/.well-known`` documents for browsers and Android credential managers."""

from __future__ import annotations

from fastapi import APIRouter, Request

from sesame.config import Settings

router = APIRouter(prefix="/.well-known", tags=["well-known"])

_GET_LOGIN_CREDS = "delegate_permission/common.get_login_creds"


def _settings(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


@router.get("/assetlinks.json", summary="Digital Asset Links")
async def assetlinks(request: Request) -> list[dict]:
    """Share credentials with the configured Android apps and associated sites."""
    settings = _settings(request)
    links: list[dict] = [
        {
            "relation": [_GET_LOGIN_CREDS],
            "target": {
                "namespace": "android_app",
                "package_name": android.package_name,
                "sha256_cert_fingerprints": [android.sha256_cert_fingerprint],
            },
        }
        for android in settings.android_apps
    ]
    links.extend(
        {"relation": [_GET_LOGIN_CREDS], "target": {"namespace": "web", "site": site}}
        for site in settings.associated_sites
    )
    return links


@router.get("/webidentity", summary="FedCM well-known file")
async def webidentity(request: Request) -> dict:
    origin = _settings(request).effective_origin()
    return {"provider_urls": [f"{origin}/fedcm/config.json"]}


@router.get("/passkey-endpoints", summary="Passkey management endpoints")
async def passkey_endpoints(request: Request) -> dict:
    home = f"{_settings(request).effective_origin()}/home"
    return {"enroll": home, "manage": home}
