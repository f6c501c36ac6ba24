"""Tests for the ``/.well-known`` documents."""

from __future__ import annotations

from fastapi.testclient import TestClient

from sesame.app import create_app
from sesame.config import AndroidApp

FINGERPRINT = "AB:CD:" + ":".join(["00"] * 30)


class TestWellKnown:
    def test_webidentity(self, client: TestClient):
        r = client.get("/.well-known/webidentity")
        assert r.status_code == 200
        assert r.json() == {"provider_urls": ["http://localhost:8000/fedcm/config.json"]}

    def test_passkey_endpoints(self, client: TestClient):
        r = client.get("/.well-known/passkey-endpoints")
        assert r.json() == {
            "enroll": "http://localhost:8000/home",
            "manage": "http://localhost:8000/home",
        }

    def test_assetlinks_empty_by_default(self, client: TestClient):
        assert client.get("/.well-known/assetlinks.json").json() == []

    def test_assetlinks(self, settings):
        configured = settings.model_copy(
            update={
                "android_apps": [
                    AndroidApp(package_name="com.example.sesame", sha256_cert_fingerprint=FINGERPRINT)
                ],
                "associated_sites": ["https://sesame.example"],
            }
        )
        with TestClient(create_app(configured)) as c:
            links = c.get("/.well-known/assetlinks.json").json()
        relation = ["delegate_permission/common.get_login_creds"]
        assert links == [
            {
                "relation": relation,
                "target": {
                    "namespace": "android_app",
                    "package_name": "com.example.sesame",
                    "sha256_cert_fingerprints": [FINGERPRINT],
                },
            },
            {"relation": relation, "target": {"namespace": "web", "site": "https://sesame.example"}},
        ]
