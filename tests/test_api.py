"""Tests for the API endpoints."""

from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from apps.api.main import app, create_app
from packages.common.config import Settings

OCTET_STREAM = {"content-type": "application/octet-stream"}


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(app)


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, client: TestClient) -> None:
        """Test /health returns 200 status code."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        """Test /health returns healthy status."""
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"

    def test_health_returns_limits(self, client: TestClient) -> None:
        """Test /health includes the configured limits."""
        data = client.get("/health").json()
        assert "max_archive_bytes" in data["limits"]
        assert "preview_limit" in data["limits"]


class TestImportEndpoint:
    """Tests for POST /import."""

    def test_import_success(self, client: TestClient, sample_apkg: bytes) -> None:
        response = client.post(
            "/import",
            params={"filename": "python.apkg"},
            content=sample_apkg,
            headers=OCTET_STREAM,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["database_entry"] == "collection.anki2"
        assert len(data["notes"]) == 3
        assert len(data["cards"]) == 4
        assert data["statistics"]["orphaned_cards"] == 1
        assert data["previews"][0]["front"] == "What is a <b>list</b> in Python?"

    def test_import_preview_count(self, client: TestClient, sample_apkg: bytes) -> None:
        response = client.post("/import", params={"previews": 1}, content=sample_apkg, headers=OCTET_STREAM)

        assert response.status_code == 200
        assert len(response.json()["previews"]) == 1

    def test_negative_previews_rejected(self, client: TestClient, sample_apkg: bytes) -> None:
        response = client.post("/import", params={"previews": -1}, content=sample_apkg, headers=OCTET_STREAM)
        assert response.status_code == 422  # Validation error

    def test_empty_body(self, client: TestClient) -> None:
        response = client.post("/import", content=b"", headers=OCTET_STREAM)
        assert response.status_code == 400

    def test_corrupt_archive(self, client: TestClient) -> None:
        """Import failures map to 422 with their kind."""
        response = client.post("/import", content=b"definitely not a zip", headers=OCTET_STREAM)

        assert response.status_code == 422
        data = response.json()
        assert data["kind"] == "ArchiveCorrupt"
        assert data["message"]

    def test_missing_manifest(
        self,
        client: TestClient,
        make_apkg: Callable[..., bytes],
        collection_bytes: bytes,
    ) -> None:
        data = make_apkg({"collection.anki2": collection_bytes})

        response = client.post("/import", content=data, headers=OCTET_STREAM)

        assert response.status_code == 422
        assert response.json()["kind"] == "MissingMediaManifest"

    def test_media_rejected_with_details(
        self,
        client: TestClient,
        make_apkg: Callable[..., bytes],
        collection_bytes: bytes,
    ) -> None:
        data = make_apkg({"collection.anki2": collection_bytes, "media": '{"0": "cat.jpg"}', "0": b"jpeg"})

        response = client.post("/import", content=data, headers=OCTET_STREAM)

        assert response.status_code == 422
        body = response.json()
        assert body["kind"] == "MediaNotSupported"
        assert body["remediation"]
        assert body["details"][0]["location"] == "Archive entries"
        assert body["details"][0]["media"][0]["reference"] == "0"


class TestUploadLimit:
    """Tests for the upload size limit."""

    def test_oversized_upload(self, monkeypatch: pytest.MonkeyPatch, sample_apkg: bytes) -> None:
        small = Settings(_env_file=None, max_archive_bytes=100)
        monkeypatch.setattr("apps.api.main.get_settings", lambda: small)
        client = TestClient(create_app())

        response = client.post("/import", content=sample_apkg, headers=OCTET_STREAM)

        assert response.status_code == 413

    def test_within_limit(self, monkeypatch: pytest.MonkeyPatch, sample_apkg: bytes) -> None:
        roomy = Settings(_env_file=None, max_archive_bytes=len(sample_apkg))
        monkeypatch.setattr("apps.api.main.get_settings", lambda: roomy)
        client = TestClient(create_app())

        response = client.post("/import", content=sample_apkg, headers=OCTET_STREAM)

        assert response.status_code == 200
