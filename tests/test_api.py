"""Unit tests for API endpoints."""
import asyncio
import inspect
import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch
from shared.exceptions import StoreUnavailableError
from shared.models import Category, TranslationResult, ViolationType
from api.main import create_app

API_KEY = "test_api_key_123"
INTERNAL_TOKEN = "test_internal_token"
AUTH = {"X-API-Key": API_KEY}
INTERNAL = {"X-Internal-Token": INTERNAL_TOKEN}


@pytest.fixture
def client(services):
    app = create_app(services=services, run_maintenance=False)
    return TestClient(app)


def _upload(client, name="invoice.txt", content=b"invoice payment due", media_type="text/plain"):
    return client.post("/upload/single", headers=AUTH, files={"file": (name, content, media_type)})


class TestUpload:
    """Tests for upload endpoints."""

    def test_upload_single_file_success(self, client):
        """Test successful single file upload."""
        response = _upload(client)

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is True
        assert data["document"]["name"] == "invoice.txt"
        assert data["document"]["category"] == Category.FINANCIAL.value
        assert response.headers["X-Correlation-ID"]

    def test_upload_single_file_no_api_key(self, client):
        """Test upload without API key."""
        response = client.post("/upload/single", files={"file": ("test.txt", b"text", "text/plain")})

        assert response.status_code == 401

    def test_upload_invalid_api_key_is_recorded(self, client, services):
        response = client.post(
            "/upload/single",
            headers={"X-API-Key": "wrong"},
            files={"file": ("test.txt", b"text", "text/plain")}
        )

        assert response.status_code == 401
        assert services.recorder.get_violations(violation_type=ViolationType.UNAUTHORIZED_ACCESS)

    def test_rejected_upload_returns_violations(self, client, blob_store):
        response = _upload(client, name="invoice.pdf.exe", content=b"MZ\x90\x00", media_type="application/x-msdownload")

        assert response.status_code == 400
        data = response.json()
        assert data["accepted"] is False
        assert "type not allowed: application/x-msdownload" in data["violations"]
        blob_store.upload_file.assert_not_called()

    def test_upload_rate_limited(self, client, services):
        services.policy.update(rate_limits={"upload": 2})

        statuses = [_upload(client).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        response = _upload(client)
        assert int(response.headers["Retry-After"]) == 60
        assert response.json()["detail"]["reset_at"] == services.rate_limiter.clock() + 60_000

    def test_store_outage_returns_503(self, client, blob_store):
        blob_store.upload_file.side_effect = StoreUnavailableError("Blob store unavailable", "connection refused")

        response = _upload(client)

        assert response.status_code == 503
        assert response.json()["type"] == "StoreUnavailableError"

    def test_bulk_upload(self, client):
        files = [
            ("files", ("a.txt", b"contract agreement", "text/plain")),
            ("files", ("b.exe", b"MZ", "text/plain")),
        ]

        response = client.post("/upload/bulk", headers=AUTH, files=files)

        assert response.status_code == 200
        data = response.json()
        assert data["total_files"] == 2
        assert data["successful"] == 1
        assert data["failed"] == 1

    def test_ingest_runs_outside_the_event_loop(self, client, services):
        ingest = services.pipeline.ingest
        running_loops = []

        def tracking_ingest(request):
            try:
                running_loops.append(asyncio.get_running_loop())
            except RuntimeError:
                running_loops.append(None)
            return ingest(request)

        with patch.object(services.pipeline, "ingest", side_effect=tracking_ingest):
            assert _upload(client).status_code == 200

        assert running_loops == [None]


class TestSearch:
    """Tests for search endpoints."""

    def test_search_round_trip(self, client):
        document_id = _upload(client).json()["document"]["id"]

        response = client.post("/search", headers=AUTH, json={"free_text": "invoice"})

        assert response.status_code == 200
        data = response.json()
        assert data["total_count"] == 1
        assert data["documents"][0]["id"] == document_id

    def test_empty_search_returns_everything(self, client):
        _upload(client)
        _upload(client, name="lease.txt", content=b"contract agreement")

        response = client.post("/search", headers=AUTH, json={})

        assert response.json()["total_count"] == 2

    def test_advanced_search_sorting(self, client):
        _upload(client, name="b.txt", content=b"invoice")
        _upload(client, name="a.txt", content=b"contract")

        response = client.post("/search/advanced", headers=AUTH, json={"sort_by": "name", "sort_order": "asc"})

        assert [d["name"] for d in response.json()["documents"]] == ["a.txt", "b.txt"]

    def test_invalid_limit_rejected(self, client):
        response = client.post("/search", headers=AUTH, json={"limit": 500})

        assert response.status_code == 422

    def test_suggestions_and_popular(self, client):
        _upload(client)

        suggestions = client.get("/search/suggestions", headers=AUTH, params={"q": "inv"})
        popular = client.get("/search/popular", headers=AUTH)

        assert "invoice.txt" in suggestions.json()["suggestions"]
        assert "invoice" in popular.json()["terms"]


class TestDocuments:
    """Tests for document endpoints."""

    def test_delete_document(self, client, blob_store):
        document_id = _upload(client).json()["document"]["id"]

        response = client.delete(f"/documents/{document_id}", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["deleted"] is True
        blob_store.delete_prefix.assert_called_once()
        assert client.get(f"/documents/{document_id}", headers=AUTH).status_code == 404

    def test_delete_missing_document(self, client):
        response = client.delete("/documents/00000000-0000-0000-0000-000000000000", headers=AUTH)

        assert response.status_code == 404

    def test_category_stats(self, client):
        _upload(client)

        stats = client.get("/documents/stats/categories", headers=AUTH).json()

        assert stats["Financial"] == 1
        assert stats["Legal"] == 0

    def test_translate_document(self, client, services):
        document_id = _upload(client).json()["document"]["id"]
        services.translator.translate.return_value = TranslationResult(
            translated_text="factura", source_language="en", target_language="es", confidence=0.9
        )

        response = client.post(f"/documents/{document_id}/translate", headers=AUTH, json={"target_language": "es"})

        assert response.status_code == 200
        assert response.json()["translated_text"] == "factura"
        services.translator.translate.assert_called_once_with("invoice payment due", "es", source_language="en")

    def test_translate_unsupported_language(self, client):
        document_id = _upload(client).json()["document"]["id"]

        response = client.post(f"/documents/{document_id}/translate", headers=AUTH, json={"target_language": "xx"})

        assert response.status_code == 400


class TestLogin:
    """Tests for the login endpoint."""

    def test_login_success(self, client):
        response = client.post("/auth/login", json={"identifier": "owner@example.com", "password": "correct-password"})

        assert response.status_code == 200
        assert response.json()["owner_id"] == "owner-1"

    def test_bad_password(self, client):
        response = client.post("/auth/login", json={"identifier": "owner@example.com", "password": "nope"})

        assert response.status_code == 401

    def test_lockout_after_repeated_failures(self, client, services, mock_auth):
        services.policy.update(rate_limits={"login": 100})
        for _ in range(4):
            assert client.post(
                "/auth/login", json={"identifier": "owner@example.com", "password": "nope"}
            ).status_code == 401

        locked = client.post("/auth/login", json={"identifier": "owner@example.com", "password": "nope"})
        correct = client.post(
            "/auth/login", json={"identifier": "owner@example.com", "password": "correct-password"}
        )

        assert locked.status_code == 429
        lockout_until = locked.json()["detail"]["lockout_until"]
        assert lockout_until == services.login_guard.clock() + 15 * 60 * 1000
        assert correct.status_code == 429
        assert correct.json()["detail"]["lockout_until"] == lockout_until
        assert mock_auth.verify_credentials.call_count == 5


class TestSecurityAdmin:
    """Tests for internal security endpoints."""

    def test_requires_internal_token(self, client):
        assert client.get("/security/metrics").status_code == 401
        assert client.get("/security/metrics", headers={"X-Internal-Token": "wrong"}).status_code == 401

    def test_violations_and_metrics(self, client):
        _upload(client, name="setup.exe", content=b"MZ", media_type="text/plain")

        violations = client.get("/security/violations", headers=INTERNAL, params={"actor_id": "owner-1"}).json()
        metrics = client.get("/security/metrics", headers=INTERNAL).json()

        assert violations["total"] == 2
        assert metrics["violations_by_type"] == {"suspicious_activity": 2}
        assert metrics["violations_by_severity"] == {"high": 1, "critical": 1}

    def test_update_policy(self, client):
        response = client.put("/security/policy", headers=INTERNAL, json={"max_file_size_bytes": 10})

        assert response.status_code == 200
        assert response.json()["max_file_size_bytes"] == 10
        rejected = _upload(client)
        assert rejected.status_code == 400
        assert rejected.json()["violations"][0].startswith("file too large")

    def test_invalid_policy_rejected(self, client):
        response = client.put("/security/policy", headers=INTERNAL, json={"max_file_size_bytes": 0})

        assert response.status_code == 422

    def test_partial_rate_limits_keep_other_actions(self, client, services):
        response = client.put("/security/policy", headers=INTERNAL, json={"rate_limits": {"upload": 3}})

        assert response.status_code == 200
        assert response.json()["rate_limits"]["upload"] == 3
        assert services.policy.current.limit_for("login") == 5

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_rate_limit_rejected(self, client, services, limit):
        response = client.put("/security/policy", headers=INTERNAL, json={"rate_limits": {"upload": limit}})

        assert response.status_code == 422
        assert services.policy.current.limit_for("upload") == 10


class TestHealth:
    """Tests for health endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["message"] == "Document Vault API"

    @patch("api.routes.diagnostics.Minio")
    @patch("api.routes.diagnostics.psycopg2.connect")
    def test_diagnostics_reports_failures(self, mock_connect, mock_minio, client):
        mock_connect.side_effect = Exception("db down")

        data = client.get("/diagnostics/").json()

        assert data["status"] == "unhealthy"
        assert data["connections"]["database"]["error"] == "db down"
        assert data["connections"]["redis"]["status"] == "disabled"
        assert data["connections"]["minio"]["status"] == "connected"


class TestHandlers:
    """Handlers that touch stores must not run on the event loop."""

    def test_store_backed_handlers_are_sync(self, services):
        app = create_app(services=services, run_maintenance=False)
        prefixes = ("/search", "/documents", "/auth", "/security", "/diagnostics")
        endpoints = [route.endpoint for route in app.routes if getattr(route, "path", "").startswith(prefixes)]

        assert endpoints
        assert not any(inspect.iscoroutinefunction(endpoint) for endpoint in endpoints)
