"""
Tests for the FastAPI backend.

Registry access is replaced with the in-memory FakeRegistry through FastAPI
dependency overrides, so no AWS credentials are needed.
"""

from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import BASE_TIME, make_detail
from api import app, get_registry_client, get_stats_cache, parse_limit
from ecr_manager.config_manager import config_manager
from ecr_manager.global_stats import GlobalStatsCache


@pytest.fixture
def registry(fake_registry):
    return fake_registry({
        "web": [
            make_detail("sha256:w1", size=300, tags=["v1"], last_pull=BASE_TIME - timedelta(days=5)),
            make_detail("sha256:w2", size=900, tags=["v2"], last_pull=BASE_TIME - timedelta(days=1)),
            make_detail("sha256:w3", size=100, last_pull=BASE_TIME - timedelta(days=60)),
        ],
        "worker": [make_detail("sha256:k1", size=50)],
    })


@pytest.fixture
def client(registry):
    stats_cache = GlobalStatsCache(registry)
    app.dependency_overrides[get_registry_client] = lambda: registry
    app.dependency_overrides[get_stats_cache] = lambda: stats_cache
    with patch.object(config_manager, "get_api_key", return_value=""):
        yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "timestamp" in response.json()


class TestInventoryRoutes:
    def test_list_repositories(self, client):
        response = client.get("/api/repositories")
        assert response.status_code == 200
        assert response.json() == ["web", "worker"]

    def test_list_images(self, client):
        response = client.get("/api/images", params={"repository": "web"})
        assert response.status_code == 200
        body = response.json()
        assert [image["imageDigest"] for image in body] == ["sha256:w1", "sha256:w2", "sha256:w3"]
        assert body[0]["repositoryName"] == "web"
        assert body[0]["imageTag"] == "v1"
        assert body[0]["imagePullCount"] == 0
        assert body[2]["imageTag"] == ""

    @pytest.mark.parametrize("path", ["/api/images", "/api/images/largest", "/api/images/most-downloaded"])
    def test_repository_parameter_is_required(self, client, registry, path):
        response = client.get(path)
        assert response.status_code == 400
        assert response.json() == {"error": "repository parameter is required"}
        assert registry.list_image_calls == []

    def test_largest(self, client):
        response = client.get("/api/images/largest", params={"repository": "web", "limit": "2"})
        assert response.status_code == 200
        assert [image["imageDigest"] for image in response.json()] == ["sha256:w2", "sha256:w1"]

    def test_most_downloaded_orders_by_last_pull(self, client):
        response = client.get("/api/images/most-downloaded", params={"repository": "web"})
        assert [image["imageDigest"] for image in response.json()] == ["sha256:w2", "sha256:w1", "sha256:w3"]

    def test_unparseable_limit_uses_default(self, client):
        response = client.get("/api/images/largest", params={"repository": "web", "limit": "lots"})
        assert response.status_code == 200
        assert len(response.json()) == 3

    def test_fetch_failure_is_500(self, client, registry):
        registry.failing_repositories.add("web")
        response = client.get("/api/images", params={"repository": "web"})
        assert response.status_code == 500
        assert response.json()["error"].startswith("failed to describe images for repo web")

    def test_unexpected_error_is_json_500(self, client, registry):
        registry.list_repositories = Mock(side_effect=RuntimeError("boom"))
        response = TestClient(app, raise_server_exceptions=False).get("/api/repositories")
        assert response.status_code == 500
        assert response.json() == {"error": "boom"}


class TestGlobalStats:
    def test_global_stats(self, client):
        response = client.get("/api/global-stats")
        assert response.status_code == 200
        assert response.json() == {
            "totalRepositories": 2,
            "totalImages": 4,
            "totalSize": 1350,
            "topRepositoriesBySize": [
                {"name": "web", "size": 1300, "imageCount": 3},
                {"name": "worker", "size": 50, "imageCount": 1},
            ],
        }

    def test_second_request_is_served_from_cache(self, client, registry):
        client.get("/api/global-stats")
        calls = len(registry.list_image_calls)
        client.get("/api/global-stats")
        assert len(registry.list_image_calls) == calls

    def test_listing_failure_is_500(self, client, registry):
        registry.fail_listing = True
        response = client.get("/api/global-stats")
        assert response.status_code == 500
        assert "error" in response.json()


class TestDeleteRoutes:
    def test_delete_success(self, client, registry):
        response = client.post(
            "/api/images/delete",
            json={"repositoryName": "web", "imageDigests": ["sha256:w1", "sha256:w2"]},
        )
        assert response.status_code == 200
        assert response.json() == {"message": "Images deleted successfully", "deleted": 2}
        assert registry.delete_calls == [["sha256:w1", "sha256:w2"]]

    def test_delete_partial_is_206(self, client, registry):
        registry.item_failures = {"sha256:w2": "ImageNotFound"}
        response = client.post(
            "/api/images/delete",
            json={"repositoryName": "web", "imageDigests": ["sha256:w1", "sha256:w2"]},
        )
        assert response.status_code == 206
        assert response.json() == {
            "message": "Partially completed: 1 images deleted, but encountered 1 errors",
            "deleted": 1,
            "errors": ["Failed to delete image sha256:w2: ImageNotFound"],
        }

    @pytest.mark.parametrize("body", [
        {"repositoryName": "web"},
        {"imageDigests": ["sha256:w1"]},
        {"repositoryName": "web", "imageDigests": []},
    ])
    def test_delete_requires_repository_and_digests(self, client, registry, body):
        response = client.post("/api/images/delete", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "repositoryName and imageDigests are required"}
        assert registry.delete_calls == []

    def test_malformed_body_is_400(self, client):
        response = client.post("/api/images/delete", content="not json",
                               headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")

    def test_delete_by_date_selects_stale_images(self, client, registry):
        with patch("ecr_manager.deletion.datetime") as mock_datetime:
            mock_datetime.now.return_value = BASE_TIME
            response = client.post("/api/images/delete-by-date", json={"repositoryName": "web", "daysOld": 30})
        assert response.status_code == 200
        assert response.json()["deleted"] == 1
        assert registry.delete_calls == [["sha256:w3"]]

    def test_delete_by_date_with_explicit_digests(self, client, registry):
        response = client.post(
            "/api/images/delete-by-date",
            json={"repositoryName": "web", "imageDigests": ["sha256:w1"]},
        )
        assert response.status_code == 200
        assert registry.list_image_calls == []
        assert registry.delete_calls == [["sha256:w1"]]

    def test_delete_by_date_without_age_is_400(self, client, registry):
        response = client.post("/api/images/delete-by-date", json={"repositoryName": "web"})
        assert response.status_code == 400
        assert "daysOld" in response.json()["error"]

    def test_delete_by_date_nothing_matches(self, client, registry):
        with patch("ecr_manager.deletion.datetime") as mock_datetime:
            mock_datetime.now.return_value = BASE_TIME
            response = client.post("/api/images/delete-by-date", json={"repositoryName": "web", "daysOld": 365})
        assert response.status_code == 200
        assert response.json() == {"message": "No images found matching criteria", "deleted": 0}
        assert registry.delete_calls == []


class TestApiKey:
    def test_rejects_missing_key(self, client):
        with patch.object(config_manager, "get_api_key", return_value="secret"):
            response = client.get("/api/repositories")
        assert response.status_code == 403
        assert response.json() == {"error": "Invalid or missing X-API-Key header"}

    def test_accepts_matching_key(self, client):
        with patch.object(config_manager, "get_api_key", return_value="secret"):
            response = client.get("/api/repositories", headers={"X-API-Key": "secret"})
        assert response.status_code == 200

    def test_health_needs_no_key(self, client):
        with patch.object(config_manager, "get_api_key", return_value="secret"):
            assert client.get("/health").status_code == 200


class TestParseLimit:
    @pytest.mark.parametrize("raw,expected", [
        (None, 10),
        ("", 10),
        ("5", 5),
        ("0", 10),
        ("-2", 10),
        ("abc", 10),
        ("2.5", 10),
    ])
    def test_parse_limit(self, raw, expected):
        assert parse_limit(raw, 10) == expected
