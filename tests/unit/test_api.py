"""
Tests for the HTTP surface: FastAPI routes and the Lambda handler.

Both serve the same contract, so the same cases run against each.
"""

import json

import pytest
from fastapi.testclient import TestClient

from photovault.api.dependencies import get_object_store
from photovault.api.lambda_handler import caller_from_event, handler
from photovault.config.settings import Settings, get_settings
from photovault.core.media.store import StorageError
from photovault.infrastructure.storage.client import InMemoryObjectStore
from photovault.main import create_app

from conftest import IDENTITY_ID

ROLE_ARN = "arn:aws:sts::123456789012:assumed-role/PhotoUploaderCognitoRole/CognitoIdentityCredentials"


class UnreachableStore(InMemoryObjectStore):
    async def list_objects_page(self, prefix, max_keys=1000, continuation_token=None):
        raise StorageError("Listing failed: timed out")


def verified_headers(identity_id=IDENTITY_ID, arn=ROLE_ARN):
    headers = {}
    if identity_id:
        headers["X-Verified-Identity-Id"] = identity_id
    if arn:
        headers["X-Verified-Principal-Arn"] = arn
    return headers


@pytest.fixture
def seeded_store(prefix):
    store = InMemoryObjectStore()
    store.seed(f"{prefix}/2024-01/2024-01-01_10-00-00.jpg", b"a" * 100)
    store.seed(f"{prefix}/2024-02/2024-02-01_10-00-00.jpg", b"b" * 50)
    return store


@pytest.fixture
def client(seeded_store):
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: Settings(s3_mock_mode=True)
    app.dependency_overrides[get_object_store] = lambda: seeded_store
    return TestClient(app)


# ---------------------------------------------------------------------------
# FastAPI Route Tests
# ---------------------------------------------------------------------------

class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready_in_mock_mode(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_bucket(self, client):
        client.app.dependency_overrides[get_settings] = lambda: Settings(s3_mock_mode=False, s3_bucket_name="")
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert "S3_BUCKET_NAME" in response.json()["missing_fields"]


class TestStatsEndpoint:
    """POST /api/v1/storage/stats"""

    def test_owner_gets_stats(self, client, prefix):
        response = client.post("/api/v1/storage/stats", json={"prefix": prefix}, headers=verified_headers())

        assert response.status_code == 200
        assert response.json() == {"objectCount": 2, "totalSize": 150}

    def test_missing_prefix_is_400(self, client):
        response = client.post("/api/v1/storage/stats", json={}, headers=verified_headers())

        assert response.status_code == 400
        assert response.json() == {"error": "prefix is required"}

    def test_missing_identity_is_401(self, client, prefix):
        response = client.post("/api/v1/storage/stats", json={"prefix": prefix}, headers=verified_headers(identity_id=None))
        assert response.status_code == 401
        assert "error" in response.json()

    def test_wrong_role_is_403(self, client, prefix):
        headers = verified_headers(arn="arn:aws:sts::1:assumed-role/SomethingElse/x")
        response = client.post("/api/v1/storage/stats", json={"prefix": prefix}, headers=headers)
        assert response.status_code == 403

    def test_other_users_prefix_is_403(self, client):
        response = client.post(
            "/api/v1/storage/stats",
            json={"prefix": "victim@example.com_eu-central-1:9999"},
            headers=verified_headers(),
        )
        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden - You can only access your own statistics"}

    def test_identity_is_never_taken_from_body(self, client):
        """Claiming an identity in the body changes nothing."""
        response = client.post(
            "/api/v1/storage/stats",
            json={"prefix": "victim@example.com_eu-central-1:9999", "identityId": "eu-central-1:9999"},
            headers=verified_headers(),
        )
        assert response.status_code == 403

    def test_store_failure_is_500(self, client, prefix):
        client.app.dependency_overrides[get_object_store] = lambda: UnreachableStore()
        response = client.post("/api/v1/storage/stats", json={"prefix": prefix}, headers=verified_headers())

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Internal server error"
        assert "timed out" in body["message"]


class TestFilesEndpoint:
    """POST /api/v1/storage/files"""

    def test_lists_files(self, client, prefix):
        response = client.post("/api/v1/storage/files", json={"prefix": prefix}, headers=verified_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Found 2 files"
        assert body["urlExpiresIn"] == "3600 seconds"
        assert body["files"][0]["key"] == f"{prefix}/2024-01/2024-01-01_10-00-00.jpg"
        assert body["files"][0]["downloadUrl"].startswith("mock://storage/")
        assert body["files"][0]["lastModified"]

    def test_month_filter(self, client, prefix):
        response = client.post(
            "/api/v1/storage/files", json={"prefix": prefix, "month": "2024-02"}, headers=verified_headers()
        )
        assert [f["size"] for f in response.json()["files"]] == [50]

    def test_files_are_authorized(self, client):
        response = client.post(
            "/api/v1/storage/files",
            json={"prefix": "victim@example.com_eu-central-1:9999"},
            headers=verified_headers(),
        )
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# Lambda Handler Tests
# ---------------------------------------------------------------------------

def api_gateway_event(body, identity_id=IDENTITY_ID, arn=ROLE_ARN, path="/storage-stats"):
    return {
        "path": path,
        "body": json.dumps(body),
        "requestContext": {
            "identity": {
                "cognitoIdentityId": identity_id,
                "userArn": arn,
            }
        },
    }


class TestLambdaHandler:
    """The Lambda entry point serves the same contract."""

    def test_stats(self, seeded_store, prefix):
        response = handler(api_gateway_event({"prefix": prefix}), None, store=seeded_store)

        assert response["statusCode"] == 200
        assert response["headers"]["Access-Control-Allow-Origin"] == "*"
        assert json.loads(response["body"]) == {"objectCount": 2, "totalSize": 150}

    def test_missing_prefix(self, seeded_store):
        response = handler(api_gateway_event({}), None, store=seeded_store)

        assert response["statusCode"] == 400
        assert json.loads(response["body"]) == {"error": "prefix is required"}

    def test_non_string_prefix_is_400(self, seeded_store):
        response = handler(api_gateway_event({"prefix": 123}), None, store=seeded_store)

        assert response["statusCode"] == 400
        assert json.loads(response["body"]) == {"error": "prefix must be a string"}

    def test_non_string_month_is_400(self, seeded_store, prefix):
        event = api_gateway_event({"prefix": prefix, "month": 202402}, path="/storage/files")

        response = handler(event, None, store=seeded_store)

        assert response["statusCode"] == 400
        assert "YYYY-MM" in json.loads(response["body"])["error"]

    def test_no_identity_context(self, seeded_store, prefix):
        event = api_gateway_event({"prefix": prefix})
        event["requestContext"] = {}

        response = handler(event, None, store=seeded_store)

        assert response["statusCode"] == 401

    def test_role_marker_enforced(self, seeded_store, prefix):
        event = api_gateway_event({"prefix": prefix}, arn="arn:aws:sts::1:assumed-role/Other/x")
        assert handler(event, None, store=seeded_store)["statusCode"] == 403

    def test_mismatched_identity(self, seeded_store):
        event = api_gateway_event({"prefix": "victim@example.com_eu-central-1:9999"})
        assert handler(event, None, store=seeded_store)["statusCode"] == 403

    def test_store_failure(self, prefix):
        response = handler(api_gateway_event({"prefix": prefix}), None, store=UnreachableStore())

        assert response["statusCode"] == 500
        assert json.loads(response["body"])["error"] == "Internal server error"

    def test_files_route(self, seeded_store, prefix):
        event = api_gateway_event({"prefix": prefix}, path="/storage/files")
        body = json.loads(handler(event, None, store=seeded_store)["body"])

        assert body["message"] == "Found 2 files"
        assert len(body["files"]) == 2

    def test_dict_body_is_accepted(self, seeded_store, prefix):
        event = api_gateway_event({})
        event["body"] = {"prefix": prefix}
        assert handler(event, None, store=seeded_store)["statusCode"] == 200

    def test_caller_from_event(self):
        caller = caller_from_event(api_gateway_event({}))
        assert caller.identity_id == IDENTITY_ID
        assert caller.principal_arn == ROLE_ARN
