import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from identity_service.api.lambda_handlers import (
    health_check_handler, health_handler, parse_request, profile_handler, profiles_handler, verify_handler
)
from identity_service.api.main import app, get_service
from identity_service.core.errors import StoreWriteError
from identity_service.core.service import HEALTH_MESSAGE, IdentityService, InvocationResult

from conftest import VALID_PROFILE, make_response, seed_user


@pytest.fixture
def service(config, store, profile_service):
    profile_service.route("GET", "/health", make_response(200))
    profile_service.route("GET", "/profile", make_response(200, dict(VALID_PROFILE, company="New Co")))
    return IdentityService(config, store, session=profile_service.session, notifier=MagicMock())


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHttpEndpoints:
    """FastAPI routes against an in-memory service."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["message"] == HEALTH_MESSAGE

    def test_profile_sync_stores_diff(self, client, store):
        seed_user(store)

        response = client.post("/profile", json={"userId": "user-1", "sessionId": "s-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Profile Saved"
        assert body["report"]["outcome"] == "Stored"
        assert body["report"]["diffId"]

    def test_profile_without_body_is_skipped(self, client):
        response = client.post("/profile")

        assert response.status_code == 200
        assert response.json()["message"] == "Profile Skipped No UserID"

    def test_profile_with_non_string_user_id(self, client):
        response = client.post("/profile", json={"userId": 12})

        assert response.status_code == 200
        assert response.json()["message"] == "Profile Skipped No UserID"

    def test_profiles_batch(self, client, store):
        seed_user(store, "user-1")
        seed_user(store, "user-2")

        response = client.post("/profiles")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Total Profiles called in session is 2"
        assert body["report"]["Stored"]["count"] == 2

    def test_verify_errors_map_to_status_codes(self, client, store):
        seed_user(store)

        assert client.post("/verify", json={}).status_code == 400
        assert client.post("/verify", json={"userId": "ghost"}).status_code == 404

        response = client.post("/verify", json={"userId": "user-1"})
        assert response.status_code == 409
        assert response.json() == {"status_code": 409, "message": "Already Verified"}

    def test_health_check(self, client, store):
        seed_user(store)

        response = client.post("/health-check")

        assert response.status_code == 200
        assert response.json()["report"]["Running"]["count"] == 1

    def test_store_failure_is_500(self, client, service):
        service.sync_all_profiles = MagicMock(side_effect=StoreWriteError("add", "identitySessionIds", RuntimeError("x")))

        response = client.post("/profiles")

        assert response.status_code == 500
        assert response.json()["status_code"] == 500

    def test_error_model_in_openapi(self):
        responses = app.openapi()["paths"]["/verify"]["post"]["responses"]

        assert {"400", "403", "404", "409", "502"} <= set(responses)
        assert responses["409"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")


class TestLambdaHandlers:
    """API Gateway proxy handlers."""

    def test_parse_request(self):
        assert parse_request({"body": '{"userId": "u1", "sessionId": "s1"}'}).user_id == "u1"
        assert parse_request({"body": "not json"}).user_id is None
        assert parse_request({"body": "[1, 2]"}).user_id is None
        assert parse_request(None).session_id is None

    def test_health_handler(self):
        response = health_handler({}, None)
        assert response == {"statusCode": 200, "body": HEALTH_MESSAGE}

    def test_profile_handler(self, service, store):
        seed_user(store)

        response = profile_handler({"body": json.dumps({"userId": "user-1"})}, None, service=service)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["message"] == "Profile Saved"
        assert body["report"]["userId"] == "user-1"

    def test_profiles_handler(self, service, store):
        seed_user(store)

        response = profiles_handler({}, None, service=service)

        body = json.loads(response["body"])
        assert body["message"] == "Total Profiles called in session is 1"

    def test_verify_handler_error(self, service):
        response = verify_handler({"body": json.dumps({"userId": "ghost"})}, None, service=service)

        assert response == {"statusCode": 404, "body": "user ghost not found"}

    def test_health_check_handler(self, service, store):
        seed_user(store)

        response = health_check_handler({}, None, service=service)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["report"]["Running"]["count"] == 1

    def test_plain_result_body(self):
        service = MagicMock()
        service.check_all_health.return_value = InvocationResult(200, "done")

        assert health_check_handler({}, None, service=service) == {"statusCode": 200, "body": "done"}
