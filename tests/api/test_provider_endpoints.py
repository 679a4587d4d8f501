"""Tests for the provider management endpoints."""

import httpx
import pytest
from fastapi.testclient import TestClient

from ccrouter.api.services.error_handling import build_error_response
from ccrouter.main import create_app
from tests.fixtures.mock_http import PROVIDER_A_URL
from tests.fixtures.services import provider_entry

NEW_PROVIDER = {
    "name": "groq",
    "baseUrl": "https://api.groq.test/openai/v1/chat/completions",
    "apiKey": "gsk-1",
    "models": ["llama-3.3-70b"],
    "transformer": {"use": ["openai"]},
}


@pytest.fixture
def client(services_factory):
    services = services_factory(
        {"Providers": [provider_entry("a", PROVIDER_A_URL, ["gpt-4"])], "Router": {"default": "a,gpt-4"}}
    )
    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.mark.unit
class TestProviderCrud:
    def test_list_and_get(self, client):
        providers = client.get("/providers").json()
        assert [p["name"] for p in providers] == ["a"]
        assert providers[0]["api_base_url"] == PROVIDER_A_URL

        assert client.get("/providers/A").json()["name"] == "a"
        missing = client.get("/providers/zzz")
        assert missing.status_code == 404
        assert missing.json()["error"] == {"type": "provider_not_found", "message": "Provider not found"}

    def test_create_then_duplicate(self, client):
        created = client.post("/providers", json=NEW_PROVIDER)
        assert created.status_code == 200
        assert created.json()["api_base_url"] == NEW_PROVIDER["baseUrl"]
        assert created.json()["transformer"] == {"use": ["openai"]}

        duplicate = client.post("/providers", json={**NEW_PROVIDER, "name": "GROQ"})
        assert duplicate.status_code == 400
        assert duplicate.json()["error"] == {
            "type": "provider_exists",
            "message": "Provider with name 'GROQ' already exists",
        }

    @pytest.mark.parametrize(
        "override,message",
        [
            ({"name": " "}, "Provider name is required"),
            ({"baseUrl": "not a url"}, "Valid base URL is required"),
            ({"baseUrl": "ftp://files.test"}, "Valid base URL is required"),
            ({"apiKey": ""}, "API key is required"),
            ({"models": []}, "At least one model is required"),
        ],
    )
    def test_create_validation(self, client, override, message):
        response = client.post("/providers", json={**NEW_PROVIDER, **override})
        assert response.status_code == 400
        assert response.json()["error"] == {"type": "invalid_request", "message": message}

    def test_update_changes_only_given_fields(self, client):
        response = client.put(
            "/providers/a",
            json={"models": ["gpt-4", "gpt-4o"], "transformer": {"use": ["maxtoken"]}},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["models"] == ["gpt-4", "gpt-4o"]
        assert body["api_key"] == "sk-a"
        assert body["transformer"] == {"use": ["maxtoken"]}

        bad = client.put("/providers/a", json={"baseUrl": "nope"})
        assert bad.status_code == 400
        assert client.put("/providers/zzz", json={}).status_code == 404

    def test_toggle_and_delete(self, client, anthropic_request):
        toggled = client.patch("/providers/a/toggle", json={"enabled": False})
        assert toggled.json() == {"message": "Provider disabled successfully"}

        # Disabled providers cannot serve requests
        routed = client.post("/v1/messages", json=anthropic_request)
        assert routed.status_code == 404

        assert client.patch("/providers/a/toggle", json={"enabled": True}).json() == {
            "message": "Provider enabled successfully"
        }
        assert client.delete("/providers/a").json() == {"message": "Provider deleted successfully"}
        assert client.delete("/providers/a").status_code == 404
        assert client.get("/providers").json() == []


@pytest.mark.unit
class TestErrorResponses:
    def test_timeout_maps_to_504(self):
        response = build_error_response(httpx.ReadTimeout("slow"), "calling /v1/messages")
        assert response.status_code == 504
        assert b"API_TIMEOUT_MS" in response.body

    def test_transport_error_maps_to_502(self):
        response = build_error_response(httpx.ConnectError("refused"))
        assert response.status_code == 502
        assert b'"details":"refused"' in response.body

    def test_unexpected_error_maps_to_500(self):
        response = build_error_response(KeyError("x"))
        assert response.status_code == 500
        assert b"api_error" in response.body
