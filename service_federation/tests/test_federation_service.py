"""
Tests for Federation service.
"""

import asyncio
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from service_federation.app.main import create_app
from shared.test_helpers import TOKEN_PATH, FederationTestEnvironment, MockDingTalkUpstream


@pytest.fixture
def upstream():
    return MockDingTalkUpstream()


@pytest.fixture
def client(upstream):
    """Create test client."""
    http_client = upstream.client()
    app = create_app(FederationTestEnvironment.make_config(), http_client=http_client)
    with TestClient(app) as test_client:
        yield test_client
    asyncio.run(http_client.aclose())


def start_login(client, **params):
    response = client.get("/federation/login", params=params, follow_redirects=False)
    assert response.status_code == 307
    return parse_qs(urlsplit(response.headers["location"]).query)


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "federation"
    assert data["idp_alias"] == "dingtalk"
    assert data["version"] == "1.0.0"


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "federation"
    assert data["status"] == "ok"
    assert data["dependencies"] == {"token_cache": "ok", "transliteration": "ok"}


def test_request_id_is_echoed(client):
    response = client.get("/", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_login_redirects_to_dingtalk(client):
    """Login redirects to the consent screen with a signed state."""
    query = start_login(client)

    assert query["client_id"] == ["dingtalk-client"]
    assert query["redirect_uri"] == ["http://testserver/federation/callback"]
    assert query["prompt"] == ["consent"]
    assert query["scope"] == ["openid corpid"]
    assert query["state"][0]


def test_login_accepts_own_callback_as_redirect_uri(client):
    query = start_login(client, redirect_uri="http://testserver/federation/callback")
    assert query["redirect_uri"] == ["http://testserver/federation/callback"]


def test_login_rejects_foreign_redirect_uri(client):
    """Only the registered callback can receive the authorization code."""
    response = client.get(
        "/federation/login",
        params={"redirect_uri": "https://attacker.example/steal"},
        follow_redirects=False,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REDIRECT_URI"


def test_login_uses_configured_callback_url(upstream):
    config = FederationTestEnvironment.make_config(callback_url="https://broker.example/cb")
    http_client = upstream.client()
    with TestClient(create_app(config, http_client=http_client)) as test_client:
        query = start_login(test_client, redirect_uri="https://broker.example/cb")
        foreign = test_client.get(
            "/federation/login",
            params={"redirect_uri": "http://testserver/federation/callback"},
            follow_redirects=False,
        )
    asyncio.run(http_client.aclose())

    assert query["redirect_uri"] == ["https://broker.example/cb"]
    assert foreign.status_code == 400


def test_full_login(client, upstream):
    """A complete login returns the brokered user."""
    state = start_login(client)["state"][0]

    response = client.get("/federation/callback", params={"state": state, "authCode": "auth-code"})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "authenticated"
    assert data["idp_alias"] == "dingtalk"
    assert data["identity"]["federated_id"] == "union-zhangsan"
    assert data["user"]["username"] == "zhangsan"
    assert data["user"]["email"] == "zhangsan@dcx.com"
    assert len(upstream.requests_to(TOKEN_PATH)) == 1


def test_callback_without_state(client, upstream):
    response = client.get("/federation/callback", params={"authCode": "auth-code"})

    assert response.status_code == 502
    assert "text/html" in response.headers["content-type"]
    assert "identityProviderMissingStateMessage" in response.text
    assert upstream.requests == []


def test_callback_cancelled(client):
    state = start_login(client)["state"][0]

    response = client.get("/federation/callback", params={"state": state, "error": "access_denied"})

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"


def test_metrics_endpoint(client):
    """Login outcomes are exported."""
    state = start_login(client)["state"][0]
    client.get("/federation/callback", params={"state": state, "authCode": "auth-code"})

    response = client.get("/metrics")

    assert response.status_code == 200
    assert 'federation_logins_total{outcome="delivered"} 1.0' in response.text
    assert 'token_exchange_attempts_total{status="ok"} 1.0' in response.text
