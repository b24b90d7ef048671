"""Shared fixtures for the OAuth test suite."""

from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from starlette.middleware import Middleware

from oauth.endpoints import router, init_oauth_routes
from oauth.middleware import MCPOAuthMiddleware
from oauth.stores import OAuthStores

SERVER_URL = "https://mcp.example.com"
REDIRECT_URI = "https://claude.ai/api/mcp/auth_callback"
ALLOWED_ORIGINS = ["https://claude.ai", "https://claude.com"]

# RFC 7636 appendix B
CODE_VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
CODE_CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


class FakeClock:
    """Manually advanced time source, in seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stores():
    return OAuthStores()


@pytest.fixture
def app(stores, clock):
    """OAuth router plus a protected sub-app standing in for /mcp."""
    init_oauth_routes(SERVER_URL, stores, ALLOWED_ORIGINS, clock=clock)

    protected = FastAPI(middleware=[
        Middleware(
            MCPOAuthMiddleware,
            stores=stores,
            resource_metadata_url=f"{SERVER_URL}/.well-known/oauth-protected-resource",
            clock=clock,
        )
    ])

    @protected.get("/whoami")
    async def whoami(request: Request):
        token = request.state.access_token
        return {"client_id": token.client_id, "scope": token.scope}

    application = FastAPI()
    application.include_router(router)
    application.mount("/mcp", protected)
    return application


@pytest.fixture
def client(app):
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def authorize_params():
    """Valid /authorize query; override or drop keys per test."""
    def build(**overrides):
        params = {
            "client_id": "abc",
            "redirect_uri": REDIRECT_URI,
            "response_type": "code",
            "code_challenge": CODE_CHALLENGE,
            "code_challenge_method": "S256",
            "state": "xyz",
        }
        params.update(overrides)
        return {key: value for key, value in params.items() if value is not None}
    return build


@pytest.fixture
def obtain_code(client, authorize_params):
    """Run /authorize and return the issued authorization code."""
    def run(**overrides):
        response = client.get("/authorize", params=authorize_params(**overrides))
        assert response.status_code == 302
        query = parse_qs(urlparse(response.headers["location"]).query)
        return query["code"][0]
    return run


@pytest.fixture
def obtain_token(client, obtain_code):
    """Run the full code exchange and return the access token."""
    def run(**overrides):
        code = obtain_code(**overrides)
        response = client.post("/token", json={
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": CODE_VERIFIER,
            "client_id": overrides.get("client_id", "abc"),
        })
        assert response.status_code == 200
        return response.json()["access_token"]
    return run
