"""OAuth 2.1 endpoints for MCP server authentication.

This module contains:
- Discovery metadata (/.well-known/*)
- Authorization endpoint (/authorize)
- Token endpoint (/token)

There is no login or consent page: an authorization request that passes
validation is approved immediately and redirected back with a code.
"""

import logging
import time
from typing import Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from logging_config import log_auth_attempt, log_auth_failure
from oauth.pkce import verify_code_challenge
from oauth.stores import (
    ACCESS_TOKEN_TTL_SECONDS,
    AccessToken,
    AuthorizationSession,
    OAuthStores,
)
from oauth.tokens import generate_access_token, generate_authorization_code, preview

logger = logging.getLogger(__name__)

# Router for OAuth endpoints
router = APIRouter(tags=["oauth"])

SCOPES_SUPPORTED = ["mcp"]

# These will be set by init_oauth_routes()
_server_url: str = ""
_auth_server_url: str = ""
_allowed_redirect_origins: list[str] = []
_stores: OAuthStores = OAuthStores()
_clock: Callable[[], float] = time.time


def init_oauth_routes(
    server_url: str,
    stores: OAuthStores,
    allowed_redirect_origins: list[str],
    auth_server_url: str = None,
    clock: Callable[[], float] = time.time,
):
    """Initialize OAuth routes with server URLs, stores and clock.

    Must be called before including the router in the app.
    """
    global _server_url, _auth_server_url, _allowed_redirect_origins, _stores, _clock
    _server_url = server_url.rstrip("/")
    _auth_server_url = (auth_server_url or server_url).rstrip("/")
    _allowed_redirect_origins = [origin.rstrip("/").lower() for origin in allowed_redirect_origins]
    _stores = stores
    _clock = clock


def oauth_error(error: str, description: str, status_code: int = 400, headers: dict = None) -> JSONResponse:
    """OAuth error response body (RFC 6749 section 5.2)."""
    return JSONResponse(
        {"error": error, "error_description": description},
        status_code=status_code,
        headers=headers,
    )


def server_error() -> JSONResponse:
    return oauth_error("server_error", "Internal server error", status_code=500)


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def is_trusted_redirect_uri(redirect_uri: str, allowed_origins: list[str]) -> bool:
    """True if redirect_uri is absolute and its origin is allow-listed."""
    parsed = urlparse(redirect_uri)
    if not parsed.scheme or not parsed.netloc:
        return False
    # Reject https://trusted.example@attacker.example style URIs
    if "@" in parsed.netloc:
        return False
    # Fragments are not allowed on redirection endpoints (RFC 6749 3.1.2)
    if parsed.fragment:
        return False
    origin = f"{parsed.scheme}://{parsed.netloc}".lower()
    return origin in {allowed.rstrip("/").lower() for allowed in allowed_origins}


def build_redirect_url(redirect_uri: str, params: dict) -> str:
    """Append params to redirect_uri, keeping any query it already has."""
    parsed = urlparse(redirect_uri)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunparse(parsed._replace(query=urlencode(query)))


# ============== OAuth 2.1 Discovery Endpoints ==============

@router.get("/.well-known/oauth-protected-resource")
async def oauth_protected_resource():
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
    return {
        "resource": _server_url,
        "authorization_servers": [_auth_server_url],
        "scopes_supported": SCOPES_SUPPORTED,
        "bearer_methods_supported": ["header"],
    }


@router.get("/.well-known/oauth-authorization-server")
async def oauth_authorization_server():
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
    return {
        "issuer": _server_url,
        "authorization_endpoint": f"{_server_url}/authorize",
        "token_endpoint": f"{_server_url}/token",
        "code_challenge_methods_supported": ["S256"],
        "grant_types_supported": ["authorization_code"],
        "response_types_supported": ["code"],
        "scopes_supported": SCOPES_SUPPORTED + ["claudeai"],
        "token_endpoint_auth_methods_supported": ["none"],
        "client_id_metadata_document_supported": False,
    }


# ============== Authorization Endpoint ==============

@router.get("/authorize")
async def authorize(
    client_id: Optional[str] = None,
    redirect_uri: Optional[str] = None,
    response_type: Optional[str] = None,
    code_challenge: Optional[str] = None,
    code_challenge_method: Optional[str] = None,
    state: Optional[str] = None,
    scope: Optional[str] = None,
    resource: Optional[str] = None,
):
    """OAuth 2.1 Authorization Endpoint - approves and redirects with a code."""
    try:
        if not (client_id and redirect_uri and response_type and code_challenge and code_challenge_method):
            return oauth_error("invalid_request", "Missing required parameters")

        if response_type != "code":
            return oauth_error("unsupported_response_type", "Only authorization_code flow is supported")

        # plain is deliberately refused here even though the verifier knows it
        if code_challenge_method != "S256":
            return oauth_error("invalid_request", "Only S256 code_challenge_method is supported")

        if not is_trusted_redirect_uri(redirect_uri, _allowed_redirect_origins):
            return oauth_error("invalid_request", "Invalid redirect_uri")

        auth_code = generate_authorization_code()
        _stores.authorization_codes.put(auth_code, AuthorizationSession(
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            redirect_uri=redirect_uri,
            client_id=client_id,
            scope=scope or "",
            state=state or "",
            resource=resource or _server_url,
            created_at=_clock(),
        ))
        logger.info(f"[AUTHORIZE] Generated authorization code {preview(auth_code)} for client: {client_id}")

        params = {"code": auth_code}
        if state:
            params["state"] = state
        return RedirectResponse(url=build_redirect_url(redirect_uri, params), status_code=302)

    except Exception:
        logger.exception("[AUTHORIZE] Error handling authorization request")
        return server_error()


# ============== Token Endpoint ==============

async def _read_token_request(request: Request) -> Optional[dict]:
    """Parse a JSON or form-encoded token request. None if unparseable."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        try:
            form = await request.form()
        except (HTTPException, MultiPartException):
            return None
        return dict(form)

    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


@router.post("/token")
async def token(request: Request):
    """OAuth 2.1 Token Endpoint - exchanges a code + verifier for a bearer token."""
    try:
        data = await _read_token_request(request)
        if data is None:
            return oauth_error("invalid_request", "Request body must be JSON or form encoded")

        grant_type = data.get("grant_type")
        code = data.get("code")
        code_verifier = data.get("code_verifier")
        client_id = data.get("client_id")
        redirect_uri = data.get("redirect_uri")

        required = (grant_type, code, code_verifier, client_id)
        if not all(required) or not all(isinstance(value, str) for value in required):
            return oauth_error("invalid_request", "Missing required parameters")
        if redirect_uri is not None and not isinstance(redirect_uri, str):
            return oauth_error("invalid_request", "redirect_uri must be a string")

        if grant_type != "authorization_code":
            return oauth_error("unsupported_grant_type", "Only authorization_code grant is supported")

        ip = client_ip(request)
        logger.debug(f"[TOKEN] Code exchange for client_id: {client_id}")

        # Every outcome below spends the code, so take it atomically up front
        session = _stores.authorization_codes.pop(code)
        if session is None:
            log_auth_failure("invalid_authorization_code", ip)
            return oauth_error("invalid_grant", "Invalid or expired authorization code")

        if session.is_expired(_clock()):
            log_auth_failure("expired_authorization_code", ip)
            return oauth_error("invalid_grant", "Invalid or expired authorization code")

        if not verify_code_challenge(code_verifier, session.code_challenge, session.code_challenge_method):
            log_auth_failure("invalid_code_verifier", ip)
            return oauth_error("invalid_grant", "Invalid code_verifier")

        if client_id != session.client_id:
            log_auth_failure("client_id_mismatch", ip)
            return oauth_error("invalid_grant", "client_id mismatch")

        if redirect_uri and redirect_uri != session.redirect_uri:
            log_auth_failure("redirect_uri_mismatch", ip)
            return oauth_error("invalid_grant", "redirect_uri mismatch")

        now = _clock()
        access_token = generate_access_token()
        _stores.access_tokens.put(access_token, AccessToken(
            token=access_token,
            client_id=client_id,
            scope=session.scope,
            resource=session.resource,
            expires_at=now + ACCESS_TOKEN_TTL_SECONDS,
            created_at=now,
        ))

        log_auth_attempt(True, ip, client_id)
        logger.info(
            f"[TOKEN] Issued access token {preview(access_token)}, "
            f"expires_in: {ACCESS_TOKEN_TTL_SECONDS}, scope: {session.scope!r}"
        )

        body = {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": ACCESS_TOKEN_TTL_SECONDS,
        }
        if session.scope:
            body["scope"] = session.scope
        return JSONResponse(body, headers={"Cache-Control": "no-store"})

    except Exception:
        logger.exception("[TOKEN] Error handling token request")
        return server_error()
