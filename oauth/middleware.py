"""OAuth middleware for MCP endpoints.

Validates Bearer tokens against the in-memory access token store before
any tool-calling request reaches the MCP app.
"""

import logging
import time
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from logging_config import log_auth_failure
from oauth.endpoints import client_ip, oauth_error, server_error
from oauth.stores import OAuthStores

logger = logging.getLogger(__name__)


class MCPOAuthMiddleware(BaseHTTPMiddleware):
    """Middleware to validate OAuth Bearer tokens for the Streamable HTTP MCP endpoint."""

    def __init__(
        self,
        app,
        stores: OAuthStores,
        resource_metadata_url: str,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self.stores = stores
        self.clock = clock
        self.resource_metadata_url = resource_metadata_url

    def unauthorized(self, description: str):
        """401 with WWW-Authenticate pointing to resource metadata (RFC 9728)."""
        return oauth_error(
            "invalid_token",
            description,
            status_code=401,
            headers={"WWW-Authenticate": f'Bearer resource_metadata="{self.resource_metadata_url}", scope="mcp"'},
        )

    async def dispatch(self, request: Request, call_next):
        try:
            auth_header = request.headers.get("Authorization", "")
            token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else ""
            if not token:
                logger.info("[AUTH] Request rejected: no Bearer token")
                return self.unauthorized("Missing or invalid Authorization header")

            token_data = self.stores.access_tokens.get(token)
            if token_data is None:
                log_auth_failure("invalid_access_token", client_ip(request))
                return self.unauthorized("Invalid or expired access token")

            if token_data.is_expired(self.clock()):
                self.stores.access_tokens.delete(token)
                log_auth_failure("expired_access_token", client_ip(request))
                return self.unauthorized("Token has expired")

        except Exception:
            logger.exception("[AUTH] Error validating bearer token")
            return server_error()

        logger.info(f"[AUTH] Request authorized for client: {token_data.client_id}, scope: {token_data.scope!r}")
        request.state.access_token = token_data
        return await call_next(request)
