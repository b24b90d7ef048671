"""MCP gateway with OAuth 2.1 (authorization code + PKCE).

Serves:
- OAuth discovery, /authorize and /token (oauth/endpoints.py)
- MCP tools via Streamable HTTP at /mcp, gated by bearer tokens
- /health and / server info
"""
import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware import Middleware
from supabase import create_client, Client

from config import Config, load_config
from logging_config import setup_logging
from oauth.endpoints import router as oauth_router, init_oauth_routes
from oauth.middleware import MCPOAuthMiddleware
from oauth.stores import OAuthStores, run_sweeper
from tools import mcp

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def create_app(config: Config, stores: OAuthStores = None, clock: Callable[[], float] = time.time) -> FastAPI:
    """Build the FastAPI app for the given configuration.

    Args:
        config: Server configuration.
        stores: Code and token stores; a fresh in-memory pair if omitted.
        clock: Time source in seconds, shared by endpoints, middleware and sweeper.
    """
    stores = stores or OAuthStores()
    server_url = config.server_url

    # Create FastMCP app with OAuth middleware BEFORE FastAPI app
    # (its lifespan must run inside ours)
    mcp_http_app = mcp.http_app(
        path="/",
        transport="streamable-http",
        middleware=[
            Middleware(
                MCPOAuthMiddleware,
                stores=stores,
                resource_metadata_url=config.protected_resource_metadata_url,
                clock=clock,
            )
        ] if config.enable_oauth else []
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = None
        if config.enable_oauth:
            sweeper = asyncio.create_task(run_sweeper(stores, clock=clock))
        try:
            async with mcp_http_app.lifespan(app):
                yield
        finally:
            if sweeper:
                sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper

    app = FastAPI(
        title="Hevy + Home Assistant MCP Server",
        description="MCP tool gateway protected by OAuth 2.1 with PKCE",
        version=VERSION,
        lifespan=lifespan,
    )

    # Browser-based MCP clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["WWW-Authenticate"],
    )

    app.mount("/mcp", mcp_http_app)

    if config.enable_oauth:
        init_oauth_routes(
            server_url,
            stores,
            config.allowed_redirect_origins,
            auth_server_url=config.auth_server_url,
            clock=clock,
        )
        app.include_router(oauth_router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": config.service_name}

    @app.get("/")
    async def root():
        """Root endpoint with server info."""
        response = {
            "name": config.service_name,
            "version": VERSION,
            "endpoints": {"streamable_http": "/mcp"},
            "oauth_enabled": config.enable_oauth,
        }
        if config.enable_oauth:
            response["oauth"] = {
                "protected_resource": config.protected_resource_metadata_url,
                "authorization_server": f"{server_url}/.well-known/oauth-authorization-server",
            }
        return response

    return app


def _load_env():
    """Load .env from the working directory, else the bundled .env.public."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)
    else:
        public_env = Path(__file__).parent / ".env.public"
        if public_env.exists():
            load_dotenv(public_env)


_load_env()
config = load_config()

supabase: Client = None
if config.supabase_url and config.supabase_anon_key:
    supabase = create_client(config.supabase_url, config.supabase_anon_key)

setup_logging(service_name=config.service_name, supabase_client=supabase, level=config.log_level)

logger.info(f"[STARTUP] SERVER_URL: {config.server_url}")
logger.info(f"[STARTUP] OAuth enabled: {config.enable_oauth}")
if config.enable_oauth:
    logger.info(f"[STARTUP] Allowed redirect origins: {', '.join(config.allowed_redirect_origins)}")
if os.getenv("WEB_CONCURRENCY", "1") != "1":
    logger.warning("[STARTUP] OAuth stores are per-process; run a single worker")

app = create_app(config)


if __name__ == "__main__":
    import uvicorn
    logger.info(f"[STARTUP] Streamable HTTP endpoint: {config.server_url}/mcp")
    uvicorn.run(app, host=config.host, port=config.port)
