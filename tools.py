"""MCP tools exposed behind the OAuth gate.

Only a connectivity check lives here; every call to the /mcp mount has
already passed bearer token validation.
"""

import logging

from fastmcp import FastMCP

logger = logging.getLogger(__name__)

SERVER_NAME = "hevy-ha-mcp-server"

mcp = FastMCP(SERVER_NAME)


def ping() -> str:
    """Simple ping tool to test connectivity through the OAuth gate.

    Returns:
        A pong response naming this server
    """
    logger.info("[TOOL] ping invoked")
    return f"pong from {SERVER_NAME}"


mcp.tool()(ping)
