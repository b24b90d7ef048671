"""CLI entry point for hevy-ha-mcp-server."""
import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

from config import load_config, CONFIG_FILE
from oauth.tokens import generate_secret

VERSION = "1.0.0"


def _load_env():
    """Load .env from the working directory, else the bundled .env.public."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)
    else:
        public_env = Path(__file__).parent / ".env.public"
        if public_env.exists():
            load_dotenv(public_env)


# ============== Commands ==============

def cmd_serve(host: str = None, port: int = None):
    """Run the server in the foreground."""
    import uvicorn

    config = load_config()
    host = host or config.host
    port = port or config.port
    print(f"Starting hevy-ha-mcp-server on {host}:{port}")
    print(f"  MCP endpoint: {config.server_url}/mcp")
    # One worker only: OAuth codes and tokens live in process memory
    uvicorn.run("main:app", host=host, port=port, workers=1, log_level="info")


def cmd_generate_token(length: int = 32):
    """Print a random URL-safe secret."""
    if length < 1:
        print("Error: --length must be a positive integer", file=sys.stderr)
        return 1

    print(generate_secret(length))
    return 0


def cmd_status():
    """Show effective configuration."""
    config = load_config()
    print(f"Config file:        {CONFIG_FILE} ({'found' if CONFIG_FILE.exists() else 'not found'})")
    print(f"Server URL:         {config.server_url}")
    print(f"Auth server URL:    {config.auth_server_url}")
    print(f"OAuth enabled:      {config.enable_oauth}")
    print(f"Redirect origins:   {', '.join(config.allowed_redirect_origins)}")
    print(f"Listen address:     {config.host}:{config.port}")
    return 0


def cmd_version():
    print(f"hevy-ha-mcp-server v{VERSION}")
    return 0


# ============== Main Entry Point ==============

def main(argv=None):
    """Main entry point for CLI."""
    _load_env()

    parser = argparse.ArgumentParser(
        prog="hevy-ha-mcp-server",
        description="Hevy + Home Assistant MCP server with OAuth 2.1",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  serve           Run the MCP server in the foreground (default)
  generate-token  Print a random secret for .env files
  status          Show effective configuration
  version         Show version

Examples:
  hevy-ha-mcp-server serve --port 3000
  hevy-ha-mcp-server generate-token --length 48
"""
    )

    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=["serve", "generate-token", "status", "version"],
        help="Command to run (default: serve)"
    )
    parser.add_argument("--host", help="Bind address (default: MCP_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Bind port (default: MCP_PORT or 3000)")
    parser.add_argument("--length", type=int, default=32, help="Random bytes for generate-token (default: 32)")

    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args.host, args.port)
        return 0
    elif args.command == "generate-token":
        return cmd_generate_token(args.length)
    elif args.command == "status":
        return cmd_status()
    elif args.command == "version":
        return cmd_version()

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
