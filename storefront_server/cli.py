"""Command line entry point for the storefront server."""

import argparse
import asyncio
import os

# Flags forwarded to the servers through the environment, so that the
# reloading HTTP worker sees them too.
ENV_FLAGS = {
    "api_url": "STOREFRONT_API_URL",
    "storage_file": "STOREFRONT_STORAGE_FILE",
    "log_level": "STOREFRONT_LOG_LEVEL",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storefront MCP Server")
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="stdio",
        help="Server mode: stdio (MCP protocol) or http (REST API)",
    )
    parser.add_argument("--host", default="0.0.0.0", help="HTTP mode: host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="HTTP mode: port to bind to")
    parser.add_argument(
        "--reload",
        action="store_true",
        help="HTTP mode: restart the server when source files change",
    )
    parser.add_argument("--api-url", dest="api_url", help="Record store base URL")
    parser.add_argument("--storage-file", dest="storage_file", help="Local storage JSON file")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)

    for attr, env_key in ENV_FLAGS.items():
        value = getattr(args, attr)
        if value:
            os.environ[env_key] = value

    if args.mode == "http":
        from .http_server import run_http_server
        run_http_server(host=args.host, port=args.port, reload=args.reload)
    else:
        from .server import main as server_main
        asyncio.run(server_main())


if __name__ == "__main__":
    main()
