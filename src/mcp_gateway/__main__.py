"""
MCP Gateway - Entry Point

Runs the gateway over stdio (default) or HTTP (--http).
"""

import argparse
import asyncio
import logging
import sys

import yaml

from config import load_config

from .core.errors import ConfigurationError
from .server import run_gateway

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# stderr: stdout carries the stdio protocol
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stderr)
logger = logging.getLogger(__name__)

USAGE = (
    "Usage: mcp-gateway --baseUrl <url> --token <token> [--http] [--port <port>] [--publicUrl <url>]\n"
    "Or set PAPERLESS_URL and PAPERLESS_API_KEY environment variables."
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="MCP gateway for the Paperless-NGX document API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Embedded mode for a locally spawned client
  mcp-gateway --baseUrl http://localhost:8000 --token abc123

  # Network mode (SSE on /sse, streamable HTTP on /mcp)
  mcp-gateway --http --port 3000

  # Read settings from a YAML file
  mcp-gateway --config gateway.yaml --http
"""
    )
    parser.add_argument('--baseUrl', dest='base_url', help='Paperless-NGX base URL')
    parser.add_argument('--token', help='Paperless-NGX API token')
    parser.add_argument('--http', action='store_true', help='Serve over HTTP instead of stdio')
    parser.add_argument('--port', type=int, help='HTTP port (default: 3000)')
    parser.add_argument('--publicUrl', dest='public_url', help='Public URL used for document links')
    parser.add_argument('--config', '-c', help='Path to gateway.yaml')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, KeyError, yaml.YAMLError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.base_url:
        config.paperless.base_url = args.base_url
    if args.token:
        config.paperless.token = args.token
    if args.public_url:
        config.paperless.public_url = args.public_url
    if args.http:
        config.http.enabled = True
    if args.port:
        config.http.port = args.port

    if args.debug or config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)

    try:
        asyncio.run(run_gateway(config))
    except ConfigurationError as e:
        logger.error(str(e))
        print(USAGE, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Shutting down")
    return 0


def run():
    """Entry point for console script"""
    sys.exit(main())


if __name__ == "__main__":
    run()
