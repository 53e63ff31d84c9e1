"""Command-line entry point: run the toolstream API with uvicorn."""

from __future__ import annotations

import argparse

import uvicorn

from toolstream.core.constants import get_settings
from toolstream.utils.logger import configure_uvicorn_logging


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()

    parser = argparse.ArgumentParser(prog="toolstream", description="Streaming agentic chat over MCP tool servers")
    parser.add_argument("--host", default=settings.api_host, help="Bind address (default: %(default)s)")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Bind port (default: %(default)s)")
    parser.add_argument("--reload", action="store_true", help="Reload on source changes (development)")
    args = parser.parse_args(argv)

    configure_uvicorn_logging()
    uvicorn.run(
        "toolstream.api.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
