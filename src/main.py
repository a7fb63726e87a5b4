"""Entry point for the Taskflow backend."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel

from src.config import settings

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server(reload: bool = False) -> None:
    """Start the FastAPI server."""
    console.print(Panel(
        f"Starting Taskflow API on {settings.api_host}:{settings.api_port}\n"
        f"Docs: http://localhost:{settings.api_port}/docs\n"
        f"Database: {settings.database_path}",
        style="bold green",
    ))
    uvicorn.run(
        "src.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Taskflow task-management backend")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Start the API server")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (dev)")

    args = parser.parse_args()

    if args.command == "serve":
        run_server(reload=args.reload)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
