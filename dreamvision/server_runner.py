"""Start the DreamVision API under uvicorn.

Settings come from the environment (HOST, PORT, UVICORN_*); command-line flags
override them for local runs, e.g. ``dreamvision-server --port 9000 --reload``.
"""

from __future__ import annotations

import argparse
import os
from typing import Any, Optional

import uvicorn

from dreamvision.config import _env_int

APP_PATH = "dreamvision.main:app"


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw.isdigit():
        return None
    return int(raw)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the DreamVision API server")
    parser.add_argument("--host", default=None, help="bind address (default: $HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="bind port (default: $PORT or 8000)")
    parser.add_argument("--reload", action="store_true", help="restart on source changes (development only)")
    return parser


def server_settings(args: Optional[argparse.Namespace] = None) -> dict[str, Any]:
    """Keyword arguments for ``uvicorn.run``."""
    host = (args.host if args and args.host else None) or os.getenv("HOST", "0.0.0.0")
    port = args.port if args and args.port else _env_int("PORT", 8000, minimum=1)
    reload = bool(args and args.reload)
    settings: dict[str, Any] = {
        "host": host,
        "port": port,
        "reload": reload,
        # Profiles and entries live in process memory; more workers would split them.
        "workers": 1,
        "timeout_keep_alive": _env_int("UVICORN_TIMEOUT_KEEP_ALIVE", 5, minimum=1),
        "log_level": os.getenv("UVICORN_LOG_LEVEL", "info").strip().lower() or "info",
    }
    limit_concurrency = _env_optional_int("UVICORN_LIMIT_CONCURRENCY")
    if limit_concurrency:
        settings["limit_concurrency"] = limit_concurrency
    return settings


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    uvicorn.run(APP_PATH, **server_settings(args))


if __name__ == "__main__":
    main()
