from __future__ import annotations

import argparse

import uvicorn

from minrisk.core.config import get_settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the MinRisk API")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (local dev)")
    return parser


def main() -> None:
    args = _build_parser().parse_args()
    settings = get_settings()
    uvicorn.run(
        "minrisk.apps.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
