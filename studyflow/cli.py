"""Command line entry point for the StudyFlow server."""

from __future__ import annotations

import argparse
from pathlib import Path

from loguru import logger

from .config import Settings, load_settings
from .taskboard.server import StudyFlowServer
from .utils.logging import setup_logger


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments; unset flags fall back to STUDYFLOW_* variables."""
    parser = argparse.ArgumentParser(
        description="Run the StudyFlow collaborative task board server"
    )
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument(
        "--app-id",
        default=None,
        help="Application id namespacing the task collection",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g., INFO, DEBUG)",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Optional log file")
    parser.add_argument(
        "--plain-logs",
        action="store_true",
        help="Log with a plain colourised format instead of Rich",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, base: Settings | None = None) -> Settings:
    base = load_settings() if base is None else base
    return base.with_overrides(
        host=args.host,
        port=args.port,
        app_id=args.app_id,
        log_level=args.log_level.upper() if args.log_level else None,
        log_file=args.log_file,
    )


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = build_settings(args)
    setup_logger(level=settings.log_level, log_file=settings.log_file, use_rich=not args.plain_logs)

    if settings.backend_config is None:
        logger.error("Backend configuration is missing; set STUDYFLOW_BACKEND_CONFIG")
    logger.info(f"Task collection: {settings.collection_path}")
    StudyFlowServer(settings).run()


if __name__ == "__main__":
    main()
