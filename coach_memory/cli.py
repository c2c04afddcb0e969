"""
CLI entry points.

Usage:
    coach-memory-serve
    coach-memory-serve --port 8080 --host 127.0.0.1 --memory-dir data/memories
    coach-memory-cleanup --retention-days 30
"""

import argparse
import os
import sys
from typing import List, Optional

import uvicorn

from coach_memory.config.settings import Settings
from coach_memory.memory.integrate import create_memory_integration
from coach_memory.telemetry import configure_logging, get_logger


def _common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--memory-dir",
        type=str,
        default=None,
        help="Directory for per-user memory files (overrides COACH_MEMORY_DIR)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (overrides COACH_MEMORY_LOG_LEVEL)",
    )
    parser.add_argument(
        "--console-logs",
        action="store_true",
        help="Human-readable logs instead of JSON lines",
    )


def _apply_common(args: argparse.Namespace) -> Settings:
    # Written back to the environment so uvicorn reload workers see the same config
    if args.memory_dir:
        os.environ["COACH_MEMORY_DIR"] = args.memory_dir
    if args.log_level:
        os.environ["COACH_MEMORY_LOG_LEVEL"] = args.log_level

    settings = Settings.from_env()
    configure_logging(settings.logging.level, json_format=settings.logging.json_format and not args.console_logs)
    return settings


def serve(argv: Optional[List[str]] = None) -> int:
    """Launch the FastAPI server."""
    parser = argparse.ArgumentParser(description="Launch the coach memory API server")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    _common_args(parser)

    args = parser.parse_args(argv)
    settings = _apply_common(args)

    logger = get_logger("coach_memory.cli")
    logger.info(
        "server_starting",
        host=args.host,
        port=args.port,
        memory_dir=settings.paths.memory_dir,
        judge=settings.classifier.provider,
    )

    uvicorn.run(
        "coach_memory.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def cleanup(argv: Optional[List[str]] = None) -> int:
    """Apply the retention policy to every stored user."""
    parser = argparse.ArgumentParser(description="Remove stale memories for all users")
    parser.add_argument(
        "--retention-days",
        type=int,
        default=None,
        help="Age threshold in days (default: COACH_MEMORY_RETENTION_DAYS or 30)",
    )
    _common_args(parser)

    args = parser.parse_args(argv)
    settings = _apply_common(args)
    memory = create_memory_integration(settings)

    logger = get_logger("coach_memory.cli")
    users = memory.store.list_users()
    total = 0
    for user_id in users:
        removed = memory.cleanup(user_id, retention_days=args.retention_days)
        total += removed

    logger.info("cleanup_finished", users=len(users), removed=total)
    print(f"Removed {total} memories")
    return 0


if __name__ == "__main__":
    sys.exit(serve())
