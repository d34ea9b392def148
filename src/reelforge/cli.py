"""Lightweight CLI utilities for deployment scripts."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from .config import settings
from .database import init_database
from .instrumentation import get_logger
from .serialization import dumps

logger = get_logger()


async def _run_init_db() -> int:
    if not settings.database_url:
        logger.warning("DATABASE_URL is not configured; skipping migrations.")
        return 0

    try:
        await init_database()
        logger.info("Database migrations completed.")
        return 0
    except Exception as exc:  # pragma: no cover - deployment path
        logger.error("Database migration failed: %s", exc)
        return 1


async def _run_segment(path: Path) -> int:
    from .segmentation import SegmentPipeline

    script = path.read_text(encoding="utf-8")
    segments = await SegmentPipeline().generate(script)
    print(dumps(segments, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="reelforge-cli")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("init-db", help="Create database tables.")
    segment_parser = subparsers.add_parser("segment", help="Split a script file into shot segments.")
    segment_parser.add_argument("file", type=Path, help="UTF-8 script file.")
    args = parser.parse_args(argv)

    if args.command == "init-db":
        return asyncio.run(_run_init_db())
    if args.command == "segment":
        if not args.file.is_file():
            logger.error("Script file %s does not exist", args.file)
            return 1
        return asyncio.run(_run_segment(args.file))

    parser.print_help()
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
