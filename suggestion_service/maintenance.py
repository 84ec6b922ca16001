"""検索履歴メンテナンスCLI

Usage:
    suggestion-maintenance purge --days 180
"""

import argparse
import asyncio
import logging
import sys

from suggestion_service.core.config import settings
from suggestion_service.database.database import (
    create_engine_from_url,
    create_session_factory,
)
from suggestion_service.services.search_history import SearchHistoryRecorder
from suggestion_service.services.suggestions_config import SuggestionsConfig

logger = logging.getLogger(__name__)


async def purge_history(days: int | None, database_url: str) -> int:
    """保持期間を過ぎた検索履歴を削除"""
    engine = create_engine_from_url(database_url)
    try:
        recorder = SearchHistoryRecorder(
            create_session_factory(engine), SuggestionsConfig.from_settings(settings)
        )
        return await recorder.purge_older_than(days)
    finally:
        await engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="suggestion-maintenance",
        description="Search suggestion history maintenance",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    purge = subparsers.add_parser("purge", help="Delete old search history rows")
    purge.add_argument(
        "--days",
        type=int,
        default=None,
        help=(
            "Retention window in days "
            f"(default: {settings.SUGGEST_HISTORY_RETENTION_DAYS})"
        ),
    )
    purge.add_argument(
        "--database-url",
        default=settings.async_database_url,
        help="Override DATABASE_URL",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)

    if args.command == "purge":
        if args.days is not None and args.days <= 0:
            print("--days must be greater than 0", file=sys.stderr)
            return 2
        try:
            deleted = asyncio.run(purge_history(args.days, args.database_url))
        except Exception as e:
            logger.error(f"Search history purge failed: {e}")
            return 1
        print(f"Deleted {deleted} search history rows")
        return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
