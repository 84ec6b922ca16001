"""検索履歴記録サービス

検索完了後にリクエスト経路の外で呼び出される。書き込み失敗はログのみで呼び出し元へは
伝播しない。古い履歴の削除はメンテナンス処理からのみ実行する。
"""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suggestion_service.core.exceptions import RecordingFailure
from suggestion_service.models.database import SearchHistoryEntry, utc_now
from suggestion_service.models.suggestion import SearchContext
from suggestion_service.repositories.search_history_repository import (
    SearchHistoryRepository,
)
from suggestion_service.services.suggestions_config import SuggestionsConfig

logger = logging.getLogger(__name__)


class SearchHistoryRecorder:
    """検索履歴の記録・参照・削除"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: SuggestionsConfig,
    ):
        self.session_factory = session_factory
        self.config = config

    async def record(
        self,
        user_id: int,
        query: str,
        context: SearchContext | str = SearchContext.ALL,
        results_count: int = 0,
    ) -> bool:
        """検索を記録（同日同一検索は回数を加算）"""
        query = (query or "").strip()
        if not query:
            return False

        try:
            context = SearchContext(context).value
            async with self.session_factory() as session:
                await SearchHistoryRepository(session).upsert_daily(
                    user_id=user_id,
                    search_query=query,
                    search_context=context,
                    results_count=max(0, results_count),
                    searched_at=utc_now(),
                )
            return True
        except Exception as e:
            failure = RecordingFailure(str(e))
            logger.error(
                f"Failed to record search for user {user_id} "
                f"({failure.error_code}): {e}"
            )
            return False

    async def get_user_history(
        self, user_id: int, limit: int = 20
    ) -> list[SearchHistoryEntry]:
        """ユーザーの検索履歴取得"""
        try:
            async with self.session_factory() as session:
                return await SearchHistoryRepository(session).list_for_user(
                    user_id, max(1, limit)
                )
        except Exception as e:
            logger.warning(f"Failed to load search history for user {user_id}: {e}")
            return []

    async def purge_older_than(self, days: int | None = None) -> int:
        """保持期間を過ぎた履歴を削除し、削除件数を返す"""
        days = days if days is not None else self.config.history_retention_days
        if days <= 0:
            raise ValueError("days must be greater than 0")
        cutoff = utc_now() - timedelta(days=days)

        async with self.session_factory() as session:
            deleted = await SearchHistoryRepository(session).delete_older_than(cutoff)

        logger.info(f"Search history cleanup: {deleted} rows older than {days} days removed")
        return deleted
