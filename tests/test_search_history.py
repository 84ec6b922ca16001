"""検索履歴記録サービスのテスト"""

import logging
from unittest.mock import MagicMock

import pytest
import sqlalchemy as sa

from suggestion_service.models.database import SearchHistoryEntry
from suggestion_service.services.search_history import SearchHistoryRecorder

pytestmark = pytest.mark.integration


class TestSearchHistoryRecorder:
    """検索履歴記録サービスのテストクラス"""

    @pytest.fixture
    def recorder(self, session_factory, suggestions_config) -> SearchHistoryRecorder:
        return SearchHistoryRecorder(session_factory, suggestions_config)

    async def _all_rows(self, session_factory) -> list[SearchHistoryEntry]:
        async with session_factory() as session:
            result = await session.execute(sa.select(SearchHistoryEntry))
            return list(result.scalars().all())

    async def test_record_same_day_increments(self, recorder, session_factory):
        """同日の同一検索は回数を加算"""
        assert await recorder.record(1, "photosynthesis", "all", 4)
        assert await recorder.record(1, "photosynthesis", "all", 6)

        rows = await self._all_rows(session_factory)
        assert len(rows) == 1
        assert rows[0].search_count == 2
        assert rows[0].results_count == 6
        assert rows[0].search_context == "all"

    async def test_record_strips_query(self, recorder, session_factory):
        assert await recorder.record(1, "  algebra  ", "blocks", 1)

        rows = await self._all_rows(session_factory)
        assert rows[0].search_query == "algebra"
        assert rows[0].search_context == "blocks"

    async def test_blank_query_is_ignored(self, recorder, session_factory):
        """空クエリは記録しない"""
        assert await recorder.record(1, "   ", "all", 0) is False
        assert await self._all_rows(session_factory) == []

    async def test_invalid_context_is_not_raised(self, recorder, caplog):
        """不正なコンテキストはログのみ"""
        with caplog.at_level(logging.ERROR):
            assert await recorder.record(1, "algebra", "galaxies", 0) is False
        assert "RECORDING_FAILURE" in caplog.text

    async def test_write_failure_is_logged(self, suggestions_config, caplog):
        """書き込み失敗は呼び出し元に伝播しない"""
        factory = MagicMock(side_effect=RuntimeError("disk full"))
        recorder = SearchHistoryRecorder(factory, suggestions_config)

        with caplog.at_level(logging.ERROR):
            assert await recorder.record(1, "algebra", "all", 0) is False
        assert "disk full" in caplog.text

    async def test_get_user_history(self, recorder, add_history):
        """ユーザーの履歴を新しい順に取得"""
        await add_history(1, "older", days_ago=2)
        await add_history(1, "newest")
        await add_history(2, "not mine")

        entries = await recorder.get_user_history(1)

        assert [e.search_query for e in entries] == ["newest", "older"]

    async def test_get_user_history_limit(self, recorder, add_history):
        for days_ago in range(5):
            await add_history(1, f"query {days_ago}", days_ago=days_ago)

        assert len(await recorder.get_user_history(1, limit=3)) == 3

    async def test_get_user_history_failure(self, suggestions_config):
        factory = MagicMock(side_effect=RuntimeError("database is down"))
        recorder = SearchHistoryRecorder(factory, suggestions_config)

        assert await recorder.get_user_history(1) == []

    async def test_purge_default_retention(
        self, recorder, add_history, session_factory, caplog
    ):
        """保持期間（180日）を過ぎた履歴を削除"""
        await add_history(1, "ancient", days_ago=200)
        await add_history(2, "old but kept", days_ago=170)
        await add_history(1, "recent")

        with caplog.at_level(logging.INFO):
            deleted = await recorder.purge_older_than()

        assert deleted == 1
        remaining = {r.search_query for r in await self._all_rows(session_factory)}
        assert remaining == {"old but kept", "recent"}
        assert "1 rows older than 180 days" in caplog.text

    async def test_purge_custom_days(self, recorder, add_history):
        await add_history(1, "last month", days_ago=40)
        await add_history(1, "today")

        assert await recorder.purge_older_than(30) == 1

    async def test_purge_rejects_non_positive_days(self, recorder):
        with pytest.raises(ValueError):
            await recorder.purge_older_than(0)
