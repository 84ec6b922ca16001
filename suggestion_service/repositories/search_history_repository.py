"""検索履歴リポジトリ"""

from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from suggestion_service.core.exceptions import DatabaseException
from suggestion_service.models.database import SearchHistoryEntry


@dataclass
class HistoryMatchRow:
    """履歴あいまい検索の1行"""

    text: str
    usage_count: int
    score: float
    last_used: datetime | None = None


@dataclass
class TrendingRow:
    """トレンド集計の1行"""

    text: str
    usage_count: int
    unique_users: int


class SearchHistoryRepository:
    """検索履歴の追記・集計・削除を管理するリポジトリクラス"""

    def __init__(self, session: AsyncSession, similarity_threshold: float = 0.3):
        self.session = session
        self.similarity_threshold = similarity_threshold

    def _insert(self):
        """ダイアレクト別の INSERT ... ON CONFLICT 構文"""
        dialect = self.session.bind.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(SearchHistoryEntry)
        if dialect == "sqlite":
            return sqlite.insert(SearchHistoryEntry)
        raise DatabaseException(f"Upsert is not supported on dialect: {dialect}")

    async def upsert_daily(
        self,
        user_id: int,
        search_query: str,
        search_context: str,
        results_count: int,
        searched_at: datetime,
    ) -> None:
        """同日の同一検索は search_count を加算、なければ新規作成"""
        stmt = self._insert().values(
            user_id=user_id,
            search_query=search_query,
            search_context=search_context,
            search_date=searched_at.date(),
            search_count=1,
            results_count=results_count,
            last_searched=searched_at,
            created_at=searched_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                SearchHistoryEntry.user_id,
                SearchHistoryEntry.search_query,
                SearchHistoryEntry.search_context,
                SearchHistoryEntry.search_date,
            ],
            set_={
                "search_count": SearchHistoryEntry.search_count + 1,
                "results_count": stmt.excluded.results_count,
                "last_searched": stmt.excluded.last_searched,
            },
        )
        await self.session.execute(stmt)
        await self.session.commit()

    async def list_for_user(self, user_id: int, limit: int = 20) -> list[SearchHistoryEntry]:
        """ユーザーの検索履歴を新しい順に取得"""
        result = await self.session.execute(
            sa.select(SearchHistoryEntry)
            .where(SearchHistoryEntry.user_id == user_id)
            .order_by(
                SearchHistoryEntry.last_searched.desc(),
                SearchHistoryEntry.search_count.desc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def popular_queries(
        self,
        term: str,
        since: datetime,
        min_count: int,
        limit: int,
        search_context: str | None = None,
    ) -> list[HistoryMatchRow]:
        """全ユーザーで一定回数以上検索されたクエリのあいまい検索"""
        score = func.similarity(SearchHistoryEntry.search_query, term)
        occurrences = func.sum(SearchHistoryEntry.search_count)
        query = sa.select(
            SearchHistoryEntry.search_query.label("text"),
            occurrences.label("usage_count"),
            score.label("score"),
        ).where(
            score >= self.similarity_threshold,
            SearchHistoryEntry.created_at >= since,
        )
        if search_context:
            query = query.where(SearchHistoryEntry.search_context == search_context)
        query = (
            query.group_by(SearchHistoryEntry.search_query)
            .having(occurrences >= min_count)
            .order_by(score.desc(), occurrences.desc(), SearchHistoryEntry.search_query)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [
            HistoryMatchRow(
                text=row.text, usage_count=int(row.usage_count), score=float(row.score)
            )
            for row in result
        ]

    async def personal_queries(
        self, term: str, user_id: int, since: datetime, limit: int
    ) -> list[HistoryMatchRow]:
        """ユーザー自身の過去検索のあいまい検索"""
        score = func.similarity(SearchHistoryEntry.search_query, term)
        occurrences = func.sum(SearchHistoryEntry.search_count)
        last_used = func.max(SearchHistoryEntry.last_searched)
        query = (
            sa.select(
                SearchHistoryEntry.search_query.label("text"),
                occurrences.label("usage_count"),
                score.label("score"),
                last_used.label("last_used"),
            )
            .where(
                SearchHistoryEntry.user_id == user_id,
                score >= self.similarity_threshold,
                SearchHistoryEntry.created_at >= since,
            )
            .group_by(SearchHistoryEntry.search_query)
            .order_by(
                score.desc(),
                last_used.desc(),
                occurrences.desc(),
                SearchHistoryEntry.search_query,
            )
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [
            HistoryMatchRow(
                text=row.text,
                usage_count=int(row.usage_count),
                score=float(row.score),
                last_used=row.last_used,
            )
            for row in result
        ]

    async def trending_queries(
        self,
        since: datetime,
        min_users: int,
        limit: int,
        search_context: str | None = None,
    ) -> list[TrendingRow]:
        """複数ユーザーが最近検索したクエリを集計"""
        # 大文字小文字違いは1語として集計
        normalized = func.lower(SearchHistoryEntry.search_query)
        display_text = func.min(SearchHistoryEntry.search_query)
        unique_users = func.count(sa.distinct(SearchHistoryEntry.user_id))
        occurrences = func.sum(SearchHistoryEntry.search_count)
        query = sa.select(
            display_text.label("text"),
            occurrences.label("usage_count"),
            unique_users.label("unique_users"),
        ).where(SearchHistoryEntry.created_at >= since)
        if search_context:
            query = query.where(SearchHistoryEntry.search_context == search_context)
        query = (
            query.group_by(normalized)
            .having(unique_users >= min_users)
            .order_by(unique_users.desc(), occurrences.desc(), display_text)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [
            TrendingRow(
                text=row.text,
                usage_count=int(row.usage_count),
                unique_users=int(row.unique_users),
            )
            for row in result
        ]

    async def delete_older_than(self, cutoff: datetime) -> int:
        """指定日時より古い履歴を削除し、削除件数を返す"""
        result = await self.session.execute(
            sa.delete(SearchHistoryEntry).where(SearchHistoryEntry.created_at < cutoff)
        )
        await self.session.commit()
        return result.rowcount or 0
