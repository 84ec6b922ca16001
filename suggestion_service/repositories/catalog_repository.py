"""カタログ（ブロック・カテゴリ・ユーザー・トピック）リポジトリ

トライグラム類似度によるあいまい検索を提供する読み取り専用のクエリストア。
共有コンテンツは公開済み、もしくはリクエスト者が作成者のものだけを返す。
"""

from dataclasses import dataclass

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from suggestion_service.models.database import Block, Question, User


@dataclass
class MatchRow:
    """あいまい検索の1行"""

    text: str
    usage_count: int
    score: float


def _visible_blocks(requester_id: int | None) -> sa.ColumnElement[bool]:
    """公開ブロック、またはリクエスト者自身のブロック"""
    if requester_id is None:
        return Block.visibility == "public"
    return sa.or_(Block.visibility == "public", Block.creator_id == requester_id)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CatalogRepository:
    """カタログのあいまい検索・プレフィックス検索を行うリポジトリクラス"""

    def __init__(self, session: AsyncSession, similarity_threshold: float = 0.3):
        self.session = session
        self.similarity_threshold = similarity_threshold

    async def _fetch_matches(self, query: sa.Select) -> list[MatchRow]:
        result = await self.session.execute(query)
        return [
            MatchRow(
                text=row.text,
                usage_count=int(row.usage_count or 0),
                score=float(row.score or 0.0),
            )
            for row in result
        ]

    async def search_block_titles(
        self, term: str, requester_id: int | None, limit: int
    ) -> list[MatchRow]:
        """ブロックタイトルのあいまい検索"""
        score = func.similarity(Block.title, term)
        usage = func.count(Block.id)
        query = (
            sa.select(
                Block.title.label("text"),
                usage.label("usage_count"),
                score.label("score"),
            )
            .where(score >= self.similarity_threshold, _visible_blocks(requester_id))
            .group_by(Block.title)
            .order_by(score.desc(), usage.desc(), Block.title)
            .limit(limit)
        )
        return await self._fetch_matches(query)

    async def search_categories(
        self, term: str, requester_id: int | None, limit: int
    ) -> list[MatchRow]:
        """ブロックカテゴリのあいまい検索"""
        score = func.similarity(Block.category, term)
        usage = func.count(Block.id)
        query = (
            sa.select(
                Block.category.label("text"),
                usage.label("usage_count"),
                score.label("score"),
            )
            .where(
                Block.category.is_not(None),
                score >= self.similarity_threshold,
                _visible_blocks(requester_id),
            )
            .group_by(Block.category)
            .order_by(score.desc(), usage.desc(), Block.category)
            .limit(limit)
        )
        return await self._fetch_matches(query)

    async def search_users(self, term: str, limit: int) -> list[MatchRow]:
        """ユーザーニックネームのあいまい検索"""
        score = func.similarity(User.nickname, term)
        query = (
            sa.select(
                User.nickname.label("text"),
                sa.literal(1).label("usage_count"),
                score.label("score"),
            )
            .where(score >= self.similarity_threshold)
            .order_by(score.desc(), User.nickname)
            .limit(limit)
        )
        return await self._fetch_matches(query)

    async def search_topics(
        self, term: str, requester_id: int | None, limit: int
    ) -> list[MatchRow]:
        """問題トピックのあいまい検索（ブロックの公開範囲に従う）"""
        score = func.similarity(Question.topic, term)
        usage = func.count(Question.id)
        query = (
            sa.select(
                Question.topic.label("text"),
                usage.label("usage_count"),
                score.label("score"),
            )
            .join(Block, Question.block_id == Block.id)
            .where(
                Question.topic.is_not(None),
                score >= self.similarity_threshold,
                _visible_blocks(requester_id),
            )
            .group_by(Question.topic)
            .order_by(score.desc(), usage.desc(), Question.topic)
            .limit(limit)
        )
        return await self._fetch_matches(query)

    async def prefix_block_titles(self, prefix: str, limit: int) -> list[str]:
        """公開ブロックタイトルの前方一致検索"""
        query = (
            sa.select(Block.title)
            .where(
                Block.title.ilike(f"{_escape_like(prefix)}%", escape="\\"),
                Block.visibility == "public",
            )
            .distinct()
            .order_by(Block.title)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def prefix_users(self, prefix: str, limit: int) -> list[str]:
        """ユーザーニックネームの前方一致検索"""
        query = (
            sa.select(User.nickname)
            .where(User.nickname.ilike(f"{_escape_like(prefix)}%", escape="\\"))
            .order_by(User.nickname)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def prefix_topics(self, prefix: str, limit: int) -> list[str]:
        """公開ブロックに属するトピックの前方一致検索"""
        query = (
            sa.select(Question.topic)
            .join(Block, Question.block_id == Block.id)
            .where(
                Question.topic.ilike(f"{_escape_like(prefix)}%", escape="\\"),
                Block.visibility == "public",
            )
            .distinct()
            .order_by(Question.topic)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
