"""トレンド・個人履歴・コンテキスト候補サービス

- トレンド候補: 直近の複数ユーザー検索の集計（単一ユーザーの連打は除外）
- 個人候補: ユーザー自身の過去検索のあいまい一致
- コンテキスト候補: ロールに応じた言い換えテンプレート（データ参照なし）
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suggestion_service.core.exceptions import SourceUnavailable
from suggestion_service.models.database import utc_now
from suggestion_service.models.suggestion import (
    SearchContext,
    SourceType,
    SuggestionCandidate,
)
from suggestion_service.repositories.search_history_repository import (
    SearchHistoryRepository,
)
from suggestion_service.services.suggestions_config import SuggestionsConfig

logger = logging.getLogger(__name__)

MIN_CONTEXTUAL_TERM_LENGTH = 3


@dataclass(frozen=True)
class RoleTemplate:
    """ロール別の言い換えテンプレート"""

    role: str
    category_label: str
    score: float
    rules: tuple[tuple[tuple[str, ...], str], ...]
    fallback: str

    def render(self, term: str) -> str:
        lowered = term.lower()
        for keywords, template in self.rules:
            if any(keyword in lowered for keyword in keywords):
                return template.format(term=term)
        return self.fallback.format(term=term)


ROLE_TEMPLATES: tuple[RoleTemplate, ...] = (
    RoleTemplate(
        role="teacher",
        category_label="For teachers",
        score=0.7,
        rules=(
            (("class",), "classes for {term}"),
            (("student",), "students in {term}"),
            (("exam",), "exams on {term}"),
        ),
        fallback="material for {term}",
    ),
    RoleTemplate(
        role="creator",
        category_label="For creators",
        score=0.6,
        rules=(
            (("block", "question"), "create {term}"),
            (("difficult",), "{term} advanced"),
        ),
        fallback="{term} for creators",
    ),
)


def _context_filter(context: SearchContext) -> str | None:
    return None if context == SearchContext.ALL else context.value


class SearchTrendsService:
    """検索履歴ベースの候補サービス"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: SuggestionsConfig,
    ):
        self.session_factory = session_factory
        self.config = config

    def _repository(self, session: AsyncSession) -> SearchHistoryRepository:
        return SearchHistoryRepository(session, self.config.similarity_threshold)

    async def trending_terms(
        self, context: SearchContext | str, limit: int
    ) -> list[SuggestionCandidate]:
        """トレンド候補取得

        失敗時は空リストを返す（サジェストはベストエフォート）。
        """
        if limit <= 0:
            return []
        context = SearchContext(context)
        since = utc_now() - timedelta(days=self.config.trending_window_days)

        try:
            async with self.session_factory() as session:
                rows = await self._repository(session).trending_queries(
                    since=since,
                    min_users=self.config.trending_min_users,
                    limit=limit,
                    search_context=_context_filter(context),
                )
        except Exception as e:
            logger.warning(f"Trending lookup failed: {e}")
            return []

        candidates: list[SuggestionCandidate] = []
        seen: set[str] = set()
        for row in rows:
            candidate = SuggestionCandidate(
                text=row.text,
                source_type=SourceType.TRENDING,
                score=self.config.trending_score,
                usage_count=row.usage_count,
                unique_users=row.unique_users,
            )
            if candidate.key in seen:
                continue
            seen.add(candidate.key)
            candidates.append(candidate)
        return candidates

    async def personal_suggestions(
        self, term: str, user_id: int | None, limit: int
    ) -> list[SuggestionCandidate]:
        """個人履歴候補取得（スコアは補正前の類似度）"""
        if user_id is None or not term.strip():
            return []
        since = utc_now() - timedelta(days=self.config.personal_window_days)

        try:
            async with self.session_factory() as session:
                rows = await self._repository(session).personal_queries(
                    term=term, user_id=user_id, since=since, limit=limit
                )
        except Exception as e:
            raise SourceUnavailable(SourceType.PERSONAL.value, str(e)) from e

        return [
            SuggestionCandidate(
                text=row.text,
                source_type=SourceType.PERSONAL,
                score=row.score,
                usage_count=row.usage_count,
                last_used=row.last_used,
            )
            for row in rows
        ]

    def contextual_suggestions(
        self,
        term: str,
        context: SearchContext | str,
        roles: Iterable[str],
        limit: int,
    ) -> list[SuggestionCandidate]:
        """ロール別の言い換え候補生成"""
        term = term.strip()
        if len(term) < MIN_CONTEXTUAL_TERM_LENGTH or limit <= 0:
            return []

        role_set = {role.strip().lower() for role in roles if role}
        candidates = [
            SuggestionCandidate(
                text=template.render(term),
                source_type=SourceType.CONTEXTUAL,
                score=template.score,
                category_label=template.category_label,
                metadata={"role": template.role, "context": SearchContext(context).value},
            )
            for template in ROLE_TEMPLATES
            if template.role in role_set
        ]
        return candidates[:limit]
