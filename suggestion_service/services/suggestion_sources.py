"""候補ソースアダプター

各アダプターは1つのコレクションに対応し、補正前の類似度スコアを持つ候補を返す。
検索エラーは SourceUnavailable として送出し、アグリゲータ側で空結果に変換される。
"""

from collections.abc import Iterable
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suggestion_service.core.exceptions import SourceUnavailable
from suggestion_service.models.database import utc_now
from suggestion_service.models.suggestion import (
    SearchContext,
    SourceProfile,
    SourceType,
    SuggestionCandidate,
    profile_for,
)
from suggestion_service.repositories.catalog_repository import (
    CatalogRepository,
    MatchRow,
)
from suggestion_service.repositories.search_history_repository import (
    HistoryMatchRow,
    SearchHistoryRepository,
)
from suggestion_service.services.search_trends import SearchTrendsService
from suggestion_service.services.suggestions_config import SuggestionsConfig


class BaseSuggestionSource:
    """候補ソースベースクラス"""

    source_type: SourceType

    def __init__(self, config: SuggestionsConfig):
        self.config = config

    @property
    def profile(self) -> SourceProfile:
        return profile_for(self.source_type)

    @property
    def name(self) -> str:
        return self.source_type.value

    def applies_to(self, context: SearchContext, roles: frozenset[str]) -> bool:
        """このコンテキストで呼び出すか"""
        return context in self.profile.contexts

    async def fetch(
        self,
        term: str,
        context: SearchContext,
        requester_id: int | None,
        limit: int,
        roles: frozenset[str] = frozenset(),
    ) -> list[SuggestionCandidate]:
        """候補取得（オーバーライド必須）"""
        raise NotImplementedError

    def _to_candidates(
        self, rows: Iterable[MatchRow | HistoryMatchRow]
    ) -> list[SuggestionCandidate]:
        return [
            SuggestionCandidate(
                text=row.text,
                source_type=self.source_type,
                score=row.score,
                usage_count=row.usage_count,
            )
            for row in rows
        ]


class DatabaseSource(BaseSuggestionSource):
    """DBを参照するソース（呼び出しごとに独立したセッションを使う）"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: SuggestionsConfig,
    ):
        super().__init__(config)
        self.session_factory = session_factory


class CatalogSource(DatabaseSource):
    """カタログ系ソースの共通処理"""

    async def fetch(
        self,
        term: str,
        context: SearchContext,
        requester_id: int | None,
        limit: int,
        roles: frozenset[str] = frozenset(),
    ) -> list[SuggestionCandidate]:
        if not term.strip():
            return []
        try:
            async with self.session_factory() as session:
                repository = CatalogRepository(session, self.config.similarity_threshold)
                rows = await self._query(
                    repository, term, requester_id, self.profile.cap(limit)
                )
        except Exception as e:
            raise SourceUnavailable(self.name, str(e)) from e
        return self._to_candidates(rows)

    async def _query(
        self,
        repository: CatalogRepository,
        term: str,
        requester_id: int | None,
        cap: int,
    ) -> list[MatchRow]:
        raise NotImplementedError


class BlockTitleSource(CatalogSource):
    """ブロックタイトル候補"""

    source_type = SourceType.BLOCK

    async def _query(self, repository, term, requester_id, cap):
        return await repository.search_block_titles(term, requester_id, cap)


class CategorySource(CatalogSource):
    """カテゴリ候補"""

    source_type = SourceType.CATEGORY

    async def _query(self, repository, term, requester_id, cap):
        return await repository.search_categories(term, requester_id, cap)


class UserSource(CatalogSource):
    """ユーザー候補"""

    source_type = SourceType.USER

    async def _query(self, repository, term, requester_id, cap):
        return await repository.search_users(term, cap)


class TopicSource(CatalogSource):
    """トピック候補"""

    source_type = SourceType.TOPIC

    async def _query(self, repository, term, requester_id, cap):
        return await repository.search_topics(term, requester_id, cap)


class PopularQuerySource(DatabaseSource):
    """全ユーザーの人気検索候補"""

    source_type = SourceType.POPULAR

    async def fetch(
        self,
        term: str,
        context: SearchContext,
        requester_id: int | None,
        limit: int,
        roles: frozenset[str] = frozenset(),
    ) -> list[SuggestionCandidate]:
        if not term.strip():
            return []
        since = utc_now() - timedelta(days=self.config.popular_window_days)
        try:
            async with self.session_factory() as session:
                repository = SearchHistoryRepository(
                    session, self.config.similarity_threshold
                )
                rows = await repository.popular_queries(
                    term=term,
                    since=since,
                    min_count=self.config.popular_min_count,
                    limit=self.profile.cap(limit),
                    search_context=(
                        None if context == SearchContext.ALL else context.value
                    ),
                )
        except Exception as e:
            raise SourceUnavailable(self.name, str(e)) from e
        return self._to_candidates(rows)


class PersonalHistorySource(BaseSuggestionSource):
    """リクエスト者自身の検索履歴候補"""

    source_type = SourceType.PERSONAL

    def __init__(self, trends: SearchTrendsService, config: SuggestionsConfig):
        super().__init__(config)
        self.trends = trends

    async def fetch(
        self,
        term: str,
        context: SearchContext,
        requester_id: int | None,
        limit: int,
        roles: frozenset[str] = frozenset(),
    ) -> list[SuggestionCandidate]:
        return await self.trends.personal_suggestions(
            term, requester_id, self.profile.cap(limit)
        )


class ContextualSource(BaseSuggestionSource):
    """ロール別テンプレート候補"""

    source_type = SourceType.CONTEXTUAL

    def __init__(self, trends: SearchTrendsService, config: SuggestionsConfig):
        super().__init__(config)
        self.trends = trends

    def applies_to(self, context: SearchContext, roles: frozenset[str]) -> bool:
        return (
            self.config.include_contextual
            and bool(roles)
            and super().applies_to(context, roles)
        )

    async def fetch(
        self,
        term: str,
        context: SearchContext,
        requester_id: int | None,
        limit: int,
        roles: frozenset[str] = frozenset(),
    ) -> list[SuggestionCandidate]:
        return self.trends.contextual_suggestions(
            term, context, roles, self.profile.cap(limit)
        )


def build_default_sources(
    session_factory: async_sessionmaker[AsyncSession],
    trends: SearchTrendsService,
    config: SuggestionsConfig,
) -> list[BaseSuggestionSource]:
    """ディスパッチ優先度順の標準ソース一覧"""
    sources: list[BaseSuggestionSource] = [
        BlockTitleSource(session_factory, config),
        CategorySource(session_factory, config),
        UserSource(session_factory, config),
        TopicSource(session_factory, config),
        PopularQuerySource(session_factory, config),
        PersonalHistorySource(trends, config),
        ContextualSource(trends, config),
    ]
    return sorted(sources, key=lambda s: s.profile.dispatch_priority)
