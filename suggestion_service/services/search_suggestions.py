"""検索候補・サジェスト集約サービス

- ファンアウト: 適用可能な候補ソースへ並行問い合わせ（ソースごとにタイムアウト）
- マージ: ディスパッチ優先度順に連結し、倍率適用・重複除去
- ランキング: スコア降順、同点は利用回数降順で limit 件に切り詰め
- トレンド補充: 候補が limit 未満ならトレンド候補を別リストで補う
- 高速候補: スコアなしの前方一致オートコンプリート

いずれのソースが失敗しても処理は継続し、呼び出し元に例外は伝播しない。
"""

import asyncio
import logging
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suggestion_service.core.exceptions import (
    AggregationFailure,
    InvalidInput,
    SourceUnavailable,
)
from suggestion_service.models.suggestion import (
    QuickSuggestion,
    SearchContext,
    SourceType,
    SuggestionCandidate,
    SuggestionResponse,
    profile_for,
)
from suggestion_service.repositories.catalog_repository import CatalogRepository
from suggestion_service.services.search_trends import SearchTrendsService
from suggestion_service.services.suggestion_merger import SuggestionMerger
from suggestion_service.services.suggestion_sources import (
    BaseSuggestionSource,
    build_default_sources,
)
from suggestion_service.services.suggestions_config import SuggestionsConfig

logger = logging.getLogger(__name__)

QUICK_MIN_PREFIX_LENGTH = 2


def validate_query(query: str | None) -> str:
    """クエリを正規化し、空なら InvalidInput を送出"""
    term = (query or "").strip()
    if not term:
        raise InvalidInput("Query is empty")
    return term


def rank_suggestions(
    candidates: list[SuggestionCandidate],
) -> list[SuggestionCandidate]:
    """スコア降順・利用回数降順の安定ソート"""
    return sorted(candidates, key=lambda c: (-c.score, -c.usage_count))


class SearchSuggestionsService:
    """検索候補メインサービス"""

    def __init__(
        self,
        config: SuggestionsConfig,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        sources: list[BaseSuggestionSource] | None = None,
        trends: SearchTrendsService | None = None,
        merger: SuggestionMerger | None = None,
    ):
        self.config = config
        self.session_factory = session_factory
        self.trends = trends or SearchTrendsService(session_factory, config)
        if sources is None:
            sources = build_default_sources(session_factory, self.trends, config)
        self.sources = sorted(sources, key=lambda s: s.profile.dispatch_priority)
        self.merger = merger or SuggestionMerger(config.duplicate_policy)

    def _resolve_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.config.default_limit
        return max(1, min(limit, self.config.max_limit))

    async def suggest(
        self,
        query: str | None,
        context: SearchContext | str = SearchContext.ALL,
        requester_id: int | None = None,
        limit: int | None = None,
        roles: Iterable[str] | None = None,
    ) -> SuggestionResponse:
        """検索候補取得"""
        limit = self._resolve_limit(limit)
        query_text = query or ""

        try:
            context = SearchContext(context)
        except ValueError:
            logger.warning(f"Unknown search context: {context!r}")
            return SuggestionResponse(query=query_text)

        try:
            term = validate_query(query)
        except InvalidInput:
            trending = await self.trends.trending_terms(context, limit)
            return SuggestionResponse(query=query_text, trending=trending)

        try:
            return await self._aggregate(term, context, requester_id, limit, roles)
        except Exception as e:
            failure = AggregationFailure(str(e))
            logger.error(f"Suggestion aggregation failed ({failure.error_code}): {e}")
            return SuggestionResponse(query=query_text)

    async def _aggregate(
        self,
        term: str,
        context: SearchContext,
        requester_id: int | None,
        limit: int,
        roles: Iterable[str] | None,
    ) -> SuggestionResponse:
        role_set = frozenset(role.strip().lower() for role in roles or () if role)
        sources = [s for s in self.sources if s.applies_to(context, role_set)]

        # 各ソースを並行実行（完了順ではなく優先度順で結果を扱う）
        results = await asyncio.gather(
            *(
                self._fetch_from_source(
                    source, term, context, requester_id, limit, role_set
                )
                for source in sources
            )
        )
        ordered = [
            candidates
            for _, candidates in sorted(
                zip(sources, results),
                key=lambda pair: pair[0].profile.dispatch_priority,
            )
        ]

        merged = self.merger.merge(ordered)
        suggestions = rank_suggestions(merged)[:limit]

        trending: list[SuggestionCandidate] = []
        if len(suggestions) < limit:
            trending = await self._top_up_trending(context, limit, suggestions)

        return SuggestionResponse(query=term, suggestions=suggestions, trending=trending)

    async def _fetch_from_source(
        self,
        source: BaseSuggestionSource,
        term: str,
        context: SearchContext,
        requester_id: int | None,
        limit: int,
        roles: frozenset[str],
    ) -> list[SuggestionCandidate]:
        """ソース1件の取得。失敗・タイムアウトは空結果として扱う"""
        try:
            return await asyncio.wait_for(
                source.fetch(term, context, requester_id, limit, roles),
                timeout=self.config.source_timeout,
            )
        except TimeoutError:
            logger.warning(
                f"Suggestion source '{source.name}' timed out "
                f"after {self.config.source_timeout}s"
            )
        except SourceUnavailable as e:
            logger.warning(f"Suggestion source unavailable: {e}")
        except Exception as e:
            logger.warning(f"Suggestion source '{source.name}' failed: {e}")
        return []

    async def _top_up_trending(
        self,
        context: SearchContext,
        limit: int,
        suggestions: list[SuggestionCandidate],
    ) -> list[SuggestionCandidate]:
        """不足分をトレンド候補で補う（候補と重複するテキストは除外）"""
        remaining = limit - len(suggestions)
        seen = {s.key for s in suggestions}
        trending = await self.trends.trending_terms(context, remaining + len(seen))
        return [t for t in trending if t.key not in seen][:remaining]

    async def trending_terms(
        self, context: SearchContext | str = SearchContext.ALL, limit: int | None = None
    ) -> list[SuggestionCandidate]:
        """トレンド候補取得"""
        return await self.trends.trending_terms(context, self._resolve_limit(limit))

    async def quick_suggestions(
        self,
        prefix: str | None,
        context: SearchContext | str = SearchContext.ALL,
        limit: int = 5,
    ) -> list[QuickSuggestion]:
        """高速オートコンプリート候補取得

        スコアリングなし、前方一致のみ、アルファベット順。
        """
        prefix = (prefix or "").strip()
        if len(prefix) < QUICK_MIN_PREFIX_LENGTH:
            return []
        limit = self._resolve_limit(limit)
        per_source = max(1, limit // 3)

        try:
            context = SearchContext(context)
        except ValueError:
            logger.warning(f"Unknown search context: {context!r}")
            return []

        try:
            async with self.session_factory() as session:
                repository = CatalogRepository(session, self.config.similarity_threshold)
                found: list[QuickSuggestion] = []
                lookups = (
                    (SourceType.BLOCK, repository.prefix_block_titles),
                    (SourceType.USER, repository.prefix_users),
                    (SourceType.TOPIC, repository.prefix_topics),
                )
                for source_type, lookup in lookups:
                    if context not in profile_for(source_type).contexts:
                        continue
                    label = profile_for(source_type).category_label
                    for text in await lookup(prefix, per_source):
                        found.append(QuickSuggestion(text, source_type, label))
        except Exception as e:
            logger.warning(f"Quick suggestions failed: {e}")
            return []

        found.sort(key=lambda s: (s.text.lower(), s.text, s.source_type.value))
        return found[:limit]
