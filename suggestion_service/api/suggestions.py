"""検索サジェストAPI"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suggestion_service.core.config import settings
from suggestion_service.database.database import get_session_factory
from suggestion_service.models.suggestion import SearchContext, SuggestionCandidate
from suggestion_service.services.search_history import SearchHistoryRecorder
from suggestion_service.services.search_suggestions import SearchSuggestionsService
from suggestion_service.services.suggestions_config import SuggestionsConfig

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/suggestions", tags=["suggestions"])


class SuggestionRequest(BaseModel):
    """サジェストリクエスト"""

    query: str = Field("", description="入力途中の検索クエリ")
    context: str = Field(SearchContext.ALL.value, description="検索コンテキスト")
    limit: int | None = Field(None, description="最大候補数", ge=1)


class SuggestionItem(BaseModel):
    """サジェスト候補"""

    text: str
    source_type: str
    category_label: str
    score: float
    usage_count: int = 0
    last_used: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SuggestionListResponse(BaseModel):
    """サジェストレスポンス"""

    query: str
    suggestions: list[SuggestionItem]
    trending: list[SuggestionItem]


class RecordSearchRequest(BaseModel):
    """検索記録リクエスト"""

    query: str = Field(..., description="実行された検索クエリ", min_length=1)
    context: SearchContext = Field(SearchContext.ALL, description="検索コンテキスト")
    results_count: int = Field(0, description="検索結果件数", ge=0)


class HistoryItem(BaseModel):
    """検索履歴"""

    search_query: str
    search_context: str
    search_count: int
    results_count: int
    last_searched: datetime
    created_at: datetime


class QuickSuggestionRequest(BaseModel):
    """高速候補リクエスト"""

    prefix: str = Field(..., description="前方一致プレフィックス")
    context: str = Field(SearchContext.ALL.value, description="検索コンテキスト")
    limit: int = Field(5, description="最大候補数", ge=1, le=50)


class QuickSuggestionItem(BaseModel):
    """高速候補"""

    text: str
    source_type: str
    category_label: str


# リクエスト者依存性
async def get_requester(
    x_user_id: str | None = Header(None),
    x_user_roles: str | None = Header(None),
) -> dict[str, Any]:
    """X-User-Id / X-User-Roles ヘッダーからリクエスト者を取得"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    try:
        user_id = int(x_user_id)
    except ValueError as e:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header") from e
    if user_id <= 0:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header")

    roles = [
        role.strip().lower() for role in (x_user_roles or "").split(",") if role.strip()
    ]
    return {"user_id": user_id, "roles": roles}


def get_suggestions_config() -> SuggestionsConfig:
    """エンジン設定の依存性注入"""
    return SuggestionsConfig.from_settings(settings)


def get_suggestions_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    config: SuggestionsConfig = Depends(get_suggestions_config),
) -> SearchSuggestionsService:
    """サジェストサービスの依存性注入"""
    return SearchSuggestionsService(config=config, session_factory=session_factory)


def get_history_recorder(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    config: SuggestionsConfig = Depends(get_suggestions_config),
) -> SearchHistoryRecorder:
    """検索履歴記録サービスの依存性注入"""
    return SearchHistoryRecorder(session_factory, config)


def _to_item(candidate: SuggestionCandidate) -> SuggestionItem:
    return SuggestionItem(**candidate.to_dict())


@router.post("", response_model=SuggestionListResponse)
async def get_suggestions(
    request: SuggestionRequest,
    requester: dict = Depends(get_requester),
    service: SearchSuggestionsService = Depends(get_suggestions_service),
):
    """検索サジェスト取得

    複数ソースの候補を統合・ランキングして返します。
    候補が不足する場合はトレンド候補を別リストで補います。
    """
    result = await service.suggest(
        request.query,
        context=request.context,
        requester_id=requester["user_id"],
        limit=request.limit,
        roles=requester["roles"],
    )
    logger.debug(f"Suggestion summary: {result.get_summary()}")

    return SuggestionListResponse(
        query=result.query,
        suggestions=[_to_item(s) for s in result.suggestions],
        trending=[_to_item(t) for t in result.trending],
    )


@router.post("/record-search", status_code=202)
async def record_search(
    request: RecordSearchRequest,
    background_tasks: BackgroundTasks,
    requester: dict = Depends(get_requester),
    recorder: SearchHistoryRecorder = Depends(get_history_recorder),
):
    """検索の記録

    記録はレスポンス返却後にバックグラウンドで実行されます。
    """
    background_tasks.add_task(
        recorder.record,
        requester["user_id"],
        request.query,
        request.context,
        request.results_count,
    )
    return {"accepted": True}


@router.get("/history", response_model=list[HistoryItem])
async def get_search_history(
    limit: int = Query(20, ge=1, le=100),
    requester: dict = Depends(get_requester),
    recorder: SearchHistoryRecorder = Depends(get_history_recorder),
):
    """リクエスト者の検索履歴取得"""
    entries = await recorder.get_user_history(requester["user_id"], limit)
    return [
        HistoryItem(
            search_query=entry.search_query,
            search_context=entry.search_context,
            search_count=entry.search_count,
            results_count=entry.results_count,
            last_searched=entry.last_searched,
            created_at=entry.created_at,
        )
        for entry in entries
    ]


@router.post("/quick", response_model=list[QuickSuggestionItem])
async def get_quick_suggestions(
    request: QuickSuggestionRequest,
    requester: dict = Depends(get_requester),
    service: SearchSuggestionsService = Depends(get_suggestions_service),
):
    """高速オートコンプリート候補取得

    スコアリングなしの前方一致候補をアルファベット順で返します。
    """
    suggestions = await service.quick_suggestions(
        request.prefix, context=request.context, limit=request.limit
    )
    return [QuickSuggestionItem(**s.to_dict()) for s in suggestions]
