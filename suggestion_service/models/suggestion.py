"""サジェスト候補のドメインモデル

ソース種別ごとのスコア倍率・ディスパッチ優先度は SOURCE_PROFILES に集約する。
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SearchContext(str, Enum):
    """検索コンテキスト（参加ソースの絞り込み）"""

    ALL = "all"
    BLOCKS = "blocks"
    USERS = "users"
    TOPICS = "topics"


class SourceType(str, Enum):
    """候補ソース種別"""

    BLOCK = "block"
    CATEGORY = "category"
    USER = "user"
    TOPIC = "topic"
    POPULAR = "popular"
    PERSONAL = "personal"
    CONTEXTUAL = "contextual"
    TRENDING = "trending"


class DuplicatePolicy(str, Enum):
    """重複テキスト衝突時の採用ポリシー"""

    FIRST_SEEN = "first_seen"
    HIGHEST_SCORE = "highest_score"


_EVERY_CONTEXT = frozenset(SearchContext)


@dataclass(frozen=True)
class SourceProfile:
    """ソース種別ごとの固定パラメータ"""

    multiplier: float
    dispatch_priority: int
    category_label: str
    contexts: frozenset[SearchContext] = _EVERY_CONTEXT
    cap_fraction: float = 1.0

    def cap(self, limit: int) -> int:
        """1ソースあたりの取得上限"""
        return max(1, int(limit * self.cap_fraction))


SOURCE_PROFILES: dict[SourceType, SourceProfile] = {
    SourceType.BLOCK: SourceProfile(
        multiplier=1.2,
        dispatch_priority=0,
        category_label="Block",
        contexts=frozenset({SearchContext.ALL, SearchContext.BLOCKS}),
        cap_fraction=1 / 4,
    ),
    SourceType.CATEGORY: SourceProfile(
        multiplier=1.0,
        dispatch_priority=1,
        category_label="Category",
        contexts=frozenset({SearchContext.ALL, SearchContext.BLOCKS}),
        cap_fraction=1 / 6,
    ),
    SourceType.USER: SourceProfile(
        multiplier=1.0,
        dispatch_priority=2,
        category_label="User",
        contexts=frozenset({SearchContext.ALL, SearchContext.USERS}),
        cap_fraction=1 / 4,
    ),
    SourceType.TOPIC: SourceProfile(
        multiplier=1.0,
        dispatch_priority=3,
        category_label="Topic",
        contexts=frozenset({SearchContext.ALL, SearchContext.TOPICS}),
        cap_fraction=1 / 4,
    ),
    SourceType.POPULAR: SourceProfile(
        multiplier=0.8, dispatch_priority=4, category_label="Popular"
    ),
    SourceType.PERSONAL: SourceProfile(
        multiplier=1.1, dispatch_priority=5, category_label="Your history"
    ),
    SourceType.CONTEXTUAL: SourceProfile(
        multiplier=1.0,
        dispatch_priority=6,
        category_label="Suggested",
        cap_fraction=1 / 2,
    ),
    SourceType.TRENDING: SourceProfile(
        multiplier=1.0, dispatch_priority=7, category_label="Trending"
    ),
}


def profile_for(source_type: SourceType) -> SourceProfile:
    """ソース種別のプロファイルを取得"""
    return SOURCE_PROFILES[source_type]


@dataclass
class SuggestionCandidate:
    """サジェスト候補"""

    text: str
    source_type: SourceType
    score: float
    category_label: str = ""
    usage_count: int = 0
    last_used: datetime | None = None
    unique_users: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.category_label:
            self.category_label = profile_for(self.source_type).category_label

    @property
    def key(self) -> str:
        """重複判定キー（大文字小文字を区別しない）"""
        return self.text.lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "source_type": self.source_type.value,
            "category_label": self.category_label,
            "score": self.score,
            "usage_count": self.usage_count,
            "last_used": self.last_used.isoformat() if self.last_used else None,
            "metadata": dict(self.metadata),
        }


@dataclass
class SuggestionResponse:
    """サジェスト結果"""

    query: str
    suggestions: list[SuggestionCandidate] = field(default_factory=list)
    trending: list[SuggestionCandidate] = field(default_factory=list)

    def get_summary(self) -> dict[str, Any]:
        """結果のサマリーを取得"""
        return {
            "query": self.query,
            "suggestion_count": len(self.suggestions),
            "trending_count": len(self.trending),
            "source_types": sorted({s.source_type.value for s in self.suggestions}),
        }


@dataclass
class QuickSuggestion:
    """高速オートコンプリート候補（スコアなし）"""

    text: str
    source_type: SourceType
    category_label: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "source_type": self.source_type.value,
            "category_label": self.category_label,
        }
