"""サジェストエンジン設定"""

from dataclasses import dataclass

from suggestion_service.core.config import Settings
from suggestion_service.models.suggestion import DuplicatePolicy


@dataclass
class SuggestionsConfig:
    """候補設定"""

    default_limit: int = 10
    max_limit: int = 50
    similarity_threshold: float = 0.3

    # ソースごとのタイムアウト（秒）
    source_timeout: float = 2.0

    duplicate_policy: DuplicatePolicy = DuplicatePolicy.FIRST_SEEN
    include_contextual: bool = True

    # トレンド設定
    trending_window_days: int = 7
    trending_min_users: int = 2
    trending_score: float = 0.5

    # 人気クエリ設定
    popular_window_days: int = 30
    popular_min_count: int = 3

    # 個人履歴設定
    personal_window_days: int = 90

    # 履歴保持期間
    history_retention_days: int = 180

    def __post_init__(self):
        """設定値のバリデーション"""
        self.duplicate_policy = DuplicatePolicy(self.duplicate_policy)
        if self.default_limit <= 0:
            raise ValueError("default_limit must be greater than 0")
        if self.max_limit < self.default_limit:
            raise ValueError("max_limit must be greater than or equal to default_limit")
        if not 0 <= self.similarity_threshold <= 1:
            raise ValueError("similarity_threshold must be between 0 and 1")
        if self.source_timeout <= 0:
            raise ValueError("source_timeout must be greater than 0")
        if self.trending_min_users < 1:
            raise ValueError("trending_min_users must be at least 1")
        for name in (
            "trending_window_days",
            "popular_window_days",
            "personal_window_days",
            "history_retention_days",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be greater than 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SuggestionsConfig":
        """アプリケーション設定から生成"""
        return cls(
            default_limit=settings.SUGGEST_DEFAULT_LIMIT,
            max_limit=settings.SUGGEST_MAX_LIMIT,
            similarity_threshold=settings.SUGGEST_SIMILARITY_THRESHOLD,
            source_timeout=settings.SUGGEST_SOURCE_TIMEOUT,
            duplicate_policy=DuplicatePolicy(settings.SUGGEST_DUPLICATE_POLICY),
            include_contextual=settings.SUGGEST_INCLUDE_CONTEXTUAL,
            trending_window_days=settings.SUGGEST_TRENDING_WINDOW_DAYS,
            trending_min_users=settings.SUGGEST_TRENDING_MIN_USERS,
            trending_score=settings.SUGGEST_TRENDING_SCORE,
            popular_window_days=settings.SUGGEST_POPULAR_WINDOW_DAYS,
            popular_min_count=settings.SUGGEST_POPULAR_MIN_COUNT,
            personal_window_days=settings.SUGGEST_PERSONAL_WINDOW_DAYS,
            history_retention_days=settings.SUGGEST_HISTORY_RETENTION_DAYS,
        )
