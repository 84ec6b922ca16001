"""設定のテスト"""

import pytest

from suggestion_service.core.config import Settings
from suggestion_service.models.suggestion import DuplicatePolicy
from suggestion_service.services.suggestions_config import SuggestionsConfig

pytestmark = pytest.mark.unit


class TestSettings:
    """アプリケーション設定のテスト"""

    def test_async_database_url_postgresql(self):
        """PostgreSQL URLはasyncpgドライバに変換"""
        settings = Settings(DATABASE_URL="postgresql://u:p@db/suggest")
        assert settings.async_database_url == "postgresql+asyncpg://u:p@db/suggest"

    def test_async_database_url_sqlite(self):
        """SQLite URLはaiosqliteドライバに変換"""
        settings = Settings(DATABASE_URL="sqlite:///./dev.db")
        assert settings.async_database_url == "sqlite+aiosqlite:///./dev.db"

    def test_async_database_url_unchanged(self):
        """ドライバ指定済みのURLはそのまま"""
        url = "sqlite+aiosqlite:///./dev.db"
        assert Settings(DATABASE_URL=url).async_database_url == url

    def test_environment_override(self, monkeypatch):
        """環境変数で上書きできる"""
        monkeypatch.setenv("SUGGEST_DEFAULT_LIMIT", "7")
        monkeypatch.setenv("SUGGEST_DUPLICATE_POLICY", "highest_score")

        settings = Settings()

        assert settings.SUGGEST_DEFAULT_LIMIT == 7
        assert settings.SUGGEST_DUPLICATE_POLICY == "highest_score"


class TestSuggestionsConfig:
    """エンジン設定のテスト"""

    def test_defaults(self):
        """デフォルト値"""
        config = SuggestionsConfig()

        assert config.default_limit == 10
        assert config.similarity_threshold == 0.3
        assert config.duplicate_policy == DuplicatePolicy.FIRST_SEEN
        assert config.trending_min_users == 2
        assert config.popular_min_count == 3
        assert config.personal_window_days == 90
        assert config.history_retention_days == 180

    def test_policy_from_string(self):
        """ポリシーは文字列でも指定できる"""
        config = SuggestionsConfig(duplicate_policy="highest_score")
        assert config.duplicate_policy == DuplicatePolicy.HIGHEST_SCORE

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"default_limit": 0}, "default_limit"),
            ({"default_limit": 20, "max_limit": 10}, "max_limit"),
            ({"similarity_threshold": 1.5}, "similarity_threshold"),
            ({"source_timeout": 0}, "source_timeout"),
            ({"trending_min_users": 0}, "trending_min_users"),
            ({"popular_window_days": -1}, "popular_window_days"),
            ({"history_retention_days": 0}, "history_retention_days"),
        ],
    )
    def test_validation(self, kwargs, message):
        """不正な設定値はValueError"""
        with pytest.raises(ValueError, match=message):
            SuggestionsConfig(**kwargs)

    def test_invalid_policy(self):
        """未知のポリシー"""
        with pytest.raises(ValueError):
            SuggestionsConfig(duplicate_policy="random")

    def test_from_settings(self):
        """アプリケーション設定から生成"""
        settings = Settings(
            SUGGEST_DEFAULT_LIMIT=5,
            SUGGEST_MAX_LIMIT=20,
            SUGGEST_SOURCE_TIMEOUT=0.5,
            SUGGEST_DUPLICATE_POLICY="highest_score",
            SUGGEST_TRENDING_MIN_USERS=3,
        )

        config = SuggestionsConfig.from_settings(settings)

        assert config.default_limit == 5
        assert config.max_limit == 20
        assert config.source_timeout == 0.5
        assert config.duplicate_policy == DuplicatePolicy.HIGHEST_SCORE
        assert config.trending_min_users == 3
