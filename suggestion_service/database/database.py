"""Database session management"""

import re
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from suggestion_service.core.config import settings

_WORD_SPLIT = re.compile(r"[\W_]+", re.UNICODE)


def _trigrams(text: str) -> set[str]:
    """pg_trgm互換のトライグラム集合（単語ごとに前2・後1の空白でパディング）"""
    grams: set[str] = set()
    for word in _WORD_SPLIT.split(text.lower()):
        if not word:
            continue
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i : i + 3])
    return grams


def trigram_similarity(left: str | None, right: str | None) -> float:
    """pg_trgm の similarity() と同じ定義の類似度"""
    if left is None or right is None:
        return 0.0
    a = _trigrams(left)
    b = _trigrams(right)
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def register_sqlite_functions(engine: AsyncEngine) -> None:
    """SQLite接続ごとに similarity() を登録する

    PostgreSQLでは pg_trgm 拡張のネイティブ関数を使う。
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.create_function("similarity", 2, trigram_similarity)


def create_engine_from_url(url: str, echo: bool = False) -> AsyncEngine:
    """URLから非同期エンジンを生成"""
    engine = create_async_engine(url, echo=echo)
    if engine.dialect.name == "sqlite":
        register_sqlite_functions(engine)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """非同期セッションファクトリを生成"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Create async engine for async operations
async_engine = create_engine_from_url(settings.async_database_url)

# Create async session factory
AsyncSessionLocal = create_session_factory(async_engine)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the async session factory.

    Suggestion sources run concurrently, so each one opens its own session
    from this factory instead of sharing a request-scoped session.
    """
    return AsyncSessionLocal

