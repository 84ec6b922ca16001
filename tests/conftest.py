"""Pytest設定とフィクスチャ"""

import os
from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

# テスト環境用の環境変数設定（アプリのインポート前に設定する）
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"

from suggestion_service.database.database import (  # noqa: E402
    create_engine_from_url,
    create_session_factory,
    get_session_factory,
)
from suggestion_service.models.database import (  # noqa: E402
    Base,
    Block,
    Question,
    SearchHistoryEntry,
    User,
    utc_now,
)
from suggestion_service.services.suggestions_config import (  # noqa: E402
    SuggestionsConfig,
)


@pytest.fixture
def database_url(tmp_path) -> str:
    """テスト用SQLiteファイルのURL"""
    return f"sqlite+aiosqlite:///{tmp_path / 'suggestions.db'}"


@pytest.fixture
async def db_engine(database_url):
    """テスト用のasync engine（similarity() 登録済み）"""
    engine = create_engine_from_url(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """テスト用のセッションファクトリ"""
    return create_session_factory(db_engine)


@pytest.fixture
async def db_session(session_factory):
    """テスト用のasync session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def suggestions_config() -> SuggestionsConfig:
    """テスト用エンジン設定"""
    return SuggestionsConfig()


@pytest.fixture
def add_history(session_factory):
    """検索履歴を直接投入するヘルパー"""

    async def _add(
        user_id: int,
        query: str,
        context: str = "all",
        count: int = 1,
        days_ago: int = 0,
    ) -> None:
        searched_at = utc_now() - timedelta(days=days_ago)
        async with session_factory() as session:
            session.add(
                SearchHistoryEntry(
                    user_id=user_id,
                    search_query=query,
                    search_context=context,
                    search_date=searched_at.date(),
                    search_count=count,
                    results_count=0,
                    last_searched=searched_at,
                    created_at=searched_at,
                )
            )
            await session.commit()

    return _add


@pytest.fixture
async def seeded_catalog(session_factory):
    """カタログデータ投入

    - users: alice(1), bob(2), carol(3)
    - blocks: Algebra Basics / Algebra Advanced（公開・alice作成）、
      Algebra Secret（非公開・bob作成）、Cell Biology（公開・carol作成）
    - questions: algebra / equations（公開ブロック）、hidden algebra（非公開ブロック）
    """
    async with session_factory() as session:
        session.add_all(
            [
                User(id=1, nickname="alice"),
                User(id=2, nickname="bob"),
                User(id=3, nickname="carol"),
            ]
        )
        await session.flush()

        basics = Block(
            id=1,
            title="Algebra Basics",
            category="Mathematics",
            visibility="public",
            creator_id=1,
        )
        advanced = Block(
            id=2,
            title="Algebra Advanced",
            category="Mathematics",
            visibility="public",
            creator_id=1,
        )
        secret = Block(
            id=3,
            title="Algebra Secret",
            category="Secret Mathematics",
            visibility="private",
            creator_id=2,
        )
        biology = Block(
            id=4,
            title="Cell Biology",
            category="Biology",
            visibility="public",
            creator_id=3,
        )
        session.add_all([basics, advanced, secret, biology])
        await session.flush()

        session.add_all(
            [
                Question(block_id=1, topic="algebra"),
                Question(block_id=2, topic="algebra"),
                Question(block_id=1, topic="equations"),
                Question(block_id=3, topic="hidden algebra"),
            ]
        )
        await session.commit()


@pytest.fixture
def test_app(session_factory) -> FastAPI:
    """テスト用アプリケーション（テスト用DBを注入）"""
    from suggestion_service.main import create_app

    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """非同期テストクライアント"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app), base_url="http://test"
    ) as client:
        yield client
