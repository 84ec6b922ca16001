"""ヘルスチェックAPIのテスト"""

from unittest.mock import MagicMock, patch

import pytest
from httpx import AsyncClient

from suggestion_service.api.health import check_database_connection, get_system_metrics

pytestmark = pytest.mark.integration


class TestHealthAPI:
    """ヘルスチェックAPIのテストクラス"""

    async def test_basic_health_check(self, async_client: AsyncClient):
        """基本ヘルスチェック（認証不要）"""
        response = await async_client.get("/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["version"] == "1.0.0"

    async def test_detailed_health_check(self, async_client: AsyncClient):
        """詳細ヘルスチェック"""
        response = await async_client.get("/v1/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"]["database"]["status"] == "healthy"
        assert "response_time" in data["services"]["database"]
        assert set(data["system"]) == {
            "cpu_usage",
            "memory_usage",
            "disk_usage",
            "uptime",
        }

    async def test_detailed_health_check_database_down(
        self, async_client: AsyncClient, test_app
    ):
        """DB接続失敗時は unhealthy"""
        from sqlalchemy.exc import OperationalError

        from suggestion_service.database.database import get_session_factory

        factory = MagicMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("refused"))
        )
        test_app.dependency_overrides[get_session_factory] = lambda: factory

        response = await async_client.get("/v1/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["services"]["database"]["status"] == "unhealthy"
        assert "refused" in data["services"]["database"]["error"]


class TestHealthHelpers:
    """ヘルスチェック補助関数のテスト"""

    async def test_check_database_connection(self, session_factory):
        result = await check_database_connection(session_factory)
        assert result["status"] == "healthy"

    async def test_system_metrics_fallback(self):
        """psutil失敗時はゼロ値"""
        with patch(
            "suggestion_service.api.health.psutil.cpu_percent",
            side_effect=RuntimeError("unsupported"),
        ):
            metrics = await get_system_metrics()

        assert metrics == {
            "cpu_usage": 0.0,
            "memory_usage": 0.0,
            "disk_usage": 0.0,
            "uptime": 0.0,
        }
