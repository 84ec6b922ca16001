"""ヘルスチェックAPI"""

import time
from typing import Any

import psutil
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suggestion_service.core.config import settings
from suggestion_service.database.database import get_session_factory
from suggestion_service.models.database import utc_now

router = APIRouter(prefix="/v1/health", tags=["health"])


async def check_database_connection(
    session_factory: async_sessionmaker[AsyncSession],
) -> dict[str, Any]:
    """データベース接続チェック"""
    try:
        start_time = time.time()
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        response_time = time.time() - start_time

        return {"status": "healthy", "response_time": response_time}
    except (SQLAlchemyError, OSError) as e:
        return {"status": "unhealthy", "error": str(e)}


async def get_system_metrics() -> dict[str, Any]:
    """システムメトリクス取得"""
    try:
        return {
            "cpu_usage": psutil.cpu_percent(),
            "memory_usage": psutil.virtual_memory().percent,
            "disk_usage": psutil.disk_usage("/").percent,
            "uptime": time.time() - psutil.boot_time(),
        }
    except Exception:
        return {"cpu_usage": 0.0, "memory_usage": 0.0, "disk_usage": 0.0, "uptime": 0.0}


async def get_health_status() -> dict[str, Any]:
    """基本ヘルスステータス取得"""
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


@router.get("")
async def health_check():
    """基本ヘルスチェック"""
    return await get_health_status()


@router.get("/detailed")
async def detailed_health_check(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """詳細ヘルスチェック"""
    database_status = await check_database_connection(session_factory)
    system_metrics = await get_system_metrics()

    overall_status = (
        "healthy" if database_status["status"] == "healthy" else "unhealthy"
    )

    return {
        "status": overall_status,
        "timestamp": utc_now().isoformat(),
        "services": {"database": database_status},
        "system": system_metrics,
        "version": settings.VERSION,
    }
