import logging
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from suggestion_service.api.health import router as health_router
from suggestion_service.api.suggestions import router as suggestions_router
from suggestion_service.core.config import settings
from suggestion_service.core.exceptions import SuggestionSystemError
from suggestion_service.core.middleware import add_security_headers, log_requests
from suggestion_service.models.database import utc_now

logger = logging.getLogger(__name__)


def error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    code: str,
    details: Any = None,
) -> JSONResponse:
    """共通エラーエンベロープ"""
    error: dict[str, Any] = {"type": error_type, "message": message, "code": code}
    if details is not None:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "timestamp": utc_now().isoformat(),
            "request_id": getattr(request.state, "request_id", None)
            or str(uuid.uuid4()),
        },
    )


# Exception handlers
async def suggestion_system_error_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handle suggestion system errors."""
    return error_response(
        request,
        getattr(exc, "status_code", 500),
        "suggestion_system_error",
        str(exc),
        getattr(exc, "error_code", "SUGGESTION_SYSTEM_ERROR"),
    )


async def sqlalchemy_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general SQLAlchemy errors."""
    logger.error(f"Database operation failed: {exc}")
    return error_response(
        request, 500, "database_error", "Database operation failed", "DATABASE_ERROR"
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}")
    return error_response(
        request,
        500,
        "internal_server_error",
        "Internal server error",
        "INTERNAL_SERVER_ERROR",
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url="/api/v1/openapi.json" if not settings.PRODUCTION else None,
        docs_url="/docs" if not settings.PRODUCTION else None,
        redoc_url="/redoc" if not settings.PRODUCTION else None,
    )

    # CORS設定
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # カスタムミドルウェア
    app.middleware("http")(add_security_headers)
    app.middleware("http")(log_requests)

    # ルーターの登録
    app.include_router(health_router)
    app.include_router(suggestions_router)

    # エラーハンドラーの登録
    setup_error_handlers(app)

    app.add_exception_handler(SuggestionSystemError, suggestion_system_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    return app


def setup_error_handlers(app: FastAPI) -> None:
    """エラーハンドラーを設定する"""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(  # noqa: F841
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_response(
            request,
            422,
            "validation_error",
            "Validation error",
            "VALIDATION_ERROR",
            details=jsonable_errors(exc),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(  # noqa: F841
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        # 認証関連のHTTPExceptionの場合
        if exc.status_code == 401:
            return error_response(
                request, 401, "authentication", str(exc.detail), "AUTHENTICATION_ERROR"
            )
        if exc.status_code == 404:
            return error_response(
                request, 404, "not_found", "Requested resource not found", "NOT_FOUND"
            )
        if exc.status_code == 405:
            return error_response(
                request,
                405,
                "method_not_allowed",
                "Method not allowed for this endpoint",
                "METHOD_NOT_ALLOWED",
            )
        return error_response(
            request, exc.status_code, "http_error", str(exc.detail), "HTTP_ERROR"
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """バリデーションエラー詳細をJSON化可能な形に変換"""
    return [
        {
            "loc": list(error.get("loc", ())),
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]


# Create the app instance
app = create_app()
