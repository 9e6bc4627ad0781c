"""
FulfilFlow FastAPI 主应用
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder

from ff_core import __version__
from ff_core.api import api_router
from ff_core.config import Settings, get_settings
from ff_core.container import EngineContainer
from ff_core.middleware.logging import LoggingMiddleware
from ff_core.utils.errors import FulfilFlowException
from ff_core.utils.logger import setup_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("Starting FulfilFlow application", version=__version__)

    owns_container = app.state.container is None
    if owns_container:
        app.state.container = EngineContainer(app.state.settings)
        await app.state.container.startup()

    logger.info("FulfilFlow application started successfully")

    yield  # 应用运行期间

    logger.info("Shutting down FulfilFlow application")
    if owns_container:
        try:
            await app.state.container.shutdown()
        except Exception:
            logger.error("Error during application shutdown", exc_info=True)
        app.state.container = None


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[EngineContainer] = None
) -> FastAPI:
    """创建 FastAPI 应用

    Args:
        settings: 配置，默认读取环境变量
        container: 预先构建的组件容器（测试注入假网关时使用）
    """
    settings = settings or (container.settings if container else get_settings())

    # 设置日志
    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format
    )

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="FulfilFlow order fulfillment and returns engine",
        docs_url="/docs" if settings.api_debug else None,
        redoc_url="/redoc" if settings.api_debug else None,
        openapi_url="/openapi.json" if settings.api_debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    # 日志中间件
    app.add_middleware(LoggingMiddleware)

    # 添加路由
    app.include_router(api_router, prefix=settings.api_prefix)

    # 异常处理器
    @app.exception_handler(FulfilFlowException)
    async def fulfilflow_exception_handler(request: Request, exc: FulfilFlowException):
        """处理 FulfilFlow 自定义异常"""
        if exc.status >= 500:
            logger.error("Request failed", code=exc.code, detail=exc.detail)
        return exc.to_response(request)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理 Pydantic 验证异常"""
        logger.warning("Request validation failed", path=request.url.path, errors=str(exc.errors())[:1000])
        return JSONResponse(
            status_code=422,
            content={
                "ok": False,
                "error": {
                    "type": "about:blank",
                    "title": "Validation Error",
                    "status": 422,
                    "detail": "Request validation failed",
                    "code": "VALIDATION_ERROR",
                    "validation_errors": jsonable_encoder(exc.errors())
                }
            }
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """处理 FastAPI HTTP 异常"""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "ok": False,
                "error": {
                    "type": "about:blank",
                    "title": str(exc.detail),
                    "status": exc.status_code,
                    "detail": str(exc.detail),
                    "code": f"HTTP_{exc.status_code}"
                }
            }
        )

    @app.exception_handler(Exception)
    async def internal_server_error_handler(request: Request, exc: Exception):
        """处理未捕获的服务器错误"""
        logger.error("Unhandled server error", exc_info=exc)

        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": {
                    "type": "about:blank",
                    "title": "Internal Server Error",
                    "status": 500,
                    "detail": "An internal server error occurred",
                    "code": "INTERNAL_SERVER_ERROR"
                }
            }
        )

    # 健康检查端点
    @app.get("/healthz")
    async def health_check(request: Request):
        """健康检查端点"""
        db_ok = False
        current = request.app.state.container
        if current is not None:
            db_ok = await current.db_manager.check_connection()
        return {
            "status": "healthy" if db_ok else "degraded",
            "database": db_ok,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "ff_core.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
        log_level=settings.log_level.lower(),
        access_log=False,  # 使用自定义日志中间件
    )
