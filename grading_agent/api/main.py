"""FastAPI 应用主入口"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

# 加载环境变量（必须在其他导入之前）
from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from grading_agent import __version__
from grading_agent.api.dependencies import ServiceContainer, build_container
from grading_agent.api.routes import grading, recognition
from grading_agent.config.settings import AppSettings, ServerConfig
from grading_agent.utils.errors import (
    ImageSizeError,
    ModelResponseError,
    ParseError,
    ValidationError,
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def resolve_log_level(server: ServerConfig) -> int:
    """LOG_LEVEL 名称转为 logging 级别，无法识别时为 INFO"""
    level = getattr(logging, server.log_level, None)
    return level if isinstance(level, int) else logging.INFO


# 配置日志
LOG_LEVEL_VALUE = resolve_log_level(ServerConfig.from_env())

logging.basicConfig(
    level=LOG_LEVEL_VALUE,
    format=LOG_FORMAT,
    stream=sys.stdout,
    force=True,
)

# 禁用噪音日志
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

SERVICE_NAME = "grading-agent"


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def create_app(
    settings: Optional[AppSettings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """创建应用

    Args:
        settings: 配置，默认从环境变量加载
        container: 预先构造的服务容器（测试时注入），默认在 lifespan 中构造
    """
    settings = settings or AppSettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        app.state.container = container or build_container(settings)
        logger.info(f"服务启动: {SERVICE_NAME} v{__version__}, 端口 {settings.server.port}")
        try:
            yield
        finally:
            if owned:
                await app.state.container.aclose()
            logger.info("服务已停止")

    app = FastAPI(
        title="答题卡识别与批改服务",
        description="基于视觉大模型的答题卡区域识别、答案识别与批量批改",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ImageSizeError)
    async def image_size_exception_handler(request: Request, exc: ImageSizeError):
        logger.warning(f"图片大小超限: {exc}, path={request.url.path}")
        return _error_response(400, "image_too_large", str(exc))

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        logger.warning(f"数据校验失败: {exc}, path={request.url.path}")
        return _error_response(400, "validation_error", str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        logger.warning(f"请求参数错误: {exc}, path={request.url.path}")
        return _error_response(400, "bad_request", str(exc))

    @app.exception_handler(ParseError)
    async def parse_exception_handler(request: Request, exc: ParseError):
        logger.error(f"模型响应解析失败: {exc}, path={request.url.path}")
        return _error_response(502, "parse_error", str(exc))

    @app.exception_handler(ModelResponseError)
    async def model_response_exception_handler(request: Request, exc: ModelResponseError):
        logger.error(f"模型响应无效: {exc}, path={request.url.path}")
        return _error_response(502, "model_response_error", str(exc))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """全局异常处理"""
        logger.error(f"未处理的异常: {str(exc)}, path={request.url.path}", exc_info=True)
        return _error_response(500, "internal_server_error", str(exc) or "服务器内部错误")

    @app.get("/health", tags=["health"])
    @app.get("/api/health", tags=["health"])
    async def health_check():
        """健康检查，支持 /health 和 /api/health 两个路径"""
        return {"status": "healthy", "service": SERVICE_NAME, "version": __version__}

    prefix = settings.server.api_prefix
    app.include_router(recognition.router, prefix=prefix)
    app.include_router(grading.router, prefix=prefix)

    return app


app = create_app()
