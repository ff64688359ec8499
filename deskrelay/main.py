"""
deskrelay.main
~~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。
"""
from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from deskrelay.api import endpoints, ws
from deskrelay.core.logging import get_logger, request_id_ctx_var, setup_logging
from deskrelay.core.rate_limit import limiter
from deskrelay.core.settings import settings
from deskrelay.services.relay import build_relay

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子：启动时装配中继组件，关闭时清理定时任务与 HTTP 客户端。"""
    app.state.relay = build_relay(settings)
    logger.info(
        "🚀 应用已启动 | env=%s | debug=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
    )
    yield
    await app.state.relay.aclose()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="酒店前台实时翻译中继",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

if settings.allow_cors_all_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def bind_request_id(
    request: Request, call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """为每个 HTTP 请求绑定 request_id，便于串联日志。"""
    token = request_id_ctx_var.set(f"req-{uuid.uuid4().hex[:8]}")
    try:
        return await call_next(request)
    finally:
        request_id_ctx_var.reset(token)


# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(endpoints.router)
app.include_router(ws.router, tags=["WebSocket"])


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，统一返回 JSON 错误。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    content = {"error": "Internal server error"}
    if not settings.is_prod:
        content["detail"] = str(exc)
    return JSONResponse(status_code=500, content=content)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "deskrelay.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,
        log_level=settings.effective_log_level.lower(),
    )
