#!/usr/bin/env python3
"""
FastAPI应用启动脚本
"""

import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from loguru import logger

# 导入配置
from subscription_app.config import settings
from subscription_app.dependencies.rate_limit import enforce_rate_limit


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时执行
    from subscription_app.config.logging_config import setup_logging
    from subscription_app.config.settings import LOG_LEVEL, validate_config
    from subscription_app.config.supabase_config import get_supabase_client
    from subscription_app.services.rate_limiter import get_rate_limiter

    # 根据LOG_LEVEL环境变量配置日志
    setup_logging(level=LOG_LEVEL)

    logger.info("🚀 FastAPI应用启动中...")
    try:
        validate_config()
    except ValueError as e:
        logger.warning(f"⚠️ 配置不完整: {e}")
    logger.info(f"⚙️ 配置摘要: {settings.get_config_summary()}")

    if get_supabase_client(use_service_key=True):
        logger.info("✅ Supabase 客户端初始化完成")
    else:
        logger.warning("⚠️ Supabase 未配置，数据相关接口将返回错误")

    # 启动限流器过期清理任务
    rate_limiter = get_rate_limiter()
    rate_limiter.start_cleanup()

    logger.info("✅ FastAPI应用启动完成")

    yield

    # 关闭时执行
    await rate_limiter.stop()
    logger.info("✅ 限流器清理任务已停止")
    logger.info("👋 FastAPI应用已停止")


def create_fastapi_app() -> FastAPI:
    """创建FastAPI应用"""

    # 创建FastAPI实例
    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        debug=settings.DEBUG,
    )

    # 配置CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After"],
    )

    # 配置受信任主机
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.TRUSTED_HOSTS)

    # 注册路由，所有 /api 路由共用同一个限流依赖
    from subscription_app.routers import chat, health, subscription

    rate_limited = [Depends(enforce_rate_limit)]
    app.include_router(health.router, prefix="/api", tags=["健康检查"], dependencies=rate_limited)
    app.include_router(chat.router, prefix="/api", tags=["对话"], dependencies=rate_limited)
    app.include_router(subscription.router, prefix="/api", tags=["订阅"], dependencies=rate_limited)

    # 根路径
    @app.get("/")
    async def root():
        return {
            "message": f"{settings.APP_NAME} - {'调试' if settings.DEBUG else '生产'}模式",
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "debug": settings.DEBUG,
        }

    # 健康检查（不限流）
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "framework": "FastAPI"}

    return app


# 创建应用实例
app = create_fastapi_app()


if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("SERVER_HOST", "0.0.0.0")
    port = int(os.environ.get("SERVER_PORT", 3000))

    logger.info(f"🚀 启动FastAPI服务器于 http://{host}:{port}")
    logger.info(f"📚 API文档: http://localhost:{port}/docs")

    uvicorn.run(
        "main_fastapi:app",
        host=host,
        port=port,
        reload=settings.DEBUG,  # 仅调试模式启用自动重载
        log_level="debug" if settings.DEBUG else "info",
        reload_dirs=["./subscription_app"] if settings.DEBUG else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log"] if settings.DEBUG else None,
    )
