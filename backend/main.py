#!/usr/bin/env python3
"""
TriviaOps 现场竞猜同步服务 - 后端主入口
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from triviaops.core.config import settings
from triviaops.api import api_router
from triviaops.core.database import init_db
from triviaops.core.errors import register_exception_handlers
from triviaops.core.request_context import configure_logging, request_logging_middleware

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动时的初始化"""
    configure_logging()
    logger.info("🚀 启动 %s 后端服务...", settings.APP_NAME)
    await init_db()
    yield
    logger.info("服务已停止")

app = FastAPI(
    title=settings.APP_NAME,
    description="现场竞猜活动的实时同步后端API",
    version=settings.VERSION,
    lifespan=lifespan,
)

# CORS设置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-request-id", "Retry-After"],
)

# 请求日志与 request id
app.middleware("http")(request_logging_middleware)

register_exception_handlers(app)

# 注册API路由
app.include_router(api_router, prefix="/api")

@app.get("/")
async def root():
    """根路径健康检查"""
    return {"message": f"{settings.APP_NAME} 后端运行中", "status": "healthy"}

@app.get("/health")
async def health_check():
    """健康检查端点"""
    return {"status": "healthy", "service": "triviaops-live"}

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
