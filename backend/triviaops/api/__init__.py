"""
API路由模块
"""

from fastapi import APIRouter
from .public_routes import router as public_router
from .live_state_routes import router as live_state_router
from .team_routes import router as team_router
from .round_routes import router as round_router

# 创建主路由器
api_router = APIRouter()

# 注册各个功能模块的路由
api_router.include_router(public_router, prefix="/public", tags=["参与者"])
api_router.include_router(live_state_router, prefix="/events", tags=["直播状态"])
api_router.include_router(team_router, prefix="/events", tags=["队伍管理"])
api_router.include_router(round_router, prefix="/event-rounds", tags=["轮次作答"])
