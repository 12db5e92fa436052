"""
应用配置模块
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """应用设置"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # 基础设置
    APP_NAME: str = "TriviaOps Live"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 服务器设置
    HOST: str = "0.0.0.0"
    PORT: int = 8001
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    # 数据库设置
    DATABASE_URL: str = "sqlite:///./triviaops.db"

    # 主持人令牌（签发由外部登录服务完成，这里只做校验）
    JWT_SECRET: str = "triviaops-dev-secret-change-me-in-production"
    JWT_ALGORITHM: str = "HS256"

    # 直播同步设置
    STREAM_POLL_SECONDS: float = 2.0
    SUBMISSION_GRACE_SECONDS: int = 10     # 提交截止后的宽限时间
    RESPONSE_COUNTS_GRACE_SECONDS: int = 5  # 计时结束后多久公布选项统计

    # 代码长度
    TEAM_CODE_LENGTH: int = 4

    # 公共接口限流（未设置或非正数时使用 rate_limiter 中的默认值）
    PUBLIC_EVENT_RATE_MAX: int = 0
    PUBLIC_EVENT_RATE_WINDOW_SECONDS: int = 0
    PUBLIC_EVENT_RATE_BLOCK_SECONDS: int = 0
    PUBLIC_STREAM_RATE_MAX: int = 0
    PUBLIC_STREAM_RATE_WINDOW_SECONDS: int = 0
    PUBLIC_STREAM_RATE_BLOCK_SECONDS: int = 0
    PUBLIC_JOIN_RATE_MAX: int = 0
    PUBLIC_JOIN_RATE_WINDOW_SECONDS: int = 0
    PUBLIC_JOIN_RATE_BLOCK_SECONDS: int = 0
    PUBLIC_TEAM_NAME_RATE_MAX: int = 0
    PUBLIC_TEAM_NAME_RATE_WINDOW_SECONDS: int = 0
    PUBLIC_TEAM_NAME_RATE_BLOCK_SECONDS: int = 0
    PUBLIC_RESPONSE_RATE_MAX: int = 0
    PUBLIC_RESPONSE_RATE_WINDOW_SECONDS: int = 0
    PUBLIC_RESPONSE_RATE_BLOCK_SECONDS: int = 0
    PUBLIC_AUDIO_STOP_RATE_MAX: int = 0
    PUBLIC_AUDIO_STOP_RATE_WINDOW_SECONDS: int = 0
    PUBLIC_AUDIO_STOP_RATE_BLOCK_SECONDS: int = 0
    PUBLIC_AUDIO_ANSWER_RATE_MAX: int = 0
    PUBLIC_AUDIO_ANSWER_RATE_WINDOW_SECONDS: int = 0
    PUBLIC_AUDIO_ANSWER_RATE_BLOCK_SECONDS: int = 0

# 全局设置实例
settings = Settings()
