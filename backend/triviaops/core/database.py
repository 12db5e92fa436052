"""
数据库配置
"""
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from triviaops.core.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    echo=False  # 设置为True可以看到SQL查询日志
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_session_factory():
    """获取会话工厂（长连接推送每次轮询单独开会话）"""
    return SessionLocal

def import_models():
    """导入所有模型，确保元数据完整"""
    from triviaops.models.location import Location
    from triviaops.models.game import GameType, Game
    from triviaops.models.edition import Edition, EditionItem
    from triviaops.models.event import Event
    from triviaops.models.event_round import EventRound, EventRoundItem
    from triviaops.models.team import Team
    from triviaops.models.round_score import EventRoundScore
    from triviaops.models.live_state import LiveState
    from triviaops.models.response import EventItemResponse
    from triviaops.models.rate_limit import RateLimitEntry

async def init_db():
    """初始化数据库"""
    import_models()

    # 创建所有表（迁移由外部工具负责）
    Base.metadata.create_all(bind=engine)

    logger.info("数据库初始化完成: %s", engine.url.render_as_string(hide_password=True))
