"""
队伍数据模型
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.sql import func
from triviaops.core.database import Base
from triviaops.core.utils import team_name_key


def _default_name_key(context):
    return team_name_key(context.get_current_parameters()["name"])


class Team(Base):
    """参赛队伍表"""
    __tablename__ = "teams"
    __table_args__ = (
        UniqueConstraint("event_id", "team_code", name="uq_teams_event_code"),
        # 同一活动内队名不区分大小写唯一
        UniqueConstraint("event_id", "name_key", name="uq_teams_event_name_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    name_key = Column(String(100), nullable=False, default=_default_name_key)  # 队名比较键，改名时同步更新
    team_code = Column(String(16), nullable=True)        # 入场数字码
    team_placeholder = Column(Boolean, nullable=False, default=False)  # 预置队伍，等待认领
    team_session_token = Column(String(128), nullable=True)
    team_session_updated_at = Column(DateTime(timezone=True), nullable=True)
    deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
