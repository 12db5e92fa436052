"""
活动数据模型
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from triviaops.core.database import Base

CLOSED_EVENT_STATUSES = ("completed", "canceled")

class Event(Base):
    """活动表"""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    public_code = Column(String(16), nullable=False, unique=True, index=True)  # 参与者输入的活动代码
    status = Column(String(20), nullable=False, default="planned")  # planned, live, completed, canceled
    starts_at = Column(DateTime(timezone=True), nullable=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    host_user_id = Column(String(64), nullable=True)   # 主持人用户ID（外部身份系统）
    deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # 关系
    location = relationship("Location")

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_EVENT_STATUSES
