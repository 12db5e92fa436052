"""
限流记录数据模型
"""

from sqlalchemy import Column, Integer, String
from triviaops.core.database import Base

class RateLimitEntry(Base):
    """限流计数表（时间均为整数秒）"""
    __tablename__ = "rate_limits"

    key = Column(String(255), primary_key=True)
    count = Column(Integer, nullable=False, default=0)
    first_seen = Column(Integer, nullable=False)
    last_seen = Column(Integer, nullable=False)
    blocked_until = Column(Integer, nullable=True)
