"""
场地数据模型
"""

from sqlalchemy import Column, Integer, String
from triviaops.core.database import Base

class Location(Base):
    """活动场地表"""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
