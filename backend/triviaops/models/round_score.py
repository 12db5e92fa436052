"""
轮次得分数据模型
"""

from sqlalchemy import Column, Integer, ForeignKey, Float, Boolean, UniqueConstraint
from triviaops.core.database import Base

class EventRoundScore(Base):
    """队伍轮次得分表"""
    __tablename__ = "event_round_scores"
    __table_args__ = (UniqueConstraint("event_round_id", "team_id", name="uq_round_scores_team"),)

    id = Column(Integer, primary_key=True, index=True)
    event_round_id = Column(Integer, ForeignKey("event_rounds.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    score = Column(Float, nullable=False, default=0)
    deleted = Column(Boolean, nullable=False, default=False)
