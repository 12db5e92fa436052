"""
队伍作答数据模型
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Text, Index, UniqueConstraint
from sqlalchemy.sql import func, false
from triviaops.core.database import Base

class EventItemResponse(Base):
    """队伍对某轮某题的作答表"""
    __tablename__ = "event_item_responses"
    __table_args__ = (
        UniqueConstraint("event_round_id", "edition_item_id", "team_id", name="uq_item_responses_team"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    event_round_id = Column(Integer, ForeignKey("event_rounds.id"), nullable=False)
    edition_item_id = Column(Integer, ForeignKey("edition_items.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    choice_index = Column(Integer, nullable=True)       # 选择题
    choice_text = Column(Text, nullable=True)
    response_parts_json = Column(Text, nullable=True)   # 分项作答 [{label, answer}]
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    is_correct = Column(Boolean, nullable=True)         # 主持人批改
    marked_at = Column(DateTime(timezone=True), nullable=True)
    marked_by = Column(String(64), nullable=True)
    deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

# 共享作答题：每轮每题只能有一条有效的分项作答（拥有者）
Index(
    "uq_item_responses_shared_owner",
    EventItemResponse.event_round_id,
    EventItemResponse.edition_item_id,
    unique=True,
    sqlite_where=(EventItemResponse.response_parts_json.isnot(None)) & (EventItemResponse.deleted == false()),
    postgresql_where=(EventItemResponse.response_parts_json.isnot(None)) & (EventItemResponse.deleted == false()),
)
