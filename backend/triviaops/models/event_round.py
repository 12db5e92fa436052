"""
活动轮次数据模型
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Text, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from triviaops.core.database import Base

class EventRound(Base):
    """活动轮次表"""
    __tablename__ = "event_rounds"
    __table_args__ = (UniqueConstraint("event_id", "round_number", name="uq_event_rounds_number"),)

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)      # 展示顺序
    label = Column(String(200), nullable=False, default="")
    status = Column(String(20), nullable=False, default="planned")  # planned, live, locked, completed, canceled
    edition_id = Column(Integer, ForeignKey("editions.id"), nullable=False)
    deleted = Column(Boolean, nullable=False, default=False)

    # 关系
    edition = relationship("Edition")
    items = relationship("EventRoundItem", back_populates="event_round", order_by="EventRoundItem.ordinal")

    @property
    def timer_seconds(self):
        return self.edition.timer_seconds if self.edition else None

class EventRoundItem(Base):
    """轮次题目表（绑定题目与序号，可覆盖题面）"""
    __tablename__ = "event_round_items"
    __table_args__ = (UniqueConstraint("event_round_id", "ordinal", name="uq_event_round_items_ordinal"),)

    id = Column(Integer, primary_key=True, index=True)
    event_round_id = Column(Integer, ForeignKey("event_rounds.id"), nullable=False, index=True)
    edition_item_id = Column(Integer, ForeignKey("edition_items.id"), nullable=False)
    ordinal = Column(Integer, nullable=False)           # 轮内序号，不保证连续
    overridden_prompt = Column(Text, nullable=True)
    overridden_answer = Column(Text, nullable=True)
    overridden_fun_fact = Column(Text, nullable=True)
    deleted = Column(Boolean, nullable=False, default=False)

    # 关系
    event_round = relationship("EventRound", back_populates="items")
    edition_item = relationship("EditionItem")
