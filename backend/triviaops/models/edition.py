"""
题库版本与题目数据模型
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Text
from sqlalchemy.orm import relationship
from triviaops.core.database import Base

class Edition(Base):
    """题库版本表"""
    __tablename__ = "editions"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False)
    title = Column(String(200), nullable=False)
    timer_seconds = Column(Integer, nullable=False, default=15)   # 每题默认计时

    # 关系
    game = relationship("Game")
    items = relationship("EditionItem", back_populates="edition")

class EditionItem(Base):
    """题目表"""
    __tablename__ = "edition_items"

    id = Column(Integer, primary_key=True, index=True)
    edition_id = Column(Integer, ForeignKey("editions.id"), nullable=False)
    question_type = Column(String(30), nullable=False, default="text")  # text, multiple_choice
    choices_json = Column(Text, nullable=True)         # JSON 字符串数组
    prompt = Column(Text, nullable=False)
    answer = Column(Text, nullable=False, default="")
    answer_a = Column(Text, nullable=True)
    answer_b = Column(Text, nullable=True)
    answer_a_label = Column(String(100), nullable=True)
    answer_b_label = Column(String(100), nullable=True)
    answer_parts_json = Column(Text, nullable=True)    # [{label, answer}]
    fun_fact = Column(Text, nullable=True)
    media_type = Column(String(20), nullable=True)     # image, audio
    media_key = Column(String(500), nullable=True)
    media_caption = Column(Text, nullable=True)
    audio_answer_key = Column(String(500), nullable=True)
    ordinal = Column(Integer, nullable=False, default=0)

    # 关系
    edition = relationship("Edition", back_populates="items")
