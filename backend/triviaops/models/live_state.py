"""
直播状态数据模型（每个活动一行）
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Text
from sqlalchemy.sql import func
from triviaops.core.database import Base

class LiveState(Base):
    """活动直播状态表"""
    __tablename__ = "event_live_state"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, unique=True)
    active_round_id = Column(Integer, ForeignKey("event_rounds.id"), nullable=True)
    current_item_ordinal = Column(Integer, nullable=True)   # 仅相对 active_round_id 有意义
    reveal_answer = Column(Boolean, nullable=False, default=False)
    reveal_fun_fact = Column(Boolean, nullable=False, default=False)
    waiting_message = Column(Text, nullable=True)
    waiting_show_leaderboard = Column(Boolean, nullable=False, default=False)
    waiting_show_next_round = Column(Boolean, nullable=False, default=True)
    show_full_leaderboard = Column(Boolean, nullable=False, default=False)
    timer_started_at = Column(DateTime(timezone=True), nullable=True)  # 服务器时间
    timer_duration_seconds = Column(Integer, nullable=True)
    audio_playing = Column(Boolean, nullable=False, default=False)
    participant_audio_stopped_by_team_id = Column(Integer, ForeignKey("teams.id"), nullable=True)
    participant_audio_stopped_by_team_name = Column(String(100), nullable=True)
    participant_audio_stopped_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
