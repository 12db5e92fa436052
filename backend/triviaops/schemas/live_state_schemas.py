"""
直播状态的数据模式
"""

from pydantic import BaseModel, Field, field_serializer, model_validator
from typing import Optional, Dict, Any, ClassVar, Tuple
from datetime import datetime
from triviaops.core.utils import format_timestamp_with_timezone

class LiveStateUpdate(BaseModel):
    """主持人局部更新直播状态

    只有请求中出现的字段才会写入（``model_fields_set``），
    因此“未提供”和“显式为 false/null”是两种不同的含义。
    """
    active_round_id: Optional[int] = None
    current_item_ordinal: Optional[int] = Field(None, ge=0)
    reveal_answer: Optional[bool] = None
    reveal_fun_fact: Optional[bool] = None
    waiting_message: Optional[str] = Field(None, max_length=500)
    waiting_show_leaderboard: Optional[bool] = None
    waiting_show_next_round: Optional[bool] = None
    show_full_leaderboard: Optional[bool] = None
    timer_duration_seconds: Optional[int] = Field(None, ge=1, le=3600)
    start_timer: bool = False
    clear_timer: bool = False
    audio_playing: Optional[bool] = None

    # 这些字段不能被显式设为 null
    NON_NULLABLE: ClassVar[Tuple[str, ...]] = (
        "reveal_answer",
        "reveal_fun_fact",
        "waiting_show_leaderboard",
        "waiting_show_next_round",
        "show_full_leaderboard",
        "audio_playing",
    )

    @model_validator(mode="after")
    def reject_null_flags(self):
        nulls = [name for name in self.NON_NULLABLE if name in self.model_fields_set and getattr(self, name) is None]
        if nulls:
            raise ValueError(f"字段不能为 null: {', '.join(sorted(nulls))}")
        if self.start_timer and self.clear_timer:
            raise ValueError("start_timer 与 clear_timer 不能同时为 true")
        return self

    def present_fields(self) -> Dict[str, Any]:
        """返回请求中实际出现的字段"""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name not in ("start_timer", "clear_timer")
        }

class LiveStateResponse(BaseModel):
    """直播状态响应"""
    id: int
    event_id: int
    active_round_id: Optional[int] = None
    current_item_ordinal: Optional[int] = None
    reveal_answer: bool
    reveal_fun_fact: bool
    waiting_message: Optional[str] = None
    waiting_show_leaderboard: bool
    waiting_show_next_round: bool
    show_full_leaderboard: bool
    timer_started_at: Optional[datetime] = None
    timer_duration_seconds: Optional[int] = None
    audio_playing: bool
    participant_audio_stopped_by_team_id: Optional[int] = None
    participant_audio_stopped_by_team_name: Optional[str] = None
    participant_audio_stopped_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("timer_started_at", "participant_audio_stopped_at", "updated_at")
    def serialize_timestamp(self, value: Optional[datetime]) -> Optional[str]:
        return format_timestamp_with_timezone(value)

    class Config:
        from_attributes = True
