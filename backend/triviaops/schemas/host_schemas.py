"""
主持人操作的数据模式
"""

from pydantic import BaseModel, Field
from typing import Optional

class PrepopulateTeamsRequest(BaseModel):
    """批量预置队伍"""
    count: int = Field(20, ge=1, le=100)

class AudioSubmissionMark(BaseModel):
    """批改分项作答（null 表示撤销批改）"""
    edition_item_id: int
    is_correct: Optional[bool] = None

class AudioSubmissionReset(BaseModel):
    """重置某题的抢答状态"""
    edition_item_id: int
