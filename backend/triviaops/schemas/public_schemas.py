"""
参与者公共接口的数据模式
"""

from pydantic import BaseModel, Field
from typing import Optional, List

class JoinRequest(BaseModel):
    """凭队伍码入场"""
    team_code: str = Field(..., min_length=1, max_length=16, description="队伍数字码")
    team_name: Optional[str] = Field(None, max_length=100, description="认领预置队伍时填写的队名")

class TeamSessionRequest(BaseModel):
    """需要队伍会话的请求"""
    team_id: int
    session_token: str = Field(..., min_length=1)

class TeamNameRequest(TeamSessionRequest):
    """入场后修改队名"""
    team_name: str = Field(..., min_length=1, max_length=100)

class ChoiceSubmission(TeamSessionRequest):
    """选择题作答"""
    item_id: int
    choice_index: int

class AudioStopRequest(TeamSessionRequest):
    """参与者停止音频（抢答）"""
    item_id: Optional[int] = None

class AnswerPart(BaseModel):
    label: str = Field(..., max_length=100)
    answer: str = Field(..., max_length=500)

class AudioAnswerSubmission(TeamSessionRequest):
    """分项作答（例如 歌手 / 歌名）"""
    item_id: int
    answers: List[AnswerPart] = Field(..., min_length=1, max_length=10)
