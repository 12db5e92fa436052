"""
游戏数据模型
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from triviaops.core.database import Base

MUSIC_GAME_TYPE = "music"

class GameType(Base):
    """游戏类型表"""
    __tablename__ = "game_types"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), nullable=False, unique=True)   # trivia, music, ...
    name = Column(String(100), nullable=True)

class Game(Base):
    """游戏表（题库模板的上级）"""
    __tablename__ = "games"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    game_type_id = Column(Integer, ForeignKey("game_types.id"), nullable=True)
    show_theme = Column(Boolean, nullable=False, default=True)          # 关闭时用游戏名代替轮次标题
    allow_participant_audio_stop = Column(Boolean, nullable=False, default=False)

    # 关系
    game_type = relationship("GameType")

    @property
    def participant_audio_stop_enabled(self) -> bool:
        code = self.game_type.code if self.game_type else None
        return code == MUSIC_GAME_TYPE and bool(self.allow_participant_audio_stop)
