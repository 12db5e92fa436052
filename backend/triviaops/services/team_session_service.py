"""
队伍会话服务
"""

import logging
import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from triviaops.core import utils
from triviaops.core.config import settings
from triviaops.core.errors import (
    ApiError,
    CONFLICT,
    EVENT_CLOSED,
    NOT_FOUND,
    TEAM_NAME_MISMATCH,
    TEAM_NAME_REQUIRED,
    TEAM_SESSION_INVALID,
    VALIDATION_ERROR,
)
from triviaops.core.request_context import RequestContext
from triviaops.models.event import Event
from triviaops.models.team import Team

logger = logging.getLogger(__name__)

MAX_PREPOPULATE = 100


def team_view(team: Team) -> dict:
    return {"id": team.id, "name": team.name}


def find_open_event(db: Session, event_code: str) -> Event:
    """按活动代码查找活动，已结束/取消的活动拒绝参与者操作"""
    event = db.execute(
        select(Event).where(
            Event.public_code == utils.normalize_code(event_code),
            Event.deleted.is_(False),
        )
    ).scalar_one_or_none()
    if event is None:
        raise ApiError(NOT_FOUND, "活动不存在", status_code=404)
    if event.is_closed:
        raise ApiError(EVENT_CLOSED, "活动已结束", status_code=403)
    return event


class TeamSessionService:
    """队伍入场与会话令牌管理"""

    def __init__(self, db: Session, context: Optional[RequestContext] = None):
        self.db = db
        self.context = context

    def join(self, event_code: str, team_code: str, team_name: Optional[str] = None) -> Tuple[Team, str]:
        """凭队伍码入场，签发新令牌（旧设备的令牌随之失效）"""
        event = find_open_event(self.db, event_code)
        team = self._team_by_code(event.id, team_code.strip())
        if team is None:
            raise ApiError(NOT_FOUND, "队伍码无效", status_code=404)

        requested = (team_name or "").strip()
        if team.team_placeholder:
            if not requested:
                raise ApiError(TEAM_NAME_REQUIRED, "请先填写队名")
            if not self._claim_placeholder(event.id, team, requested):
                # 已被其他设备抢先认领，按已命名队伍处理
                team = self._reload(team.id)
                self._require_matching_name(team, requested)
        elif requested:
            self._require_matching_name(team, requested)

        token = self._rotate_token(team.id)
        team = self._reload(team.id)
        logger.info("队伍入场 event=%s team=%s %s", event.id, team.id, self._tag())
        return team, token

    def validate(self, team: Team, session_token: Optional[str]) -> bool:
        """令牌比对；库里没有令牌也视为不匹配"""
        stored = team.team_session_token
        if not stored or not session_token:
            return False
        return secrets.compare_digest(stored, session_token)

    def require_session(self, event: Event, team_id: int, session_token: str) -> Team:
        """校验队伍属于活动且令牌有效"""
        team = self.db.execute(
            select(Team)
            .where(Team.id == team_id, Team.event_id == event.id, Team.deleted.is_(False))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if team is None:
            raise ApiError(NOT_FOUND, "队伍不存在", status_code=404)
        if not self.validate(team, session_token):
            raise ApiError(TEAM_SESSION_INVALID, "队伍会话已失效，请用队伍码重新加入", status_code=401)
        return team

    def rename(self, event_code: str, team_id: int, session_token: str, team_name: str) -> Team:
        """入场后修改队名"""
        event = find_open_event(self.db, event_code)
        team = self.require_session(event, team_id, session_token)

        next_name = team_name.strip()
        if not next_name:
            raise ApiError(VALIDATION_ERROR, "队名不能为空")
        if team.name_key == utils.team_name_key(next_name):
            return team
        if self._name_taken(event.id, next_name, exclude_team_id=team.id):
            raise ApiError(CONFLICT, "该队名已被使用", status_code=409)

        self.db.execute(
            update(Team)
            .where(Team.id == team.id)
            .values(
                name=next_name,
                name_key=utils.team_name_key(next_name),
                team_placeholder=False,
                updated_at=utils.utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        self._commit_or_conflict()
        return self._reload(team.id)

    def generate_team_code(self, event_id: int) -> str:
        """生成活动内唯一的队伍数字码"""
        for _ in range(20):
            code = utils.random_code(settings.TEAM_CODE_LENGTH, utils.TEAM_CODE_CHARS)
            if self._team_by_code(event_id, code) is None:
                return code
        raise RuntimeError("无法生成唯一的队伍码")

    def prepopulate(self, event_id: int, count: int) -> List[Team]:
        """批量创建占位队伍 Team 01, Team 02 ...，跳过已占用的名字"""
        if count < 1 or count > MAX_PREPOPULATE:
            raise ApiError(VALIDATION_ERROR, f"数量必须在 1 到 {MAX_PREPOPULATE} 之间")

        taken = set(self.db.execute(select(Team.name_key).where(Team.event_id == event_id)).scalars())
        created: List[Team] = []
        index = 1
        attempts = 0
        while len(created) < count and attempts < count * 10 + 20:
            attempts += 1
            candidate = f"Team {index:02d}"
            index += 1
            if utils.team_name_key(candidate) in taken:
                continue
            team = Team(
                event_id=event_id,
                name=candidate,
                team_code=self.generate_team_code(event_id),
                team_placeholder=True,
            )
            self.db.add(team)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                continue
            taken.add(utils.team_name_key(candidate))
            created.append(team)

        logger.info("预置队伍 event=%s created=%s %s", event_id, len(created), self._tag())
        return created

    def _claim_placeholder(self, event_id: int, team: Team, name: str) -> bool:
        if self._name_taken(event_id, name, exclude_team_id=team.id):
            raise ApiError(CONFLICT, "该队名已被使用", status_code=409)
        result = self.db.execute(
            update(Team)
            .where(Team.id == team.id, Team.team_placeholder.is_(True))
            .values(
                name=name,
                name_key=utils.team_name_key(name),
                team_placeholder=False,
                updated_at=utils.utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        self._commit_or_conflict()
        return result.rowcount == 1

    def _rotate_token(self, team_id: int, now: Optional[datetime] = None) -> str:
        token = secrets.token_urlsafe(32)
        self.db.execute(
            update(Team)
            .where(Team.id == team_id)
            .values(team_session_token=token, team_session_updated_at=now or utils.utc_now())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return token

    @staticmethod
    def _require_matching_name(team: Team, requested: str) -> None:
        if requested and team.name_key != utils.team_name_key(requested):
            raise ApiError(TEAM_NAME_MISMATCH, "队名与该队伍码不匹配")

    def _team_by_code(self, event_id: int, team_code: str) -> Optional[Team]:
        return self.db.execute(
            select(Team)
            .where(Team.event_id == event_id, Team.team_code == team_code, Team.deleted.is_(False))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _name_taken(self, event_id: int, name: str, exclude_team_id: Optional[int] = None) -> bool:
        query = select(Team.id).where(
            Team.event_id == event_id,
            Team.name_key == utils.team_name_key(name),
            Team.deleted.is_(False),
        )
        if exclude_team_id is not None:
            query = query.where(Team.id != exclude_team_id)
        return self.db.execute(query).first() is not None

    def _commit_or_conflict(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ApiError(CONFLICT, "该队名已被使用", status_code=409)

    def _reload(self, team_id: int) -> Team:
        return self.db.execute(
            select(Team).where(Team.id == team_id).execution_options(populate_existing=True)
        ).scalar_one()

    def _tag(self) -> str:
        return self.context.tag() if self.context else ""
