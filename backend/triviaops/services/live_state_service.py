"""
直播状态服务

每个活动只有一行直播状态。所有变更都是以 event_id 为键的单条 UPDATE，
主持人端假定单写者（同一活动只有一个主持人在操作）。
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import and_, case, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from triviaops.core import utils
from triviaops.core.errors import ApiError, NOT_FOUND, VALIDATION_ERROR
from triviaops.core.request_context import RequestContext
from triviaops.models.event_round import EventRound, EventRoundItem
from triviaops.models.live_state import LiveState
from triviaops.models.team import Team

logger = logging.getLogger(__name__)

# 首次写入时未提供字段的默认值
LIVE_STATE_DEFAULTS: Dict[str, Any] = {
    "active_round_id": None,
    "current_item_ordinal": None,
    "reveal_answer": False,
    "reveal_fun_fact": False,
    "waiting_message": None,
    "waiting_show_leaderboard": False,
    "waiting_show_next_round": True,
    "show_full_leaderboard": False,
    "timer_started_at": None,
    "timer_duration_seconds": None,
    "audio_playing": False,
    "participant_audio_stopped_by_team_id": None,
    "participant_audio_stopped_by_team_name": None,
    "participant_audio_stopped_at": None,
}

# 切换题目时一并清空的字段
ITEM_SCOPED_RESETS: Dict[str, Any] = {
    "reveal_answer": False,
    "reveal_fun_fact": False,
    "timer_started_at": None,
    "timer_duration_seconds": None,
    "audio_playing": False,
    "participant_audio_stopped_by_team_id": None,
    "participant_audio_stopped_by_team_name": None,
    "participant_audio_stopped_at": None,
}

UPDATABLE_FIELDS = frozenset(LIVE_STATE_DEFAULTS)


class LiveStateService:
    """直播状态存取服务"""

    def __init__(self, db: Session, context: Optional[RequestContext] = None):
        self.db = db
        self.context = context

    def get(self, event_id: int) -> Optional[LiveState]:
        return self.db.execute(
            select(LiveState)
            .where(LiveState.event_id == event_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def upsert(
        self,
        event_id: int,
        changes: Dict[str, Any],
        start_timer: bool = False,
        clear_timer: bool = False,
        now: Optional[datetime] = None,
    ) -> LiveState:
        """局部更新直播状态

        ``changes`` 只包含请求中出现的字段；未出现的字段保持原值（首次写入时取默认值）。
        题目（轮次或序号）发生变化时，揭晓标记、计时和抢答字段在同一条语句里被重置，
        除非同一次请求里显式给出了新值。
        """
        now = now or utils.utc_now()
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ApiError(VALIDATION_ERROR, f"无法更新字段: {', '.join(sorted(unknown))}")

        changes = dict(changes)
        existing = self.get(event_id)
        round_changing = "active_round_id" in changes and (
            existing is None or changes["active_round_id"] != existing.active_round_id
        )
        if round_changing and "current_item_ordinal" not in changes:
            # 换轮但未指定序号：序号只对原轮次有意义，清空
            changes["current_item_ordinal"] = None

        effective_round_id = changes.get(
            "active_round_id", existing.active_round_id if existing else None
        )
        self._validate_target(event_id, changes, effective_round_id)

        if clear_timer:
            changes["timer_started_at"] = None
            changes["timer_duration_seconds"] = None
        if start_timer:
            duration = changes.get("timer_duration_seconds") or self._default_timer_seconds(effective_round_id)
            if not duration:
                raise ApiError(VALIDATION_ERROR, "无法确定计时时长")
            changes["timer_started_at"] = now
            changes["timer_duration_seconds"] = duration

        if existing is None:
            values = {**LIVE_STATE_DEFAULTS, **changes}
            self.db.add(LiveState(event_id=event_id, updated_at=now, **values))
            try:
                self.db.commit()
            except IntegrityError:
                # 并发首次写入，改走更新
                self.db.rollback()
                self._apply_update(event_id, changes, now)
        else:
            self._apply_update(event_id, changes, now)

        state = self.get(event_id)
        logger.info(
            "直播状态更新 event=%s round=%s ordinal=%s fields=%s %s",
            event_id,
            state.active_round_id,
            state.current_item_ordinal,
            sorted(changes),
            self.context.tag() if self.context else "",
        )
        return state

    def advance_item(self, event_id: int, round_id: int, ordinal: int) -> LiveState:
        """主持人“下一题”：换题并在同一次写入中清空揭晓状态"""
        return self.upsert(event_id, {
            "active_round_id": round_id,
            "current_item_ordinal": ordinal,
            "reveal_answer": False,
            "reveal_fun_fact": False,
        })

    def claim_audio_stop(self, event_id: int, team: Team, now: Optional[datetime] = None) -> bool:
        """参与者停止音频；只有音频正在播放且尚无停止者时才会成功"""
        now = now or utils.utc_now()
        result = self.db.execute(
            update(LiveState)
            .where(
                LiveState.event_id == event_id,
                LiveState.audio_playing.is_(True),
                LiveState.participant_audio_stopped_by_team_id.is_(None),
            )
            .values(
                audio_playing=False,
                participant_audio_stopped_by_team_id=team.id,
                participant_audio_stopped_by_team_name=team.name,
                participant_audio_stopped_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def reset_item(self, event_id: int, round_id: int, ordinal: int, now: Optional[datetime] = None) -> bool:
        """清空某题的揭晓、计时和抢答字段（仅当直播状态仍指向该题）

        不提交事务，由调用方和作答重置一起提交。
        """
        now = now or utils.utc_now()
        result = self.db.execute(
            update(LiveState)
            .where(
                LiveState.event_id == event_id,
                LiveState.active_round_id == round_id,
                LiveState.current_item_ordinal == ordinal,
            )
            .values(updated_at=now, **ITEM_SCOPED_RESETS)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _apply_update(self, event_id: int, changes: Dict[str, Any], now: datetime) -> None:
        values: Dict[str, Any] = dict(changes)
        if "active_round_id" in changes or "current_item_ordinal" in changes:
            item_changed = self._item_changed_clause(changes)
            for field, reset_value in ITEM_SCOPED_RESETS.items():
                if field in changes:
                    continue
                column = getattr(LiveState, field)
                values[field] = case((item_changed, literal(reset_value, column.type)), else_=column)
        values["updated_at"] = now

        result = self.db.execute(
            update(LiveState)
            .where(LiveState.event_id == event_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise ApiError(NOT_FOUND, "直播状态不存在", status_code=404)
        self.db.commit()

    @staticmethod
    def _item_changed_clause(changes: Dict[str, Any]):
        clauses = []
        if "active_round_id" in changes:
            clauses.append(LiveState.active_round_id.is_distinct_from(changes["active_round_id"]))
        if "current_item_ordinal" in changes:
            clauses.append(LiveState.current_item_ordinal.is_distinct_from(changes["current_item_ordinal"]))
        if len(clauses) == 1:
            return clauses[0]
        return clauses[0] | clauses[1]

    def _validate_target(self, event_id: int, changes: Dict[str, Any], round_id: Optional[int]) -> None:
        if changes.get("active_round_id") is not None:
            event_round = self.db.execute(
                select(EventRound.id).where(
                    EventRound.id == changes["active_round_id"],
                    EventRound.event_id == event_id,
                    EventRound.deleted.is_(False),
                )
            ).first()
            if event_round is None:
                raise ApiError(VALIDATION_ERROR, "轮次不属于该活动", details={"field": "active_round_id"})

        if changes.get("current_item_ordinal") is not None:
            if round_id is None:
                raise ApiError(VALIDATION_ERROR, "未选择轮次时不能设置题目序号", details={"field": "current_item_ordinal"})
            item = self.db.execute(
                select(EventRoundItem.id).where(
                    and_(
                        EventRoundItem.event_round_id == round_id,
                        EventRoundItem.ordinal == changes["current_item_ordinal"],
                        EventRoundItem.deleted.is_(False),
                    )
                )
            ).first()
            if item is None:
                raise ApiError(VALIDATION_ERROR, "该轮次没有这个序号的题目", details={"field": "current_item_ordinal"})

    def _default_timer_seconds(self, round_id: Optional[int]) -> Optional[int]:
        if round_id is None:
            return None
        event_round = self.db.get(EventRound, round_id)
        return event_round.timer_seconds if event_round else None
