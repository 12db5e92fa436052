"""
参与者作答服务

三种提交（选择题、停止音频、分项作答）共用一条前置校验链，顺序固定：
活动 -> 当前轮次是否进行中 -> 题型开关/计时 -> 队伍会话 -> 题目是否当前。
任何一步失败都抛出 ApiError，调用方据此记一次限流失败；所有校验通过前不写任何数据。
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from triviaops.core import utils
from triviaops.core.config import settings
from triviaops.core.errors import (
    ApiError,
    AUDIO_STILL_PLAYING,
    FORBIDDEN,
    INVALID_CHOICE,
    INVALID_TYPE,
    NOT_CURRENT,
    NOT_FOUND,
    NOT_LIVE,
    TIMER_EXPIRED,
    TIMER_NOT_STARTED,
    VALIDATION_ERROR,
)
from triviaops.core.request_context import RequestContext
from triviaops.models.event import Event
from triviaops.models.event_round import EventRound, EventRoundItem
from triviaops.models.live_state import LiveState
from triviaops.models.response import EventItemResponse
from triviaops.models.team import Team
from triviaops.schemas.public_schemas import AudioAnswerSubmission, AudioStopRequest, ChoiceSubmission
from triviaops.services.item_queries import item_at, round_items
from triviaops.services.live_state_service import LiveStateService
from triviaops.services.public_event_service import timer_deadline
from triviaops.services.team_session_service import TeamSessionService, find_open_event

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE = "multiple_choice"
FALLBACK_LABELS = ("Answer A", "Answer B")


@dataclass
class LiveContext:
    """通过活动、轮次校验后的直播上下文"""
    event: Event
    live: LiveState
    event_round: EventRound


def expected_labels(item) -> List[str]:
    """分项作答需要的标签：优先 answer_parts_json，否则回退到 A/B 两项"""
    labels: List[str] = []
    for part in utils.parse_json_list(item.answer_parts_json):
        label = part.get("label") if isinstance(part, dict) else None
        if isinstance(label, str) and label.strip() and label.strip() not in labels:
            labels.append(label.strip())
    if labels:
        return labels

    for answer, label, fallback in (
        (item.answer_a, item.answer_a_label, FALLBACK_LABELS[0]),
        (item.answer_b, item.answer_b_label, FALLBACK_LABELS[1]),
    ):
        if answer and answer.strip():
            labels.append((label or "").strip() or fallback)
    return labels


class SubmissionService:
    """参与者作答与主持人批改"""

    def __init__(self, db: Session, context: Optional[RequestContext] = None):
        self.db = db
        self.context = context
        self.sessions = TeamSessionService(db, context)
        self.live_states = LiveStateService(db, context)

    # ------------------------------------------------------------------
    # 参与者提交
    # ------------------------------------------------------------------

    def submit_choice(self, event_code: str, request: ChoiceSubmission, now: Optional[datetime] = None) -> Dict[str, Any]:
        """选择题作答；同一队伍重复提交覆盖上一次选择"""
        now = now or utils.utc_now()
        ctx = self._require_live(event_code)
        live = ctx.live
        if live.current_item_ordinal is None:
            raise ApiError(NOT_LIVE, "当前没有进行中的题目")
        deadline = timer_deadline(live)
        if deadline is None:
            raise ApiError(TIMER_NOT_STARTED, "计时尚未开始")

        team = self.sessions.require_session(ctx.event, request.team_id, request.session_token)
        current = self._require_current(ctx, request.item_id)

        if now > deadline + timedelta(seconds=settings.SUBMISSION_GRACE_SECONDS):
            raise ApiError(TIMER_EXPIRED, "作答时间已结束")
        if current.question_type != MULTIPLE_CHOICE:
            raise ApiError(INVALID_TYPE, "当前题目不是选择题")
        choices = utils.parse_choices(current.choices_json)
        if request.choice_index < 0 or request.choice_index >= len(choices):
            raise ApiError(INVALID_CHOICE, "选项无效")

        choice_text = choices[request.choice_index]
        self._upsert_response(ctx, team, current.id, now, {
            "choice_index": request.choice_index,
            "choice_text": choice_text,
            "response_parts_json": None,
        })
        logger.info(
            "选择题作答 event=%s round=%s item=%s team=%s choice=%s %s",
            ctx.event.id, ctx.event_round.id, current.id, team.id, request.choice_index, self._tag(),
        )
        return {"choice_index": request.choice_index, "choice_text": choice_text}

    def stop_audio(self, event_code: str, request: AudioStopRequest, now: Optional[datetime] = None) -> Dict[str, Any]:
        """参与者停止音频；第一个停止的队伍获得作答权"""
        now = now or utils.utc_now()
        ctx = self._require_live(event_code)
        self._require_audio_stop_enabled(ctx)
        team = self.sessions.require_session(ctx.event, request.team_id, request.session_token)
        if request.item_id is not None:
            self._require_current(ctx, request.item_id)

        stopped = self.live_states.claim_audio_stop(ctx.event.id, team, now)
        self.db.commit()

        live = self.live_states.get(ctx.event.id)
        if stopped:
            logger.info("音频被停止 event=%s team=%s %s", ctx.event.id, team.id, self._tag())
        return {
            "stopped": stopped,
            "stopped_by_team_id": live.participant_audio_stopped_by_team_id,
            "stopped_by_team_name": live.participant_audio_stopped_by_team_name,
        }

    def submit_audio_answer(
        self, event_code: str, request: AudioAnswerSubmission, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """停止音频的队伍提交分项答案（例如 歌手 / 歌名）"""
        now = now or utils.utc_now()
        ctx = self._require_live(event_code)
        if ctx.live.current_item_ordinal is None:
            raise ApiError(NOT_LIVE, "当前没有进行中的题目")
        self._require_audio_stop_enabled(ctx)
        team = self.sessions.require_session(ctx.event, request.team_id, request.session_token)
        current = self._require_current(ctx, request.item_id)

        if ctx.live.participant_audio_stopped_by_team_id != team.id:
            raise ApiError(FORBIDDEN, "只有停止音频的队伍可以作答", status_code=403)
        if ctx.live.audio_playing:
            raise ApiError(AUDIO_STILL_PLAYING, "请先停止音频再作答")

        labels = expected_labels(current)
        if not labels:
            raise ApiError(INVALID_TYPE, "当前题目不支持分项作答")

        by_label: Dict[str, str] = {}
        for part in request.answers:
            label = part.label.strip().lower()
            answer = part.answer.strip()
            if label and answer:
                by_label[label] = answer
        missing = [label for label in labels if label.lower() not in by_label]
        if missing:
            raise ApiError(VALIDATION_ERROR, f"缺少答案: {', '.join(missing)}", details={"missing": missing})

        answers = [{"label": label, "answer": by_label[label.lower()]} for label in labels]
        owner = self._shared_owner(ctx.event_round.id, current.id)
        if owner is not None and owner.team_id != team.id:
            raise ApiError(FORBIDDEN, "其他队伍已经提交了这道题", status_code=403)

        self._upsert_response(
            ctx,
            team,
            current.id,
            now,
            {
                "choice_index": None,
                "choice_text": None,
                "response_parts_json": json.dumps(answers, ensure_ascii=False),
            },
            conflict=ApiError(FORBIDDEN, "其他队伍已经提交了这道题", status_code=403),
        )
        logger.info(
            "分项作答 event=%s round=%s item=%s team=%s %s",
            ctx.event.id, ctx.event_round.id, current.id, team.id, self._tag(),
        )
        return {"answers": answers}

    # ------------------------------------------------------------------
    # 主持人操作
    # ------------------------------------------------------------------

    def list_audio_submissions(self, round_id: int) -> List[Dict[str, Any]]:
        """某轮每道题的有效分项作答（没有作答的题目字段为空）"""
        owners = {
            response.edition_item_id: (response, team_name)
            for response, team_name in self.db.execute(
                select(EventItemResponse, Team.name)
                .outerjoin(Team, Team.id == EventItemResponse.team_id)
                .where(
                    EventItemResponse.event_round_id == round_id,
                    EventItemResponse.response_parts_json.isnot(None),
                    EventItemResponse.deleted.is_(False),
                )
                .order_by(EventItemResponse.submitted_at)
                .execution_options(populate_existing=True)
            ).all()
        }

        rows = []
        for item in round_items(self.db, round_id):
            response, team_name = owners.get(item.id, (None, None))
            rows.append({
                "event_round_id": round_id,
                "edition_item_id": item.id,
                "ordinal": item.ordinal,
                "prompt": item.prompt,
                "team_id": response.team_id if response else None,
                "team_name": team_name,
                "response_parts_json": response.response_parts_json if response else None,
                "submitted_at": utils.format_timestamp_with_timezone(response.submitted_at) if response else None,
                "is_correct": response.is_correct if response else None,
                "marked_at": utils.format_timestamp_with_timezone(response.marked_at) if response else None,
            })
        return rows

    def mark_audio_submission(
        self, round_id: int, edition_item_id: int, is_correct: Optional[bool], marked_by: Optional[str]
    ) -> Dict[str, Any]:
        """批改分项作答；is_correct 为 None 时撤销批改"""
        owner = self._shared_owner(round_id, edition_item_id)
        if owner is None:
            raise ApiError(NOT_FOUND, "这道题还没有提交的答案", status_code=404)

        now = utils.utc_now()
        self.db.execute(
            update(EventItemResponse)
            .where(EventItemResponse.id == owner.id)
            .values(
                is_correct=is_correct,
                marked_at=None if is_correct is None else now,
                marked_by=None if is_correct is None else marked_by,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("批改作答 round=%s item=%s correct=%s %s", round_id, edition_item_id, is_correct, self._tag())
        return self._submission_row(round_id, edition_item_id)

    def reset_audio_submission(self, round_id: int, edition_item_id: int, reset_by: Optional[str]) -> Dict[str, Any]:
        """重置一道题：作答作废，直播状态（若仍指向该题）清空揭晓/计时/抢答，一次提交"""
        row = self.db.execute(
            select(EventRound.event_id, EventRoundItem.ordinal)
            .join(EventRound, EventRound.id == EventRoundItem.event_round_id)
            .where(
                EventRoundItem.event_round_id == round_id,
                EventRoundItem.edition_item_id == edition_item_id,
                EventRoundItem.deleted.is_(False),
                EventRound.deleted.is_(False),
            )
        ).first()
        if row is None:
            raise ApiError(NOT_FOUND, "该轮次没有这道题", status_code=404)

        now = utils.utc_now()
        self._soft_delete_responses(round_id, edition_item_id, reset_by, now)
        self.live_states.reset_item(row.event_id, round_id, row.ordinal, now)
        self.db.commit()
        logger.info("重置题目 round=%s item=%s %s", round_id, edition_item_id, self._tag())
        return self._submission_row(round_id, edition_item_id)

    def clear_responses(self, round_id: int, item_id: Optional[int] = None, cleared_by: Optional[str] = None) -> Dict[str, Any]:
        """作废整轮或某一题的全部作答"""
        cleared = self._soft_delete_responses(round_id, item_id, cleared_by, utils.utc_now())
        self.db.commit()
        logger.info("清空作答 round=%s item=%s cleared=%s %s", round_id, item_id, cleared, self._tag())
        return {"cleared": cleared}

    # ------------------------------------------------------------------
    # 前置校验
    # ------------------------------------------------------------------

    def _require_live(self, event_code: str) -> LiveContext:
        event = find_open_event(self.db, event_code)
        live = self.live_states.get(event.id)
        if live is None or live.active_round_id is None:
            raise ApiError(NOT_LIVE, "当前没有进行中的轮次")
        event_round = self.db.execute(
            select(EventRound)
            .where(EventRound.id == live.active_round_id, EventRound.deleted.is_(False))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if event_round is None or event_round.status != "live":
            raise ApiError(NOT_LIVE, "当前没有进行中的轮次")
        return LiveContext(event=event, live=live, event_round=event_round)

    @staticmethod
    def _require_audio_stop_enabled(ctx: LiveContext) -> None:
        game = ctx.event_round.edition.game if ctx.event_round.edition else None
        if game is None or not game.participant_audio_stop_enabled:
            raise ApiError(FORBIDDEN, "本游戏未开启参与者停止音频", status_code=403)

    def _require_current(self, ctx: LiveContext, item_id: int):
        current = None
        if ctx.live.current_item_ordinal is not None:
            current = item_at(self.db, ctx.event_round.id, ctx.live.current_item_ordinal)
        if current is None or current.id != item_id:
            raise ApiError(NOT_CURRENT, "该题目不是当前题目")
        return current

    # ------------------------------------------------------------------
    # 写入
    # ------------------------------------------------------------------

    def _upsert_response(
        self,
        ctx: LiveContext,
        team: Team,
        item_id: int,
        now: datetime,
        values: Dict[str, Any],
        conflict: Optional[ApiError] = None,
    ) -> None:
        """每队每题一行：已有则覆盖（清除批改、恢复作废），否则插入"""
        values = {
            **values,
            "submitted_at": now,
            "updated_at": now,
            "is_correct": None,
            "marked_at": None,
            "marked_by": None,
            "deleted": False,
            "deleted_at": None,
            "deleted_by": None,
        }
        try:
            if self._update_response(ctx.event_round.id, item_id, team.id, values) == 0:
                self.db.add(EventItemResponse(
                    event_id=ctx.event.id,
                    event_round_id=ctx.event_round.id,
                    edition_item_id=item_id,
                    team_id=team.id,
                    **values,
                ))
                try:
                    self.db.commit()
                    return
                except IntegrityError:
                    self.db.rollback()
                    if conflict is not None and self._shared_owner_conflict(ctx.event_round.id, item_id, team.id):
                        raise conflict
                    # 同一队伍并发插入，改走覆盖
                    self._update_response(ctx.event_round.id, item_id, team.id, values)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if conflict is not None:
                raise conflict
            raise

    def _update_response(self, round_id: int, item_id: int, team_id: int, values: Dict[str, Any]) -> int:
        result = self.db.execute(
            update(EventItemResponse)
            .where(
                EventItemResponse.event_round_id == round_id,
                EventItemResponse.edition_item_id == item_id,
                EventItemResponse.team_id == team_id,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _shared_owner(self, round_id: int, item_id: int) -> Optional[EventItemResponse]:
        return self.db.execute(
            select(EventItemResponse)
            .where(
                EventItemResponse.event_round_id == round_id,
                EventItemResponse.edition_item_id == item_id,
                EventItemResponse.response_parts_json.isnot(None),
                EventItemResponse.deleted.is_(False),
            )
            .order_by(EventItemResponse.submitted_at.desc())
            .execution_options(populate_existing=True)
            .limit(1)
        ).scalar_one_or_none()

    def _shared_owner_conflict(self, round_id: int, item_id: int, team_id: int) -> bool:
        owner = self._shared_owner(round_id, item_id)
        return owner is not None and owner.team_id != team_id

    def _soft_delete_responses(self, round_id: int, item_id: Optional[int], deleted_by: Optional[str], now: datetime) -> int:
        query = update(EventItemResponse).where(
            EventItemResponse.event_round_id == round_id,
            EventItemResponse.deleted.is_(False),
        )
        if item_id is not None:
            query = query.where(EventItemResponse.edition_item_id == item_id)
        result = self.db.execute(
            query.values(deleted=True, deleted_at=now, deleted_by=deleted_by, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _submission_row(self, round_id: int, edition_item_id: int) -> Dict[str, Any]:
        for row in self.list_audio_submissions(round_id):
            if row["edition_item_id"] == edition_item_id:
                return row
        raise ApiError(NOT_FOUND, "该轮次没有这道题", status_code=404)

    def _tag(self) -> str:
        return self.context.tag() if self.context else ""
