"""
公共活动快照（读模型）服务

根据活动代码和视图，从直播状态、轮次、题目和得分数据推导出参与者可见的快照。
纯读取，不做任何写入；答案和趣闻在揭晓前一律不下发。
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from triviaops.core import utils
from triviaops.core.config import settings
from triviaops.core.errors import ApiError, NOT_FOUND
from triviaops.models.edition import Edition
from triviaops.models.event import Event
from triviaops.models.event_round import EventRound
from triviaops.models.game import Game
from triviaops.models.live_state import LiveState
from triviaops.models.location import Location
from triviaops.models.response import EventItemResponse
from triviaops.models.round_score import EventRoundScore
from triviaops.models.team import Team
from triviaops.services.item_queries import item_at, round_items

VIEW_PLAY = "play"
VIEW_LEADERBOARD = "leaderboard"

# 揭晓答案后才下发的字段
ANSWER_FIELDS = (
    "answer",
    "answer_a",
    "answer_b",
    "answer_a_label",
    "answer_b_label",
    "answer_parts_json",
    "audio_answer_key",
)

LIVE_FLAG_FIELDS = (
    "reveal_answer",
    "reveal_fun_fact",
    "waiting_show_leaderboard",
    "waiting_show_next_round",
    "show_full_leaderboard",
    "audio_playing",
)


def normalize_view(view: Optional[str]) -> str:
    return VIEW_LEADERBOARD if view == VIEW_LEADERBOARD else VIEW_PLAY


def timer_deadline(live: Optional[LiveState]) -> Optional[datetime]:
    """计时截止时间（未开始计时返回 None）"""
    if live is None or live.timer_started_at is None or not live.timer_duration_seconds:
        return None
    return utils.as_utc(live.timer_started_at) + timedelta(seconds=live.timer_duration_seconds)


class PublicEventService:
    """公共活动快照构建"""

    def __init__(self, db: Session):
        self.db = db

    def build(self, event_code: str, view: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utils.utc_now()
        view = normalize_view(view)
        is_leaderboard = view == VIEW_LEADERBOARD

        event = self._event(event_code)
        live = self.db.execute(
            select(LiveState)
            .where(LiveState.event_id == event["id"])
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        reveal_answer = bool(live and live.reveal_answer)
        reveal_fun_fact = bool(live and live.reveal_fun_fact)

        include_leaderboard = is_leaderboard or bool(live and live.waiting_show_leaderboard)

        payload: Dict[str, Any] = {
            "event": event,
            "rounds": self._rounds(event["id"]),
            "teams": [] if is_leaderboard else self._teams(event["id"]),
            "leaderboard": self._leaderboard(event["id"]) if include_leaderboard else [],
            "round_scores": self._round_scores(event["id"]) if is_leaderboard else [],
            "live": self._live(live),
            "current_item": None,
            "visual_round": False,
            "visual_items": [],
            "response_counts": None,
        }
        if is_leaderboard or live is None or live.active_round_id is None:
            return payload

        def sanitize(row) -> Dict[str, Any]:
            return self._sanitize_item(row, reveal_answer, reveal_fun_fact)

        round_status = self.db.execute(
            select(EventRound.status).where(EventRound.id == live.active_round_id, EventRound.deleted.is_(False))
        ).scalar_one_or_none()

        items = round_items(self.db, live.active_round_id) if round_status == "live" else []
        images = [row for row in items if row.media_type == "image" and row.media_key]
        if items and len(images) == len(items):
            # 全图片轮：下发整轮题目，客户端自行翻页
            payload["visual_round"] = True
            payload["visual_items"] = [sanitize(row) for row in images]

        if live.current_item_ordinal is not None:
            current = item_at(self.db, live.active_round_id, live.current_item_ordinal)
            if current is not None:
                payload["current_item"] = sanitize(current)
                payload["response_counts"] = self._response_counts(live, current, now)

        return payload

    def _event(self, event_code: str) -> Dict[str, Any]:
        row = self.db.execute(
            select(
                Event.id,
                Event.title,
                Event.starts_at,
                Event.status,
                Event.public_code,
                Location.name.label("location_name"),
            )
            .outerjoin(Location, Location.id == Event.location_id)
            .where(Event.public_code == utils.normalize_code(event_code), Event.deleted.is_(False))
        ).first()
        if row is None:
            raise ApiError(NOT_FOUND, "活动不存在", status_code=404)
        return {
            "id": row.id,
            "title": row.title,
            "starts_at": utils.format_timestamp_with_timezone(row.starts_at),
            "status": row.status,
            "public_code": row.public_code,
            "location_name": row.location_name,
        }

    def _rounds(self, event_id: int) -> List[Dict[str, Any]]:
        # 游戏隐藏主题时，轮次标题在读取时替换为游戏名（不落库）
        label = case((Game.show_theme.is_(False), Game.name), else_=EventRound.label).label("label")
        rows = self.db.execute(
            select(EventRound.id, EventRound.round_number, label, EventRound.status, Edition.timer_seconds)
            .join(Edition, Edition.id == EventRound.edition_id)
            .join(Game, Game.id == Edition.game_id)
            .where(EventRound.event_id == event_id, EventRound.deleted.is_(False))
            .order_by(EventRound.round_number)
        ).all()
        return [
            {
                "id": row.id,
                "round_number": row.round_number,
                "label": row.label,
                "status": row.status,
                "timer_seconds": row.timer_seconds,
            }
            for row in rows
        ]

    def _teams(self, event_id: int) -> List[Dict[str, Any]]:
        rows = self.db.execute(
            select(Team.id, Team.name)
            .where(Team.event_id == event_id, Team.deleted.is_(False))
            .order_by(Team.created_at, Team.id)
        ).all()
        return [{"id": row.id, "name": row.name} for row in rows]

    def _leaderboard(self, event_id: int) -> List[Dict[str, Any]]:
        live_rounds = select(EventRound.id).where(EventRound.event_id == event_id, EventRound.deleted.is_(False))
        total = func.coalesce(func.sum(EventRoundScore.score), 0).label("total")
        rows = self.db.execute(
            select(Team.id, Team.name, total)
            .outerjoin(
                EventRoundScore,
                (EventRoundScore.team_id == Team.id)
                & (EventRoundScore.deleted.is_(False))
                & (EventRoundScore.event_round_id.in_(live_rounds)),
            )
            .where(Team.event_id == event_id, Team.deleted.is_(False))
            .group_by(Team.id, Team.name)
            .order_by(total.desc(), Team.name)
        ).all()
        return [{"team_id": row.id, "name": row.name, "total": row.total} for row in rows]

    def _round_scores(self, event_id: int) -> List[Dict[str, Any]]:
        rows = self.db.execute(
            select(EventRoundScore.event_round_id, EventRoundScore.team_id, EventRoundScore.score)
            .join(EventRound, EventRound.id == EventRoundScore.event_round_id)
            .where(
                EventRound.event_id == event_id,
                EventRound.deleted.is_(False),
                EventRoundScore.deleted.is_(False),
            )
            .order_by(EventRoundScore.event_round_id, EventRoundScore.team_id)
        ).all()
        return [
            {"event_round_id": row.event_round_id, "team_id": row.team_id, "score": row.score}
            for row in rows
        ]

    @staticmethod
    def _live(live: Optional[LiveState]) -> Optional[Dict[str, Any]]:
        if live is None:
            return None
        data: Dict[str, Any] = {
            "id": live.id,
            "event_id": live.event_id,
            "active_round_id": live.active_round_id,
            "current_item_ordinal": live.current_item_ordinal,
            "waiting_message": live.waiting_message,
            "timer_started_at": utils.format_timestamp_with_timezone(live.timer_started_at),
            "timer_duration_seconds": live.timer_duration_seconds,
            "participant_audio_stopped_by_team_id": live.participant_audio_stopped_by_team_id,
            "participant_audio_stopped_by_team_name": live.participant_audio_stopped_by_team_name,
            "participant_audio_stopped_at": utils.format_timestamp_with_timezone(live.participant_audio_stopped_at),
            "updated_at": utils.format_timestamp_with_timezone(live.updated_at),
        }
        for flag in LIVE_FLAG_FIELDS:
            data[flag] = bool(getattr(live, flag))
        return data

    @staticmethod
    def _sanitize_item(row, reveal_answer: bool, reveal_fun_fact: bool) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "id": row.id,
            "question_type": row.question_type,
            "choices_json": row.choices_json,
            "prompt": row.prompt,
            "media_type": row.media_type,
            "media_key": row.media_key,
            "media_caption": row.media_caption,
            "ordinal": row.ordinal,
        }
        if reveal_answer:
            for field in ANSWER_FIELDS:
                item[field] = getattr(row, field)
        if reveal_fun_fact:
            item["fun_fact"] = row.fun_fact
        return item

    def _response_counts(self, live: LiveState, current, now: datetime) -> Optional[Dict[str, Any]]:
        """计时结束（含宽限）后才公布各选项人数"""
        choices = utils.parse_choices(current.choices_json)
        deadline = timer_deadline(live)
        if not choices or deadline is None:
            return None
        if now <= deadline + timedelta(seconds=settings.RESPONSE_COUNTS_GRACE_SECONDS):
            return None

        rows = self.db.execute(
            select(EventItemResponse.choice_index, func.count(EventItemResponse.id))
            .where(
                EventItemResponse.event_round_id == live.active_round_id,
                EventItemResponse.edition_item_id == current.id,
                EventItemResponse.deleted.is_(False),
                EventItemResponse.choice_index.isnot(None),
            )
            .group_by(EventItemResponse.choice_index)
        ).all()
        tally = {index: total for index, total in rows}
        counts = [tally.get(index, 0) for index in range(len(choices))]
        return {"total": sum(counts), "counts": counts}
