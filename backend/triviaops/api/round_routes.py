"""
轮次作答管理API路由（主持人）
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from triviaops.api.deps import get_current_host, require_round_access
from triviaops.core.database import get_db
from triviaops.core.errors import ok
from triviaops.core.request_context import RequestContext, get_request_context
from triviaops.models.event_round import EventRound
from triviaops.schemas.host_schemas import AudioSubmissionMark, AudioSubmissionReset
from triviaops.services.submission_service import SubmissionService

router = APIRouter()

@router.get("/{round_id}/audio-submissions")
async def list_audio_submissions(
    event_round: EventRound = Depends(require_round_access),
    db: Session = Depends(get_db),
):
    """本轮每道题的分项作答"""
    return ok(SubmissionService(db).list_audio_submissions(event_round.id))

@router.put("/{round_id}/audio-submissions")
async def mark_audio_submission(
    body: AudioSubmissionMark,
    event_round: EventRound = Depends(require_round_access),
    user: Dict = Depends(get_current_host),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """批改分项作答"""
    row = SubmissionService(db, context).mark_audio_submission(
        event_round.id, body.edition_item_id, body.is_correct, str(user["sub"])
    )
    return ok(row)

@router.post("/{round_id}/audio-submissions")
async def reset_audio_submission(
    body: AudioSubmissionReset,
    event_round: EventRound = Depends(require_round_access),
    user: Dict = Depends(get_current_host),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """重置某题：作答作废并清空直播状态中的抢答信息"""
    row = SubmissionService(db, context).reset_audio_submission(
        event_round.id, body.edition_item_id, str(user["sub"])
    )
    return ok(row)

@router.post("/{round_id}/clear-responses")
async def clear_responses(
    item_id: Optional[int] = None,
    event_round: EventRound = Depends(require_round_access),
    user: Dict = Depends(get_current_host),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """作废整轮或某一题的作答"""
    result = SubmissionService(db, context).clear_responses(event_round.id, item_id, str(user["sub"]))
    return ok(result)
