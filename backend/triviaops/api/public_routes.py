"""
参与者公共接口（按活动代码访问，无需登录）
"""

import json
from typing import Optional, Type, TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from triviaops.core import utils
from triviaops.core.config import settings
from triviaops.core.database import get_db, get_session_factory
from triviaops.core.errors import ApiError, VALIDATION_ERROR, ok, validation_details
from triviaops.core.request_context import RequestContext, get_request_context
from triviaops.schemas.public_schemas import (
    AudioAnswerSubmission,
    AudioStopRequest,
    ChoiceSubmission,
    JoinRequest,
    TeamNameRequest,
)
from triviaops.services.public_event_service import PublicEventService
from triviaops.services.rate_limiter import RateLimitGuard, RateLimiter, config_for
from triviaops.services.stream_service import STREAM_HEADERS, stream_public_event
from triviaops.services.submission_service import SubmissionService
from triviaops.services.team_session_service import TeamSessionService, team_view

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)


def rate_limit_guard(db: Session, context: RequestContext, limiter: str, event_code: str) -> RateLimitGuard:
    """限流键：<接口>:<客户端IP>:<活动代码>"""
    prefix = limiter.replace("_", "-")
    key = f"{prefix}:{context.client_ip}:{utils.normalize_code(event_code)}"
    return RateLimitGuard(RateLimiter(db, context), key, config_for(limiter))


async def parse_body(request: Request, model: Type[ModelT]) -> ModelT:
    """手动解析请求体，校验失败同样计入限流"""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ApiError(VALIDATION_ERROR, "请求体不是有效的 JSON")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ApiError(VALIDATION_ERROR, "请求参数无效", details=validation_details(e.errors()))


@router.get("/event/{code}")
async def get_public_event(
    code: str,
    view: Optional[str] = None,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """活动快照（play / leaderboard 视图）"""
    with rate_limit_guard(db, context, "public_event", code).protect():
        return ok(PublicEventService(db).build(code, view))


@router.get("/event/{code}/stream")
async def stream_public_event_updates(
    code: str,
    request: Request,
    view: Optional[str] = None,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    context: RequestContext = Depends(get_request_context),
):
    """活动快照的实时推送（只在建立连接时限流）"""
    rate_limit_guard(db, context, "public_stream", code).enforce()
    return StreamingResponse(
        stream_public_event(
            session_factory,
            code,
            view,
            request.is_disconnected,
            interval=settings.STREAM_POLL_SECONDS,
            request_tag=context.tag(),
        ),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@router.post("/event/{code}/join")
async def join_event(
    code: str,
    request: Request,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """凭队伍码入场"""
    with rate_limit_guard(db, context, "public_join", code).protect():
        body = await parse_body(request, JoinRequest)
        team, token = TeamSessionService(db, context).join(code, body.team_code, body.team_name)
    return ok({"team": team_view(team), "session_token": token})


@router.post("/event/{code}/team-name")
async def update_team_name(
    code: str,
    request: Request,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """修改队名"""
    with rate_limit_guard(db, context, "public_team_name", code).protect():
        body = await parse_body(request, TeamNameRequest)
        team = TeamSessionService(db, context).rename(code, body.team_id, body.session_token, body.team_name)
    return ok({"team": team_view(team)})


@router.post("/event/{code}/responses")
async def submit_response(
    code: str,
    request: Request,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """选择题作答"""
    with rate_limit_guard(db, context, "public_response", code).protect():
        body = await parse_body(request, ChoiceSubmission)
        result = SubmissionService(db, context).submit_choice(code, body)
    return ok(result)


@router.post("/event/{code}/audio-stop")
async def stop_audio(
    code: str,
    request: Request,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """参与者停止音频"""
    with rate_limit_guard(db, context, "public_audio_stop", code).protect():
        body = await parse_body(request, AudioStopRequest)
        result = SubmissionService(db, context).stop_audio(code, body)
    return ok(result)


@router.post("/event/{code}/audio-answer")
async def submit_audio_answer(
    code: str,
    request: Request,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """停止音频的队伍提交分项答案"""
    with rate_limit_guard(db, context, "public_audio_answer", code).protect():
        body = await parse_body(request, AudioAnswerSubmission)
        result = SubmissionService(db, context).submit_audio_answer(code, body)
    return ok(result)
