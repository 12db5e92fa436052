"""
主持人接口的鉴权依赖

主持人/管理员的登录由外部身份系统负责，这里只校验其签发的 JWT。
"""

from typing import Dict, Optional

import jwt as pyjwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from triviaops.core.config import settings
from triviaops.core.database import get_db
from triviaops.core.errors import ApiError, FORBIDDEN, NOT_FOUND, UNAUTHORIZED
from triviaops.models.event import Event
from triviaops.models.event_round import EventRound

ADMIN = "admin"
HOST = "host"

security = HTTPBearer(auto_error=False)


def verify_token(token: str) -> Optional[Dict]:
    """校验并解码 JWT"""
    try:
        return pyjwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        return None
    except pyjwt.InvalidTokenError:
        return None


async def get_current_host(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict:
    """主持人或管理员"""
    if credentials is None:
        raise ApiError(UNAUTHORIZED, "未登录", status_code=401)

    payload = verify_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise ApiError(UNAUTHORIZED, "登录已失效", status_code=401)

    if payload.get("user_type") not in (ADMIN, HOST):
        raise ApiError(FORBIDDEN, "需要主持人权限", status_code=403)

    return payload


async def require_admin(user: Dict = Depends(get_current_host)) -> Dict:
    if user.get("user_type") != ADMIN:
        raise ApiError(FORBIDDEN, "需要管理员权限", status_code=403)
    return user


def ensure_event_access(user: Dict, event: Event) -> None:
    """管理员可访问所有活动，主持人只能访问分配给自己的活动"""
    if user.get("user_type") == ADMIN:
        return
    if event.host_user_id is None or str(event.host_user_id) != str(user.get("sub")):
        raise ApiError(FORBIDDEN, "无权操作该活动", status_code=403)


async def require_event_access(
    event_id: int,
    user: Dict = Depends(get_current_host),
    db: Session = Depends(get_db),
) -> Event:
    event = db.execute(
        select(Event).where(Event.id == event_id, Event.deleted.is_(False))
    ).scalar_one_or_none()
    if event is None:
        raise ApiError(NOT_FOUND, "活动不存在", status_code=404)
    ensure_event_access(user, event)
    return event


async def require_round_access(
    round_id: int,
    user: Dict = Depends(get_current_host),
    db: Session = Depends(get_db),
) -> EventRound:
    row = db.execute(
        select(EventRound, Event)
        .join(Event, Event.id == EventRound.event_id)
        .where(EventRound.id == round_id, EventRound.deleted.is_(False), Event.deleted.is_(False))
    ).first()
    if row is None:
        raise ApiError(NOT_FOUND, "轮次不存在", status_code=404)
    event_round, event = row
    ensure_event_access(user, event)
    return event_round
