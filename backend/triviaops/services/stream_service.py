"""
公共活动实时推送（Server-Sent Events）

每条连接独立轮询：每个周期用新会话重建快照，内容变化才推送 update，
否则发送注释行保活。连接之间不共享任何可变状态。
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from starlette.concurrency import run_in_threadpool

from triviaops.core.errors import ApiError, SERVER_ERROR
from triviaops.services.public_event_service import PublicEventService

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def format_event(event: str, payload: Any) -> str:
    return f"event: {event}\ndata: {canonical_json(payload)}\n\n"


def format_comment(text: str) -> str:
    return f": {text}\n\n"


def _build_snapshot(session_factory: Callable[[], Any], event_code: str, view: Optional[str]) -> Dict[str, Any]:
    """在工作线程中执行：开会话、构建快照、关会话"""
    db = session_factory()
    try:
        return PublicEventService(db).build(event_code, view)
    finally:
        db.close()


async def stream_public_event(
    session_factory: Callable[[], Any],
    event_code: str,
    view: Optional[str],
    is_disconnected: Callable[[], Awaitable[bool]],
    interval: float = 2.0,
    request_tag: str = "",
) -> AsyncIterator[str]:
    """逐帧产出 SSE 文本"""
    yield format_comment("connected")
    last_sent: Optional[str] = None

    while True:
        if await is_disconnected():
            logger.debug("推送连接断开 code=%s %s", event_code, request_tag)
            return

        try:
            # 同步数据库访问放到线程池，避免阻塞事件循环上的其他连接
            payload = await run_in_threadpool(_build_snapshot, session_factory, event_code, view)
        except ApiError as e:
            yield format_event("error", {"message": e.message, "code": e.code, "status": e.status_code})
            return
        except Exception:
            logger.exception("推送快照失败 code=%s %s", event_code, request_tag)
            yield format_event("error", {"message": "Unexpected error", "code": SERVER_ERROR, "status": 500})
            return

        serialized = canonical_json(payload)
        if serialized != last_sent:
            last_sent = serialized
            yield f"event: update\ndata: {serialized}\n\n"
        else:
            yield format_comment("ping")

        await asyncio.sleep(interval)
