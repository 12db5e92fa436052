"""
直播状态API路由（主持人）
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from triviaops.api.deps import require_event_access
from triviaops.core.database import get_db
from triviaops.core.errors import ok
from triviaops.core.request_context import RequestContext, get_request_context
from triviaops.models.event import Event
from triviaops.schemas.live_state_schemas import LiveStateResponse, LiveStateUpdate
from triviaops.services.live_state_service import LiveStateService

router = APIRouter()

@router.get("/{event_id}/live-state")
async def get_live_state(
    event: Event = Depends(require_event_access),
    db: Session = Depends(get_db),
):
    """获取直播状态（尚未开始时为 null）"""
    state = LiveStateService(db).get(event.id)
    return ok(LiveStateResponse.model_validate(state) if state else None)

@router.put("/{event_id}/live-state")
async def update_live_state(
    update: LiveStateUpdate,
    event: Event = Depends(require_event_access),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """局部更新直播状态，只写入请求中出现的字段"""
    state = LiveStateService(db, context).upsert(
        event.id,
        update.present_fields(),
        start_timer=update.start_timer,
        clear_timer=update.clear_timer,
    )
    return ok(LiveStateResponse.model_validate(state))
