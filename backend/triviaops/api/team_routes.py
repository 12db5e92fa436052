"""
队伍管理API路由
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from triviaops.api.deps import require_admin, require_event_access
from triviaops.core.database import get_db
from triviaops.core.errors import ok
from triviaops.core.request_context import RequestContext, get_request_context
from triviaops.models.event import Event
from triviaops.schemas.host_schemas import PrepopulateTeamsRequest
from triviaops.services.team_session_service import TeamSessionService

router = APIRouter()

@router.post("/{event_id}/teams/prepopulate")
async def prepopulate_teams(
    body: Optional[PrepopulateTeamsRequest] = None,
    _admin: Dict = Depends(require_admin),
    event: Event = Depends(require_event_access),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """批量创建占位队伍（仅管理员）"""
    teams = TeamSessionService(db, context).prepopulate(event.id, (body or PrepopulateTeamsRequest()).count)
    return ok({
        "created": len(teams),
        "teams": [
            {"id": team.id, "name": team.name, "team_code": team.team_code, "team_placeholder": team.team_placeholder}
            for team in teams
        ],
    })
