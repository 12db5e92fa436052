# 业务逻辑服务包
from .rate_limiter import RateLimiter, RateLimitGuard
from .team_session_service import TeamSessionService
from .live_state_service import LiveStateService
from .public_event_service import PublicEventService
from .submission_service import SubmissionService

__all__ = [
    "RateLimiter",
    "RateLimitGuard",
    "TeamSessionService",
    "LiveStateService",
    "PublicEventService",
    "SubmissionService",
]
