"""
限流服务（固定窗口 + 封禁）
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy import case, delete, literal, null, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from triviaops.core.config import settings
from triviaops.core.errors import ApiError, rate_limited
from triviaops.core.request_context import RequestContext
from triviaops.core.utils import epoch_seconds
from triviaops.models.rate_limit import RateLimitEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    max_attempts: int
    window_seconds: int
    block_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after_seconds: Optional[int] = None


ALLOWED = RateLimitResult(allowed=True)

# 环境变量未配置时的默认值
DEFAULT_RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "public_event": RateLimitConfig(300, 5 * 60, 10 * 60),
    "public_stream": RateLimitConfig(300, 5 * 60, 10 * 60),
    "public_join": RateLimitConfig(5, 15 * 60, 30 * 60),
    "public_team_name": RateLimitConfig(12, 2 * 60, 5 * 60),
    "public_response": RateLimitConfig(20, 2 * 60, 5 * 60),
    "public_audio_stop": RateLimitConfig(15, 60, 5 * 60),
    "public_audio_answer": RateLimitConfig(20, 2 * 60, 5 * 60),
}


def _positive(value, fallback: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def config_for(name: str) -> RateLimitConfig:
    """按名称读取限流配置，例如 public_join -> PUBLIC_JOIN_RATE_*"""
    default = DEFAULT_RATE_LIMITS[name]
    prefix = f"{name.upper()}_RATE"
    return RateLimitConfig(
        max_attempts=_positive(getattr(settings, f"{prefix}_MAX", 0), default.max_attempts),
        window_seconds=_positive(getattr(settings, f"{prefix}_WINDOW_SECONDS", 0), default.window_seconds),
        block_seconds=_positive(getattr(settings, f"{prefix}_BLOCK_SECONDS", 0), default.block_seconds),
    )


class RateLimiter:
    """限流服务

    ``check`` 只读不计数；调用方在失败路径上显式调用 ``record_hit``。
    存储不可用时放行（fail open）。
    """

    def __init__(self, db: Session, context: Optional[RequestContext] = None):
        self.db = db
        self.context = context

    def check(self, key: str, config: RateLimitConfig, now: Optional[int] = None) -> RateLimitResult:
        now = epoch_seconds() if now is None else now
        self._cleanup(config, now)
        try:
            row = self.db.execute(
                select(
                    RateLimitEntry.count,
                    RateLimitEntry.first_seen,
                    RateLimitEntry.blocked_until,
                ).where(RateLimitEntry.key == key)
            ).first()
            if row is None:
                return ALLOWED

            if row.blocked_until and row.blocked_until > now:
                return RateLimitResult(False, row.blocked_until - now)

            if now - row.first_seen > config.window_seconds:
                # 窗口已过期，下一次 record_hit 会开启新窗口
                return ALLOWED

            if row.count >= config.max_attempts:
                blocked_until = now + config.block_seconds
                self.db.execute(
                    update(RateLimitEntry)
                    .where(
                        RateLimitEntry.key == key,
                        or_(RateLimitEntry.blocked_until.is_(None), RateLimitEntry.blocked_until <= now),
                    )
                    .values(blocked_until=blocked_until, last_seen=now)
                    .execution_options(synchronize_session=False)
                )
                self.db.commit()
                logger.warning("🚫 限流封禁 key=%s until=%s %s", key, blocked_until, self._tag())
                return RateLimitResult(False, config.block_seconds)

            return ALLOWED
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("限流存储不可用，放行请求 key=%s error=%s %s", key, e, self._tag())
            return ALLOWED

    def record_hit(self, key: str, config: RateLimitConfig, now: Optional[int] = None) -> None:
        now = epoch_seconds() if now is None else now
        try:
            if self._increment(key, config, now) == 0:
                self.db.add(RateLimitEntry(
                    key=key,
                    count=1,
                    first_seen=now,
                    last_seen=now,
                    blocked_until=now + config.block_seconds if config.max_attempts <= 1 else None,
                ))
                try:
                    self.db.commit()
                except IntegrityError:
                    # 并发首次写入，改走计数更新
                    self.db.rollback()
                    self._increment(key, config, now)
                    self.db.commit()
            else:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("限流计数写入失败 key=%s error=%s %s", key, e, self._tag())

    def clear(self, key: str) -> None:
        self.db.execute(delete(RateLimitEntry).where(RateLimitEntry.key == key))
        self.db.commit()

    def _increment(self, key: str, config: RateLimitConfig, now: int) -> int:
        """单条条件更新完成窗口重置/计数/封禁，返回受影响行数"""
        entry = RateLimitEntry
        blocked = (entry.blocked_until.isnot(None)) & (entry.blocked_until > now)
        expired = (literal(now) - entry.first_seen) > config.window_seconds
        block_value = literal(now + config.block_seconds)
        first_hit_block = block_value if config.max_attempts <= 1 else null()

        result = self.db.execute(
            update(entry)
            .where(entry.key == key)
            .values(
                count=case((blocked, entry.count), (expired, 1), else_=entry.count + 1),
                first_seen=case((blocked, entry.first_seen), (expired, now), else_=entry.first_seen),
                last_seen=now,
                blocked_until=case(
                    (blocked, entry.blocked_until),
                    (expired, first_hit_block),
                    (entry.count + 1 >= config.max_attempts, block_value),
                    else_=entry.blocked_until,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _cleanup(self, config: RateLimitConfig, now: int) -> None:
        """清理过期记录，失败只记录日志"""
        cutoff = now - (config.window_seconds + config.block_seconds)
        try:
            self.db.execute(
                delete(RateLimitEntry)
                .where(
                    RateLimitEntry.last_seen < cutoff,
                    or_(RateLimitEntry.blocked_until.is_(None), RateLimitEntry.blocked_until < now),
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("清理限流记录失败: %s %s", e, self._tag())

    def _tag(self) -> str:
        return self.context.tag() if self.context else ""


class RateLimitGuard:
    """把一个限流键绑定到一次请求上"""

    def __init__(self, limiter: RateLimiter, key: str, config: RateLimitConfig):
        self.limiter = limiter
        self.key = key
        self.config = config

    def enforce(self) -> None:
        status = self.limiter.check(self.key, self.config)
        if not status.allowed:
            raise rate_limited(status.retry_after_seconds)

    def record_failure(self) -> None:
        self.limiter.record_hit(self.key, self.config)

    @contextmanager
    def protect(self):
        """先检查限流；块内任何业务拒绝都计一次失败"""
        self.enforce()
        try:
            yield self
        except ApiError:
            self.record_failure()
            raise
