import pytest
from sqlalchemy import select

from triviaops.core.config import settings
from triviaops.core.errors import ApiError, NOT_FOUND
from triviaops.models.rate_limit import RateLimitEntry
from triviaops.services.rate_limiter import RateLimitConfig, RateLimitGuard, RateLimiter, config_for

from conftest import EVENT_CODE

JOIN_LIMIT = RateLimitConfig(max_attempts=5, window_seconds=900, block_seconds=1800)
T0 = 1_700_000_000

# ============================================================================
# LIMITER
# ============================================================================

def test_unknown_key_is_allowed(db):
    assert RateLimiter(db).check("public-join:1.2.3.4:4821", JOIN_LIMIT, now=T0).allowed


def test_lockout_after_max_failures(db):
    limiter = RateLimiter(db)
    key = "public-join:1.2.3.4:4821"
    for attempt in range(5):
        assert limiter.check(key, JOIN_LIMIT, now=T0 + attempt).allowed
        limiter.record_hit(key, JOIN_LIMIT, now=T0 + attempt)

    status = limiter.check(key, JOIN_LIMIT, now=T0 + 5)
    assert not status.allowed
    # 第5次失败时封禁 1800 秒
    assert status.retry_after_seconds == 1800 - 1


def test_block_expires_and_window_restarts(db):
    limiter = RateLimiter(db)
    key = "public-join:1.2.3.4:4821"
    for _ in range(5):
        limiter.record_hit(key, JOIN_LIMIT, now=T0)

    assert not limiter.check(key, JOIN_LIMIT, now=T0 + 1799).allowed
    assert limiter.check(key, JOIN_LIMIT, now=T0 + 1801).allowed

    limiter.record_hit(key, JOIN_LIMIT, now=T0 + 1801)
    entry = db.execute(select(RateLimitEntry).where(RateLimitEntry.key == key)).scalar_one()
    db.refresh(entry)
    assert entry.count == 1
    assert entry.first_seen == T0 + 1801


def test_window_expiry_resets_count(db):
    limiter = RateLimiter(db)
    key = "public-response:1.2.3.4:4821"
    config = RateLimitConfig(max_attempts=3, window_seconds=60, block_seconds=300)
    limiter.record_hit(key, config, now=T0)
    limiter.record_hit(key, config, now=T0 + 1)

    # 窗口过期后重新计数，不会因为累计 3 次而封禁
    limiter.record_hit(key, config, now=T0 + 120)
    assert limiter.check(key, config, now=T0 + 121).allowed


def test_keys_are_independent(db):
    limiter = RateLimiter(db)
    for _ in range(5):
        limiter.record_hit("public-join:1.1.1.1:4821", JOIN_LIMIT, now=T0)
    assert not limiter.check("public-join:1.1.1.1:4821", JOIN_LIMIT, now=T0).allowed
    assert limiter.check("public-join:2.2.2.2:4821", JOIN_LIMIT, now=T0).allowed


def test_clear_removes_entry(db):
    limiter = RateLimiter(db)
    key = "public-join:1.2.3.4:4821"
    for _ in range(5):
        limiter.record_hit(key, JOIN_LIMIT, now=T0)
    limiter.clear(key)
    assert limiter.check(key, JOIN_LIMIT, now=T0).allowed


def test_guard_records_business_rejections(db):
    guard = RateLimitGuard(RateLimiter(db), "public-event:1.2.3.4:9999", JOIN_LIMIT)
    with pytest.raises(ApiError) as exc_info:
        with guard.protect():
            raise ApiError(NOT_FOUND, "活动不存在", status_code=404)
    assert exc_info.value.code == NOT_FOUND

    entry = db.execute(select(RateLimitEntry)).scalar_one()
    assert entry.count == 1


# ============================================================================
# CONFIG
# ============================================================================

def test_config_defaults():
    assert config_for("public_join") == RateLimitConfig(5, 900, 1800)
    assert config_for("public_event") == RateLimitConfig(300, 300, 600)
    assert config_for("public_audio_stop") == RateLimitConfig(15, 60, 300)


def test_config_env_override(monkeypatch):
    monkeypatch.setattr(settings, "PUBLIC_JOIN_RATE_MAX", 3)
    monkeypatch.setattr(settings, "PUBLIC_JOIN_RATE_BLOCK_SECONDS", -1)
    config = config_for("public_join")
    assert config.max_attempts == 3
    assert config.block_seconds == 1800


# ============================================================================
# ENDPOINT
# ============================================================================

@pytest.mark.asyncio
async def test_join_lockout_returns_429(client, seeded):
    for _ in range(5):
        response = await client.post(f"/api/public/event/{EVENT_CODE}/join", json={"team_code": "9999"})
        assert response.status_code == 404

    response = await client.post(f"/api/public/event/{EVENT_CODE}/join", json={"team_code": "0555"})
    assert response.status_code == 429
    body = response.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "rate_limited"
    assert body["error"]["details"]["retry_after"] > 0
    assert int(response.headers["retry-after"]) > 0


@pytest.mark.asyncio
async def test_malformed_body_counts_as_failure(client, seeded):
    response = await client.post(
        f"/api/public/event/{EVENT_CODE}/join",
        content="not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"
