"""
工具函数模块
"""

import json
import random
from typing import Any, List, Optional
from datetime import datetime, timezone

TEAM_CODE_CHARS = "0123456789"


def utc_now() -> datetime:
    """当前UTC时间（带时区）"""
    return datetime.now(timezone.utc)


def epoch_seconds(now: Optional[datetime] = None) -> int:
    """整数秒时间戳"""
    return int((now or utc_now()).timestamp())


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite 取回的时间没有时区，统一按UTC处理"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp_with_timezone(timestamp: Optional[datetime]) -> Optional[str]:
    """格式化时间戳，确保包含UTC时区标识符"""
    if not timestamp:
        return None
    # 确保发送给前端的时间戳以'Z'结尾，表示这是UTC时间
    return as_utc(timestamp).isoformat().replace("+00:00", "Z")


def normalize_code(code: str) -> str:
    """活动代码不区分大小写"""
    return (code or "").strip().upper()


def team_name_key(name: str) -> str:
    """队名比较键：去空白后做 Unicode 大小写折叠，不依赖数据库的 lower()"""
    return (name or "").strip().casefold()


def random_code(length: int, alphabet: str = TEAM_CODE_CHARS) -> str:
    return "".join(random.choice(alphabet) for _ in range(length))


def parse_choices(choices_json: Optional[str]) -> List[str]:
    """解析选项列表，格式错误时返回空列表"""
    if not choices_json:
        return []
    try:
        parsed = json.loads(choices_json)
    except (TypeError, ValueError):
        return []
    if not isinstance(parsed, list):
        return []
    return [choice for choice in parsed if isinstance(choice, str)]


def parse_json_list(raw: Optional[str]) -> List[Any]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return parsed if isinstance(parsed, list) else []
