"""时间工具 -- 统一 UTC 时间与落库格式

落库时间戳固定微秒精度，保证字符串比较与时间先后一致，
同时让 (status, updated_at) 乐观并发条件可以精确匹配。
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_db(ts: datetime) -> str:
    """datetime -> 落库 ISO 字符串（UTC，微秒精度）"""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat(timespec="microseconds")


def from_db(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)
