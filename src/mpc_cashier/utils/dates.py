import calendar
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite отдаёт naive datetime даже для DateTime(timezone=True); считаем такие значения UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def add_months(value: datetime, months: int = 1) -> datetime:
    """Календарный сдвиг на N месяцев; 31 января + 1 месяц = последний день февраля."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
