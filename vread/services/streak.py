"""Reading streaks computed from validation history.

Streaks are always recomputed from the full list of timestamps so backfills
and corrections stay consistent with the stored values.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from vread.config import STREAK_GRACE_DAYS, TIMEZONE


@dataclass(frozen=True)
class Streak:
    current: int = 0
    best: int = 0
    last_day: date | None = None


def local_time(ts: datetime, tz: ZoneInfo) -> datetime:
    """Naive timestamps are stored UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(tz)


def local_day(ts: datetime, tz: ZoneInfo) -> date:
    return local_time(ts, tz).date()


def reading_days(timestamps: Iterable[datetime], tz: ZoneInfo) -> list[date]:
    return sorted({local_day(ts, tz) for ts in timestamps})


def compute_streak(
    timestamps: Iterable[datetime],
    today: date | None = None,
    tz: str | ZoneInfo = TIMEZONE,
    grace_days: int = STREAK_GRACE_DAYS,
) -> Streak:
    """Current and best runs of consecutive reading days.

    The current run is the one ending on the most recent reading day, and it
    survives as long as that day is at most ``grace_days`` before ``today``.
    """
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    days = reading_days(timestamps, zone)
    if not days:
        return Streak()
    if today is None:
        today = datetime.now(zone).date()

    best = run = 1
    for prev, day in zip(days, days[1:]):
        run = run + 1 if day - prev == timedelta(days=1) else 1
        best = max(best, run)

    last = days[-1]
    current = run if (today - last).days <= grace_days else 0
    return Streak(current=current, best=best, last_day=last)
