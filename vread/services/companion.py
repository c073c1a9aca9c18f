"""The reading companion and its one-shot rituals.

The companion grows through stages with the number of distinct reading days.
Validations only report which rituals became eligible; a ritual is consumed
when the reader acknowledges it, which is the only place a "seen" flag is
written.
"""

import logging
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from vread.models import Companion
from vread.services.streak import Streak, local_day

logger = logging.getLogger(__name__)

# (stage, minimum reading days)
STAGES = [(1, 0), (2, 1), (3, 7), (4, 21), (5, 50)]
WEEK_STREAK = 7
RETURN_GAP_DAYS = 4


class RitualKind(StrEnum):
    BIRTH = "birth"
    EVOLUTION = "evolution"
    WEEK = "week"
    RETURN = "return"


RITUAL_PRIORITY = [RitualKind.BIRTH, RitualKind.EVOLUTION, RitualKind.WEEK, RitualKind.RETURN]


def select_ritual(flags: Collection[RitualKind]) -> RitualKind | None:
    """Highest-priority eligible ritual, if any."""
    for kind in RITUAL_PRIORITY:
        if kind in flags:
            return kind
    return None


def stage_for_days(reading_days: int) -> int:
    stage = 1
    for candidate, minimum in STAGES:
        if reading_days >= minimum:
            stage = candidate
    return stage


@dataclass
class CompanionUpdate:
    companion: Companion
    rituals: set[RitualKind] = field(default_factory=set)

    @property
    def ritual(self) -> RitualKind | None:
        return select_ritual(self.rituals)


async def get_or_create_companion(session: AsyncSession, user_id: str) -> Companion:
    companion = await session.get(Companion, user_id)
    if companion is None:
        companion = Companion(
            user_id=user_id,
            current_stage=1,
            total_reading_days=0,
            current_streak=0,
            longest_streak=0,
            segments_this_week=0,
            has_seen_birth_ritual=False,
            has_seen_week_ritual=False,
            has_seen_return_ritual=False,
            evolution_seen_stage=1,
        )
        session.add(companion)
        await session.flush()
    return companion


def _same_week(a: date, b: date) -> bool:
    return a.isocalendar()[:2] == b.isocalendar()[:2]


async def update_companion(
    session: AsyncSession,
    user_id: str,
    validated_at: datetime,
    tz: ZoneInfo,
    streak: Streak,
) -> CompanionUpdate:
    """Apply one accepted validation to the companion.

    Eligibility is computed from the values before the update. A day with
    several validations counts once.
    """
    companion = await get_or_create_companion(session, user_id)
    day = local_day(validated_at, tz)

    prev_days = companion.total_reading_days
    prev_stage = companion.current_stage
    prev_streak = companion.current_streak
    prev_last = companion.last_reading_date

    if prev_last is not None and _same_week(prev_last, day):
        companion.segments_this_week += 1
    else:
        companion.segments_this_week = 1

    gap = (day - prev_last).days if prev_last is not None else None
    if prev_last is None or gap > 0:
        companion.total_reading_days = prev_days + 1
        companion.last_reading_date = day
    companion.current_streak = streak.current
    companion.longest_streak = max(companion.longest_streak, streak.best)
    companion.current_stage = max(prev_stage, stage_for_days(companion.total_reading_days))

    rituals: set[RitualKind] = set()
    if prev_days == 0 and not companion.has_seen_birth_ritual:
        rituals.add(RitualKind.BIRTH)
    if (
        companion.current_stage > prev_stage
        and companion.current_stage > companion.evolution_seen_stage
        and prev_days > 0
    ):
        rituals.add(RitualKind.EVOLUTION)
    if not companion.has_seen_week_ritual and prev_streak < WEEK_STREAK <= companion.current_streak:
        rituals.add(RitualKind.WEEK)
    if not companion.has_seen_return_ritual and gap is not None and gap >= RETURN_GAP_DAYS:
        rituals.add(RitualKind.RETURN)

    if rituals:
        logger.info("Companion rituals eligible for user=%s: %s", user_id, sorted(rituals))
    return CompanionUpdate(companion=companion, rituals=rituals)


async def acknowledge_ritual(session: AsyncSession, user_id: str, kind: RitualKind) -> Companion:
    """Mark a ritual as seen so it never fires again."""
    companion = await get_or_create_companion(session, user_id)
    if kind is RitualKind.BIRTH:
        companion.has_seen_birth_ritual = True
    elif kind is RitualKind.WEEK:
        companion.has_seen_week_ritual = True
    elif kind is RitualKind.RETURN:
        companion.has_seen_return_ritual = True
    elif kind is RitualKind.EVOLUTION:
        companion.evolution_seen_stage = companion.current_stage
    companion.last_ritual_seen = kind.value
    return companion
