"""XP, levels, badges and quests granted after a validation.

Every grant is idempotent per user: a badge or quest already held is never
granted twice and never awards XP twice.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vread.id import make_row_id
from vread.models import UserBadge, UserLevel, UserQuest
from vread.services.queries import count_progress_by_status
from vread.services.status import ReadingStatus
from vread.services.streak import Streak, local_day, local_time

logger = logging.getLogger(__name__)

XP_PER_VALIDATION = 10
XP_PER_QUEST = 50

# (minimum xp, level)
LEVEL_THRESHOLDS = [(1000, 5), (500, 4), (250, 3), (100, 2), (0, 1)]

BADGES = {
    "premier-livre": "Finished a first book",
    "serie-3-jours": "Read 3 days in a row",
    "serie-5-jours": "Read 5 days in a row",
    "serie-7-jours": "Read 7 days in a row",
    "lecteur-assidu": "Validated 50 reading segments",
}

QUESTS = {
    "early_reader": "Validate a segment before 7am",
    "triple_valide": "Validate 3 segments in a single day",
    "multi_booker": "Have 3 books in progress at the same time",
    "back_on_track": "Come back to reading after a 7 day break",
}

STREAK_BADGES = {3: "serie-3-jours", 5: "serie-5-jours", 7: "serie-7-jours"}
ASSIDUOUS_SEGMENTS = 50
EARLY_HOUR = 7
TRIPLE_COUNT = 3
MULTI_BOOKS = 3
BREAK_DAYS = 7


def level_for_xp(xp: int) -> int:
    for minimum, level in LEVEL_THRESHOLDS:
        if xp >= minimum:
            return level
    return 1


def xp_for_next_level(level: int) -> int | None:
    for minimum, lvl in reversed(LEVEL_THRESHOLDS):
        if lvl == level + 1:
            return minimum
    return None


async def get_level(session: AsyncSession, user_id: str) -> UserLevel:
    level = await session.get(UserLevel, user_id)
    if level is None:
        level = UserLevel(user_id=user_id, xp=0, level=1)
        session.add(level)
        await session.flush()
    return level


async def award_xp(session: AsyncSession, user_id: str, amount: int) -> UserLevel:
    level = await get_level(session, user_id)
    level.xp += amount
    level.level = level_for_xp(level.xp)
    return level


async def grant_badge(session: AsyncSession, user_id: str, slug: str) -> bool:
    existing = await session.execute(
        select(UserBadge).where(UserBadge.user_id == user_id, UserBadge.slug == slug)
    )
    if existing.scalar_one_or_none() is not None:
        return False
    session.add(UserBadge(id=make_row_id(user_id, slug), user_id=user_id, slug=slug))
    logger.info("Badge %s granted to user=%s", slug, user_id)
    return True


async def grant_quest(session: AsyncSession, user_id: str, slug: str) -> bool:
    existing = await session.execute(
        select(UserQuest).where(UserQuest.user_id == user_id, UserQuest.slug == slug)
    )
    if existing.scalar_one_or_none() is not None:
        return False
    session.add(UserQuest(id=make_row_id(user_id, slug), user_id=user_id, slug=slug))
    await award_xp(session, user_id, XP_PER_QUEST)
    logger.info("Quest %s unlocked by user=%s", slug, user_id)
    return True


@dataclass
class RewardContext:
    """What the reward predicates need to know about the new validation."""

    user_id: str
    validated_at: datetime
    tz: ZoneInfo
    timestamps: list[datetime]
    streak: Streak
    previous_day: datetime | None = None
    total_validations: int = 0


@dataclass
class RewardGrants:
    badges: list[str] = field(default_factory=list)
    quests: list[str] = field(default_factory=list)


async def evaluate_badges(session: AsyncSession, ctx: RewardContext) -> list[str]:
    earned = []
    completed = await count_progress_by_status(session, ctx.user_id, ReadingStatus.COMPLETED)
    if completed >= 1:
        earned.append("premier-livre")
    for days, slug in STREAK_BADGES.items():
        if ctx.streak.best >= days:
            earned.append(slug)
    if ctx.total_validations >= ASSIDUOUS_SEGMENTS:
        earned.append("lecteur-assidu")

    granted = []
    for slug in earned:
        if await grant_badge(session, ctx.user_id, slug):
            granted.append(slug)
    return granted


async def evaluate_quests(session: AsyncSession, ctx: RewardContext) -> list[str]:
    earned = []
    day = local_day(ctx.validated_at, ctx.tz)

    if local_time(ctx.validated_at, ctx.tz).hour < EARLY_HOUR:
        earned.append("early_reader")

    same_day = sum(1 for ts in ctx.timestamps if local_day(ts, ctx.tz) == day)
    if same_day >= TRIPLE_COUNT:
        earned.append("triple_valide")

    in_progress = await count_progress_by_status(session, ctx.user_id, ReadingStatus.IN_PROGRESS)
    if in_progress >= MULTI_BOOKS:
        earned.append("multi_booker")

    if ctx.previous_day is not None:
        gap = day - local_day(ctx.previous_day, ctx.tz)
        if gap >= timedelta(days=BREAK_DAYS):
            earned.append("back_on_track")

    granted = []
    for slug in earned:
        if await grant_quest(session, ctx.user_id, slug):
            granted.append(slug)
    return granted


async def evaluate_rewards(session: AsyncSession, ctx: RewardContext) -> RewardGrants:
    return RewardGrants(
        badges=await evaluate_badges(session, ctx),
        quests=await evaluate_quests(session, ctx),
    )
