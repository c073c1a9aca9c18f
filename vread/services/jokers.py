from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vread.config import JOKER_MIN_SEGMENTS, JOKER_MIN_SEGMENTS_ENABLED
from vread.models import ReadingValidation


@dataclass
class JokerUsage:
    allowed: int
    used: int

    @property
    def remaining(self) -> int:
        return max(0, self.allowed - self.used)


def jokers_allowed(
    expected_segments: int,
    min_segments_enabled: bool = JOKER_MIN_SEGMENTS_ENABLED,
    min_segments: int = JOKER_MIN_SEGMENTS,
) -> int:
    """One joker per started block of ten segments."""
    if min_segments_enabled and expected_segments < min_segments:
        return 0
    return expected_segments // 10 + 1


async def joker_usage(session: AsyncSession, user_id: str, book_id: int, expected_segments: int) -> JokerUsage:
    used = (
        await session.execute(
            select(func.count(ReadingValidation.id)).where(
                ReadingValidation.user_id == user_id,
                ReadingValidation.book_id == book_id,
                ReadingValidation.used_joker.is_(True),
            )
        )
    ).scalar() or 0
    return JokerUsage(allowed=jokers_allowed(expected_segments), used=used)
