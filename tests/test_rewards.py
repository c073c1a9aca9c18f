from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from vread.models import UserBadge, UserLevel, UserQuest
from vread.services.jokers import jokers_allowed
from vread.services.rewards import grant_badge, level_for_xp, xp_for_next_level
from vread.services.validation import record_validation
from tests.conftest import USER

NOON = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


async def _slugs(session, model):
    result = await session.execute(select(model.slug).where(model.user_id == USER))
    return set(result.scalars().all())


def test_levels():
    assert level_for_xp(0) == 1
    assert level_for_xp(99) == 1
    assert level_for_xp(100) == 2
    assert level_for_xp(260) == 3
    assert level_for_xp(5000) == 5
    assert xp_for_next_level(1) == 100
    assert xp_for_next_level(4) == 1000
    assert xp_for_next_level(5) is None


def test_jokers_allowed():
    assert jokers_allowed(1) == 1
    assert jokers_allowed(9) == 1
    assert jokers_allowed(10) == 2
    assert jokers_allowed(25) == 3
    assert jokers_allowed(2, min_segments_enabled=True, min_segments=3) == 0
    assert jokers_allowed(3, min_segments_enabled=True, min_segments=3) == 1


@pytest.mark.asyncio
async def test_finishing_a_book_grants_premier_livre(session, make_book):
    book = await make_book(total_pages=30, expected_segments=1)
    result = await record_validation(session, USER, book.id, 1, now=NOON)
    assert result.status == "completed"
    assert "premier-livre" in result.new_badges
    assert "premier-livre" in await _slugs(session, UserBadge)


@pytest.mark.asyncio
async def test_three_validations_in_a_day_unlock_quest(session, make_book):
    book = await make_book(total_pages=300, expected_segments=10)
    for segment in (1, 2):
        result = await record_validation(session, USER, book.id, segment, now=NOON)
        assert result.new_quests == []
    result = await record_validation(session, USER, book.id, 3, now=NOON)
    assert result.new_quests == ["triple_valide"]

    level = await session.get(UserLevel, USER)
    assert level.xp == 3 * 10 + 50


@pytest.mark.asyncio
async def test_early_reader_quest(session, make_book):
    book = await make_book(total_pages=300, expected_segments=10)
    result = await record_validation(session, USER, book.id, 1, now=NOON.replace(hour=6))
    assert "early_reader" in result.new_quests


@pytest.mark.asyncio
async def test_back_on_track_after_a_week_off(session, make_book):
    book = await make_book(total_pages=300, expected_segments=10)
    await record_validation(session, USER, book.id, 1, now=NOON)
    result = await record_validation(session, USER, book.id, 2, now=NOON + timedelta(days=8))
    assert "back_on_track" in result.new_quests


@pytest.mark.asyncio
async def test_streak_badge(session, make_book):
    book = await make_book(total_pages=300, expected_segments=10)
    for offset in range(3):
        result = await record_validation(session, USER, book.id, offset + 1, now=NOON + timedelta(days=offset))
    assert "serie-3-jours" in result.new_badges


@pytest.mark.asyncio
async def test_multi_booker(session, make_book):
    books = [await make_book(title=f"Book {n}", total_pages=300, expected_segments=10) for n in range(3)]
    grants = []
    for book in books:
        result = await record_validation(session, USER, book.id, 1, now=NOON + timedelta(hours=len(grants)))
        grants.append(result.new_quests)
    assert "multi_booker" in grants[2]
    assert "multi_booker" not in grants[1]


@pytest.mark.asyncio
async def test_rewards_granted_once(session):
    assert await grant_badge(session, USER, "premier-livre") is True
    await session.commit()
    assert await grant_badge(session, USER, "premier-livre") is False
    assert await _slugs(session, UserQuest) == set()
