from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vread.database import get_session
from vread.dependencies import current_user
from vread.models import UserBadge, UserQuest
from vread.schemas.gamification import BadgeResponse, CompanionResponse, GamificationResponse, QuestResponse
from vread.services.companion import RitualKind, acknowledge_ritual, get_or_create_companion
from vread.services.rewards import get_level, xp_for_next_level

router = APIRouter(tags=["gamification"])


@router.get("/api/gamification", response_model=GamificationResponse)
async def get_gamification(
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    level = await get_level(session, user_id)
    badges = await session.execute(
        select(UserBadge).where(UserBadge.user_id == user_id).order_by(UserBadge.earned_at)
    )
    quests = await session.execute(
        select(UserQuest).where(UserQuest.user_id == user_id).order_by(UserQuest.unlocked_at)
    )
    response = GamificationResponse(
        xp=level.xp,
        level=level.level,
        xp_for_next_level=xp_for_next_level(level.level),
        badges=[BadgeResponse.model_validate(b) for b in badges.scalars()],
        quests=[QuestResponse.model_validate(q) for q in quests.scalars()],
    )
    await session.commit()
    return response


@router.get("/api/companion", response_model=CompanionResponse)
async def get_companion(
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    companion = await get_or_create_companion(session, user_id)
    await session.commit()
    return companion


@router.post("/api/companion/rituals/{kind}/seen", response_model=CompanionResponse)
async def mark_ritual_seen(
    kind: RitualKind,
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    companion = await acknowledge_ritual(session, user_id, kind)
    await session.commit()
    return companion
