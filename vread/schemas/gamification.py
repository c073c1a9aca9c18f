import datetime as dt

from pydantic import BaseModel, ConfigDict


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slug: str
    earned_at: dt.datetime


class QuestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slug: str
    unlocked_at: dt.datetime


class GamificationResponse(BaseModel):
    xp: int
    level: int
    xp_for_next_level: int | None
    badges: list[BadgeResponse] = []
    quests: list[QuestResponse] = []


class CompanionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    current_stage: int
    total_reading_days: int
    current_streak: int
    longest_streak: int
    last_reading_date: dt.date | None
    segments_this_week: int
    last_ritual_seen: str | None
