import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ValidationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    segment: int
    question_id: int | None
    correct: bool
    used_joker: bool
    validated_at: dt.datetime


class EnrichedProgress(BaseModel):
    """A reading_progress row joined with its book and validations."""

    id: int
    user_id: str
    book_id: int
    current_page: int
    total_pages: int
    status: Literal["to_read", "in_progress", "completed"]
    streak_current: int
    streak_best: int
    started_at: dt.datetime | None
    updated_at: dt.datetime

    book_title: str
    book_author: str
    book_slug: str
    book_cover: str | None
    total_chapters: int | None

    expected_segments: int
    validated_segments: int
    progress_percent: int
    next_segment: int | None
    next_segment_page: int | None
    is_completed: bool
    validations: list[ValidationResponse] = []


class ProgressPageUpdate(BaseModel):
    current_page: int = Field(..., ge=0)


class ValidationCreate(BaseModel):
    segment: int = Field(..., ge=1)
    correct: bool = True
    used_joker: bool = False
    question_id: int | None = None


class AnswerSubmission(BaseModel):
    segment: int = Field(..., ge=1)
    answer: str = Field(..., min_length=1)


class JokerRequest(BaseModel):
    segment: int = Field(..., ge=1)


class StreakResponse(BaseModel):
    current: int
    best: int
    last_day: dt.date | None = None


class JokersResponse(BaseModel):
    allowed: int
    used: int
    remaining: int


class ValidationResultResponse(BaseModel):
    outcome: Literal["recorded", "duplicate", "incorrect"]
    validation: ValidationResponse | None = None
    status: Literal["to_read", "in_progress", "completed"]
    streak: StreakResponse | None = None
    xp_awarded: int = 0
    new_badges: list[str] = []
    new_quests: list[str] = []
    ritual: Literal["birth", "evolution", "week", "return"] | None = None
    revealed_answer: str | None = None
    jokers_remaining: int | None = None
