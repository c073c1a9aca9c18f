from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class BookCreate(BaseModel):
    title: str
    author: str
    slug: str | None = None
    total_pages: int = Field(0, ge=0)
    expected_segments: int | None = Field(None, ge=1)
    total_chapters: int | None = Field(None, ge=1)
    cover_url: str | None = None
    description: str | None = None


class BookUpdate(BaseModel):
    title: str | None = None
    author: str | None = None
    total_pages: int | None = Field(None, ge=0)
    expected_segments: int | None = Field(None, ge=1)
    total_chapters: int | None = Field(None, ge=1)
    cover_url: str | None = None
    description: str | None = None


class BookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    title: str
    author: str
    total_pages: int
    expected_segments: int | None
    total_chapters: int | None
    cover_url: str | None
    description: str | None
    created_at: datetime
    updated_at: datetime


class QuestionUpsert(BaseModel):
    segment: int = Field(..., ge=1)
    question: str
    answer: str = Field(..., min_length=1, max_length=100)


class QuestionResponse(BaseModel):
    """Public view of a question: the answer is never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    segment: int
    question: str
