import math
from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vread.config import PAGES_PER_SEGMENT
from vread.database import Base


class Book(Base):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[str] = mapped_column(String(300), nullable=False)
    total_pages: Mapped[int] = mapped_column(Integer, default=0)
    expected_segments: Mapped[int | None] = mapped_column(Integer)
    total_chapters: Mapped[int | None] = mapped_column(Integer)
    cover_url: Mapped[str | None] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    questions: Mapped[list["ReadingQuestion"]] = relationship(
        back_populates="book", cascade="all, delete-orphan", order_by="ReadingQuestion.segment"
    )

    @property
    def segment_count(self) -> int:
        """Size of the validation ladder, never less than 1."""
        if self.expected_segments and self.expected_segments > 0:
            return self.expected_segments
        if self.total_pages and self.total_pages > 0:
            return math.ceil(self.total_pages / PAGES_PER_SEGMENT)
        if self.total_chapters and self.total_chapters > 0:
            return self.total_chapters
        return 1


class ReadingQuestion(Base):
    __tablename__ = "reading_questions"
    __table_args__ = (UniqueConstraint("book_id", "segment"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"))
    segment: Mapped[int] = mapped_column(Integer)
    question: Mapped[str] = mapped_column(String(500))
    answer: Mapped[str] = mapped_column(String(100))

    book: Mapped["Book"] = relationship(back_populates="questions")
