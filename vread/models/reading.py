from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vread.database import Base


class ReadingProgress(Base):
    __tablename__ = "reading_progress"
    __table_args__ = (UniqueConstraint("user_id", "book_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"))
    current_page: Mapped[int] = mapped_column(Integer, default=0)
    total_pages: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="to_read")
    streak_current: Mapped[int] = mapped_column(Integer, default=0)
    streak_best: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    removed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    book: Mapped["Book"] = relationship()
    validations: Mapped[list["ReadingValidation"]] = relationship(
        back_populates="progress", order_by="ReadingValidation.segment"
    )


class ReadingValidation(Base):
    __tablename__ = "reading_validations"
    __table_args__ = (UniqueConstraint("user_id", "book_id", "segment"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"))
    progress_id: Mapped[int] = mapped_column(ForeignKey("reading_progress.id"))
    segment: Mapped[int] = mapped_column(Integer)
    question_id: Mapped[int | None] = mapped_column(ForeignKey("reading_questions.id", ondelete="SET NULL"))
    answer: Mapped[str | None] = mapped_column(String(100))
    correct: Mapped[bool] = mapped_column(Boolean, default=True)
    used_joker: Mapped[bool] = mapped_column(Boolean, default=False)
    validated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    progress: Mapped["ReadingProgress"] = relationship(back_populates="validations")
