from datetime import UTC, date, datetime

from sqlalchemy import Boolean, Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from vread.database import Base


class Companion(Base):
    __tablename__ = "user_companions"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_stage: Mapped[int] = mapped_column(Integer, default=1)
    total_reading_days: Mapped[int] = mapped_column(Integer, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_reading_date: Mapped[date | None] = mapped_column(Date)
    segments_this_week: Mapped[int] = mapped_column(Integer, default=0)
    has_seen_birth_ritual: Mapped[bool] = mapped_column(Boolean, default=False)
    has_seen_week_ritual: Mapped[bool] = mapped_column(Boolean, default=False)
    has_seen_return_ritual: Mapped[bool] = mapped_column(Boolean, default=False)
    evolution_seen_stage: Mapped[int] = mapped_column(Integer, default=1)
    last_ritual_seen: Mapped[str | None] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))
