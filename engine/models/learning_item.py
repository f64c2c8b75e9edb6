"""Learning item model: a flashcard-like unit with SM-2 scheduling state."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from engine.config import utcnow
from engine.models.base import Base, TimestampMixin


class LearningItem(Base, TimestampMixin):
    __tablename__ = "learning_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    topic_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    easiness_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repetition_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)  # None = never reviewed
    next_review_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    mastery_level: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    review_logs: Mapped[list["ReviewLog"]] = relationship(back_populates="item")  # type: ignore[name-defined] # noqa: F821
