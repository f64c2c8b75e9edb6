from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from engine.config import utcnow
from engine.models.base import Base


class ReviewLog(Base):
    """Append-only record of one graded review."""

    __tablename__ = "review_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("learning_items.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    grade: Mapped[int] = mapped_column(Integer, nullable=False)  # 0-5 SM-2 scale
    retention_before: Mapped[float] = mapped_column(Float, nullable=False)
    easiness_before: Mapped[float] = mapped_column(Float, nullable=False)
    easiness_after: Mapped[float] = mapped_column(Float, nullable=False)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    item: Mapped["LearningItem"] = relationship(back_populates="review_logs")  # type: ignore[name-defined] # noqa: F821
