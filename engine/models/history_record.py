from sqlalchemy import Boolean, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from engine.models.base import Base, TimestampMixin


class LearningHistoryRow(Base, TimestampMixin):
    """A learner's progress on one piece of content."""

    __tablename__ = "learning_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    module_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    topic_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    content_type: Mapped[str | None] = mapped_column(String(50), nullable=True)  # text, video, quiz, ...
    progress_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
