from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from engine.config import utcnow
from engine.models.base import Base, TimestampMixin


class CognitiveProfileRow(Base, TimestampMixin):
    __tablename__ = "cognitive_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    learning_speed: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # module -> speed
    preferred_content_formats: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    knowledge_graph: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # module -> [topic]
    attention_span: Mapped[float] = mapped_column(Float, nullable=False, default=25.0)
    retention_rates: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
