"""SQLAlchemy ORM models for the adaptive learning engine database."""

from engine.models.base import Base
from engine.models.cognitive_profile import CognitiveProfileRow
from engine.models.history_record import LearningHistoryRow
from engine.models.learning_item import LearningItem
from engine.models.review_log import ReviewLog

__all__ = ["Base", "CognitiveProfileRow", "LearningHistoryRow", "LearningItem", "ReviewLog"]
