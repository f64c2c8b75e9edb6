"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from engine.profiles.types import CognitiveProfile

# --- Items ---


class RetentionResponse(BaseModel):
    """Current retention estimate for one item."""

    item_id: int
    retention: float
    is_due: bool
    threshold: float
    last_reviewed_at: datetime | None
    next_review_at: datetime | None


class ReviewRequest(BaseModel):
    grade: StrictInt  # 0-5; range checked by the scheduler so errors share one path


class ReviewResponse(BaseModel):
    """Scheduling state after a graded review."""

    item_id: int
    easiness_factor: float
    interval_days: int
    repetition_count: int
    next_review_at: datetime
    mastery_level: float
    retention_before: float


class DueItemResponse(BaseModel):
    item_id: int
    topic_id: str | None
    retention: float
    next_review_at: datetime | None


# --- Profiles ---


class ProfileSchema(BaseModel):
    """Wire shape of a cognitive profile. Topic sets travel as sorted lists."""

    user_id: str
    learning_speed: dict[str, float] = Field(default_factory=dict)
    preferred_content_formats: list[str] = Field(default_factory=list)
    knowledge_graph: dict[str, list[str]] = Field(default_factory=dict)
    attention_span: float = 25.0
    retention_rates: dict[str, float] = Field(default_factory=dict)
    last_updated: datetime | None = None

    @classmethod
    def from_profile(cls, profile: CognitiveProfile) -> "ProfileSchema":
        return cls(
            user_id=profile.user_id,
            learning_speed=profile.learning_speed,
            preferred_content_formats=profile.preferred_content_formats,
            knowledge_graph={domain: sorted(topics) for domain, topics in profile.knowledge_graph.items()},
            attention_span=profile.attention_span,
            retention_rates=profile.retention_rates,
            last_updated=profile.last_updated,
        )

    def to_profile(self) -> CognitiveProfile:
        data = self.model_dump(exclude_none=True)
        return CognitiveProfile(**data)


class ProfileFieldsUpdate(BaseModel):
    """Profile fields that may be changed by a partial update. Only set fields apply."""

    model_config = ConfigDict(extra="forbid")

    learning_speed: dict[str, float] | None = None
    preferred_content_formats: list[str] | None = None
    knowledge_graph: dict[str, list[str]] | None = None
    attention_span: float | None = None
    retention_rates: dict[str, float] | None = None
    last_updated: datetime | None = None


class ProfileUpdateRequest(BaseModel):
    """Partial profile update plus the merge switches."""

    updates: ProfileFieldsUpdate
    merge_knowledge_graph: bool = True
    overwrite_content_preferences: bool = False
    update_timestamp: bool = True


# --- Recommendations ---


class CandidateSchema(BaseModel):
    item_id: str
    progress_percent: float = Field(ge=0, le=100)
    related_item_count: int | None = Field(default=None, ge=0)


class RankRequest(BaseModel):
    candidates: list[CandidateSchema]
    limit: int | None = Field(default=None, ge=0)


class RankedItemSchema(BaseModel):
    item_id: str
    progress_percent: float
    recommendation_score: float
    related_item_count: int
