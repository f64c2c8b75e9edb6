"""Cognitive profile data types."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime
from numbers import Real
from typing import Any

from engine.config import utcnow
from engine.errors import InvalidInputError

DEFAULT_CONTENT_FORMATS = ["text", "video"]
DEFAULT_ATTENTION_SPAN = 25.0  # minutes
MAX_CONTENT_FORMATS = 2
MIN_LEARNING_SPEED = 0.1
MAX_LEARNING_SPEED = 1.0


@dataclass
class CognitiveProfile:
    """A learner's derived profile.

    ``knowledge_graph`` maps a domain/module id to the set of topic ids the
    learner has completed there. Sets keep topics deduplicated.
    """

    user_id: str
    learning_speed: dict[str, float] = field(default_factory=dict)
    preferred_content_formats: list[str] = field(default_factory=lambda: list(DEFAULT_CONTENT_FORMATS))
    knowledge_graph: dict[str, set[str]] = field(default_factory=dict)
    attention_span: float = DEFAULT_ATTENTION_SPAN
    retention_rates: dict[str, float] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        # Accept any iterable of topics (e.g. lists read back from JSON).
        self.knowledge_graph = {domain: set(topics) for domain, topics in self.knowledge_graph.items()}


PROFILE_FIELDS = frozenset(f.name for f in fields(CognitiveProfile))


@dataclass
class ProfileUpdateOptions:
    """Independent switches controlling how ``update_profile`` merges fields."""

    merge_knowledge_graph: bool = True  # Union topic sets instead of replacing the graph
    overwrite_content_preferences: bool = False
    update_timestamp: bool = True


@dataclass
class HistoryRecord:
    """One learning-history event used to derive a profile."""

    module_id: str | None = None
    topic_id: str | None = None
    content_type: str | None = None
    progress_percent: float | None = None
    completed: bool = False


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _is_str_collection(value: Any) -> bool:
    return (
        isinstance(value, Iterable)
        and not isinstance(value, (str, bytes, Mapping))
        and all(isinstance(item, str) for item in value)
    )


def _check_number_map(name: str, value: Any) -> None:
    if not isinstance(value, Mapping) or not all(
        isinstance(key, str) and _is_number(v) for key, v in value.items()
    ):
        raise InvalidInputError(f"{name} must map ids to numbers, got {value!r}")


def validate_updates(updates: Mapping[str, Any]) -> None:
    """Raise InvalidInputError if any update value has the wrong shape.

    Runs before merging so a string topic list is never split into characters.
    """
    for name, value in updates.items():
        if name == "user_id":
            if not isinstance(value, str):
                raise InvalidInputError(f"user_id must be a string, got {value!r}")
        elif name in ("learning_speed", "retention_rates"):
            _check_number_map(name, value)
        elif name == "preferred_content_formats":
            if not _is_str_collection(value):
                raise InvalidInputError(f"preferred_content_formats must be a list of strings, got {value!r}")
        elif name == "knowledge_graph":
            if not isinstance(value, Mapping) or not all(
                isinstance(domain, str) and _is_str_collection(topics) for domain, topics in value.items()
            ):
                raise InvalidInputError(f"knowledge_graph must map domains to topic lists, got {value!r}")
        elif name == "attention_span":
            if not _is_number(value):
                raise InvalidInputError(f"attention_span must be a number, got {value!r}")
        elif name == "last_updated":
            if not isinstance(value, datetime):
                raise InvalidInputError(f"last_updated must be a datetime, got {value!r}")


def validate_profile(profile: CognitiveProfile) -> None:
    """Raise InvalidInputError if ``profile`` breaks a profile invariant."""
    validate_updates({name: getattr(profile, name) for name in PROFILE_FIELDS})
    if not profile.user_id:
        raise InvalidInputError("Profile user_id must not be empty")
    if len(profile.preferred_content_formats) > MAX_CONTENT_FORMATS:
        raise InvalidInputError(
            f"At most {MAX_CONTENT_FORMATS} preferred content formats allowed, "
            f"got {len(profile.preferred_content_formats)}"
        )
    for module_id, speed in profile.learning_speed.items():
        if not MIN_LEARNING_SPEED <= speed <= MAX_LEARNING_SPEED:
            raise InvalidInputError(
                f"Learning speed for {module_id!r} must be in "
                f"[{MIN_LEARNING_SPEED}, {MAX_LEARNING_SPEED}], got {speed}"
            )
    if profile.attention_span < 0:
        raise InvalidInputError(f"Attention span must not be negative, got {profile.attention_span}")
