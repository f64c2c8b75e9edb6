"""SM-2 style review scheduler driven by the retention model.

Decides whether an item is due (its modeled retention fell below a
threshold) and how its scheduling fields evolve after a graded review.

Grade scale (SM-2):
0 - Complete blackout
1 - Incorrect, but remembered once the answer was shown
2 - Incorrect, but the answer seemed easy to recall
3 - Correct, with significant difficulty
4 - Correct, after some hesitation
5 - Correct, perfect recall
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from engine.config import settings, utcnow
from engine.errors import InvalidInputError
from engine.srs.retention import retention

logger = logging.getLogger(__name__)

DEFAULT_DUE_THRESHOLD = 0.7
MIN_GRADE = 0
MAX_GRADE = 5


@dataclass
class SM2Config:
    """Configuration for the SM-2 update."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days after the first repetition
    second_interval: int = 6  # Days after the second repetition
    max_interval_days: int = settings.max_interval_days


@dataclass
class ItemState:
    """Scheduling state of a learning item."""

    item_id: int | None = None
    user_id: str = ""
    topic_id: str | None = None
    easiness_factor: float = 2.5
    interval_days: int = 0
    repetition_count: int = 0
    last_reviewed_at: datetime | None = None
    next_review_at: datetime | None = None
    mastery_level: float = 0.0

    @property
    def never_reviewed(self) -> bool:
        return self.last_reviewed_at is None


@dataclass(frozen=True)
class ReviewEvent:
    """One graded review. Immutable; review history is append-only."""

    item_id: int | None
    user_id: str
    grade: int
    reviewed_at: datetime
    retention_before: float
    easiness_before: float
    easiness_after: float
    interval_days: int


@dataclass
class ReviewResult:
    """The result of applying a graded review to an item."""

    new_state: ItemState
    interval_days: int
    retention_before: float  # Modeled retention at the moment of review
    event: ReviewEvent


def validate_grade(grade: int) -> int:
    """Return ``grade`` if it is an integer on the 0-5 scale, else raise."""
    if isinstance(grade, bool) or not isinstance(grade, int):
        raise InvalidInputError(f"Grade must be an integer, got {grade!r}")
    if not MIN_GRADE <= grade <= MAX_GRADE:
        raise InvalidInputError(f"Grade must be between {MIN_GRADE} and {MAX_GRADE}, got {grade}")
    return grade


class SM2Scheduler:
    """Computes due-ness and post-review scheduling for learning items."""

    def __init__(self, config: SM2Config | None = None) -> None:
        self.config = config or SM2Config()

    def new_item(self, user_id: str, topic_id: str | None = None, now: datetime | None = None) -> ItemState:
        """Create the state of a never-reviewed item, due immediately."""
        return ItemState(
            user_id=user_id,
            topic_id=topic_id,
            easiness_factor=self.config.initial_easiness,
            interval_days=0,
            repetition_count=0,
            last_reviewed_at=None,
            next_review_at=now or utcnow(),
        )

    def is_due(self, item: ItemState, now: datetime, threshold: float = DEFAULT_DUE_THRESHOLD) -> bool:
        """Return True if the item's retention at ``now`` is below ``threshold``."""
        return retention(item, now) < threshold

    def update_easiness(self, easiness_factor: float, grade: int) -> float:
        """Apply the SM-2 easiness adjustment, floored at the minimum easiness.

        EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        """
        miss = MAX_GRADE - grade
        delta = 0.1 - miss * (0.08 + miss * 0.02)
        return max(self.config.minimum_easiness, easiness_factor + delta)

    def next_interval(self, repetition_count: int, previous_interval: int, easiness_factor: float) -> int:
        """Return the interval in days for the given (already incremented) repetition."""
        if repetition_count == 1:
            interval = self.config.first_interval
        elif repetition_count == 2:
            interval = self.config.second_interval
        else:
            interval = max(1, round(previous_interval * easiness_factor))
        return min(interval, self.config.max_interval_days)

    def review(self, state: ItemState, grade: int, review_time: datetime | None = None) -> ReviewResult:
        """Apply a graded review and return the updated state.

        Args:
            state: Current item state. Not mutated.
            grade: Review grade on the 0-5 scale.
            review_time: When the review happened (defaults to now).

        Returns:
            ReviewResult with the new state and the retention snapshot.

        Raises:
            InvalidInputError: If the grade is outside the 0-5 scale.
        """
        validate_grade(grade)
        review_time = review_time or utcnow()

        retention_before = retention(state, review_time)
        new_ef = self.update_easiness(state.easiness_factor, grade)
        new_reps = state.repetition_count + 1
        interval = self.next_interval(new_reps, state.interval_days, new_ef)

        new_state = replace(
            state,
            easiness_factor=new_ef,
            interval_days=interval,
            repetition_count=new_reps,
            last_reviewed_at=review_time,
            next_review_at=review_time + timedelta(days=interval),
            mastery_level=min(1.0, new_reps * 0.1 + retention_before * 0.2),
        )

        logger.debug(
            "Item %s graded %d: EF %.2f -> %.2f, interval %d days",
            state.item_id,
            grade,
            state.easiness_factor,
            new_ef,
            interval,
        )
        event = ReviewEvent(
            item_id=state.item_id,
            user_id=state.user_id,
            grade=grade,
            reviewed_at=review_time,
            retention_before=retention_before,
            easiness_before=state.easiness_factor,
            easiness_after=new_ef,
            interval_days=interval,
        )
        return ReviewResult(
            new_state=new_state,
            interval_days=interval,
            retention_before=retention_before,
            event=event,
        )

    def grade_from_response(self, is_correct: bool, response_ms: int, expected_ms: int = 10000) -> int:
        """Convert a correctness/latency pair to a 0-5 grade.

        Incorrect answers map to 0-2 and correct ones to 3-5; faster
        responses earn the higher grade within each band.
        """
        if not is_correct:
            if response_ms < expected_ms * 0.5:
                return 2  # Quick wrong = almost knew it
            if response_ms < expected_ms:
                return 1
            return 0

        if response_ms < expected_ms * 0.5:
            return 5
        if response_ms < expected_ms:
            return 4
        return 3
