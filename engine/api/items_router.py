"""API routes for learning-item retention and reviews."""

from fastapi import APIRouter, Depends, HTTPException

from engine.api.dependencies import get_store, http_error
from engine.api.schemas import DueItemResponse, RetentionResponse, ReviewRequest, ReviewResponse
from engine.config import settings, utcnow
from engine.errors import EngineError
from engine.srs.retention import retention
from engine.srs.review import due_items, record_review
from engine.srs.scheduler import SM2Scheduler
from engine.storage import LearningStore

router = APIRouter(prefix="/api/items", tags=["items"])


@router.get("/due/{user_id}", response_model=list[DueItemResponse])
async def list_due_items(
    user_id: str,
    threshold: float | None = None,
    store: LearningStore = Depends(get_store),
) -> list[DueItemResponse]:
    """List the user's items whose retention fell below the threshold."""
    now = utcnow()
    threshold = settings.due_threshold if threshold is None else threshold
    try:
        items = await due_items(store, user_id, now=now, threshold=threshold)
    except EngineError as e:
        raise http_error(e) from e

    return [
        DueItemResponse(
            item_id=item.item_id,
            topic_id=item.topic_id,
            retention=round(retention(item, now), 4),
            next_review_at=item.next_review_at,
        )
        for item in items
    ]


@router.get("/{item_id}/retention", response_model=RetentionResponse)
async def get_retention(
    item_id: int,
    threshold: float | None = None,
    store: LearningStore = Depends(get_store),
) -> RetentionResponse:
    """Return the item's current retention estimate and due status."""
    try:
        item = await store.fetch_learning_item(item_id)
    except EngineError as e:
        raise http_error(e) from e
    if item is None:
        raise HTTPException(status_code=404, detail=f"Learning item {item_id} not found")

    now = utcnow()
    threshold = settings.due_threshold if threshold is None else threshold
    return RetentionResponse(
        item_id=item_id,
        retention=retention(item, now),
        is_due=SM2Scheduler().is_due(item, now, threshold),
        threshold=threshold,
        last_reviewed_at=item.last_reviewed_at,
        next_review_at=item.next_review_at,
    )


@router.post("/{item_id}/review", response_model=ReviewResponse)
async def submit_review(
    item_id: int,
    request: ReviewRequest,
    store: LearningStore = Depends(get_store),
) -> ReviewResponse:
    """Grade an item and return its new schedule."""
    try:
        result = await record_review(store, item_id, request.grade)
    except EngineError as e:
        raise http_error(e) from e

    state = result.new_state
    return ReviewResponse(
        item_id=item_id,
        easiness_factor=state.easiness_factor,
        interval_days=state.interval_days,
        repetition_count=state.repetition_count,
        next_review_at=state.next_review_at,
        mastery_level=state.mastery_level,
        retention_before=result.retention_before,
    )
