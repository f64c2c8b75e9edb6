"""API routes for learning-path recommendations."""

from fastapi import APIRouter

from engine.api.schemas import RankedItemSchema, RankRequest
from engine.ranking import CandidateItem, rank

router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])


@router.post("/rank", response_model=list[RankedItemSchema])
async def rank_candidates(request: RankRequest) -> list[RankedItemSchema]:
    """Order candidate items by recommendation score, highest first."""
    candidates = [
        CandidateItem(
            item_id=candidate.item_id,
            progress_percent=candidate.progress_percent,
            related_item_count=candidate.related_item_count,
        )
        for candidate in request.candidates
    ]
    return [
        RankedItemSchema(
            item_id=item.item_id,
            progress_percent=item.progress_percent,
            recommendation_score=item.recommendation_score,
            related_item_count=item.related_item_count,
        )
        for item in rank(candidates, limit=request.limit)
    ]
