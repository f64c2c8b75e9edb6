"""API routes for cognitive profiles."""

from fastapi import APIRouter, Depends, HTTPException

from engine.api.dependencies import get_repository, http_error
from engine.api.schemas import ProfileSchema, ProfileUpdateRequest
from engine.profiles.repository import ProfileRepository, RepositoryResult
from engine.profiles.types import ProfileUpdateOptions

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


def _unwrap(result: RepositoryResult) -> ProfileSchema:
    if not result.ok:
        raise http_error(result.error)
    return ProfileSchema.from_profile(result.profile)


@router.delete("/cache", status_code=204)
async def clear_all_cached(repository: ProfileRepository = Depends(get_repository)) -> None:
    """Drop every cached profile."""
    repository.clear_cache()


@router.delete("/cache/{user_id}", status_code=204)
async def clear_cached(user_id: str, repository: ProfileRepository = Depends(get_repository)) -> None:
    """Drop one user's cached profile."""
    repository.clear_cache(user_id)


@router.get("/{user_id}", response_model=ProfileSchema)
async def get_profile(user_id: str, repository: ProfileRepository = Depends(get_repository)) -> ProfileSchema:
    return _unwrap(await repository.get_profile(user_id))


@router.put("/{user_id}", response_model=ProfileSchema)
async def save_profile(
    user_id: str,
    profile: ProfileSchema,
    repository: ProfileRepository = Depends(get_repository),
) -> ProfileSchema:
    """Replace the user's profile."""
    if profile.user_id != user_id:
        raise HTTPException(status_code=422, detail="user_id in body does not match the path")
    return _unwrap(await repository.save_profile(user_id, profile.to_profile()))


@router.patch("/{user_id}", response_model=ProfileSchema)
async def update_profile(
    user_id: str,
    request: ProfileUpdateRequest,
    repository: ProfileRepository = Depends(get_repository),
) -> ProfileSchema:
    """Merge a partial update into the user's profile."""
    options = ProfileUpdateOptions(
        merge_knowledge_graph=request.merge_knowledge_graph,
        overwrite_content_preferences=request.overwrite_content_preferences,
        update_timestamp=request.update_timestamp,
    )
    updates = request.updates.model_dump(exclude_unset=True, exclude_none=True)
    return _unwrap(await repository.update_profile(user_id, updates, options))


@router.post("/{user_id}/derive", response_model=ProfileSchema)
async def derive_profile(user_id: str, repository: ProfileRepository = Depends(get_repository)) -> ProfileSchema:
    """Return the profile, deriving it from learning history on first use."""
    return _unwrap(await repository.get_or_create_profile(user_id))
