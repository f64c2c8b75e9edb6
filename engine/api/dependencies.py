"""FastAPI dependencies and error translation.

The repository and store are created once in the application lifespan and
kept on ``app.state``; tests swap them through ``app.dependency_overrides``.
"""

from fastapi import HTTPException, Request

from engine.errors import EngineError, ErrorKind
from engine.profiles.repository import ProfileRepository
from engine.storage import LearningStore

_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_INPUT: 422,
    ErrorKind.TRANSIENT_STORAGE: 503,
    ErrorKind.COMPUTATION: 500,
}


def get_store(request: Request) -> LearningStore:
    return request.app.state.store


def get_repository(request: Request) -> ProfileRepository:
    return request.app.state.profile_repository


def http_error(error: EngineError) -> HTTPException:
    """Translate an engine error into the matching HTTP error."""
    return HTTPException(status_code=_STATUS_BY_KIND[error.kind], detail=error.message)
