"""FastAPI application entry point and composition root."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from engine.api.items_router import router as items_router
from engine.api.profile_router import router as profile_router
from engine.api.recommendation_router import router as recommendation_router
from engine.config import settings
from engine.database import async_session, engine
from engine.models import Base
from engine.profiles.cache import cache_from_settings
from engine.profiles.repository import ProfileRepository
from engine.storage import SqlLearningStore


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables and wire the store and repository on startup."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    app.state.store = SqlLearningStore(async_session)
    app.state.profile_repository = ProfileRepository(app.state.store, cache_from_settings(settings))
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Retention modeling, review scheduling, profile caching and recommendation ranking",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(items_router)
app.include_router(profile_router)
app.include_router(recommendation_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Check database connectivity and return status."""
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ok"}
