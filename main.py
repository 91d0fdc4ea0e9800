import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from core.errors import truncate_detail
from core.logging_config import configure_logging
from routers import health, meta, score
from services.grading import (
    close_embedding_provider,
    get_embedding_cache,
    get_embedding_provider,
    warm_embedding_cache,
)

configure_logging(settings)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: warm the embedding cache in the background, never blocking requests
    warmup = asyncio.create_task(warm_embedding_cache(get_embedding_provider(), get_embedding_cache(), settings))
    yield
    if not warmup.done():
        warmup.cancel()
    elif not warmup.cancelled() and warmup.exception() is not None:
        logger.error("embedding_warmup_crashed", error=truncate_detail(warmup.exception()))
    await close_embedding_provider()


app = FastAPI(
    title="PromptMatch Scoring API",
    description="Grades image prompts against a target and explains the gap",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: update origins for your frontend domain in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(score.router)
app.include_router(meta.router)
app.include_router(health.router)


@app.get("/", tags=["Health"])
async def root():
    return {"status": "ok", "service": "PromptMatch Scoring API"}
