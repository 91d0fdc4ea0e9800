"""
Grading service. Validates a score request and runs the full pipeline:
similarity (with fallbacks) → tier score → feedback.

Once validation passes a ScoreResponse is always produced; provider trouble only
lowers fidelity (image → text → lexical).
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog

from core.config import Settings, settings as default_settings
from core.errors import InternalInvariantError, ProviderError, ScoreValidationError, truncate_detail
from models.schemas import GradingRequest, ScoreRequest, ScoreResponse
from services.embedding_cache import EmbeddingCache, InMemoryEmbeddingCache, content_key, get_or_compute
from services.embeddings import EmbeddingProvider, GoogleEmbeddingProvider, retry_with_settings
from services.feedback import generate_feedback
from services.images import decode_checked
from services.orchestrator import resolve_similarity
from services.scoring import label_for_score, shape_score

logger = structlog.get_logger(__name__)

WARMUP_SUFFIXES = {".png", ".jpg", ".jpeg"}

_cache: EmbeddingCache = InMemoryEmbeddingCache()
_provider: Optional[GoogleEmbeddingProvider] = None


def get_embedding_cache() -> EmbeddingCache:
    return _cache


def get_embedding_provider() -> EmbeddingProvider:
    global _provider
    if _provider is None:
        _provider = GoogleEmbeddingProvider(default_settings)
    return _provider


async def close_embedding_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.aclose()
        _provider = None


def build_grading_request(body: ScoreRequest, settings: Optional[Settings] = None) -> GradingRequest:
    settings = settings or default_settings
    prompt = (body.prompt or "").strip()
    if not prompt:
        raise ScoreValidationError("Missing prompt")

    target_description = (body.target_description or "").strip()
    target_image = decode_checked(body.target_image, "targetImage", settings.max_image_bytes)
    generated_image = decode_checked(body.generated_image, "generatedImage", settings.max_image_bytes)

    if not (target_description or target_image or body.target_embedding):
        raise ScoreValidationError("Missing target: provide targetDescription, targetImage or targetEmbedding")

    return GradingRequest(
        prompt=prompt,
        tier=body.tier,
        target_description=target_description,
        target_image=target_image,
        generated_image=generated_image,
        target_embedding=body.target_embedding or None,
        generated_embedding=body.generated_embedding or None,
    )


async def grade(
    request: GradingRequest,
    provider: Optional[EmbeddingProvider],
    cache: EmbeddingCache,
    settings: Optional[Settings] = None,
) -> ScoreResponse:
    settings = settings or default_settings

    outcome = await resolve_similarity(request, provider, cache, settings)
    similarity01 = outcome.result.value01

    breakdown = shape_score(similarity01, request.prompt, request.tier, request.target_description)
    feedback = generate_feedback(request.target_description, request.prompt, breakdown.score, request.tier)

    logger.info(
        "prompt_graded",
        tier=request.tier.value,
        mode=outcome.result.mode.value,
        score=breakdown.score,
        base=breakdown.base,
        bonus=breakdown.bonus,
        penalty=breakdown.penalty,
    )

    return ScoreResponse(
        ai_score=breakdown.score,
        similarity01=similarity01,
        bonus=breakdown.bonus,
        scoring_mode=outcome.result.mode,
        score_label=label_for_score(breakdown.score),
        feedback=feedback,
        error_message=None if settings.is_production else outcome.last_error,
    )


async def score_prompt(
    body: ScoreRequest,
    provider: Optional[EmbeddingProvider],
    cache: EmbeddingCache,
    settings: Optional[Settings] = None,
) -> ScoreResponse:
    """Validate then grade. Raises ScoreValidationError for rejected input only."""
    request = build_grading_request(body, settings)
    return await grade(request, provider, cache, settings)


async def warm_embedding_cache(
    provider: EmbeddingProvider,
    cache: EmbeddingCache,
    settings: Optional[Settings] = None,
) -> int:
    """Embed the target images in settings.warmup_image_dir. Returns how many are cached."""
    settings = settings or default_settings
    if not settings.warmup_image_dir or not provider.supports_images:
        return 0

    directory = Path(settings.warmup_image_dir)
    if not directory.is_dir():
        logger.warning("embedding_warmup_missing_dir", path=str(directory))
        return 0

    warmed = 0
    for path in sorted(p for p in directory.iterdir() if p.suffix.lower() in WARMUP_SUFFIXES):
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.warning("embedding_warmup_unreadable", file=path.name, error=truncate_detail(e))
            continue
        if not data or len(data) > settings.max_image_bytes:
            logger.warning("embedding_warmup_skipped", file=path.name, size=len(data))
            continue
        try:
            await get_or_compute(
                cache,
                content_key(data),
                lambda data=data: retry_with_settings(settings, "warmup", lambda: provider.embed_image(data)),
            )
        except (ProviderError, InternalInvariantError) as e:
            logger.warning("embedding_warmup_failed", file=path.name, error=truncate_detail(e))
            continue
        warmed += 1

    logger.info("embedding_cache_warmed", count=warmed, cached=len(cache))
    return warmed
