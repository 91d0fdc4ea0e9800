"""
Similarity orchestrator. Picks the best similarity signal that is available.

State machine, terminal on the first success:

    TryImageEmbedding ──fail/skip──▶ TryTextEmbedding ──fail/skip──▶ LexicalFallback ──▶ Done
            │ ok                              │ ok
            └────────────▶ Done ◀─────────────┘

The lexical step cannot fail, so resolve_similarity always returns a result.
Provider errors are logged and recorded (truncated), never re-raised.
"""

import asyncio
from enum import Enum
from typing import Optional

import structlog

from core.config import Settings, settings as default_settings
from core.errors import InternalInvariantError, ProviderError, truncate_detail
from models.schemas import (
    GradingRequest,
    ScoringMode,
    SimilarityOutcome,
    SimilarityResult,
    StepOutcome,
    StepRecord,
)
from services.embedding_cache import EmbeddingCache, content_key, get_or_compute
from services.embeddings import EmbeddingProvider, retry_with_settings
from services.similarity import cosine_similarity, lexical_similarity, to_unit_interval

logger = structlog.get_logger(__name__)


class ScoringState(str, Enum):
    TRY_IMAGE_EMBEDDING = "TryImageEmbedding"
    TRY_TEXT_EMBEDDING = "TryTextEmbedding"
    LEXICAL_FALLBACK = "LexicalFallback"
    DONE = "Done"


_ON_FAILURE = {
    ScoringState.TRY_IMAGE_EMBEDDING: ScoringState.TRY_TEXT_EMBEDDING,
    ScoringState.TRY_TEXT_EMBEDDING: ScoringState.LEXICAL_FALLBACK,
    ScoringState.LEXICAL_FALLBACK: ScoringState.DONE,
    ScoringState.DONE: ScoringState.DONE,
}

_MODES = {
    ScoringState.TRY_IMAGE_EMBEDDING: ScoringMode.image_embedding,
    ScoringState.TRY_TEXT_EMBEDDING: ScoringMode.text_embedding,
    ScoringState.LEXICAL_FALLBACK: ScoringMode.lexical_fallback,
}


def next_state(state: ScoringState, succeeded: bool) -> ScoringState:
    if succeeded:
        return ScoringState.DONE
    return _ON_FAILURE[state]


# ── Steps ────────────────────────────────────────────────────────────────────

def _image_step_available(request: GradingRequest, provider: Optional[EmbeddingProvider]) -> bool:
    can_embed = provider is not None and provider.supports_images
    has_target = bool(request.target_embedding) or (bool(request.target_image) and can_embed)
    has_generated = bool(request.generated_embedding) or (bool(request.generated_image) and can_embed)
    return has_target and has_generated


def _text_step_available(request: GradingRequest, provider: Optional[EmbeddingProvider]) -> bool:
    return (
        provider is not None
        and provider.supports_text
        and bool(request.prompt.strip())
        and bool((request.target_description or "").strip())
    )


async def _both(first, second):
    """Await two calls together. If either fails the other is cancelled before the error propagates."""
    tasks = [asyncio.ensure_future(first), asyncio.ensure_future(second)]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def _image_vector(
    precomputed: Optional[list[float]],
    data: Optional[bytes],
    provider: EmbeddingProvider,
    cache: EmbeddingCache,
    settings: Settings,
) -> list[float]:
    if precomputed:
        return precomputed
    return await get_or_compute(
        cache,
        content_key(data),
        lambda: retry_with_settings(settings, "embed_image", lambda: provider.embed_image(data)),
    )


async def _image_similarity(request, provider, cache, settings) -> float:
    target, generated = await _both(
        _image_vector(request.target_embedding, request.target_image, provider, cache, settings),
        _image_vector(request.generated_embedding, request.generated_image, provider, cache, settings),
    )
    return to_unit_interval(cosine_similarity(target, generated))


async def _text_similarity(request, provider, cache, settings) -> float:
    prompt_vec, target_vec = await _both(
        retry_with_settings(settings, "embed_text", lambda: provider.embed_text(request.prompt)),
        retry_with_settings(settings, "embed_text", lambda: provider.embed_text(request.target_description)),
    )
    return to_unit_interval(cosine_similarity(prompt_vec, target_vec))


_STEPS = {
    ScoringState.TRY_IMAGE_EMBEDDING: (_image_step_available, _image_similarity),
    ScoringState.TRY_TEXT_EMBEDDING: (_text_step_available, _text_similarity),
}


# ── Orchestration ────────────────────────────────────────────────────────────

async def resolve_similarity(
    request: GradingRequest,
    provider: Optional[EmbeddingProvider],
    cache: EmbeddingCache,
    settings: Optional[Settings] = None,
) -> SimilarityOutcome:
    settings = settings or default_settings
    limit = settings.error_detail_max_chars
    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.request_deadline_seconds

    state = ScoringState.TRY_IMAGE_EMBEDDING
    steps: list[StepRecord] = []
    last_error: Optional[str] = None
    result: Optional[SimilarityResult] = None

    while state is not ScoringState.DONE:
        if state is ScoringState.LEXICAL_FALLBACK:
            value = lexical_similarity(request.prompt, request.target_description or "")
            result = SimilarityResult(value01=value, mode=ScoringMode.lexical_fallback)
            steps.append(StepRecord(state.value, StepOutcome.succeeded))
            state = next_state(state, True)
            continue

        is_available, run = _STEPS[state]
        if not is_available(request, provider):
            steps.append(StepRecord(state.value, StepOutcome.skipped))
            state = next_state(state, False)
            continue

        remaining = deadline - loop.time()
        if remaining <= 0:
            last_error = "request deadline exceeded"
            steps.append(StepRecord(state.value, StepOutcome.skipped, last_error))
            state = next_state(state, False)
            continue

        try:
            value = await asyncio.wait_for(run(request, provider, cache, settings), timeout=remaining)
        except asyncio.TimeoutError:
            error = "request deadline exceeded"
        except (ProviderError, InternalInvariantError) as e:
            error = truncate_detail(e, limit)
        except Exception as e:  # provider bug; the chain must still terminate
            logger.exception("similarity_step_crashed", step=state.value)
            error = truncate_detail(e, limit)
        else:
            result = SimilarityResult(value01=value, mode=_MODES[state])
            steps.append(StepRecord(state.value, StepOutcome.succeeded))
            state = next_state(state, True)
            continue

        logger.warning("similarity_step_failed", step=state.value, error=error)
        last_error = error
        steps.append(StepRecord(state.value, StepOutcome.failed, error))
        state = next_state(state, False)

    logger.info(
        "similarity_resolved",
        mode=result.mode.value,
        similarity01=round(result.value01, 4),
        steps=[f"{s.state}:{s.outcome.value}" for s in steps],
    )
    return SimilarityOutcome(result=result, steps=steps, last_error=last_error)
