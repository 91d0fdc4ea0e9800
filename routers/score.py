from fastapi import APIRouter, Depends, HTTPException

from core.errors import ScoreValidationError
from models.schemas import ScoreRequest, ScoreResponse
from services.embedding_cache import EmbeddingCache
from services.embeddings import EmbeddingProvider
from services.grading import get_embedding_cache, get_embedding_provider, score_prompt

router = APIRouter(prefix="/score", tags=["Score"])


@router.post("", response_model=ScoreResponse, response_model_exclude_none=True)
async def score(
    body: ScoreRequest,
    provider: EmbeddingProvider = Depends(get_embedding_provider),
    cache: EmbeddingCache = Depends(get_embedding_cache),
):
    """
    Grade a prompt against its target.
    Always answers once the input is valid; `scoringMode` says which signal was used.
    """
    try:
        return await score_prompt(body, provider, cache)
    except ScoreValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
