from fastapi import APIRouter, Depends

from core.config import settings
from services.embedding_cache import EmbeddingCache
from services.embeddings import EmbeddingProvider, probe_embeddings
from services.grading import get_embedding_cache, get_embedding_provider

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health(
    provider: EmbeddingProvider = Depends(get_embedding_provider),
    cache: EmbeddingCache = Depends(get_embedding_cache),
):
    # Never echo keys, only whether they are set
    return {
        "ok": True,
        "keys": {
            "googleHasKey": bool(settings.google_api_key),
            "vertexConfigured": provider.supports_images,
        },
        "paths": {
            "imageEmbedding": provider.supports_images,
            "textEmbedding": provider.supports_text,
            "lexicalFallback": True,
        },
        "cachedEmbeddings": len(cache),
    }


@router.get("/embeddings")
async def embeddings_probe(provider: EmbeddingProvider = Depends(get_embedding_provider)):
    return await probe_embeddings(provider, settings)
