"""HTTP-level tests for the scoring API."""
import pytest
from fastapi.testclient import TestClient

import main
from core.config import settings
from core.errors import CacheCorruptionError
from main import app
from services.embedding_cache import InMemoryEmbeddingCache
from services.grading import get_embedding_cache, get_embedding_provider
from tests.fakes import FakeProvider, failing_provider


@pytest.fixture(autouse=True)
def quick_settings(monkeypatch):
    monkeypatch.setattr(settings, "environment", "development")
    monkeypatch.setattr(settings, "embedding_backoff_seconds", 0.0)
    monkeypatch.setattr(settings, "embedding_backoff_max_seconds", 0.0)
    monkeypatch.setattr(settings, "google_api_key", "")


@pytest.fixture
def use_provider():
    cache = InMemoryEmbeddingCache()

    def install(provider):
        app.dependency_overrides[get_embedding_provider] = lambda: provider
        app.dependency_overrides[get_embedding_cache] = lambda: cache
        return TestClient(app)

    yield install
    app.dependency_overrides.clear()


# ══════════════════════════════════════════════════════════════════════
# POST /score
# ══════════════════════════════════════════════════════════════════════

def test_missing_prompt(use_provider):
    client = use_provider(FakeProvider())
    res = client.post("/score", json={"prompt": "  ", "targetDescription": "red apple"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Missing prompt"


def test_missing_target(use_provider):
    client = use_provider(FakeProvider())
    res = client.post("/score", json={"prompt": "red apple"})
    assert res.status_code == 400
    assert res.json()["detail"].startswith("Missing target")


def test_invalid_image(use_provider):
    client = use_provider(FakeProvider())
    res = client.post("/score", json={"prompt": "red apple", "targetImage": "not*base64"})
    assert res.status_code == 400


def test_oversized_image(use_provider, monkeypatch):
    monkeypatch.setattr(settings, "max_image_bytes", 4)
    client = use_provider(FakeProvider())
    res = client.post("/score", json={
        "prompt": "red apple",
        "targetDescription": "red apple",
        "generatedImage": "data:image/png;base64,aGVsbG8=",
    })
    assert res.status_code == 413
    assert "generatedImage" in res.json()["detail"]


def test_image_embedding_scoring(use_provider):
    client = use_provider(FakeProvider())
    res = client.post("/score", json={
        "prompt": "blue square",
        "tier": "easy",
        "targetDescription": "blue square",
        "targetImage": "aGVsbG8=",
        "generatedImage": "d29ybGQ=",
    })
    assert res.status_code == 200
    body = res.json()
    assert body["scoringMode"] == "image-embedding"
    assert body["aiScore"] == 100
    assert body["similarity01"] == 1.0
    assert body["bonus"] == 8
    assert body["scoreLabel"] == "Perfect!"
    assert "errorMessage" not in body


def test_precomputed_embeddings(use_provider):
    client = use_provider(FakeProvider(images=False, text=False))
    res = client.post("/score", json={
        "prompt": "a red robot",
        "tier": "expert",
        "targetEmbedding": [1.0, 0.0],
        "generatedEmbedding": [0.0, 1.0],
    })
    body = res.json()
    assert body["scoringMode"] == "image-embedding"
    assert body["similarity01"] == 0.5
    assert body["aiScore"] == 40


def test_text_embedding_scoring(use_provider):
    client = use_provider(FakeProvider(images=False))
    res = client.post("/score", json={
        "prompt": "red apple on a wooden table",
        "tier": "medium",
        "targetDescription": "red apple on wooden table",
    })
    body = res.json()
    assert body["scoringMode"] == "text-embedding"
    assert body["feedback"]["note"] == "Perfect! Ready for Hard mode."


def test_all_providers_failing_still_scores(use_provider):
    client = use_provider(failing_provider())
    res = client.post("/score", json={
        "prompt": "red apple",
        "tier": "hard",
        "targetDescription": "red apple on wooden table",
        "targetImage": "aGVsbG8=",
        "generatedImage": "d29ybGQ=",
    })
    assert res.status_code == 200
    body = res.json()
    assert body["scoringMode"] == "lexical-fallback"
    assert 0 <= body["aiScore"] <= 100
    assert body["errorMessage"] == "gemini embed: 503 Service Unavailable"
    assert body["feedback"]["note"]
    assert body["feedback"]["tip"]


def test_production_hides_provider_errors(use_provider, monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    client = use_provider(failing_provider())
    res = client.post("/score", json={"prompt": "red apple", "targetDescription": "red apple"})
    body = res.json()
    assert body["scoringMode"] == "lexical-fallback"
    assert "errorMessage" not in body


def test_tier_defaults_to_easy(use_provider):
    client = use_provider(FakeProvider(images=False, text=False))
    res = client.post("/score", json={"prompt": "red", "targetDescription": "red circle"})
    body = res.json()
    assert body["feedback"]["note"] == 'Try: "red circle"'


def test_unknown_tier_rejected(use_provider):
    client = use_provider(FakeProvider())
    res = client.post("/score", json={"prompt": "red", "targetDescription": "red", "tier": "legendary"})
    assert res.status_code == 422


# ══════════════════════════════════════════════════════════════════════
# /meta and /health
# ══════════════════════════════════════════════════════════════════════

def test_meta_lists_curriculum(use_provider):
    client = use_provider(FakeProvider())
    body = client.get("/meta").json()
    assert [t["id"] for t in body["tiers"]] == ["easy", "medium", "hard", "advanced", "expert"]
    assert body["scoring_modes"] == ["image-embedding", "text-embedding", "lexical-fallback"]


def test_health_reports_paths(use_provider):
    client = use_provider(FakeProvider(images=False))
    body = client.get("/health").json()
    assert body["ok"] is True
    assert body["keys"]["googleHasKey"] is False
    assert body["paths"] == {"imageEmbedding": False, "textEmbedding": True, "lexicalFallback": True}
    assert body["cachedEmbeddings"] == 0


def test_health_counts_cached_embeddings(use_provider):
    client = use_provider(FakeProvider())
    client.post("/score", json={
        "prompt": "red apple",
        "targetDescription": "red apple",
        "targetImage": "aGVsbG8=",
        "generatedImage": "d29ybGQ=",
    })
    assert client.get("/health").json()["cachedEmbeddings"] == 2


def test_embeddings_probe(use_provider):
    client = use_provider(FakeProvider())
    assert client.get("/health/embeddings").json() == {"success": True, "dim": 3}


def test_root(use_provider):
    client = use_provider(FakeProvider())
    assert client.get("/").json()["status"] == "ok"


@pytest.mark.parametrize("score, tier", [(0, "easy"), (80, "medium"), (90, "hard"), (95, "advanced"), (100, "expert")])
def test_placement(use_provider, score, tier):
    client = use_provider(FakeProvider())
    body = client.get("/meta/placement", params={"score": score}).json()
    assert body["tier"]["id"] == tier


def test_placement_out_of_range(use_provider):
    client = use_provider(FakeProvider())
    assert client.get("/meta/placement", params={"score": 101}).status_code == 422


def test_lifespan_survives_crashed_warmup(monkeypatch):
    async def crashing_warmup(provider, cache, settings):
        raise CacheCorruptionError("cache entry abc is not a non-empty vector")

    async def no_close():
        return None

    monkeypatch.setattr(main, "warm_embedding_cache", crashing_warmup)
    monkeypatch.setattr(main, "get_embedding_provider", lambda: FakeProvider())
    monkeypatch.setattr(main, "close_embedding_provider", no_close)

    with TestClient(app) as client:
        assert client.get("/").status_code == 200
