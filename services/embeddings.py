"""
Embedding provider: turns images and text into vectors using Google models.

  - Images: Vertex AI multimodalembedding@001 predict endpoint (REST via httpx,
    service-account credentials from GOOGLE_APPLICATION_CREDENTIALS_JSON or its
    base64 variant).
  - Text:   Gemini embeddings via google-generativeai (GOOGLE_API_KEY).

Each path is only advertised when its credentials are configured, so callers can
skip it silently. Failures are mapped onto ProviderTransientError (worth a
retry) or ProviderPermanentError / ProviderParseError (move on).
"""

import asyncio
import base64
import json
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

import google.auth.exceptions
import google.generativeai as genai
import httpx
import structlog
from google.api_core import exceptions as google_exceptions
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential, wait_random

from core.config import Settings
from core.errors import (
    ProviderParseError,
    ProviderPermanentError,
    ProviderTransientError,
    truncate_detail,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

VERTEX_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]
VERTEX_MODEL = "multimodalembedding@001"

# 1x1 transparent PNG, used to probe the image path
PROBE_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class EmbeddingProvider(Protocol):
    @property
    def supports_images(self) -> bool: ...

    @property
    def supports_text(self) -> bool: ...

    async def embed_image(self, data: bytes) -> list[float]: ...

    async def embed_text(self, text: str) -> list[float]: ...


# ── Retry policy ─────────────────────────────────────────────────────────────

async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    operation: str,
    timeout: float,
    retries: int,
    backoff_initial: float = 1.0,
    backoff_max: float = 4.0,
) -> T:
    """
    Run fn under a per-attempt timeout, retrying only transient failures.
    At most `retries` extra attempts, jittered exponential backoff in between.
    """

    def log_retry(retry_state) -> None:
        logger.warning(
            "embedding_retry",
            operation=operation,
            attempt=retry_state.attempt_number,
            error=truncate_detail(retry_state.outcome.exception()),
        )

    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ProviderTransientError),
        stop=stop_after_attempt(max(0, retries) + 1),
        wait=wait_exponential(multiplier=backoff_initial, max=backoff_max) + wait_random(0, backoff_initial / 4),
        before_sleep=log_retry,
        reraise=True,
    ):
        with attempt:
            try:
                return await asyncio.wait_for(fn(), timeout=timeout)
            except asyncio.TimeoutError:
                raise ProviderTransientError(f"{operation} timed out after {timeout:g}s")


# ── Response parsing ─────────────────────────────────────────────────────────

_VECTOR_KEYS = ("imageEmbedding", "image_embedding", "textEmbedding", "text_embedding")
_VALUE_KEYS = ("values", "floatValues", "float_values")


def _is_vector(node: Any) -> bool:
    return (
        isinstance(node, list)
        and len(node) > 0
        and all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in node)
    )


def _unwrap(node: Any) -> Optional[list[float]]:
    if _is_vector(node):
        return node
    if isinstance(node, dict):
        for key in _VALUE_KEYS:
            if _is_vector(node.get(key)):
                return node[key]
    return None


def _find_first_vector(node: Any) -> Optional[list[float]]:
    found = _unwrap(node)
    if found is not None:
        return found
    children = node.values() if isinstance(node, dict) else node if isinstance(node, list) else ()
    for child in children:
        found = _find_first_vector(child)
        if found is not None:
            return found
    return None


def _vector_from_prediction(prediction: Any, preferred: str) -> Optional[list[float]]:
    if not isinstance(prediction, dict):
        return _find_first_vector(prediction)

    embeddings = prediction.get("embeddings")
    if isinstance(embeddings, list) and embeddings:
        embeddings = embeddings[0]

    keys = (preferred,) + tuple(k for k in _VECTOR_KEYS if k != preferred)
    for scope in (embeddings, prediction):
        if not isinstance(scope, dict) and not _is_vector(scope):
            continue
        if isinstance(scope, dict):
            for key in keys:
                found = _unwrap(scope.get(key))
                if found is not None:
                    return found
        found = _unwrap(scope)
        if found is not None:
            return found
    return _find_first_vector(prediction)


def parse_embedding_vectors(payload: Any, preferred: str = "imageEmbedding") -> list[list[float]]:
    """Accepts the response shapes Vertex has been seen to return, camel or snake case."""
    if not isinstance(payload, dict):
        return []
    predictions = payload.get("predictions")
    if not isinstance(predictions, list):
        predictions = payload.get("outputs") if isinstance(payload.get("outputs"), list) else []
    vectors = []
    for prediction in predictions:
        vector = _vector_from_prediction(prediction, preferred)
        if vector is not None:
            vectors.append([float(x) for x in vector])
    return vectors


# ── Google provider ──────────────────────────────────────────────────────────

def _load_credentials_info(settings: Settings) -> Optional[dict]:
    raw = settings.google_application_credentials_json
    if not raw and settings.google_application_credentials_json_b64:
        try:
            raw = base64.b64decode(settings.google_application_credentials_json_b64).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning("vertex_credentials_undecodable", error=truncate_detail(e))
            return None
    if not raw:
        return None
    try:
        info = json.loads(raw)
    except ValueError as e:
        logger.warning("vertex_credentials_invalid_json", error=truncate_detail(e))
        return None
    return info if isinstance(info, dict) else None


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    detail = f"Vertex API {response.status_code}: {response.text[:200]}"
    if response.status_code == 429 or 500 <= response.status_code <= 599:
        raise ProviderTransientError(detail)
    raise ProviderPermanentError(detail)


class GoogleEmbeddingProvider:
    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._http = http_client
        self._credentials_info = _load_credentials_info(settings)
        self._credentials = None
        if settings.google_api_key:
            genai.configure(api_key=settings.google_api_key)

    @property
    def supports_images(self) -> bool:
        return bool(self.settings.vertex_project_id and self._credentials_info)

    @property
    def supports_text(self) -> bool:
        return bool(self.settings.google_api_key)

    @property
    def predict_url(self) -> str:
        location = self.settings.vertex_location
        return (
            f"https://{location}-aiplatform.googleapis.com/v1/projects/{self.settings.vertex_project_id}"
            f"/locations/{location}/publishers/google/models/{VERTEX_MODEL}:predict"
        )

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.settings.embedding_timeout_seconds)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _access_token(self) -> str:
        if self._credentials is None:
            try:
                self._credentials = service_account.Credentials.from_service_account_info(
                    self._credentials_info, scopes=VERTEX_SCOPES
                )
            except (ValueError, KeyError) as e:
                raise ProviderPermanentError(f"invalid service account credentials: {e}")
        if not self._credentials.valid:
            try:
                await asyncio.to_thread(self._credentials.refresh, GoogleAuthRequest())
            except google.auth.exceptions.TransportError as e:
                raise ProviderTransientError(f"token refresh failed: {e}")
            except google.auth.exceptions.RefreshError as e:
                raise ProviderPermanentError(f"token refresh rejected: {e}")
        return self._credentials.token

    async def embed_image(self, data: bytes) -> list[float]:
        token = await self._access_token()
        body = {"instances": [{"image": {"bytesBase64Encoded": base64.b64encode(data).decode("ascii")}}]}
        try:
            response = await self._client().post(
                self.predict_url,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise ProviderTransientError(f"vertex predict timed out: {e}")
        except httpx.TransportError as e:
            raise ProviderTransientError(f"vertex network error: {e}")

        _raise_for_status(response)
        try:
            payload = response.json()
        except ValueError:
            raise ProviderParseError(f"vertex json parse: {response.text[:200]}")

        vectors = parse_embedding_vectors(payload, "imageEmbedding")
        if not vectors:
            raise ProviderParseError("vertex predict: no vector in response")
        return vectors[0]

    async def embed_text(self, text: str) -> list[float]:
        try:
            result = await asyncio.to_thread(
                genai.embed_content,
                model=self.settings.text_embedding_model,
                content=text,
                task_type="semantic_similarity",
            )
        except (google_exceptions.TooManyRequests, google_exceptions.ServerError, google_exceptions.RetryError) as e:
            raise ProviderTransientError(f"gemini embed: {e}")
        except google_exceptions.GoogleAPICallError as e:
            raise ProviderPermanentError(f"gemini embed: {e}")
        except (ConnectionError, OSError) as e:
            raise ProviderTransientError(f"gemini network error: {e}")

        vector = result.get("embedding") if isinstance(result, dict) else None
        if not _is_vector(vector):
            raise ProviderParseError("gemini embed: no vector in response")
        return [float(x) for x in vector]


async def probe_embeddings(provider: EmbeddingProvider, settings: Settings) -> dict:
    """Embed a 1x1 PNG to check the image path end to end."""
    if not provider.supports_images:
        return {"success": False, "error": "image embeddings are not configured"}
    try:
        vector = await call_with_retry(
            lambda: provider.embed_image(PROBE_PNG),
            operation="probe",
            timeout=settings.embedding_timeout_seconds,
            retries=0,
        )
    except (ProviderTransientError, ProviderPermanentError) as e:
        logger.warning("embedding_probe_failed", error=truncate_detail(e))
        error = None if settings.is_production else truncate_detail(e, settings.error_detail_max_chars)
        return {"success": False, "error": error}
    return {"success": True, "dim": len(vector)}


def retry_with_settings(settings: Settings, operation: str, fn: Callable[[], Awaitable[T]]) -> Awaitable[T]:
    return call_with_retry(
        fn,
        operation=operation,
        timeout=settings.embedding_timeout_seconds,
        retries=settings.embedding_max_retries,
        backoff_initial=settings.embedding_backoff_seconds,
        backoff_max=settings.embedding_backoff_max_seconds,
    )
