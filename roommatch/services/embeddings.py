"""
Embedding provider abstraction for RoomMatch.

Providers
---------
- gemini  : Google Generative Language embedContent over REST (default).
            Requires GEMINI_API_KEY. Output truncated to EMBEDDING_DIM.
- local   : sentence-transformers model (EMBEDDING_MODEL), runs on CPU,
            no API key. Install the `local` extra.

Switch provider via EMBEDDING_PROVIDER in .env, zero code changes.

Providers only translate transport failures into the error taxonomy.
EmbeddingClient owns validation, the per-call timeout, bounded retries and
the dimensionality check, whatever the provider.
"""
from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from roommatch.core.config import settings
from roommatch.core.errors import (
    RoomMatchError,
    UpstreamMalformedResponse,
    UpstreamRejected,
    UpstreamUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Transient statuses besides 5xx
_RETRYABLE_STATUSES = {408, 429}


def _safe_truncate(s: str, n: int = 800) -> str:
    s = s or ""
    if len(s) <= n:
        return s
    return s[:n] + "…"


# ── Abstract interface ────────────────────────────────────────────────────────

class EmbeddingProvider(ABC):
    model_name: str

    @abstractmethod
    async def embed(self, text: str) -> List[float]: ...

    async def aclose(self) -> None:
        return None


# ── Typed boundary for provider payloads ──────────────────────────────────────

class _EmbeddingValues(BaseModel):
    values: List[float]


class _EmbedContentResponse(BaseModel):
    embedding: _EmbeddingValues


def decode_embed_response(payload: Any) -> List[float]:
    """Validate a Gemini embedContent body → vector, or raise malformed."""
    try:
        parsed = _EmbedContentResponse.model_validate(payload)
    except PydanticValidationError as exc:
        raise UpstreamMalformedResponse(
            "Embedding response missing or invalid values",
            details={"raw": _safe_truncate(json.dumps(payload, default=str))},
        ) from exc
    if not parsed.embedding.values:
        raise UpstreamMalformedResponse(
            "Embedding response contained an empty vector",
            details={"raw": _safe_truncate(json.dumps(payload, default=str))},
        )
    return parsed.embedding.values


# ── Gemini provider (REST) ────────────────────────────────────────────────────

class GeminiEmbeddingProvider(EmbeddingProvider):
    """
    POST {base}/{version}/models/{model}:embedContent
    One pooled httpx.AsyncClient per provider instance.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        dim: int,
        base_url: str,
        api_version: str,
        timeout_s: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self.model_name = model
        self._dim = dim
        model_path = model[len("models/"):] if model.startswith("models/") else model
        self._url = (
            f"{base_url.rstrip('/')}/{api_version.strip('/')}/models/{model_path}:embedContent"
        )
        self._client = httpx.AsyncClient(timeout=timeout_s, transport=transport)

    async def embed(self, text: str) -> List[float]:
        if not self._api_key:
            raise UpstreamUnavailable("Missing GEMINI_API_KEY")
        body = {
            "model": f"models/{self.model_name.removeprefix('models/')}",
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": self._dim,
        }
        headers = {"x-goog-api-key": self._api_key, "content-type": "application/json"}
        try:
            r = await self._client.post(self._url, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailable("Embedding request timed out") from exc
        except httpx.RequestError as exc:
            raise UpstreamUnavailable(
                f"Embedding request failed: {type(exc).__name__}"
            ) from exc

        if r.status_code >= 500 or r.status_code in _RETRYABLE_STATUSES:
            raise UpstreamUnavailable(
                f"Embedding provider returned HTTP {r.status_code}",
                details=_safe_truncate(r.text),
            )
        if r.status_code >= 400:
            raise UpstreamRejected(
                f"Embedding provider rejected request (HTTP {r.status_code})",
                details=_safe_truncate(r.text),
            )

        try:
            payload = r.json()
        except ValueError as exc:
            logger.error("Embedding provider returned non-JSON body: %s", _safe_truncate(r.text))
            raise UpstreamMalformedResponse(
                "Embedding provider returned a non-JSON body",
                details={"raw": _safe_truncate(r.text)},
            ) from exc
        return decode_embed_response(payload)

    async def aclose(self) -> None:
        await self._client.aclose()


# ── Local provider (sentence-transformers) ────────────────────────────────────

class LocalEmbeddingProvider(EmbeddingProvider):
    """
    Runs a sentence-transformers model locally.

    - No API key, no rate limits
    - Model loaded once, reused for every call
    - encode() is synchronous, so it runs in the default executor to keep
      the event loop free
    """

    def __init__(self, *, model: str) -> None:
        from sentence_transformers import SentenceTransformer
        logger.info(
            "Loading local embedding model '%s' — this takes a few seconds on first run.",
            model,
        )
        self._model = SentenceTransformer(model)
        self.model_name = model
        logger.info("Local embedding model loaded.")

    async def embed(self, text: str) -> List[float]:
        loop = asyncio.get_running_loop()
        vector = await loop.run_in_executor(
            None,
            lambda: self._model.encode(
                text,
                normalize_embeddings=True,
                show_progress_bar=False,
            ),
        )
        return [float(x) for x in vector.tolist()]


# ── Client: validation, timeout, retry, classification ────────────────────────

class EmbeddingClient:
    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        dim: int,
        timeout_s: float,
        max_retries: int,
        backoff_s: float,
        backoff_max_s: float,
    ) -> None:
        self.provider = provider
        self.dim = dim
        self._timeout_s = timeout_s
        self._max_retries = max(0, max_retries)
        self._backoff_s = backoff_s
        self._backoff_max_s = backoff_max_s

    @property
    def model_name(self) -> str:
        return self.provider.model_name

    async def _attempt(self, text: str) -> List[float]:
        try:
            return await asyncio.wait_for(self.provider.embed(text), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailable(
                f"Embedding call exceeded {self._timeout_s:.1f}s timeout"
            ) from exc
        except RoomMatchError:
            raise
        except Exception as exc:
            # Local models and third-party SDKs raise their own exception types
            logger.exception("Embedding provider %s crashed", self.model_name)
            raise UpstreamUnavailable(
                f"Embedding provider failed: {type(exc).__name__}",
                details=_safe_truncate(str(exc)),
            ) from exc

    async def embed(self, text: str) -> List[float]:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text to embed must be a non-empty string", stage="embed")

        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                vector = await self._attempt(text)
                break
            except UpstreamUnavailable as exc:
                if attempt + 1 >= attempts:
                    logger.error(
                        "Embedding provider unavailable after %d attempts: %s",
                        attempts, exc,
                    )
                    raise exc.annotate(stage="embed", attempts=attempts)
                delay = min(self._backoff_s * (2 ** attempt), self._backoff_max_s)
                logger.warning(
                    "Embedding call failed (attempt %d/%d): %s — retrying in %.1fs",
                    attempt + 1, attempts, exc, delay,
                )
                await asyncio.sleep(delay)
            except UpstreamMalformedResponse as exc:
                logger.error("Malformed embedding response: %s details=%s", exc, exc.details)
                raise exc.annotate(stage="embed")
            except UpstreamRejected as exc:
                logger.error("Embedding request rejected: %s details=%s", exc, exc.details)
                raise exc.annotate(stage="embed")

        if len(vector) != self.dim:
            logger.error(
                "Embedding has dimension %d, expected %d (model=%s)",
                len(vector), self.dim, self.model_name,
            )
            raise UpstreamMalformedResponse(
                f"Embedding has dimension {len(vector)}, expected {self.dim}",
                details={"dimension": len(vector), "expected": self.dim},
                stage="embed",
            )
        return [float(x) for x in vector]

    async def aclose(self) -> None:
        await self.provider.aclose()


# ── Factory ───────────────────────────────────────────────────────────────────

def build_provider() -> EmbeddingProvider:
    name = settings.EMBEDDING_PROVIDER.lower()
    if name == "gemini":
        return GeminiEmbeddingProvider(
            api_key=settings.GEMINI_API_KEY,
            model=settings.EMBEDDING_MODEL,
            dim=settings.EMBEDDING_DIM,
            base_url=settings.GEMINI_BASE_URL,
            api_version=settings.GEMINI_API_VERSION,
            timeout_s=settings.EMBEDDING_TIMEOUT_S,
        )
    if name == "local":
        return LocalEmbeddingProvider(model=settings.EMBEDDING_MODEL)
    raise ValueError(
        f"Unknown EMBEDDING_PROVIDER='{name}'. "
        "Set EMBEDDING_PROVIDER=gemini or local in .env"
    )


def build_embedding_client(provider: Optional[EmbeddingProvider] = None) -> EmbeddingClient:
    return EmbeddingClient(
        provider or build_provider(),
        dim=settings.EMBEDDING_DIM,
        timeout_s=settings.EMBEDDING_TIMEOUT_S,
        max_retries=settings.EMBEDDING_MAX_RETRIES,
        backoff_s=settings.EMBEDDING_BACKOFF_S,
        backoff_max_s=settings.EMBEDDING_BACKOFF_MAX_S,
    )
