from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from roommatch.core.deps import get_store
from roommatch.schemas.match import EmbedRequest, EmbedResponse
from roommatch.services.cache import embed_vector_cache
from roommatch.services.canonical import text_hash
from roommatch.services.embedding_store import EmbeddingStore

logger = logging.getLogger(__name__)
router = APIRouter(tags=["embed"])


@router.post("/embed", response_model=EmbedResponse)
async def embed(
    payload: EmbedRequest,
    store: EmbeddingStore = Depends(get_store),
):
    """Raw text → embedding vector. Stateless apart from the Redis cache."""
    client = store.client
    cache_key = text_hash(f"{client.model_name}\n{client.dim}\n{payload.text}")

    cached = await embed_vector_cache.get(cache_key)
    if isinstance(cached, list) and len(cached) == client.dim:
        return EmbedResponse(embedding=cached)

    vector = await client.embed(payload.text)
    await embed_vector_cache.set(cache_key, vector)
    return EmbedResponse(embedding=vector)
