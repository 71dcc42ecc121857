"""
Admin endpoints for embedding management.

POST   /api/v1/admin/listings/embed-all                   background bulk-embed of all listings
GET    /api/v1/admin/embeddings/{kind}/{entity_id}        inspect current embedding metadata
DELETE /api/v1/admin/cache/embed                          drop cached /embed vectors

Auth is handled by the gateway in front of this service.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy import select

from roommatch.core.deps import get_store
from roommatch.core.errors import NotFoundError
from roommatch.db.session import async_session_maker
from roommatch.models.embedding import EntityKind
from roommatch.models.listing import Listing
from roommatch.schemas.match import EmbedAllResponse, EmbeddingMetaResponse
from roommatch.services.cache import embed_vector_cache
from roommatch.services.embedding_store import EmbeddingStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


# Background task creates its own session; the request session will be
# closed long before the task finishes for large listing catalogues.
async def _embed_all_background(store: EmbeddingStore) -> None:
    async with async_session_maker() as db:
        listings = (await db.execute(select(Listing).order_by(Listing.id))).scalars().all()
    stats = await store.embed_all(listings)
    logger.info("embed-all finished: %s", stats)


@router.post("/listings/embed-all", response_model=EmbedAllResponse)
async def embed_all_listings(
    background_tasks: BackgroundTasks,
    store: EmbeddingStore = Depends(get_store),
):
    """
    Kick off background embedding for every listing.
    Returns immediately. Safe to re-run: unchanged listings are skipped by hash.
    """
    background_tasks.add_task(_embed_all_background, store)
    return EmbedAllResponse(
        message="Bulk embedding task queued. Check server logs for progress."
    )


@router.get("/embeddings/{entity_kind}/{entity_id}", response_model=EmbeddingMetaResponse)
async def get_embedding_meta(
    entity_kind: EntityKind,
    entity_id: str,
    store: EmbeddingStore = Depends(get_store),
):
    record = await store.get(entity_id, entity_kind)
    if record is None:
        raise NotFoundError(
            f"No embedding found for {entity_kind.value} {entity_id}",
            entity_id=entity_id,
        )
    return EmbeddingMetaResponse(
        entity_id=record.entity_id,
        entity_kind=record.entity_kind.value,
        dimension=record.dimension,
        content_hash=record.content_hash,
        model_name=record.model_name,
        generated_at=record.generated_at.isoformat(),
    )


@router.delete("/cache/embed")
async def clear_embed_cache():
    return {"cleared": await embed_vector_cache.clear()}
