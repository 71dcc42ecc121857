from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roommatch.core.deps import get_store
from roommatch.core.errors import NotFoundError, PersistenceError, RoomMatchError
from roommatch.db.session import get_db
from roommatch.models.embedding import EntityKind
from roommatch.models.listing import Listing
from roommatch.schemas.listing import ListingCreate, ListingPhotos, ListingRead, ListingUpdate
from roommatch.services.canonical import sorted_amenities
from roommatch.services.embedding_store import EmbeddingStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/listings", tags=["listings"])


async def _embed_listing(store: EmbeddingStore, listing: Listing) -> None:
    try:
        await store.get_or_generate(listing)
    except RoomMatchError as exc:
        # Only this listing drops out of matching until the next edit or embed-all
        logger.error("Background embedding failed for listing_id=%s: %s", listing.id, exc)


async def _get_listing(db: AsyncSession, listing_id: str) -> Listing:
    listing = await db.get(Listing, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found", listing_id=listing_id)
    return listing


async def _commit(db: AsyncSession, stage: str, listing_id: str | None = None) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise PersistenceError(
            "Failed to save listing", details=str(exc), listing_id=listing_id, stage=stage,
        ) from exc


@router.post("", response_model=ListingRead, status_code=status.HTTP_201_CREATED)
async def create_listing(
    payload: ListingCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    store: EmbeddingStore = Depends(get_store),
):
    data = payload.model_dump()
    data["amenities"] = sorted_amenities(data["amenities"])
    listing = Listing(**data)
    db.add(listing)
    await _commit(db, "create_listing")
    await db.refresh(listing)
    logger.info("Created listing id=%s (%s)", listing.id, listing.title)

    background_tasks.add_task(_embed_listing, store, listing)
    return listing


@router.get("/{listing_id}", response_model=ListingRead)
async def get_listing(listing_id: str, db: AsyncSession = Depends(get_db)):
    return await _get_listing(db, listing_id)


@router.patch("/{listing_id}", response_model=ListingRead)
async def update_listing(
    listing_id: str,
    payload: ListingUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    store: EmbeddingStore = Depends(get_store),
):
    """
    Partial update. Re-embedding is always scheduled; the store compares
    content hashes, so edits to rent or availability cost no provider call.
    """
    listing = await _get_listing(db, listing_id)
    changes = payload.model_dump(exclude_unset=True)
    if "amenities" in changes:
        changes["amenities"] = sorted_amenities(changes["amenities"] or [])
    for field, value in changes.items():
        setattr(listing, field, value)
    await _commit(db, "update_listing", listing_id)
    await db.refresh(listing)

    background_tasks.add_task(_embed_listing, store, listing)
    return listing


@router.post("/{listing_id}/photos", response_model=ListingRead)
async def attach_photos(
    listing_id: str,
    payload: ListingPhotos,
    db: AsyncSession = Depends(get_db),
):
    """Photos are not embedded, so the cached embedding stays valid."""
    listing = await _get_listing(db, listing_id)
    listing.photos = [*(listing.photos or []), *payload.photos]
    await _commit(db, "attach_photos", listing_id)
    await db.refresh(listing)
    return listing


@router.delete("/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_listing(
    listing_id: str,
    db: AsyncSession = Depends(get_db),
    store: EmbeddingStore = Depends(get_store),
):
    listing = await _get_listing(db, listing_id)
    await db.delete(listing)
    await _commit(db, "delete_listing", listing_id)
    await store.delete(listing_id, EntityKind.listing)
