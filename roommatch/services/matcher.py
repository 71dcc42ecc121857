from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roommatch.core.config import settings
from roommatch.core.errors import NotFoundError, PersistenceError, RoomMatchError
from roommatch.models.embedding import EntityKind
from roommatch.models.listing import Listing
from roommatch.models.seeker import SeekerProfile
from roommatch.schemas.listing import ListingRead
from roommatch.services.embedding_store import EmbeddingStore
from roommatch.services.similarity import SearchOutcome, search, search_pgvector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    listing_id: str
    similarity_score: float
    listing: ListingRead


# ── Loading ───────────────────────────────────────────────────────────────────

async def _load_completed_seeker(db: AsyncSession, seeker_id: str) -> SeekerProfile:
    try:
        seeker = await db.get(SeekerProfile, seeker_id)
    except SQLAlchemyError as exc:
        raise PersistenceError(
            "Failed to load seeker profile",
            details=str(exc), seeker_id=seeker_id, stage="load_seeker",
        ) from exc
    if seeker is None:
        raise NotFoundError("Seeker profile not found", seeker_id=seeker_id, stage="load_seeker")
    if not seeker.completed:
        raise NotFoundError(
            "Seeker has not completed onboarding", seeker_id=seeker_id, stage="load_seeker",
        )
    return seeker


async def _load_listings(db: AsyncSession, listing_ids: List[str]) -> Dict[str, Listing]:
    if not listing_ids:
        return {}
    try:
        rows = (
            await db.execute(select(Listing).where(Listing.id.in_(listing_ids)))
        ).scalars().all()
    except SQLAlchemyError as exc:
        raise PersistenceError(
            "Failed to load matched listings", details=str(exc), stage="join_listings",
        ) from exc
    return {row.id: row for row in rows}


# ── Main matcher ──────────────────────────────────────────────────────────────

async def match_seeker(
    db: AsyncSession,
    store: EmbeddingStore,
    seeker_id: str,
    *,
    threshold: Optional[float] = None,
    limit: Optional[int] = None,
) -> List[MatchResult]:
    """
    Rank current listings against a seeker's preference embedding.
    An empty list means "nothing above threshold", not a failure.
    """
    threshold = settings.MATCH_THRESHOLD if threshold is None else threshold
    limit = settings.MATCH_LIMIT if limit is None else min(limit, settings.MATCH_LIMIT_MAX)

    seeker = await _load_completed_seeker(db, seeker_id)

    # A seeker without a vector cannot be ranked against anything
    try:
        query = await store.get_or_generate(seeker)
    except RoomMatchError as exc:
        raise exc.annotate(seeker_id=seeker_id, stage="seeker_embedding")

    outcome: SearchOutcome
    if settings.SEARCH_BACKEND == "pgvector":
        outcome = await search_pgvector(
            db,
            query.vector,
            entity_kind=EntityKind.listing,
            threshold=threshold,
            limit=limit,
        )
    else:
        candidates = await store.all_current(EntityKind.listing)
        outcome = search(query.vector, candidates, threshold=threshold, limit=limit)

    listings = await _load_listings(db, [entity_id for entity_id, _ in outcome.hits])

    results: List[MatchResult] = []
    for listing_id, score in outcome.hits:
        listing = listings.get(listing_id)
        if listing is None:
            # Deleted after its embedding was read
            logger.debug("Skipping match for deleted listing_id=%s", listing_id)
            continue
        results.append(MatchResult(
            listing_id=listing_id,
            similarity_score=score,
            listing=ListingRead.model_validate(listing),
        ))

    logger.info(
        "match seeker_id=%s threshold=%.2f limit=%d → %d result(s), %d skipped",
        seeker_id, threshold, limit, len(results), len(outcome.skipped),
    )
    return results
