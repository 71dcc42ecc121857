from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roommatch.core.deps import get_store
from roommatch.db.session import get_db
from roommatch.schemas.match import MatchedListing, MatchRequest, MatchResponse
from roommatch.services.embedding_store import EmbeddingStore
from roommatch.services.matcher import match_seeker

logger = logging.getLogger(__name__)
router = APIRouter(tags=["match"])


@router.post("/match", response_model=MatchResponse)
async def match(
    payload: MatchRequest,
    db: AsyncSession = Depends(get_db),
    store: EmbeddingStore = Depends(get_store),
):
    """
    Top listings for a completed seeker, best first.
    An empty `matches` list means nothing scored above the threshold.
    """
    results = await match_seeker(
        db,
        store,
        payload.seeker_id,
        threshold=payload.threshold,
        limit=payload.limit,
    )
    matches = [
        MatchedListing(
            **r.listing.model_dump(),
            listing_id=r.listing_id,
            similarity_score=r.similarity_score,
        )
        for r in results
    ]
    return MatchResponse(count=len(matches), matches=matches)
