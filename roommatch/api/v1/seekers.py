"""
Seeker onboarding endpoints.

GET    /api/v1/seekers/questions         the onboarding question set, in order
POST   /api/v1/seekers                   open a profile for a user
GET    /api/v1/seekers/{id}              current answers and completion flag
PUT    /api/v1/seekers/{id}/answers      record one answer (open profiles only)
POST   /api/v1/seekers/{id}/complete     freeze the profile, embed in background
DELETE /api/v1/seekers/{id}              delete profile and its embedding
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from roommatch.core.deps import get_store
from roommatch.core.errors import RoomMatchError
from roommatch.db.session import get_db
from roommatch.models.embedding import EntityKind
from roommatch.models.seeker import SeekerProfile
from roommatch.schemas.seeker import AnswerIn, QuestionsResponse, SeekerCreate, SeekerRead
from roommatch.services import onboarding
from roommatch.services.embedding_store import EmbeddingStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/seekers", tags=["seekers"])


# The request session is closed before this runs; the store opens its own
async def _embed_seeker(store: EmbeddingStore, seeker: SeekerProfile) -> None:
    try:
        await store.get_or_generate(seeker)
    except RoomMatchError as exc:
        logger.error("Background embedding failed for seeker_id=%s: %s", seeker.id, exc)


@router.get("/questions", response_model=QuestionsResponse)
async def onboarding_questions():
    return QuestionsResponse(questions=list(onboarding.ONBOARDING_QUESTIONS))


@router.post("", response_model=SeekerRead, status_code=status.HTTP_201_CREATED)
async def create_seeker(payload: SeekerCreate, db: AsyncSession = Depends(get_db)):
    return await onboarding.create_seeker(db, payload.user_id)


@router.get("/{seeker_id}", response_model=SeekerRead)
async def get_seeker(seeker_id: str, db: AsyncSession = Depends(get_db)):
    return await onboarding.get_seeker(db, seeker_id)


@router.put("/{seeker_id}/answers", response_model=SeekerRead)
async def record_answer(
    seeker_id: str,
    payload: AnswerIn,
    db: AsyncSession = Depends(get_db),
):
    return await onboarding.record_answer(db, seeker_id, payload.question, payload.answer)


@router.post("/{seeker_id}/complete", response_model=SeekerRead)
async def complete_onboarding(
    seeker_id: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    store: EmbeddingStore = Depends(get_store),
):
    seeker = await onboarding.complete_onboarding(db, seeker_id)
    background_tasks.add_task(_embed_seeker, store, seeker)
    return seeker


@router.delete("/{seeker_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_seeker(
    seeker_id: str,
    db: AsyncSession = Depends(get_db),
    store: EmbeddingStore = Depends(get_store),
):
    await onboarding.delete_seeker(db, seeker_id)
    await store.delete(seeker_id, EntityKind.seeker)
