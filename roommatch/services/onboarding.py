"""
Seeker onboarding as an explicit, finite Q/A sequence.

Answers accumulate in interview order while the profile is open; completing
the profile freezes it, and only completed profiles are ever canonicalized
for matching.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roommatch.core.errors import NotFoundError, PersistenceError, ValidationError
from roommatch.models.seeker import SeekerProfile
from roommatch.services.canonical import normalize_text

logger = logging.getLogger(__name__)

ONBOARDING_QUESTIONS: tuple[str, ...] = (
    "What's your preferred budget range for rent per month?",
    "Which areas or neighborhoods are you interested in (e.g., Downtown, University Area)?",
    "How many roommates are you looking for, if any?",
    "Are you open to sharing a room, or do you prefer a private one?",
    "What's most important to you in a room: amenities, location, or price?",
)


async def _commit(db: AsyncSession, stage: str, seeker_id: str | None = None) -> None:
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ValidationError(
            "Seeker profile conflicts with an existing one",
            details=str(exc.orig), status_code=409, seeker_id=seeker_id, stage=stage,
        ) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        raise PersistenceError(
            "Failed to save seeker profile", details=str(exc), seeker_id=seeker_id, stage=stage,
        ) from exc


async def get_seeker(db: AsyncSession, seeker_id: str) -> SeekerProfile:
    seeker = await db.get(SeekerProfile, seeker_id)
    if seeker is None:
        raise NotFoundError("Seeker profile not found", seeker_id=seeker_id)
    return seeker


async def create_seeker(db: AsyncSession, user_id: str) -> SeekerProfile:
    seeker = SeekerProfile(user_id=user_id, answers=[], completed=False)
    db.add(seeker)
    await _commit(db, "create_seeker")
    await db.refresh(seeker)
    logger.info("Created seeker profile id=%s for user_id=%s", seeker.id, user_id)
    return seeker


async def record_answer(
    db: AsyncSession,
    seeker_id: str,
    question: str,
    answer: str,
) -> SeekerProfile:
    """Append an answer, or replace the answer to a question already asked."""
    seeker = await get_seeker(db, seeker_id)
    if seeker.completed:
        raise ValidationError(
            "Onboarding already completed; profile is read-only",
            status_code=409, seeker_id=seeker_id, stage="record_answer",
        )
    question = normalize_text(question)
    answer = normalize_text(answer)
    if not question or not answer:
        raise ValidationError("Question and answer must be non-empty", seeker_id=seeker_id)

    # New list object so the JSON column is flagged dirty
    answers = [dict(item) for item in (seeker.answers or [])]
    for item in answers:
        if item["question"] == question:
            item["answer"] = answer
            break
    else:
        answers.append({"question": question, "answer": answer})
    seeker.answers = answers

    await _commit(db, "record_answer", seeker_id)
    await db.refresh(seeker)
    return seeker


async def complete_onboarding(db: AsyncSession, seeker_id: str) -> SeekerProfile:
    seeker = await get_seeker(db, seeker_id)
    if seeker.completed:
        return seeker
    if not seeker.answers:
        raise ValidationError(
            "Cannot complete onboarding without any answers",
            seeker_id=seeker_id, stage="complete_onboarding",
        )
    seeker.completed = True
    await _commit(db, "complete_onboarding", seeker_id)
    await db.refresh(seeker)
    logger.info("Seeker id=%s completed onboarding with %d answer(s)", seeker_id, len(seeker.answers))
    return seeker


async def delete_seeker(db: AsyncSession, seeker_id: str) -> None:
    seeker = await get_seeker(db, seeker_id)
    await db.delete(seeker)
    await _commit(db, "delete_seeker", seeker_id)
