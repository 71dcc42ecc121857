"""
One current embedding per (entity_id, entity_kind).

get_or_generate() is idempotent for unchanged canonical text (no provider
call, no write) and self-healing for changed text (exactly one provider call,
then an atomic upsert). A failed provider call leaves the previous record in
place.

Regeneration is single-flight per key: concurrent callers for the same text
share one asyncio.Task; a caller with different text waits for the running
regeneration to land before starting its own. Callers await through
asyncio.shield, so abandoning a request never cancels a shared regeneration.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roommatch.core.config import settings
from roommatch.core.errors import PersistenceError, RoomMatchError
from roommatch.models.embedding import Embedding, EntityKind
from roommatch.models.listing import Listing
from roommatch.models.seeker import SeekerProfile
from roommatch.services.canonical import CanonicalText, canonicalize
from roommatch.services.embeddings import EmbeddingClient

logger = logging.getLogger(__name__)

Entity = Union[SeekerProfile, Listing]
Key = Tuple[str, EntityKind]


@dataclass(frozen=True)
class EmbeddingRecord:
    entity_id: str
    entity_kind: EntityKind
    vector: Tuple[float, ...]
    content_hash: str
    model_name: str
    generated_at: datetime

    @property
    def dimension(self) -> int:
        return len(self.vector)

    @classmethod
    def from_row(cls, row: Embedding) -> "EmbeddingRecord":
        return cls(
            entity_id=row.entity_id,
            entity_kind=EntityKind(row.entity_kind),
            vector=tuple(float(x) for x in row.vector),
            content_hash=row.content_hash,
            model_name=row.model_name,
            generated_at=row.generated_at,
        )


@dataclass
class _Flight:
    content_hash: str
    task: "asyncio.Task[EmbeddingRecord]"


class EmbeddingStore:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        client: EmbeddingClient,
        *,
        dim: int,
    ) -> None:
        self._session_maker = session_maker
        self.client = client
        self.dim = dim
        self._inflight: Dict[Key, _Flight] = {}

    # ── Public API ────────────────────────────────────────────────────────────

    async def get_or_generate(self, entity: Entity) -> EmbeddingRecord:
        canon = canonicalize(entity)
        key: Key = (str(entity.id), EntityKind(entity.entity_kind))

        while True:
            flight = self._inflight.get(key)
            if flight is None:
                break
            if flight.task.done():
                self._land(key, flight, flight.task)
                continue
            if flight.content_hash == canon.content_hash:
                logger.debug("Joining in-flight embedding for %s:%s", key[1].value, key[0])
                return await asyncio.shield(flight.task)
            # Different text for the same entity is still being embedded
            await asyncio.wait([flight.task])

        task = asyncio.create_task(self._regenerate(key, canon))
        flight = _Flight(content_hash=canon.content_hash, task=task)
        self._inflight[key] = flight
        task.add_done_callback(partial(self._land, key, flight))
        return await asyncio.shield(task)

    async def all_current(self, entity_kind: EntityKind) -> List[EmbeddingRecord]:
        async with self._session_maker() as db:
            try:
                rows = (
                    await db.execute(
                        select(Embedding)
                        .where(Embedding.entity_kind == entity_kind)
                        .order_by(Embedding.entity_id)
                    )
                ).scalars().all()
            except SQLAlchemyError as exc:
                raise PersistenceError(
                    "Failed to load candidate embeddings",
                    details=str(exc),
                    entity_kind=entity_kind.value,
                    stage="load_candidates",
                ) from exc
        return [EmbeddingRecord.from_row(r) for r in rows]

    async def get(self, entity_id: str, entity_kind: EntityKind) -> Optional[EmbeddingRecord]:
        async with self._session_maker() as db:
            row = await self._load_row(db, (entity_id, entity_kind))
        return EmbeddingRecord.from_row(row) if row is not None else None

    async def delete(self, entity_id: str, entity_kind: EntityKind) -> bool:
        """Drop the record of a deleted entity. Returns whether one existed."""
        key: Key = (entity_id, entity_kind)
        # A regeneration still in flight would upsert after the delete
        while True:
            flight = self._inflight.get(key)
            if flight is None:
                break
            if not flight.task.done():
                await asyncio.wait([flight.task])
            self._land(key, flight, flight.task)

        async with self._session_maker() as db:
            try:
                result = await db.execute(
                    delete(Embedding).where(
                        Embedding.entity_id == entity_id,
                        Embedding.entity_kind == entity_kind,
                    )
                )
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                raise PersistenceError(
                    "Failed to delete embedding",
                    details=str(exc),
                    entity_id=entity_id,
                    entity_kind=entity_kind.value,
                    stage="delete_embedding",
                ) from exc
        removed = (result.rowcount or 0) > 0
        if removed:
            logger.info("Deleted embedding for %s:%s", entity_kind.value, entity_id)
        return removed

    async def embed_all(self, entities: Sequence[Entity]) -> dict:
        """
        Bring every given entity's embedding up to date, one at a time.
        Unchanged entities cost nothing; failures are counted, not raised.
        """
        total = len(entities)
        success = 0
        failed = 0
        logger.info("embed_all starting — %d entities", total)
        for entity in entities:
            try:
                await self.get_or_generate(entity)
                success += 1
            except RoomMatchError as exc:
                failed += 1
                logger.error("Embedding failed for %s:%s: %s", entity.entity_kind.value, entity.id, exc)
        logger.info("embed_all complete: %d/%d succeeded, %d failed", success, total, failed)
        return {"total": total, "success": success, "failed": failed}

    # ── Internals ─────────────────────────────────────────────────────────────

    def _land(self, key: Key, flight: _Flight, task: "asyncio.Task[EmbeddingRecord]") -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]
        # Mark the outcome retrieved so an unawaited failure is not reported twice
        if not task.cancelled():
            task.exception()

    async def _load_row(self, db: AsyncSession, key: Key) -> Optional[Embedding]:
        entity_id, kind = key
        try:
            result = await db.execute(
                select(Embedding).where(
                    Embedding.entity_id == entity_id,
                    Embedding.entity_kind == kind,
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                "Failed to read embedding",
                details=str(exc),
                entity_id=entity_id,
                entity_kind=kind.value,
                stage="read_embedding",
            ) from exc

    async def _regenerate(self, key: Key, canon: CanonicalText) -> EmbeddingRecord:
        entity_id, kind = key
        async with self._session_maker() as db:
            row = await self._load_row(db, key)
        current = EmbeddingRecord.from_row(row) if row is not None else None

        replace_corrupt = False
        if current is not None and current.content_hash == canon.content_hash:
            if current.dimension == self.dim:
                logger.debug("Embedding cache hit for %s:%s", kind.value, entity_id)
                return current
            logger.warning(
                "Stored embedding for %s:%s has dimension %d (expected %d) — regenerating",
                kind.value, entity_id, current.dimension, self.dim,
            )
            replace_corrupt = True

        try:
            vector = await self.client.embed(canon.text)
        except RoomMatchError as exc:
            raise exc.annotate(entity_id=entity_id, entity_kind=kind.value)

        record = await self._put(key, canon, vector, force=replace_corrupt)
        logger.info(
            "%s embedding for %s:%s (hash=%s)",
            "Created" if current is None else "Replaced",
            kind.value, entity_id, canon.content_hash[:12],
        )
        return record

    async def _put(
        self,
        key: Key,
        canon: CanonicalText,
        vector: List[float],
        *,
        force: bool = False,
    ) -> EmbeddingRecord:
        """
        INSERT … ON CONFLICT (entity_id, entity_kind) DO UPDATE, guarded so a
        row already carrying this hash is left alone unless `force`.
        """
        entity_id, kind = key
        async with self._session_maker() as db:
            try:
                dialect = db.get_bind().dialect.name
                insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
                stmt = insert_fn(Embedding).values(
                    entity_id=entity_id,
                    entity_kind=kind,
                    vector=vector,
                    content_hash=canon.content_hash,
                    model_name=self.client.model_name,
                    generated_at=datetime.now(timezone.utc),
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["entity_id", "entity_kind"],
                    set_={
                        "vector": stmt.excluded.vector,
                        "content_hash": stmt.excluded.content_hash,
                        "model_name": stmt.excluded.model_name,
                        "generated_at": stmt.excluded.generated_at,
                    },
                    where=None if force else (Embedding.content_hash != stmt.excluded.content_hash),
                )
                await db.execute(stmt)
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                raise PersistenceError(
                    "Failed to store embedding",
                    details=str(exc),
                    entity_id=entity_id,
                    entity_kind=kind.value,
                    stage="write_embedding",
                ) from exc
            row = await self._load_row(db, key)

        if row is None:
            raise PersistenceError(
                "Embedding vanished after write",
                entity_id=entity_id,
                entity_kind=kind.value,
                stage="write_embedding",
            )
        return EmbeddingRecord.from_row(row)


# ── Shared instance ───────────────────────────────────────────────────────────

_store: Optional[EmbeddingStore] = None


def get_embedding_store() -> EmbeddingStore:
    global _store
    if _store is None:
        from roommatch.db.session import async_session_maker
        from roommatch.services.embeddings import build_embedding_client

        _store = EmbeddingStore(
            async_session_maker,
            build_embedding_client(),
            dim=settings.EMBEDDING_DIM,
        )
    return _store


async def close_embedding_store() -> None:
    global _store
    if _store is not None:
        await _store.client.aclose()
        _store = None
