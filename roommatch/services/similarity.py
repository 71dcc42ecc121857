"""
Cosine similarity search over stored embeddings.

Two interchangeable implementations of the same ranking:
- `search()`          : in-process, numpy, over EmbeddingRecord candidates
- `search_pgvector()` : pushed into PostgreSQL via the pgvector `<=>` operator

Both apply the same rules: skip vectors of the wrong dimensionality, exclude
zero-magnitude vectors (cosine undefined), drop scores below the threshold,
order by score desc then entity_id asc, truncate to limit.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

import numpy as np
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roommatch.core.errors import DataIntegrityWarning, PersistenceError
from roommatch.models.embedding import Embedding, EntityKind
from roommatch.services.embedding_store import EmbeddingRecord

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    hits: List[Tuple[str, float]] = field(default_factory=list)
    skipped: List[DataIntegrityWarning] = field(default_factory=list)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|) for equal-length vectors.
    Raises ValueError when the lengths differ or either norm is zero, since
    the similarity is undefined there.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        raise ValueError("Cosine similarity is undefined for a zero-magnitude vector")
    return float(np.dot(va, vb) / (na * nb))


def rank(hits: Iterable[Tuple[str, float]], limit: int) -> List[Tuple[str, float]]:
    if limit <= 0:
        return []
    return sorted(hits, key=lambda h: (-h[1], h[0]))[:limit]


def search(
    query_vector: Sequence[float],
    candidates: Iterable[EmbeddingRecord],
    threshold: float,
    limit: int,
) -> SearchOutcome:
    outcome = SearchOutcome()
    query = np.asarray(query_vector, dtype=np.float64)
    dim = query.shape[0]
    query_norm = float(np.linalg.norm(query))

    if query_norm == 0.0:
        # Nothing can be ranked against an undefined direction
        logger.warning("Query vector has zero magnitude; no candidate can be scored")
        return outcome

    scored: List[Tuple[str, float]] = []
    for record in candidates:
        vector = np.asarray(record.vector, dtype=np.float64)
        if vector.ndim != 1 or vector.shape[0] != dim:
            outcome.skipped.append(DataIntegrityWarning(
                entity_id=record.entity_id,
                reason=f"dimension {vector.shape[0] if vector.ndim == 1 else vector.shape} != {dim}",
            ))
            continue
        norm = float(np.linalg.norm(vector))
        if norm == 0.0:
            # Undefined cosine: excluded, never ranked as 0.0
            outcome.skipped.append(DataIntegrityWarning(
                entity_id=record.entity_id, reason="zero-magnitude vector",
            ))
            continue
        score = float(np.dot(query, vector) / (query_norm * norm))
        if not math.isfinite(score):
            outcome.skipped.append(DataIntegrityWarning(
                entity_id=record.entity_id, reason="non-finite similarity",
            ))
            continue
        if score < threshold:
            continue
        scored.append((record.entity_id, score))

    if outcome.skipped:
        logger.warning(
            "Similarity search skipped %d corrupt candidate(s): %s",
            len(outcome.skipped),
            ", ".join(f"{w.entity_id} ({w.reason})" for w in outcome.skipped[:10]),
        )

    outcome.hits = rank(scored, limit)
    return outcome


async def search_pgvector(
    db: AsyncSession,
    query_vector: Sequence[float],
    *,
    entity_kind: EntityKind,
    threshold: float,
    limit: int,
) -> SearchOutcome:
    """
    Same ranking as `search()`, evaluated by pgvector.
    Zero-norm rows would yield NaN (which Postgres sorts above every number),
    so they are filtered out explicitly before the threshold is applied.
    Excluded rows are reported in `skipped` from a separate query.
    """
    outcome = SearchOutcome()
    if limit <= 0:
        return outcome
    if float(np.linalg.norm(np.asarray(query_vector, dtype=np.float64))) == 0.0:
        logger.warning("Query vector has zero magnitude; no candidate can be scored")
        return outcome

    dim = len(query_vector)
    dims = func.vector_dims(Embedding.vector)
    norm = func.vector_norm(Embedding.vector)
    corrupt_stmt = (
        select(Embedding.entity_id, dims.label("dims"))
        .where(Embedding.entity_kind == entity_kind, or_(dims != dim, norm == 0))
        .order_by(Embedding.entity_id)
    )
    score = (1 - Embedding.vector.cosine_distance(list(query_vector))).label("score")
    stmt = (
        select(Embedding.entity_id, score)
        .where(
            Embedding.entity_kind == entity_kind,
            dims == dim,
            norm > 0,
            score >= threshold,
        )
        .order_by(score.desc(), Embedding.entity_id.asc())
        .limit(limit)
    )
    try:
        corrupt = (await db.execute(corrupt_stmt)).all()
        rows = (await db.execute(stmt)).all()
    except SQLAlchemyError as exc:
        raise PersistenceError(
            "Vector search failed", details=str(exc), stage="search",
        ) from exc

    outcome.skipped = [
        DataIntegrityWarning(
            entity_id=r.entity_id,
            reason=f"dimension {r.dims} != {dim}" if r.dims != dim else "zero-magnitude vector",
        )
        for r in corrupt
    ]
    if outcome.skipped:
        logger.warning(
            "Vector search skipped %d corrupt candidate(s): %s",
            len(outcome.skipped),
            ", ".join(f"{w.entity_id} ({w.reason})" for w in outcome.skipped[:10]),
        )
    outcome.hits = [(r.entity_id, float(r.score)) for r in rows]
    return outcome
