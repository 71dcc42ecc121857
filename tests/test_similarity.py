import math
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from roommatch.models.embedding import EntityKind
from roommatch.services.embedding_store import EmbeddingRecord
from roommatch.services.similarity import cosine_similarity, rank, search, search_pgvector


def _record(entity_id, vector) -> EmbeddingRecord:
    return EmbeddingRecord(
        entity_id=entity_id,
        entity_kind=EntityKind.listing,
        vector=tuple(vector),
        content_hash="h-" + entity_id,
        model_name="fake-embedder",
        generated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


# ── cosine_similarity ─────────────────────────────────────────────────────────

def test_identical_direction_scores_one():
    assert cosine_similarity([1, 0], [3, 0]) == pytest.approx(1.0)


def test_orthogonal_scores_zero():
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)


def test_opposite_scores_minus_one():
    assert cosine_similarity([1, 2], [-1, -2]) == pytest.approx(-1.0)


def test_cosine_is_symmetric():
    a, b = [0.3, -1.2, 4.0], [2.0, 0.5, -0.7]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_rejects_dimension_mismatch():
    with pytest.raises(ValueError):
        cosine_similarity([1, 0], [1, 0, 0])


def test_cosine_rejects_zero_vector():
    with pytest.raises(ValueError):
        cosine_similarity([0, 0], [1, 0])


# ── rank ──────────────────────────────────────────────────────────────────────

def test_rank_breaks_ties_by_entity_id():
    hits = [("b", 0.9), ("a", 0.9), ("c", 0.95)]
    assert rank(hits, 10) == [("c", 0.95), ("a", 0.9), ("b", 0.9)]


def test_rank_truncates_and_handles_non_positive_limit():
    hits = [("a", 0.1), ("b", 0.2), ("c", 0.3)]
    assert rank(hits, 2) == [("c", 0.3), ("b", 0.2)]
    assert rank(hits, 0) == []


# ── search ────────────────────────────────────────────────────────────────────

def test_search_ranks_and_applies_threshold():
    candidates = [
        _record("L1", [1.0, 0.0]),
        _record("L2", [0.0, 1.0]),
        _record("L3", [0.9, 0.1]),
    ]
    outcome = search([1.0, 0.0], candidates, threshold=0.5, limit=10)

    assert [entity_id for entity_id, _ in outcome.hits] == ["L1", "L3"]
    assert outcome.hits[0][1] == pytest.approx(1.0)
    assert outcome.hits[1][1] == pytest.approx(0.9 / math.sqrt(0.82))
    assert outcome.skipped == []


def test_search_limit_one_returns_best_only():
    candidates = [_record("L1", [1.0, 0.0]), _record("L3", [0.9, 0.1])]
    outcome = search([1.0, 0.0], candidates, threshold=0.5, limit=1)
    assert [entity_id for entity_id, _ in outcome.hits] == ["L1"]


def test_search_threshold_is_inclusive():
    outcome = search([1.0, 0.0], [_record("L1", [2.0, 0.0])], threshold=1.0, limit=5)
    assert [entity_id for entity_id, _ in outcome.hits] == ["L1"]


def test_search_skips_wrong_dimension_and_zero_vectors():
    candidates = [
        _record("bad-dim", [1.0, 0.0, 0.0]),
        _record("zero", [0.0, 0.0]),
        _record("ok", [2.0, 0.0]),
    ]
    outcome = search([1.0, 0.0], candidates, threshold=-1.0, limit=10)

    assert outcome.hits == [("ok", pytest.approx(1.0))]
    assert sorted(w.entity_id for w in outcome.skipped) == ["bad-dim", "zero"]


def test_search_zero_query_returns_nothing():
    outcome = search([0.0, 0.0], [_record("L1", [1.0, 0.0])], threshold=-1.0, limit=10)
    assert outcome.hits == []


def test_search_with_no_candidates_is_empty_not_an_error():
    outcome = search([1.0, 0.0], [], threshold=0.5, limit=10)
    assert outcome.hits == [] and outcome.skipped == []


# ── search_pgvector ───────────────────────────────────────────────────────────

class ScriptedSession:
    """Stands in for AsyncSession.execute; returns canned rows per statement."""

    def __init__(self, *results):
        self.results = list(results)
        self.statements = []

    async def execute(self, stmt):
        self.statements.append(stmt)
        rows = self.results.pop(0)
        return SimpleNamespace(all=lambda: rows)


@pytest.mark.asyncio
async def test_pgvector_search_reports_excluded_rows():
    db = ScriptedSession(
        [SimpleNamespace(entity_id="bad-dim", dims=3), SimpleNamespace(entity_id="zero", dims=2)],
        [SimpleNamespace(entity_id="L1", score=1.0)],
    )

    outcome = await search_pgvector(
        db, [1.0, 0.0], entity_kind=EntityKind.listing, threshold=0.5, limit=10,
    )

    assert outcome.hits == [("L1", 1.0)]
    assert [(w.entity_id, w.reason) for w in outcome.skipped] == [
        ("bad-dim", "dimension 3 != 2"),
        ("zero", "zero-magnitude vector"),
    ]
    assert len(db.statements) == 2
