import math

import pytest
import pytest_asyncio

from roommatch.core.errors import NotFoundError, UpstreamRejected, UpstreamUnavailable
from roommatch.models.embedding import EntityKind
from roommatch.services.embedding_store import EmbeddingStore
from roommatch.services.matcher import match_seeker

from conftest import FakeProvider, keyword_embedder, make_client

VECTORS = {
    "Sunny loft": (1.0, 0.0),
    "Basement room": (0.0, 1.0),
    "Garden flat": (0.9, 0.1),
    "Q: ": (1.0, 0.0),
}


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(keyword_embedder(VECTORS))


@pytest_asyncio.fixture
async def catalogue(store, make_listing):
    listings = [
        await make_listing("L1", "Sunny loft"),
        await make_listing("L2", "Basement room"),
        await make_listing("L3", "Garden flat"),
    ]
    for listing in listings:
        await store.get_or_generate(listing)
    return listings


@pytest.mark.asyncio
async def test_ranks_listings_above_threshold(catalogue, store, make_seeker, db_session):
    await make_seeker("S1", [("Area?", "Near the park")])

    results = await match_seeker(db_session, store, "S1", threshold=0.5, limit=10)

    assert [r.listing_id for r in results] == ["L1", "L3"]
    assert results[0].similarity_score == pytest.approx(1.0)
    assert results[1].similarity_score == pytest.approx(0.9 / math.sqrt(0.82))
    assert results[0].listing.title == "Sunny loft"


@pytest.mark.asyncio
async def test_limit_truncates(catalogue, store, make_seeker, db_session):
    await make_seeker("S1", [("Area?", "Near the park")])

    results = await match_seeker(db_session, store, "S1", threshold=0.5, limit=1)

    assert [r.listing_id for r in results] == ["L1"]


@pytest.mark.asyncio
async def test_defaults_come_from_settings(catalogue, store, make_seeker, db_session):
    await make_seeker("S1", [("Area?", "Near the park")])

    results = await match_seeker(db_session, store, "S1")

    assert [r.listing_id for r in results] == ["L1", "L3"]


@pytest.mark.asyncio
async def test_nothing_above_threshold_is_an_empty_list(catalogue, store, make_seeker, db_session):
    await make_seeker("S1", [("Area?", "Near the park")])

    results = await match_seeker(db_session, store, "S1", threshold=1.0 + 1e-9, limit=10)

    assert results == []


@pytest.mark.asyncio
async def test_equal_scores_are_ordered_by_listing_id(store, make_listing, make_seeker, db_session):
    for listing_id in ("L9", "L4", "L7"):
        await store.get_or_generate(await make_listing(listing_id, "Sunny loft"))
    await make_seeker("S1", [("Area?", "Near the park")])

    results = await match_seeker(db_session, store, "S1", threshold=0.5, limit=10)

    assert [r.listing_id for r in results] == ["L4", "L7", "L9"]


@pytest.mark.asyncio
async def test_unknown_seeker_is_not_found(store, provider, db_session):
    with pytest.raises(NotFoundError) as exc_info:
        await match_seeker(db_session, store, "missing")

    assert exc_info.value.context["seeker_id"] == "missing"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_incomplete_seeker_is_not_found_and_never_embedded(store, provider, make_seeker, db_session):
    await make_seeker("S1", [("Area?", "Near the park")], completed=False)

    with pytest.raises(NotFoundError):
        await match_seeker(db_session, store, "S1")

    assert provider.calls == []
    assert await store.get("S1", EntityKind.seeker) is None


@pytest.mark.asyncio
async def test_seeker_embedding_failure_is_reported_with_context(session_maker, make_seeker, db_session):
    provider = FakeProvider(failures=[UpstreamRejected("bad request")])
    store = EmbeddingStore(session_maker, make_client(provider), dim=2)
    await make_seeker("S1", [("Area?", "Near the park")])

    with pytest.raises(UpstreamRejected) as exc_info:
        await match_seeker(db_session, store, "S1")

    assert exc_info.value.context["seeker_id"] == "S1"
    assert exc_info.value.context["entity_kind"] == "seeker"


@pytest.mark.asyncio
async def test_deleted_listing_is_skipped(catalogue, store, make_seeker, db_session):
    await make_seeker("S1", [("Area?", "Near the park")])
    # Listing row gone, embedding not yet cleaned up
    await db_session.delete(catalogue[0])
    await db_session.commit()

    results = await match_seeker(db_session, store, "S1", threshold=0.5, limit=10)

    assert [r.listing_id for r in results] == ["L3"]


@pytest.mark.asyncio
async def test_listing_without_embedding_is_not_a_candidate(catalogue, store, make_listing, make_seeker, db_session):
    await make_listing("L0", "Sunny loft")
    await make_seeker("S1", [("Area?", "Near the park")])

    results = await match_seeker(db_session, store, "S1", threshold=0.5, limit=10)

    assert "L0" not in [r.listing_id for r in results]


@pytest.mark.asyncio
async def test_seeker_provider_crash_is_an_upstream_error_with_context(session_maker, make_seeker, db_session):
    provider = FakeProvider(failures=[RuntimeError("model crashed")])
    store = EmbeddingStore(session_maker, make_client(provider, max_retries=0), dim=2)
    await make_seeker("S1", [("Area?", "Near the park")])

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await match_seeker(db_session, store, "S1")

    assert exc_info.value.context["seeker_id"] == "S1"
