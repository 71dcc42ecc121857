"""create seeker_profiles, listings, embeddings and match_listings()

Revision ID: 3a1d9c04e7b2
Revises:
Branch Labels: None
Depends on: None

"""
from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector

from roommatch.core.config import settings


# revision identifiers, used by Alembic.
revision = '3a1d9c04e7b2'
down_revision = None
branch_labels = None
depends_on = None


# For external SQL/RPC callers only; the service itself ranks through
# roommatch.services.similarity. Same rules as similarity.search: zero-norm
# and wrong-dimension rows excluded, score >= threshold, ties by entity_id.
MATCH_LISTINGS_SQL = """
CREATE OR REPLACE FUNCTION match_listings(
    query_embedding vector({dim}),
    match_threshold double precision,
    match_count integer
)
RETURNS TABLE (
    listing_id varchar,
    similarity_score double precision,
    lister_id varchar,
    title varchar,
    description text,
    location varchar,
    rent_per_month double precision,
    room_type varchar,
    amenities json,
    available_from date,
    photos json
)
LANGUAGE sql STABLE
AS $$
    SELECT l.id, s.score, l.lister_id, l.title, l.description, l.location,
           l.rent_per_month, l.room_type, l.amenities, l.available_from, l.photos
    FROM (
        SELECT e.entity_id, 1 - (e.vector <=> query_embedding) AS score
        FROM embeddings e
        WHERE e.entity_kind = 'listing'
          AND vector_dims(e.vector) = {dim}
          AND vector_norm(e.vector) > 0
          AND vector_norm(query_embedding) > 0
    ) s
    JOIN listings l ON l.id = s.entity_id
    WHERE s.score >= match_threshold
    ORDER BY s.score DESC, s.entity_id ASC
    LIMIT match_count;
$$;
"""


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "seeker_profiles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_seeker_profiles_user_id", "seeker_profiles", ["user_id"], unique=True)

    op.create_table(
        "listings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("lister_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("room_type", sa.String(60), nullable=True),
        sa.Column("amenities", sa.JSON(), nullable=False),
        sa.Column("rent_per_month", sa.Float(), nullable=False),
        sa.Column("available_from", sa.Date(), nullable=False),
        sa.Column("photos", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_listings_lister_id", "listings", ["lister_id"])

    op.create_table(
        "embeddings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("entity_kind", sa.String(16), nullable=False),
        sa.Column("vector", Vector(settings.EMBEDDING_DIM), nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("model_name", sa.String(120), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("entity_id", "entity_kind", name="uq_embeddings_entity"),
    )
    op.create_index("ix_embeddings_entity_id", "embeddings", ["entity_id"])
    op.create_index("ix_embeddings_entity_kind", "embeddings", ["entity_kind"])

    op.execute(MATCH_LISTINGS_SQL.format(dim=settings.EMBEDDING_DIM))


def downgrade() -> None:
    op.execute(
        f"DROP FUNCTION IF EXISTS match_listings(vector({settings.EMBEDDING_DIM}), double precision, integer)"
    )
    op.drop_table("embeddings")
    op.drop_table("listings")
    op.drop_table("seeker_profiles")
