from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum as SAEnum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from pgvector.sqlalchemy import Vector

from roommatch.core.config import settings
from roommatch.db.session import Base


class EntityKind(str, enum.Enum):
    seeker = "seeker"
    listing = "listing"


class Embedding(Base):
    """
    One current embedding per (entity_id, entity_kind).
    Replaced in place when the canonical text hash changes.
    Dimension is fixed to EMBEDDING_DIM; changing it needs a migration
    that ALTERs the column followed by a full re-embed.
    """
    __tablename__ = "embeddings"
    __table_args__ = (
        UniqueConstraint("entity_id", "entity_kind", name="uq_embeddings_entity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Seeker and listing ids share this column, so no FK; deletes cascade in
    # the service layer
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_kind: Mapped[EntityKind] = mapped_column(
        SAEnum(EntityKind, name="entity_kind", native_enum=False, length=16),
        nullable=False,
        index=True,
    )

    vector = mapped_column(Vector(settings.EMBEDDING_DIM), nullable=False)

    # sha256 hex of the canonical text that produced `vector`
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    model_name: Mapped[str] = mapped_column(String(120), nullable=False)

    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
