from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Date, DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roommatch.db.session import Base
from roommatch.models.embedding import EntityKind


class Listing(Base):
    __tablename__ = "listings"

    entity_kind = EntityKind.listing

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    lister_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Embeddable fields: any change here changes the canonical hash
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    room_type: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    amenities: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Not embedded
    rent_per_month: Mapped[float] = mapped_column(Float, nullable=False)
    available_from: Mapped[date] = mapped_column(Date, nullable=False)
    photos: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
