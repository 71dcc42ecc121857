from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from roommatch.db.session import Base
from roommatch.models.embedding import EntityKind


class SeekerProfile(Base):
    __tablename__ = "seeker_profiles"

    entity_kind = EntityKind.seeker

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    # Interview order is list order: [{"question": ..., "answer": ...}, ...]
    answers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

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

    def qa_pairs(self) -> list[tuple[str, str]]:
        return [(item["question"], item["answer"]) for item in (self.answers or [])]
