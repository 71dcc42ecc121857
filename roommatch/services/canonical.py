"""
Entity → canonical embedding text.

The canonical text is the only input the embedding provider ever sees, and its
sha256 is what the embedding store compares to decide whether a stored vector
is still current. Any formatting change here invalidates every stored
embedding on next access.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, Union

from roommatch.models.embedding import EntityKind
from roommatch.models.listing import Listing
from roommatch.models.seeker import SeekerProfile

_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class CanonicalText:
    text: str
    content_hash: str


def normalize_text(text: str) -> str:
    return _WS_RE.sub(" ", (text or "").strip())


def text_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _canonical(text: str) -> CanonicalText:
    return CanonicalText(text=text, content_hash=text_hash(text))


# ── Text builders ─────────────────────────────────────────────────────────────

def build_seeker_text(qa_pairs: Iterable[tuple[str, str]]) -> str:
    """
    One line per answered question, in interview order.
    Reordering questions changes the text and therefore the hash.
    """
    lines: list[str] = []
    for question, answer in qa_pairs:
        q = normalize_text(question)
        a = normalize_text(answer)
        if not q and not a:
            continue
        lines.append(f"Q: {q} A: {a}")
    return "\n".join(lines)


def sorted_amenities(amenities: Iterable[str] | None) -> list[str]:
    cleaned = {normalize_text(a) for a in (amenities or []) if normalize_text(a)}
    return sorted(cleaned, key=lambda a: (a.lower(), a))


def build_listing_text(listing: Listing) -> str:
    parts: list[str] = [f"Title: {normalize_text(listing.title)}"]
    if normalize_text(listing.description or ""):
        parts.append(f"Description: {normalize_text(listing.description)}")
    parts.append(f"Location: {normalize_text(listing.location)}")
    if normalize_text(listing.room_type or ""):
        parts.append(f"Room type: {normalize_text(listing.room_type)}")
    amenities = sorted_amenities(listing.amenities)
    if amenities:
        parts.append(f"Amenities: {', '.join(amenities)}")
    return "\n".join(parts)


# ── Public interface ──────────────────────────────────────────────────────────

def canonicalize(entity: Union[SeekerProfile, Listing]) -> CanonicalText:
    kind = getattr(entity, "entity_kind", None)
    if kind == EntityKind.seeker:
        return _canonical(build_seeker_text(entity.qa_pairs()))
    if kind == EntityKind.listing:
        return _canonical(build_listing_text(entity))
    raise TypeError(f"Cannot canonicalize {type(entity).__name__}")
