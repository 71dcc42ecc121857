from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, StrictStr

from roommatch.schemas.listing import ListingRead


class MatchRequest(BaseModel):
    seeker_id: StrictStr = Field(..., min_length=1, examples=["6f1c0a9e-0000-4000-8000-000000000000"])
    threshold: Optional[float] = Field(None, ge=-1.0, le=1.0)
    limit: Optional[int] = Field(None, ge=1)


class MatchedListing(ListingRead):
    listing_id: str
    similarity_score: float


class MatchResponse(BaseModel):
    count: int
    matches: List[MatchedListing]


class EmbedRequest(BaseModel):
    text: StrictStr = Field(..., examples=["Quiet private room near campus"])


class EmbedResponse(BaseModel):
    embedding: List[float]


class ChatRequest(BaseModel):
    prompt: StrictStr = Field(..., min_length=1)


class ChatResponse(BaseModel):
    response: str


class EmbeddingMetaResponse(BaseModel):
    entity_id: str
    entity_kind: str
    dimension: int
    content_hash: str
    model_name: str
    generated_at: str


class EmbedAllResponse(BaseModel):
    message: str
