from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ListingCreate(BaseModel):
    lister_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=255, examples=["Cozy private room"])
    description: Optional[str] = None
    location: str = Field(..., min_length=1, max_length=255, examples=["University Area"])
    rent_per_month: float = Field(..., ge=0, examples=[650.0])
    room_type: Optional[str] = Field(None, max_length=60, examples=["private"])
    amenities: List[str] = Field(default_factory=list, examples=[["wifi", "laundry"]])
    available_from: date = Field(..., examples=["2026-11-01"])
    photos: List[str] = Field(default_factory=list)


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    rent_per_month: Optional[float] = Field(None, ge=0)
    room_type: Optional[str] = Field(None, max_length=60)
    amenities: Optional[List[str]] = None
    available_from: Optional[date] = None


class ListingPhotos(BaseModel):
    photos: List[str] = Field(..., min_length=1)


class ListingRead(BaseModel):
    id: str
    lister_id: str
    title: str
    description: Optional[str]
    location: str
    rent_per_month: float
    room_type: Optional[str]
    amenities: List[str]
    available_from: date
    photos: List[str]
    created_at: datetime
    updated_at: datetime
    model_config = {"from_attributes": True}
