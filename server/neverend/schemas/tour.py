"""Tour-related Pydantic schemas."""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class TourStatus(str, Enum):
    """Tour status enumeration."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class InclusionType(str, Enum):
    """Whether an item is covered by the tour price."""
    INCLUDED = "included"
    EXCLUDED = "excluded"


class TourPrice(BaseModel):
    """Price option response schema."""

    id: int = Field(..., description="Price option ID")
    price: int = Field(..., ge=0, description="Price in rubles")
    description: Optional[str] = Field(None, description="Label shown next to the price")
    price_order: int = Field(0, description="Display order")

    class Config:
        from_attributes = True


class TourProgram(BaseModel):
    """Itinerary day response schema."""

    id: int = Field(..., description="Program entry ID")
    day: int = Field(..., description="Day number")
    programm: str = Field(..., description="What happens on this day")
    image_url: Optional[str] = Field(None, description="Illustration for the day")

    class Config:
        from_attributes = True


class TourInclusion(BaseModel):
    """Inclusion response schema."""

    id: int = Field(..., description="Inclusion ID")
    item: str = Field(..., description="Included or excluded item")
    type: InclusionType = Field(..., description="included or excluded")

    class Config:
        from_attributes = True


class Tour(BaseModel):
    """Tour response schema as listed in the catalog."""

    id: int = Field(..., description="Unique tour ID")
    title: str = Field(..., description="Tour title")
    description: Optional[str] = Field(None, description="Full description")
    short_description: Optional[str] = Field(None, description="Teaser shown on grid cards")
    image_url: Optional[str] = Field(None, description="Cover image URL")
    price: Optional[int] = Field(None, description="Legacy single price in rubles")
    duration: Optional[str] = Field(None, description="Human-readable duration")
    location: Optional[str] = Field(None, description="Destination")
    date_start: Optional[date] = Field(None, description="First day of the tour")
    date_end: Optional[date] = Field(None, description="Last day of the tour")
    max_participants: Optional[int] = Field(None, description="Group size limit")
    current_participants: int = Field(0, description="Seats already taken")
    status: str = Field(..., description="Tour status")
    created_at: Optional[datetime] = Field(None, description="Creation time (ISO 8601)")
    updated_at: Optional[datetime] = Field(None, description="Last update time (ISO 8601)")
    prices: List[TourPrice] = Field(default_factory=list, description="Price options, cheapest shown first in cards")

    class Config:
        from_attributes = True


class TourDetail(Tour):
    """Tour response schema for the tour page, with the itinerary and inclusions."""

    programs: List[TourProgram] = Field(default_factory=list, description="Itinerary by day")
    inclusions: List[TourInclusion] = Field(default_factory=list, description="Included and excluded items")


class TourPriceInput(BaseModel):
    """Price option as submitted by the admin panel; incomplete entries are skipped."""

    price: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    price_order: Optional[int] = None


class TourProgramInput(BaseModel):
    """Itinerary day as submitted by the admin panel; incomplete entries are skipped."""

    day: Optional[int] = None
    programm: Optional[str] = None
    image_url: Optional[str] = None


class TourInclusionInput(BaseModel):
    """Inclusion as submitted by the admin panel; incomplete entries are skipped."""

    item: Optional[str] = None
    type: Optional[str] = None


class _TourFields(BaseModel):
    description: Optional[str] = Field(None, max_length=20000)
    short_description: Optional[str] = Field(None, max_length=2000)
    image_url: Optional[str] = Field(None, max_length=512)
    price: Optional[int] = Field(None, ge=0)
    duration: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=255)
    date_start: Optional[date] = None
    date_end: Optional[date] = None
    max_participants: Optional[int] = Field(None, ge=0)
    programs: Optional[List[TourProgramInput]] = Field(None, description="Replaces the itinerary when supplied")
    prices: Optional[List[TourPriceInput]] = Field(None, description="Replaces the price options when supplied")
    inclusions: Optional[List[TourInclusionInput]] = Field(None, description="Replaces the inclusions when supplied")

    @field_validator("date_start", "date_end", "image_url", "duration", "location", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """The admin form posts empty inputs as empty strings."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CreateTourRequest(_TourFields):
    """Request schema for creating a tour."""

    title: str = Field(..., min_length=1, max_length=255, description="Tour title")
    status: TourStatus = Field(TourStatus.ACTIVE, description="Tour status")


class UpdateTourRequest(_TourFields):
    """Request schema for updating a tour; only supplied fields change."""

    title: Optional[str] = Field(None, min_length=1, max_length=255, description="Tour title")
    status: Optional[TourStatus] = Field(None, description="Tour status")
