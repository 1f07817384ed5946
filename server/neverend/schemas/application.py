"""Application-related Pydantic schemas."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CreateApplicationRequest(BaseModel):
    """Request schema for a booking lead."""

    name: str = Field(..., max_length=255, description="Visitor name")
    phone: str = Field(..., max_length=64, description="Contact phone")
    email: Optional[str] = Field(None, max_length=255, description="Contact email")
    direction: Optional[str] = Field(None, max_length=255, description="Destination the visitor asks about")
    message: Optional[str] = Field(None, max_length=5000, description="Free-form message")
    tour_id: Optional[int] = Field(None, description="Tour the visitor was looking at")

    @field_validator("name", "phone")
    @classmethod
    def required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Имя и телефон обязательны для заполнения")
        return v

    @field_validator("email", "direction", "message", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("tour_id", mode="before")
    @classmethod
    def tour_id_from_form(cls, v):
        """Form fields arrive as strings; an empty one means no tour."""
        if isinstance(v, str):
            v = v.strip()
            return int(v) if v else None
        return v


class ApplicationCreated(BaseModel):
    """Response schema for an accepted application."""

    id: int = Field(..., description="Application ID")
    message: str = Field(..., description="Confirmation shown to the visitor")
