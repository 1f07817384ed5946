"""Subscription-related Pydantic schemas."""

import re

from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class CreateSubscriptionRequest(BaseModel):
    """Request schema for subscribing to new tours."""

    email: str = Field(..., max_length=255, description="Subscriber email")

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Введите корректный email")
        return v


class SubscriptionCreated(BaseModel):
    """Response schema for a new subscription."""

    id: int = Field(..., description="Subscription ID")
    email: str = Field(..., description="Subscribed email")
    message: str = Field(..., description="Confirmation shown to the visitor")
