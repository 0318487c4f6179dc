"""Pydantic schemas for the order status hook."""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from referral_core.schemas.base import BaseCreateSchema


class OrderStatusEvent(BaseCreateSchema):
    """One order status transition, as published by the order system."""
    order_id: UUID
    customer_id: UUID = Field(..., description="Account that placed the order")
    status: str = Field(..., min_length=1, max_length=50)
    order_total: Decimal = Field(..., ge=0, decimal_places=2)

    @field_validator('status')
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return v.strip().lower()


class OrderEventResponse(BaseModel):
    outcome: str
    referral_id: Optional[UUID] = None
    commission_amount: Optional[Decimal] = None
    shortfall: Optional[Decimal] = None
