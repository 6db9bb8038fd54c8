"""Pydantic schemas for orders.

This module exposes the request/validation schemas and read DTOs used by
the orders API.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


class CustomerIn(BaseModel):
    """Contact snapshot stored on the order. Both fields are optional."""

    full_name: str = Field(default="", max_length=200)
    phone: str = Field(default="", max_length=50)

    @field_validator("full_name", "phone", mode="before")
    @classmethod
    def blank_if_none(cls, v):
        return "" if v is None else str(v).strip()


class CreateOrderDTO(BaseModel):
    customer: CustomerIn = Field(default_factory=CustomerIn)

    @field_validator("customer", mode="before")
    @classmethod
    def empty_if_none(cls, v):
        return {} if v is None else v


class ConfirmOrderDTO(BaseModel):
    payment_intent_id: str = Field(min_length=1, max_length=255)

    @field_validator("payment_intent_id")
    @classmethod
    def strip_reference(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("payment_intent_id is required")
        return v2


class OrderItemReadDTO(BaseModel):
    course_id: int
    title: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class OrderReadDTO(BaseModel):
    """Read model for an order.

    ``items`` is only filled on the detail endpoint.
    """

    id: int
    order_number: str
    status: str
    full_name: str
    phone: str
    subtotal: Decimal
    total: Decimal
    currency: str
    created_at: datetime
    items: list[OrderItemReadDTO] | None = None

    @classmethod
    def from_order(cls, order, with_items: bool = False) -> "OrderReadDTO":
        items = None
        if with_items:
            items = [
                OrderItemReadDTO(
                    course_id=it.course_id,
                    title=it.course.title,
                    unit_price=it.unit_price,
                    quantity=it.quantity,
                    line_total=it.line_total,
                )
                for it in order.items.all()
            ]
        return cls(
            id=order.pk,
            order_number=order.order_number,
            status=order.status,
            full_name=order.full_name,
            phone=order.phone,
            subtotal=order.subtotal,
            total=order.total,
            currency=order.currency,
            created_at=order.created_at,
            items=items,
        )
