"""Pydantic schemas for the cart API."""

from decimal import Decimal

from pydantic import BaseModel, Field


class AddCartItemDTO(BaseModel):
    course_id: int = Field(gt=0)
    qty: int = Field(default=1, gt=0)


class UpdateCartItemDTO(BaseModel):
    """``qty`` of zero or less removes the line."""

    qty: int


class CartLineOut(BaseModel):
    course_id: int
    qty: int
    title: str
    price: Decimal
    line_total: Decimal


class CartOut(BaseModel):
    cart_id: int
    items: list[CartLineOut]
    subtotal: Decimal
    total: Decimal
