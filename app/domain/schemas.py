# app/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List
from decimal import Decimal
from datetime import datetime


class ItemIn(BaseModel):
    """Schema dla dodawania wariantu do koszyka."""

    variant_id: int = Field(..., gt=0, description="ID wariantu (musi byc > 0)")
    quantity: int = Field(..., gt=0, description="Ilosc (musi byc > 0)")


class CreateCartIn(BaseModel):
    """Schema dla tworzenia koszyka."""

    session_id: str | None = Field(default=None, max_length=128)


class CartItemOut(BaseModel):
    item_id: int
    product_id: int
    variant_id: int
    quantity: int
    price: Decimal
    stock_reservation_id: int | None = None


class CartOut(BaseModel):
    """Schema dla koszyka (response)."""

    cart_id: int
    user_id: int
    status: str
    version: int
    items: List[CartItemOut]
    total: Decimal
    expires_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class CheckoutIn(BaseModel):
    """Schema dla checkout - koszyk -> zamowienie."""

    cart_id: int = Field(..., gt=0)
    shipping_address_id: int = Field(..., gt=0)
    billing_address_id: int = Field(..., gt=0)
    payment_method: str = Field(..., min_length=1, max_length=50, description="np. CREDIT_CARD")
    shipping_method: str | None = Field(default=None, max_length=50)
    coupon_code: str | None = Field(default=None, max_length=64)
    gift_card_code: str | None = Field(default=None, max_length=64)


class StockIssueOut(BaseModel):
    reservation_id: int
    message: str


class CheckoutOut(BaseModel):
    success: bool = True
    order_id: int
    order_number: str
    idempotent: bool
    stock_issues: List[StockIssueOut] = []


class OrderItemOut(BaseModel):
    product_id: int
    variant_id: int
    quantity: int
    price: Decimal


class PaymentOut(BaseModel):
    method: str
    status: str
    amount: Decimal
    provider_transaction_id: str | None = None


class TimelineEntryOut(BaseModel):
    status: str
    description: str | None = None
    date: datetime


class OrderOut(BaseModel):
    """Schema dla zamowienia (response)."""

    id: int
    order_number: str
    status: str
    subtotal: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    gift_card_amount: Decimal
    total: Decimal
    payment_method: str
    shipping_method: str
    created_at: datetime
    items: List[OrderItemOut]
    payment: PaymentOut | None = None
    timeline: List[TimelineEntryOut]

    model_config = ConfigDict(from_attributes=True)
