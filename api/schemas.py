"""
API Schemas Module

This module defines Pydantic models for request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_serializer

from db.models import OrderStatus


class ServerBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: HttpUrl
    api_key: str = Field(min_length=1, max_length=255)
    capacity_limit: int = Field(default=1000, gt=0)
    is_active: bool = True
    priority: int = 0


class ServerCreate(ServerBase):
    api_secret: str = Field(min_length=1, max_length=255)


class ServerUpdate(BaseModel):
    """Partial update; omitted fields keep their value."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    url: Optional[HttpUrl] = None
    api_key: Optional[str] = Field(default=None, min_length=1, max_length=255)
    api_secret: Optional[str] = Field(default=None, min_length=1, max_length=255)
    capacity_limit: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None
    priority: Optional[int] = None


class ServerOut(BaseModel):
    """Server as returned by the admin API; the secret is never echoed."""

    id: int
    name: str
    url: str
    api_key: str
    capacity_limit: int
    current_usage: Decimal
    usage_ratio: float
    is_active: bool
    is_selected: bool
    priority: int
    last_used: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("current_usage")
    def serialize_usage(self, value: Decimal) -> float:
        return float(value)


class OrderItemIn(BaseModel):
    product_id: int = 0
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, gt=0)
    price: Decimal = Field(ge=0)
    sku: str = ""


class OrderCreate(BaseModel):
    order_key: str = Field(min_length=1, max_length=64)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    customer_email: str = ""
    customer_first_name: str = ""
    customer_last_name: str = ""
    items: list[OrderItemIn] = Field(min_length=1)


class OrderItemOut(BaseModel):
    product_id: int
    name: str
    quantity: int
    price: float
    line_total: float
    sku: str

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    order_key: str
    total: float
    currency: str
    customer_email: str
    status: OrderStatus
    proxy_server_id: Optional[int] = None
    paypal_order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    items: list[OrderItemOut] = []
    notes: list[dict[str, Any]] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RegistrationOut(BaseModel):
    order_id: int
    server_id: int
    usage_recorded: bool
    status: OrderStatus
    response: dict[str, Any] = {}


class VerifyRequest(BaseModel):
    paypal_order_id: str = Field(min_length=1, max_length=64)


class VerificationOut(BaseModel):
    order_id: int
    server_id: int
    paypal_order_id: str
    status: OrderStatus
    response: dict[str, Any] = {}


class CompleteRequest(BaseModel):
    paypal_order_id: str = Field(min_length=1, max_length=64)
    transaction_id: str = Field(default="", max_length=64)
    server_id: Optional[int] = None


class CompletionOut(BaseModel):
    order_id: int
    server_id: Optional[int] = None
    transaction_id: Optional[str] = None
    status: OrderStatus
    redirect: str


class WidgetUrlOut(BaseModel):
    order_id: int
    server_id: Optional[int] = None
    url: str


class ProductMappingIn(BaseModel):
    mapped_product_id: int = Field(gt=0)


class ProductMappingOut(BaseModel):
    product_id: int
    mapped_product_id: int

    model_config = ConfigDict(from_attributes=True)
