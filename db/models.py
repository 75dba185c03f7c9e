"""
Database Models Module

This module defines SQLAlchemy ORM models for:
- Proxy servers (the routing registry)
- Orders and their line items (the local order store)
- Product mappings sent along with registered orders
- Audit logs
"""

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Text,
    Enum,
    Numeric,
    Index,
    JSON,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, UTC
from decimal import Decimal
from enum import Enum as PyEnum
from typing import List, Dict, Any
import json
from sqlalchemy.sql import func

Base = declarative_base()


class ProxyServer(Base):
    """A remote proxy that holds PayPal credentials."""

    __tablename__ = "proxy_servers"
    __table_args__ = (
        # At most one pinned server, enforced by the store
        Index(
            "uq_proxy_servers_selected",
            "is_selected",
            unique=True,
            postgresql_where=text("is_selected"),
            sqlite_where=text("is_selected = 1"),
        ),
        Index("ix_proxy_servers_routing", "is_active", "priority", "id"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    url = Column(String(255), nullable=False)
    api_key = Column(String(255), nullable=False)
    api_secret = Column(String(255), nullable=False)
    capacity_limit = Column(Integer, nullable=False, default=1000)
    current_usage = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, nullable=False, default=True)
    is_selected = Column(Boolean, nullable=False, default=False)
    priority = Column(Integer, nullable=False, default=0)
    last_used = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(UTC))

    @property
    def usage_ratio(self) -> float:
        if not self.capacity_limit:
            return 0.0
        return float(self.current_usage or 0) / float(self.capacity_limit)

    @property
    def has_headroom(self) -> bool:
        return Decimal(self.current_usage or 0) < Decimal(self.capacity_limit)

    def __repr__(self):
        return (
            f"<ProxyServer(id={self.id}, name={self.name!r}, "
            f"selected={self.is_selected}, active={self.is_active})>"
        )


class OrderStatus(PyEnum):
    created = "created"
    registered = "registered"
    verified = "verified"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {OrderStatus.completed, OrderStatus.failed, OrderStatus.cancelled}
)


class Order(Base):
    """Storefront order as seen by the payment client."""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_key = Column(String(64), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    customer_email = Column(String(255), nullable=False, default="")
    customer_first_name = Column(String(100), nullable=False, default="")
    customer_last_name = Column(String(100), nullable=False, default="")
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.created)
    # Not a foreign key: a deleted server leaves its stale id here and the
    # binding resolver falls back to the live registry.
    proxy_server_id = Column(Integer, nullable=True, index=True)
    paypal_order_id = Column(String(64), nullable=True)
    transaction_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
    _notes = Column("notes", Text, nullable=False, default="[]")

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name} {self.customer_last_name}"

    @property
    def notes(self) -> List[Dict[str, Any]]:
        """Get the order notes as a list of dictionaries."""
        if not self._notes:
            return []
        try:
            return json.loads(self._notes)
        except (json.JSONDecodeError, TypeError):
            return []

    @notes.setter
    def notes(self, value: List[Dict[str, Any]]) -> None:
        try:
            self._notes = json.dumps(value)
        except (TypeError, ValueError):
            self._notes = "[]"

    def add_note(self, message: str) -> None:
        self.notes = self.notes + [
            {"at": datetime.now(UTC).isoformat(), "note": message}
        ]

    def __repr__(self):
        return f"<Order(id={self.id}, status={self.status}, server={self.proxy_server_id})>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, default=0)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False)
    line_total = Column(Numeric(10, 2), nullable=False)
    sku = Column(String(100), nullable=False, default="")

    order = relationship("Order", back_populates="items")


class ProductMapping(Base):
    """Maps a local product id to the product id known by the proxy side."""

    __tablename__ = "product_mappings"

    product_id = Column(Integer, primary_key=True)
    mapped_product_id = Column(Integer, nullable=False)
    updated_at = Column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class AuditAction(PyEnum):
    """Enum for audit log actions."""

    server_changed = "server_changed"
    server_selected = "server_selected"
    usage_reset = "usage_reset"
    order_created = "order_created"
    order_registered = "order_registered"
    payment_verified = "payment_verified"
    payment_completed = "payment_completed"
    callback_received = "callback_received"
    mapping_changed = "mapping_changed"


class AuditLog(Base):
    """Model for audit logs tracking admin and payment actions."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, index=True, nullable=True)
    server_id = Column(Integer, index=True, nullable=True)
    action = Column(Enum(AuditAction), index=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action={self.action})>"
