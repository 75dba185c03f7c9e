"""
Order Store

Thin persistence wrapper over the ``orders`` table. The payment flow only
reads order totals and items and writes status, notes, PayPal identifiers
and the proxy server binding.
"""

from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from core.errors import ValidationError
from db.models import Order, OrderItem, OrderStatus, ProductMapping

log = structlog.get_logger(__name__)


class OrderStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: int) -> Optional[Order]:
        if not order_id:
            return None
        return self.db.get(Order, order_id)

    def create(
        self,
        *,
        order_key: str,
        currency: str,
        customer_email: str = "",
        customer_first_name: str = "",
        customer_last_name: str = "",
        items: list[dict[str, Any]],
        total: Optional[Decimal] = None,
    ) -> Order:
        """Create an order from line items; the total defaults to their sum."""
        if not items:
            raise ValidationError("An order needs at least one item")

        order = Order(
            order_key=order_key,
            currency=currency.upper(),
            customer_email=customer_email,
            customer_first_name=customer_first_name,
            customer_last_name=customer_last_name,
            status=OrderStatus.created,
            notes=[],
        )
        line_sum = Decimal("0")
        for item in items:
            quantity = int(item.get("quantity", 1))
            price = Decimal(str(item["price"]))
            line_total = Decimal(str(item.get("line_total", price * quantity)))
            line_sum += line_total
            order.items.append(
                OrderItem(
                    product_id=int(item.get("product_id", 0)),
                    name=item["name"],
                    quantity=quantity,
                    price=price,
                    line_total=line_total,
                    sku=item.get("sku", ""),
                )
            )
        order.total = Decimal(str(total)) if total is not None else line_sum
        if order.total <= 0:
            raise ValidationError("Order total must be positive")

        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def set_server_id(self, order: Order, server_id: int) -> None:
        order.proxy_server_id = server_id
        self.db.commit()

    def claim_server(self, order: Order, server_id: int) -> bool:
        """Bind ``server_id`` only if nobody rebound the order since it was read.

        The condition is evaluated by the store against the binding this
        session saw, so of two concurrent claims exactly one changes the row.
        The order is refreshed either way; after a lost claim it carries the
        winner's binding.
        """
        expected = order.proxy_server_id
        current = (
            Order.proxy_server_id.is_(None)
            if expected is None
            else Order.proxy_server_id == expected
        )
        try:
            result = self.db.execute(
                update(Order)
                .where(Order.id == order.id, current)
                .values(proxy_server_id=server_id)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(order)
        return result.rowcount == 1

    def transition(
        self, order: Order, status: OrderStatus, note: Optional[str] = None, **fields
    ) -> Order:
        """Persist a status change together with optional fields and a note."""
        order.status = status
        for key, value in fields.items():
            setattr(order, key, value)
        if note:
            order.add_note(note)
        self.db.commit()
        self.db.refresh(order)
        log.info("order.status_changed", order_id=order.id, status=status.value)
        return order

    def get_product_mapping(self, product_id: int) -> Optional[int]:
        if not product_id:
            return None
        mapping = self.db.execute(
            select(ProductMapping).where(ProductMapping.product_id == product_id)
        ).scalars().first()
        return mapping.mapped_product_id if mapping else None

    def set_product_mapping(self, product_id: int, mapped_product_id: int) -> ProductMapping:
        mapping = self.db.get(ProductMapping, product_id)
        if mapping is None:
            mapping = ProductMapping(product_id=product_id)
            self.db.add(mapping)
        mapping.mapped_product_id = mapped_product_id
        self.db.commit()
        self.db.refresh(mapping)
        return mapping

    def delete_product_mapping(self, product_id: int) -> bool:
        mapping = self.db.get(ProductMapping, product_id)
        if mapping is None:
            return False
        self.db.delete(mapping)
        self.db.commit()
        return True
