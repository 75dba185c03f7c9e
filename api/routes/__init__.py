"""
API Routes Package

This module consolidates all API routes for the PayPal proxy client.
"""

from fastapi import APIRouter

from . import mappings
from . import orders
from . import payments
from . import servers

# Create main router
router = APIRouter()

# Include all route modules
router.include_router(servers.router, prefix="/servers", tags=["servers"])
router.include_router(orders.router, prefix="/orders", tags=["orders"])
router.include_router(payments.router, prefix="/paypal", tags=["paypal"])
router.include_router(
    mappings.router, prefix="/product-mappings", tags=["product-mappings"]
)

# Export for use in main application
__all__ = ["router"]
