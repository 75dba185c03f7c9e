"""
Product mapping routes

Maps a local product id to the product id used on the proxy side. Mapped
ids are sent along with order line items at registration.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_order_store
from api.schemas import ProductMappingIn, ProductMappingOut
from payments.order_store import OrderStore

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/{product_id}", response_model=ProductMappingOut)
def get_mapping(product_id: int, orders: OrderStore = Depends(get_order_store)):
    mapped_id = orders.get_product_mapping(product_id)
    if mapped_id is None:
        raise HTTPException(status_code=404, detail="Mapping not found")
    return ProductMappingOut(product_id=product_id, mapped_product_id=mapped_id)


@router.put("/{product_id}", response_model=ProductMappingOut)
def set_mapping(
    product_id: int,
    data: ProductMappingIn,
    orders: OrderStore = Depends(get_order_store),
):
    if product_id <= 0:
        raise HTTPException(status_code=422, detail="Invalid product id")
    mapping = orders.set_product_mapping(product_id, data.mapped_product_id)
    log.info(
        "product_mapping.updated",
        product_id=product_id,
        mapped_product_id=mapping.mapped_product_id,
    )
    return mapping


@router.delete("/{product_id}", status_code=204)
def delete_mapping(product_id: int, orders: OrderStore = Depends(get_order_store)):
    if not orders.delete_product_mapping(product_id):
        raise HTTPException(status_code=404, detail="Mapping not found")
