"""
FastAPI providers for the routing and payment services.

Each request gets its own registry, order store and orchestrator bound to the
request's session; nothing is shared in-process between requests.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from core.dependencies import get_settings
from core.settings import Settings
from db.session import get_db
from payments.order_store import OrderStore
from payments.orchestrator import PaymentFlowOrchestrator
from proxies.registry import ServerRegistry


def get_registry(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> ServerRegistry:
    return ServerRegistry.from_settings(db, settings)


def get_order_store(db: Session = Depends(get_db)) -> OrderStore:
    return OrderStore(db)


def get_orchestrator(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> PaymentFlowOrchestrator:
    return PaymentFlowOrchestrator.from_session(db, settings)
