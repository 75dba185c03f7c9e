"""
Proxy Server Registry

Owns the configured proxy servers and their usage counters. Selection and
lookup never touch usage; the only accumulator is ``record_usage``, which the
payment flow calls once per registered order.

All writes that span the whole table (pinning, unpinning, self-healing) run
in one transaction after locking the rows, and the increment in
``record_usage`` is evaluated by the store so concurrent registrations
against the same server cannot lose updates.
"""

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

import structlog
from sqlalchemy import Float, cast, func, select, update
from sqlalchemy.orm import Session

from core.errors import LastServerError, NotFoundError, ValidationError
from core.logging import BusinessEvents
from core.metrics import server_usage_ratio, usage_recorded
from core.settings import Settings
from db.models import ProxyServer

log = structlog.get_logger(__name__)

# Columns an admin may write through create/update
EDITABLE_FIELDS = (
    "name",
    "url",
    "api_key",
    "api_secret",
    "capacity_limit",
    "is_active",
    "priority",
)
REQUIRED_FIELDS = ("name", "url", "api_key", "api_secret")


class ServerRegistry:
    """Load-balancing registry over the ``proxy_servers`` table."""

    def __init__(
        self, db: Session, default_capacity_limit: int = 1000, auto_select: bool = True
    ):
        self.db = db
        self.default_capacity_limit = default_capacity_limit
        # When off, an unpinned registry balances by capacity instead of healing
        self.auto_select = auto_select

    @classmethod
    def from_settings(cls, db: Session, settings: Settings) -> "ServerRegistry":
        return cls(
            db,
            default_capacity_limit=settings.DEFAULT_CAPACITY_LIMIT,
            auto_select=settings.AUTO_SELECT_SERVER,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, server_id: int) -> Optional[ProxyServer]:
        if not server_id:
            return None
        return self.db.get(ProxyServer, server_id)

    def list_all(self) -> List[ProxyServer]:
        stmt = select(ProxyServer).order_by(
            ProxyServer.priority.asc(), ProxyServer.id.asc()
        )
        return list(self.db.execute(stmt).scalars().all())

    def count(self) -> int:
        return self.db.execute(select(func.count(ProxyServer.id))).scalar_one()

    def get_selected(self) -> Optional[ProxyServer]:
        """Return the pinned server, if any. Never writes."""
        stmt = select(ProxyServer).where(ProxyServer.is_selected.is_(True)).limit(1)
        return self.db.execute(stmt).scalars().first()

    # ------------------------------------------------------------------
    # Pinning
    # ------------------------------------------------------------------

    def _lock_rows(self) -> None:
        # FOR UPDATE serializes concurrent pin changes; SQLite ignores it
        # and serializes writers on its own.
        self.db.execute(select(ProxyServer.id).with_for_update()).all()

    def _pin(self, server_id: int) -> None:
        self.db.execute(update(ProxyServer).values(is_selected=False))
        self.db.execute(
            update(ProxyServer)
            .where(ProxyServer.id == server_id)
            .values(is_selected=True)
        )

    def set_selected(self, server_id: int) -> ProxyServer:
        """Pin ``server_id``: clear every row, then set one, in one transaction."""
        try:
            self._lock_rows()
            server = self.db.get(ProxyServer, server_id)
            if server is None:
                raise NotFoundError(f"Proxy server {server_id} not found")
            self._pin(server_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(server)
        log.info(BusinessEvents.SERVER_PINNED, server_id=server_id)
        return server

    def clear_selected(self) -> None:
        """Unpin every server so automatic balancing takes over."""
        try:
            self._lock_rows()
            self.db.execute(update(ProxyServer).values(is_selected=False))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.expire_all()
        log.info(BusinessEvents.SERVER_UNPINNED)

    def _first_active(self) -> Optional[ProxyServer]:
        stmt = (
            select(ProxyServer)
            .where(ProxyServer.is_active.is_(True))
            .order_by(ProxyServer.priority.asc(), ProxyServer.id.asc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def _lowest_id(self) -> Optional[ProxyServer]:
        stmt = select(ProxyServer).order_by(ProxyServer.id.asc()).limit(1)
        return self.db.execute(stmt).scalars().first()

    def ensure_selection(self) -> Optional[ProxyServer]:
        """Self-heal a missing pin.

        When no server is pinned, pin the first active server by
        (priority, id), or failing that the lowest id. Returns the pinned
        server, or None for an empty registry. Routing calls it once before
        choosing when ``auto_select`` is on; startup and server deletion call
        it directly.
        """
        selected = self.get_selected()
        if selected is not None:
            return selected

        try:
            self._lock_rows()
            # Another request may have healed it while we waited for the lock
            selected = self.get_selected()
            if selected is None:
                selected = self._first_active() or self._lowest_id()
                if selected is None:
                    self.db.rollback()
                    return None
                self._pin(selected.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(selected)
        log.info(BusinessEvents.SELECTION_HEALED, server_id=selected.id)
        return selected

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def select_for_routing(self) -> Optional[ProxyServer]:
        """Pick a server for an order that has no binding yet.

        The first rule that yields a server wins:

        1. the pinned server, whatever its capacity or active flag. With
           ``auto_select`` on, a missing pin is healed first, so this rule
           always yields on a non-empty registry;
        2. active servers with headroom, by (priority, last_used, id),
           never-used servers first;
        3. active servers by usage ratio, then (priority, id);
        4. active servers by (priority, id);
        5. any server by id;
        6. None when the registry is empty.
        """
        pinned = self.ensure_selection() if self.auto_select else self.get_selected()
        if pinned is not None:
            return self._routed(pinned, "pinned")

        active = ProxyServer.is_active.is_(True)

        server = self.db.execute(
            select(ProxyServer)
            .where(active, ProxyServer.current_usage < ProxyServer.capacity_limit)
            .order_by(
                ProxyServer.priority.asc(),
                ProxyServer.last_used.asc().nulls_first(),
                ProxyServer.id.asc(),
            )
            .limit(1)
        ).scalars().first()
        if server is not None:
            return self._routed(server, "headroom")

        usage_ratio = cast(ProxyServer.current_usage, Float) / cast(
            ProxyServer.capacity_limit, Float
        )
        server = self.db.execute(
            select(ProxyServer)
            .where(active, ProxyServer.capacity_limit > 0)
            .order_by(
                usage_ratio.asc(), ProxyServer.priority.asc(), ProxyServer.id.asc()
            )
            .limit(1)
        ).scalars().first()
        if server is not None:
            return self._routed(server, "least_saturated")

        server = self._first_active()
        if server is not None:
            return self._routed(server, "active")

        server = self._lowest_id()
        if server is not None:
            return self._routed(server, "last_resort")

        return None

    def _routed(self, server: ProxyServer, tier: str) -> ProxyServer:
        log.info(
            BusinessEvents.SERVER_SELECTED,
            server_id=server.id,
            tier=tier,
            usage=float(server.current_usage or 0),
            capacity=server.capacity_limit,
        )
        return server

    # ------------------------------------------------------------------
    # Usage accounting
    # ------------------------------------------------------------------

    def record_usage(self, server_id: int, amount: Any) -> bool:
        """Add ``amount`` to the server's usage and stamp ``last_used``.

        Returns False without writing when the amount is not positive or the
        server does not exist.
        """
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            return False
        if not server_id or not amount.is_finite() or amount <= 0:
            return False

        try:
            result = self.db.execute(
                update(ProxyServer)
                .where(ProxyServer.id == server_id)
                .values(
                    current_usage=ProxyServer.current_usage + amount,
                    last_used=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if result.rowcount != 1:
            return False

        server = self.db.get(ProxyServer, server_id)
        self.db.refresh(server)
        usage_recorded.labels(server_id=str(server_id)).inc(float(amount))
        server_usage_ratio.labels(server_id=str(server_id)).set(server.usage_ratio)
        log.info(
            BusinessEvents.USAGE_RECORDED,
            server_id=server_id,
            amount=float(amount),
            current_usage=float(server.current_usage),
        )
        return True

    def reset_usage(self, server_id: int) -> bool:
        try:
            result = self.db.execute(
                update(ProxyServer)
                .where(ProxyServer.id == server_id)
                .values(current_usage=Decimal("0"))
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if result.rowcount != 1:
            return False
        self.db.expire_all()
        server_usage_ratio.labels(server_id=str(server_id)).set(0)
        log.info(BusinessEvents.USAGE_RESET, server_id=server_id)
        return True

    # ------------------------------------------------------------------
    # Admin CRUD
    # ------------------------------------------------------------------

    def _clean_fields(self, fields: dict, partial: bool) -> dict:
        data = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS and v is not None}
        if not partial:
            missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
            if missing:
                raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        for key in REQUIRED_FIELDS:
            if key in data and not str(data[key]).strip():
                raise ValidationError(f"{key} must not be empty")
        if "capacity_limit" in data and int(data["capacity_limit"]) <= 0:
            raise ValidationError("capacity_limit must be positive")
        return data

    def create(self, **fields) -> ProxyServer:
        """Add a server. New servers are never pinned."""
        data = self._clean_fields(fields, partial=False)
        data.setdefault("capacity_limit", self.default_capacity_limit)
        server = ProxyServer(
            **data, current_usage=Decimal("0"), is_selected=False
        )
        self.db.add(server)
        self.db.commit()
        self.db.refresh(server)
        log.info("proxy.server_created", server_id=server.id, name=server.name)
        return server

    def update(self, server_id: int, **fields) -> ProxyServer:
        """Edit a server; pin state and usage are left alone."""
        server = self.get_by_id(server_id)
        if server is None:
            raise NotFoundError(f"Proxy server {server_id} not found")
        for key, value in self._clean_fields(fields, partial=True).items():
            setattr(server, key, value)
        self.db.commit()
        self.db.refresh(server)
        log.info("proxy.server_updated", server_id=server.id)
        return server

    def delete(self, server_id: int) -> None:
        """Delete a server; the registry always keeps at least one row.

        Deleting the pinned server re-pins another one.
        """
        server = self.get_by_id(server_id)
        if server is None:
            raise NotFoundError(f"Proxy server {server_id} not found")
        if self.count() <= 1:
            raise LastServerError(
                "Cannot delete the last server. At least one server must exist."
            )

        was_selected = bool(server.is_selected)
        self.db.delete(server)
        self.db.commit()
        log.info(
            BusinessEvents.SERVER_DELETED, server_id=server_id, was_selected=was_selected
        )

        if was_selected:
            self.ensure_selection()

    def seed_default(self, settings: Settings) -> Optional[ProxyServer]:
        """Synthesize one server row from the legacy flat options.

        Only runs against an empty table and only when a URL and API key are
        configured.
        """
        if self.count() > 0 or not settings.has_legacy_server:
            return None

        server = ProxyServer(
            name="Default Server",
            url=settings.LEGACY_PROXY_URL,
            api_key=settings.LEGACY_API_KEY,
            api_secret=settings.LEGACY_API_SECRET,
            capacity_limit=self.default_capacity_limit,
            current_usage=Decimal("0"),
            is_active=True,
            is_selected=True,
            priority=0,
        )
        self.db.add(server)
        self.db.commit()
        self.db.refresh(server)
        log.info(BusinessEvents.SERVER_SEEDED, server_id=server.id, url=server.url)
        return server
