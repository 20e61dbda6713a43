from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, DateTime, Date, Integer, JSON, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum as PyEnum
import datetime as dt
from freshsoda.db import Base
from freshsoda.models.common import IdMixin, TSMMixin

# ── Enums ───────────────────────────────────────────────────────────────────
class UserRole(PyEnum):
    ADMIN = "admin"
    DRIVER = "driver"

class MovementType(PyEnum):
    IN = "IN"
    ASSIGN = "ASSIGN"
    RETURN = "RETURN"
    ADJUST = "ADJUST"

class LoadOutTrigger(PyEnum):
    MANUAL = "MANUAL"
    AUTO = "AUTO"
    ADMIN = "ADMIN"

class LoadOutStatus(PyEnum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"      # nothing left to return when the run started

class MarkerStatus(PyEnum):
    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"

# ── Identity ────────────────────────────────────────────────────────────────
class User(Base, IdMixin, TSMMixin):
    __tablename__ = "user"
    name: Mapped[str] = mapped_column(String(160))
    phone: Mapped[str | None] = mapped_column(String(20), unique=True)
    email: Mapped[str | None] = mapped_column(String(160))
    pass_hash: Mapped[str] = mapped_column(String(200))
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.DRIVER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

# ── Catalog ─────────────────────────────────────────────────────────────────
class Product(Base, IdMixin, TSMMixin):
    __tablename__ = "product"
    name: Mapped[str] = mapped_column(String(160))
    price: Mapped[float] = mapped_column(Numeric(10, 2), default=0)  # legacy box price
    box_price: Mapped[float | None] = mapped_column(Numeric(10, 2))
    pcs_price: Mapped[float | None] = mapped_column(Numeric(10, 2))
    pcs_per_box: Mapped[int | None] = mapped_column(Integer)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="active")  # active | deleted

class Route(Base, IdMixin, TSMMixin):
    __tablename__ = "route"
    name: Mapped[str] = mapped_column(String(120))
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

# ── Warehouse ───────────────────────────────────────────────────────────────
class WarehouseStock(Base, IdMixin, TSMMixin):
    __tablename__ = "warehouse_stock"
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("product.id"), unique=True)
    boxes: Mapped[int] = mapped_column(Integer, default=0)
    pcs: Mapped[int] = mapped_column(Integer, default=0)

class WarehouseMovement(Base, IdMixin, TSMMixin):
    __tablename__ = "warehouse_movement"
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("product.id"))
    movement_type: Mapped[MovementType] = mapped_column(Enum(MovementType))
    boxes: Mapped[int] = mapped_column(Integer, default=0)
    pcs: Mapped[int] = mapped_column(Integer, default=0)
    note: Mapped[str | None] = mapped_column(Text)

# ── Assignment ledgers ──────────────────────────────────────────────────────
class DailyStock(Base, IdMixin, TSMMixin):
    """Per driver (or route-only when auth_user_id is NULL) stock list for a day.

    ``stock`` holds ``[{"productId", "boxQty", "pcsQty"}]`` and always shows what
    is left on the truck; sales decrement it, a clear empties it.
    """
    __tablename__ = "daily_stock"
    __table_args__ = (UniqueConstraint("auth_user_id", "route_id", "date", name="daily_stock_unique"),)
    auth_user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("user.id"))
    route_id: Mapped[str] = mapped_column(String(36), ForeignKey("route.id"))
    date: Mapped[dt.date] = mapped_column(Date)
    stock: Mapped[list] = mapped_column(JSON, default=list)
    closed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))

class AssignedStock(Base, IdMixin, TSMMixin):
    __tablename__ = "assigned_stock"
    __table_args__ = (UniqueConstraint("driver_id", "route_id", "date", "product_id", name="assigned_stock_unique"),)
    driver_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("user.id"))
    route_id: Mapped[str] = mapped_column(String(36), ForeignKey("route.id"))
    date: Mapped[dt.date] = mapped_column(Date)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("product.id"))
    qty_assigned: Mapped[int] = mapped_column(Integer, default=0)   # pieces
    qty_remaining: Mapped[int] = mapped_column(Integer, default=0)  # pieces

# ── Sales ───────────────────────────────────────────────────────────────────
class Sale(Base, IdMixin, TSMMixin):
    __tablename__ = "sale"
    route_id: Mapped[str] = mapped_column(String(36), ForeignKey("route.id"))
    date: Mapped[dt.date] = mapped_column(Date)
    auth_user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("user.id"))
    shop_name: Mapped[str | None] = mapped_column(String(200))
    products_sold: Mapped[list] = mapped_column(JSON, default=list)
    total_amount: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    invoice_no: Mapped[str | None] = mapped_column(String(40))

# ── Load-out journal ────────────────────────────────────────────────────────
class LoadOutRun(Base, IdMixin, TSMMixin):
    __tablename__ = "loadout_run"
    driver_id: Mapped[str | None] = mapped_column(String(36))
    route_id: Mapped[str] = mapped_column(String(36))
    work_date: Mapped[dt.date] = mapped_column(Date)
    trigger: Mapped[LoadOutTrigger] = mapped_column(Enum(LoadOutTrigger))
    status: Mapped[LoadOutStatus] = mapped_column(Enum(LoadOutStatus), default=LoadOutStatus.RUNNING)
    current_step: Mapped[str | None] = mapped_column(String(40))
    error: Mapped[str | None] = mapped_column(Text)
    warning: Mapped[str | None] = mapped_column(Text)
    remaining_before: Mapped[int | None] = mapped_column(Integer)
    remaining_after: Mapped[int | None] = mapped_column(Integer)
    actor_user_id: Mapped[str | None] = mapped_column(String(36))
    finished_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))

class LoadOutMarker(Base, IdMixin, TSMMixin):
    __tablename__ = "loadout_marker"
    run_id: Mapped[str] = mapped_column(String(36), ForeignKey("loadout_run.id"))
    step: Mapped[str] = mapped_column(String(40))
    product_id: Mapped[str | None] = mapped_column(String(36))
    boxes: Mapped[int] = mapped_column(Integer, default=0)
    pcs: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[MarkerStatus] = mapped_column(Enum(MarkerStatus), default=MarkerStatus.PENDING)
    detail: Mapped[str | None] = mapped_column(Text)

# ── Audit ───────────────────────────────────────────────────────────────────
class AuditLog(Base, IdMixin, TSMMixin):
    __tablename__ = "audit_log"
    actor_user_id: Mapped[str | None] = mapped_column(String(36))
    entity: Mapped[str] = mapped_column(String(60))
    entity_id: Mapped[str] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(String(60))
    before: Mapped[str | None] = mapped_column(Text)
    after: Mapped[str | None] = mapped_column(Text)
