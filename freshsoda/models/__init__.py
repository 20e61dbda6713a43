# Importing the module registers tables with Base for create_all()
from .core import (  # noqa: F401
    # Enums
    UserRole, MovementType, LoadOutTrigger, LoadOutStatus, MarkerStatus,

    # Identity
    User,

    # Catalog
    Product, Route,

    # Warehouse
    WarehouseStock, WarehouseMovement,

    # Assignment ledgers & sales
    DailyStock, AssignedStock, Sale,

    # Load-out journal & audit
    LoadOutRun, LoadOutMarker, AuditLog,
)

__all__ = [
    "UserRole", "MovementType", "LoadOutTrigger", "LoadOutStatus", "MarkerStatus",
    "User",
    "Product", "Route",
    "WarehouseStock", "WarehouseMovement",
    "DailyStock", "AssignedStock", "Sale",
    "LoadOutRun", "LoadOutMarker", "AuditLog",
]

all_models = True
