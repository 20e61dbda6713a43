from datetime import date
from pydantic import BaseModel, Field
from typing import Optional, Literal

MovementTypeLiteral = Literal["IN", "ASSIGN", "RETURN", "ADJUST"]

class AssignedStockRow(BaseModel):
    """What is left of one product for a (driver | route, date) scope."""
    product_id: str
    box_qty: int = 0
    pcs_qty: int = 0

class AssignedRemaining(BaseModel):
    # pieces ledger row, as returned by the *_assigned_stock procedures
    product_id: str
    product_name: Optional[str] = None
    qty_assigned: int = 0
    qty_remaining: int = 0

class WarehouseStockIn(BaseModel):
    product_id: str
    boxes: int = Field(default=0, ge=0)
    pcs: int = Field(default=0, ge=0)
    note: Optional[str] = None

class WarehouseStockOut(BaseModel):
    product_id: str
    product_name: str
    boxes: int
    pcs: int
    pcs_per_box: int
    total_pcs: int

class MovementOut(BaseModel):
    id: str
    product_id: str
    movement_type: MovementTypeLiteral
    boxes: int
    pcs: int
    note: Optional[str] = None
    created_at: Optional[str] = None

class AssignItemIn(BaseModel):
    product_id: str
    box_qty: int = Field(default=0, ge=0)
    pcs_qty: int = Field(default=0, ge=0)

class AssignStockIn(BaseModel):
    route_id: str = Field(min_length=1)
    date: date
    driver_id: Optional[str] = None
    items: list[AssignItemIn] = Field(min_length=1)
