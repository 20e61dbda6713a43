from datetime import date, datetime
from pydantic import BaseModel
from typing import Optional

class SummaryItem(BaseModel):
    product_id: str
    product_name: str
    start_box: int
    start_pcs: int
    sold_box: int
    sold_pcs: int
    remaining_box: int
    remaining_pcs: int
    box_price: float
    pcs_price: float
    total_revenue: float
    # whose assigned stock the remaining figures come from: "driver" or "route"
    stock_source: Optional[str] = None

class SummaryTotals(BaseModel):
    start_box: int = 0
    start_pcs: int = 0
    sold_box: int = 0
    sold_pcs: int = 0
    remaining_box: int = 0
    remaining_pcs: int = 0

class DaySummary(BaseModel):
    work_date: date
    route_id: str
    driver_id: Optional[str] = None
    items: list[SummaryItem] = []
    totals: SummaryTotals = SummaryTotals()
    grand_total: float = 0.0
    has_assigned_stock: bool = False
    malformed_sales: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.items

class DaySummaryOut(DaySummary):
    no_data: bool = False
    message: Optional[str] = None
    auto_loadout_at: Optional[datetime] = None
