from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from freshsoda.db import get_db
from freshsoda.deps import Actor, require_auth, require_role, get_data_service
from freshsoda.schemas.stock import AssignStockIn
from freshsoda.services.data import DataService, DataServiceError
from freshsoda.services.stock import StockError, InsufficientStock, assign_stock

router = APIRouter(prefix="/stock", tags=["stock"])

@router.post("/assign")
def assign(body: AssignStockIn, db: Session = Depends(get_db),
           actor: Actor = Depends(require_role("admin"))):
    try:
        return assign_stock(db, body, actor.id)
    except InsufficientStock as e:
        raise HTTPException(409, detail=e.message)
    except StockError as e:
        raise HTTPException(400, detail=e.message)

@router.get("/assigned")
async def assigned(route_id: str, date: date, driver_id: str | None = None,
                   data: DataService = Depends(get_data_service),
                   actor: Actor = Depends(require_auth)):
    """Remaining stock a driver can bill from (route-only rows when no driver)."""
    if not actor.is_admin:
        driver_id = actor.id
    try:
        rows = await data.get_assigned_stock_for_billing(driver_id, route_id, date)
    except DataServiceError as e:
        raise HTTPException(502, detail=e.message)
    return [
        {"product_id": p.id, "product_name": p.name, "box_qty": row.box_qty, "pcs_qty": row.pcs_qty,
         "pcs_per_box": p.pcs_per_box, "box_price": p.box_price, "pcs_price": p.pcs_price}
        for p, row in rows
    ]
