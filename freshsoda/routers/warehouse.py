from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from freshsoda.db import get_db
from freshsoda.deps import Actor, require_role, get_data_service
from freshsoda.models.core import Product, WarehouseStock
from freshsoda.schemas.stock import WarehouseStockIn, WarehouseStockOut, MovementOut
from freshsoda.services.data import DataService, DataServiceError
from freshsoda.services.units import to_pieces, product_pcs_per_box

router = APIRouter(prefix="/warehouse", tags=["warehouse"])

@router.get("/stock", response_model=list[WarehouseStockOut])
def warehouse_stock(db: Session = Depends(get_db), actor: Actor = Depends(require_role("admin"))):
    rows = (
        db.query(WarehouseStock, Product)
          .join(Product, Product.id == WarehouseStock.product_id)
          .filter(Product.status != "deleted")
          .order_by(Product.name.asc())
          .all()
    )
    out = []
    for ws, p in rows:
        ppb = product_pcs_per_box(p)
        out.append(WarehouseStockOut(product_id=p.id, product_name=p.name, boxes=ws.boxes, pcs=ws.pcs,
                                     pcs_per_box=ppb, total_pcs=to_pieces(ws.boxes, ws.pcs, ppb)))
    return out

@router.post("/stock")
async def add_stock(body: WarehouseStockIn,
                    data: DataService = Depends(get_data_service),
                    actor: Actor = Depends(require_role("admin"))):
    if body.boxes == 0 and body.pcs == 0:
        raise HTTPException(400, detail="Enter a box or piece quantity")
    try:
        await data.add_warehouse_stock(body.product_id, body.boxes, body.pcs, body.note)
    except DataServiceError as e:
        raise HTTPException(502, detail=e.message)
    return {"ok": True}

@router.get("/movements", response_model=list[MovementOut])
async def movements(product_id: str | None = None, limit: int = 50,
                    data: DataService = Depends(get_data_service),
                    actor: Actor = Depends(require_role("admin"))):
    try:
        return await data.get_warehouse_movements(product_id, min(max(limit, 1), 500))
    except DataServiceError as e:
        raise HTTPException(502, detail=e.message)
