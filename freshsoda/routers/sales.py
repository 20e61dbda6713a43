from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from freshsoda.db import get_db
from freshsoda.deps import Actor, require_auth, get_data_service
from freshsoda.schemas.sales import SaleIn, SaleOut, SaleRecord
from freshsoda.services.data import DataService, DataServiceError
from freshsoda.services.stock import StockError, InsufficientStock, record_sale

router = APIRouter(prefix="/sales", tags=["sales"])

@router.post("", response_model=SaleOut)
def create_sale(body: SaleIn, db: Session = Depends(get_db), actor: Actor = Depends(require_auth)):
    # an admin billing on a driver's behalf draws from the route-only stock
    driver_id = None if actor.is_admin else actor.id
    try:
        sale = record_sale(db, body, driver_id)
    except InsufficientStock as e:
        raise HTTPException(409, detail=e.message)
    except StockError as e:
        raise HTTPException(400, detail=e.message)
    return SaleOut(id=sale.id, invoice_no=sale.invoice_no, total_amount=float(sale.total_amount))

@router.get("", response_model=list[SaleRecord])
async def list_sales(date: date, route_id: str | None = None,
                     data: DataService = Depends(get_data_service),
                     actor: Actor = Depends(require_auth)):
    try:
        sales = await data.get_sales_for(date, route_id)
    except DataServiceError as e:
        raise HTTPException(502, detail=e.message)
    if not actor.is_admin:
        sales = [s for s in sales if s.driver_id == actor.id]
    return sales
