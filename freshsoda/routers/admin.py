from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from freshsoda.db import get_db
from freshsoda.config import settings
from freshsoda.deps import Actor, require_role, get_data_service
from freshsoda.util.security import hash_pw
from freshsoda.models.core import (
    User, UserRole, Product, Route, WarehouseStock, WarehouseMovement, MovementType, LoadOutTrigger,
)
from freshsoda.schemas.loadout import EndRouteApproveIn, LoadOutOut
from freshsoda.services.data import DataService, DataServiceError
from freshsoda.services.loadout import LoadOutFinalizer, LoadOutJournal
from freshsoda.services.summary import build_summary
from freshsoda.routers.loadout import finalize, run_out

router = APIRouter(prefix="/admin", tags=["admin"])

SAMPLE_PRODUCTS = [
    # name, box_price, pcs_price, pcs_per_box, warehouse boxes
    ("Soda-A", 240, 10, 24, 20),
    ("Soda-B", 300, 15, 20, 10),
    ("Lemon 250ml", 288, None, 24, 10),
]

@router.post("/dev-bootstrap")
def dev_bootstrap(db: Session = Depends(get_db)):
    if settings.APP_ENV != "dev":
        raise HTTPException(403, detail="Not allowed")

    admin = db.query(User).filter(User.phone == "9999999999").first()
    if not admin:
        admin = User(name="Admin", phone="9999999999", email="admin@example.com",
                     pass_hash=hash_pw("admin"), role=UserRole.ADMIN)
        db.add(admin); db.flush()

    driver = db.query(User).filter(User.phone == "8888888888").first()
    if not driver:
        driver = User(name="Driver One", phone="8888888888", pass_hash=hash_pw("driver"), role=UserRole.DRIVER)
        db.add(driver); db.flush()

    products = {}
    for name, box_price, pcs_price, ppb, boxes in SAMPLE_PRODUCTS:
        p = db.query(Product).filter(Product.name == name).first()
        if not p:
            p = Product(name=name, price=box_price, box_price=box_price, pcs_price=pcs_price, pcs_per_box=ppb)
            db.add(p); db.flush()
            db.add(WarehouseStock(product_id=p.id, boxes=boxes, pcs=0))
            db.add(WarehouseMovement(product_id=p.id, movement_type=MovementType.IN, boxes=boxes, pcs=0,
                                     note="Opening stock"))
        products[name] = p.id

    route = db.query(Route).filter(Route.name == "North Loop").first()
    if not route:
        route = Route(name="North Loop", description="Sample route")
        db.add(route); db.flush()

    db.commit()
    return {
        "admin_id": admin.id,
        "driver_id": driver.id,
        "route_id": route.id,
        "products": products,
        "admin_login": {"phone": "9999999999", "password": "admin"},
        "driver_login": {"phone": "8888888888", "password": "driver"},
    }

@router.get("/end_route")
async def end_route(driver_id: str, route_id: str, date: date,
                    data: DataService = Depends(get_data_service),
                    actor: Actor = Depends(require_role("admin"))):
    """A driver's pieces still out on the route, before approving their load-out."""
    try:
        rows = await data.get_driver_assigned_stock(driver_id, route_id, date)
    except DataServiceError as e:
        raise HTTPException(502, detail=e.message)
    return {
        "driver_id": driver_id,
        "route_id": route_id,
        "date": date,
        "items": [r.model_dump() for r in rows],
        "total_remaining": sum(r.qty_remaining for r in rows),
    }

@router.post("/end_route/approve", response_model=LoadOutOut)
async def approve_end_route(body: EndRouteApproveIn,
                            db: Session = Depends(get_db),
                            data: DataService = Depends(get_data_service),
                            actor: Actor = Depends(require_role("admin"))):
    try:
        summary = await build_summary(data, body.date, body.route_id, body.driver_id)
    except DataServiceError as e:
        raise HTTPException(502, detail=e.message)
    run = await finalize(LoadOutFinalizer(data, LoadOutJournal(db)), summary, LoadOutTrigger.ADMIN, actor.id)
    return LoadOutOut(ok=True, run=run_out(db, run))
