from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from freshsoda.db import get_db
from freshsoda.deps import Actor, require_auth, require_role
from freshsoda.models.core import Product, Route, WarehouseStock
from freshsoda.schemas.catalog import ProductIn, ProductOut, RouteIn, RouteOut
from freshsoda.services.sql_data import product_out
from freshsoda.util.audit import audit

router = APIRouter(prefix="/catalog", tags=["catalog"])


# ---------- products ----------

@router.get("/products", response_model=list[ProductOut])
def list_products(include_deleted: bool = False, db: Session = Depends(get_db),
                  actor: Actor = Depends(require_auth)):
    q = db.query(Product)
    if not include_deleted:
        q = q.filter(Product.status != "deleted")
    return [product_out(p) for p in q.order_by(Product.name.asc()).all()]

@router.post("/products", response_model=ProductOut)
def create_product(body: ProductIn, db: Session = Depends(get_db),
                   actor: Actor = Depends(require_role("admin"))):
    p = Product(**body.model_dump())
    db.add(p); db.flush()
    # every product gets a warehouse row so stock-in is an update
    db.add(WarehouseStock(product_id=p.id, boxes=0, pcs=0))
    audit(db, actor.id, "product", p.id, "CREATE", after=body.model_dump())
    db.commit(); db.refresh(p)
    return product_out(p)


# ---------- routes ----------

@router.get("/routes", response_model=list[RouteOut])
def list_routes(active_only: bool = True, db: Session = Depends(get_db),
                actor: Actor = Depends(require_auth)):
    q = db.query(Route)
    if active_only:
        q = q.filter(Route.is_active.is_(True))
    return [RouteOut(id=r.id, name=r.name, description=r.description, is_active=r.is_active)
            for r in q.order_by(Route.name.asc()).all()]

@router.post("/routes", response_model=RouteOut)
def create_route(body: RouteIn, db: Session = Depends(get_db),
                 actor: Actor = Depends(require_role("admin"))):
    r = Route(**body.model_dump())
    db.add(r); db.flush()
    audit(db, actor.id, "route", r.id, "CREATE", after=body.model_dump())
    db.commit(); db.refresh(r)
    return RouteOut(id=r.id, name=r.name, description=r.description, is_active=r.is_active)
