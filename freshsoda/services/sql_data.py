import logging
from datetime import date, datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from freshsoda.models.core import (
    Product, Route, Sale, DailyStock, AssignedStock, WarehouseStock, WarehouseMovement, MovementType,
)
from freshsoda.schemas.catalog import ProductOut, RouteOption
from freshsoda.schemas.stock import AssignedStockRow, AssignedRemaining, MovementOut
from freshsoda.services.data import DataService, DataServiceError
from freshsoda.services.sales_payload import sale_record

logger = logging.getLogger(__name__)


def product_out(p: Product) -> ProductOut:
    return ProductOut(
        id=p.id,
        name=p.name,
        price=float(p.price or 0),
        box_price=float(p.box_price) if p.box_price is not None else None,
        pcs_price=float(p.pcs_price) if p.pcs_price is not None else None,
        pcs_per_box=p.pcs_per_box,
        description=p.description,
        status=p.status,
    )


def merge_stock_lists(lists) -> list[dict]:
    """Sum ``daily_stock.stock`` lists item-wise by product."""
    merged: dict[str, dict] = {}
    for stock in lists:
        for item in stock or []:
            pid = item.get("productId")
            if not pid:
                continue
            cur = merged.setdefault(pid, {"productId": pid, "boxQty": 0, "pcsQty": 0})
            cur["boxQty"] += int(item.get("boxQty") or 0)
            cur["pcsQty"] += int(item.get("pcsQty") or 0)
    return list(merged.values())


class SqlDataService(DataService):
    """Ledgers kept in our own database.

    The ``fn_*`` procedures of the hosted backend are plain methods here, each
    committing on its own; there is no transaction spanning two calls.
    """

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, what: str, e: Exception):
        self.db.rollback()
        logger.error("%s failed: %s", what, e)
        raise DataServiceError(f"Failed to {what}. Please try again.") from e

    async def get_products(self) -> list[ProductOut]:
        try:
            rows = (
                self.db.query(Product)
                .filter(Product.status != "deleted")
                .order_by(Product.name.asc())
                .all()
            )
        except SQLAlchemyError as e:
            self._fail("load products", e)
        return [product_out(p) for p in rows]

    async def get_active_routes(self) -> list[RouteOption]:
        try:
            rows = self.db.query(Route).filter(Route.is_active.is_(True)).order_by(Route.name.asc()).all()
        except SQLAlchemyError as e:
            self._fail("load routes", e)
        return [RouteOption(id=r.id, name=r.name) for r in rows]

    async def get_sales_for(self, work_date: date, route_id: str | None = None):
        try:
            q = self.db.query(Sale).filter(Sale.date == work_date)
            if route_id:
                q = q.filter(Sale.route_id == route_id)
            rows = q.order_by(Sale.created_at.desc()).all()
        except SQLAlchemyError as e:
            self._fail("load sales", e)
        return [
            sale_record({
                "id": s.id, "route_id": s.route_id, "date": s.date, "auth_user_id": s.auth_user_id,
                "shop_name": s.shop_name, "products_sold": s.products_sold, "total_amount": s.total_amount,
            })
            for s in rows
        ]

    async def get_assigned_stock_for_billing(self, driver_id, route_id, work_date):
        try:
            q = self.db.query(DailyStock).filter(DailyStock.route_id == route_id, DailyStock.date == work_date)
            if driver_id is None:
                q = q.filter(DailyStock.auth_user_id.is_(None))
            else:
                q = q.filter(DailyStock.auth_user_id == driver_id)
            stock = merge_stock_lists(r.stock for r in q.all())
            if not stock:
                return []
            products = {p.id: p for p in self.db.query(Product).filter(Product.id.in_([i["productId"] for i in stock]))}
        except SQLAlchemyError as e:
            self._fail("load assigned stock", e)

        out = []
        for item in stock:
            p = products.get(item["productId"])
            if not p:
                continue
            out.append((product_out(p), AssignedStockRow(product_id=p.id, box_qty=item["boxQty"], pcs_qty=item["pcsQty"])))
        return out

    async def add_warehouse_stock(self, product_id, boxes, pcs, note=None, movement_type="IN"):
        if boxes < 0 or pcs < 0:
            raise DataServiceError("Cannot add negative stock")
        try:
            if not self.db.get(Product, product_id):
                raise DataServiceError("Product not found")
            ws = self.db.query(WarehouseStock).filter(WarehouseStock.product_id == product_id).first()
            if ws:
                ws.boxes = (ws.boxes or 0) + boxes
                ws.pcs = (ws.pcs or 0) + pcs
            else:
                self.db.add(WarehouseStock(product_id=product_id, boxes=boxes, pcs=pcs))
            self.db.add(WarehouseMovement(
                product_id=product_id, movement_type=MovementType(movement_type),
                boxes=boxes, pcs=pcs, note=note,
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("add stock", e)

    def _zero_remaining(self, driver_id, route_id, work_date):
        q = self.db.query(AssignedStock).filter(AssignedStock.route_id == route_id, AssignedStock.date == work_date)
        if driver_id is None:
            q = q.filter(AssignedStock.driver_id.is_(None))
        else:
            q = q.filter(AssignedStock.driver_id == driver_id)
        n = 0
        for row in q.all():
            if row.qty_remaining:
                n += 1
            row.qty_remaining = 0
        self.db.commit()
        return n

    # fn_end_route_return_stock: the warehouse is credited by the caller's
    # increments, this only closes the pieces ledger
    async def end_route_return_stock_rpc(self, driver_id, route_id, work_date):
        try:
            n = self._zero_remaining(driver_id, route_id, work_date)
        except SQLAlchemyError as e:
            self._fail("return stock to warehouse", e)
        logger.info("fn_end_route_return_stock driver=%s route=%s date=%s rows=%d", driver_id, route_id, work_date, n)

    async def end_route_return_stock_route_rpc(self, route_id, work_date):
        try:
            n = self._zero_remaining(None, route_id, work_date)
        except SQLAlchemyError as e:
            self._fail("return stock to warehouse", e)
        logger.info("fn_end_route_return_stock_route route=%s date=%s rows=%d", route_id, work_date, n)

    async def clear_daily_stock(self, driver_id, route_id, work_date):
        try:
            q = self.db.query(DailyStock).filter(DailyStock.route_id == route_id, DailyStock.date == work_date)
            if driver_id:
                q = q.filter(DailyStock.auth_user_id == driver_id)
            now = datetime.now(timezone.utc)
            for row in q.all():
                row.stock = []
                row.closed_at = now
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("update route status", e)

    def _assigned(self, driver_id, route_id, work_date) -> list[AssignedRemaining]:
        q = (
            self.db.query(AssignedStock, Product.name)
            .join(Product, Product.id == AssignedStock.product_id)
            .filter(AssignedStock.route_id == route_id, AssignedStock.date == work_date)
        )
        if driver_id is None:
            q = q.filter(AssignedStock.driver_id.is_(None))
        else:
            q = q.filter(AssignedStock.driver_id == driver_id)
        return [
            AssignedRemaining(product_id=a.product_id, product_name=name,
                              qty_assigned=a.qty_assigned, qty_remaining=a.qty_remaining)
            for a, name in q.order_by(Product.name.asc()).all()
        ]

    async def get_route_assigned_stock(self, route_id, work_date):
        try:
            return self._assigned(None, route_id, work_date)
        except SQLAlchemyError as e:
            self._fail("fetch assigned stock", e)

    async def get_driver_assigned_stock(self, driver_id, route_id, work_date):
        try:
            return self._assigned(driver_id, route_id, work_date)
        except SQLAlchemyError as e:
            self._fail("fetch assigned stock", e)

    async def get_warehouse_movements(self, product_id=None, limit=50):
        try:
            q = self.db.query(WarehouseMovement)
            if product_id:
                q = q.filter(WarehouseMovement.product_id == product_id)
            rows = q.order_by(WarehouseMovement.created_at.desc()).limit(limit).all()
        except SQLAlchemyError as e:
            self._fail("fetch warehouse movements", e)
        return [
            MovementOut(
                id=m.id, product_id=m.product_id, movement_type=m.movement_type.value,
                boxes=m.boxes, pcs=m.pcs, note=m.note,
                created_at=m.created_at.isoformat() if m.created_at else None,
            )
            for m in rows
        ]
