"""Assignment and billing writes against our own ledgers.

Both keep the two ledgers in step: ``daily_stock`` (box/pcs list read by the
summary) and ``assigned_stock`` (pieces, read by the load-out checks).
"""
import logging
from datetime import date

from sqlalchemy.orm import Session

from freshsoda.models.core import (
    AssignedStock, DailyStock, MovementType, Product, Route, Sale, User, WarehouseMovement, WarehouseStock,
)
from freshsoda.schemas.sales import SaleIn
from freshsoda.schemas.stock import AssignStockIn
from freshsoda.services.billing import _money, line_pieces, line_total
from freshsoda.services.units import from_pieces, to_pieces, product_pcs_per_box, product_prices
from freshsoda.util.audit import audit

logger = logging.getLogger(__name__)


class StockError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InsufficientStock(StockError):
    pass


def _daily_row(db: Session, driver_id: str | None, route_id: str, work_date: date) -> DailyStock | None:
    q = db.query(DailyStock).filter(DailyStock.route_id == route_id, DailyStock.date == work_date)
    if driver_id is None:
        q = q.filter(DailyStock.auth_user_id.is_(None))
    else:
        q = q.filter(DailyStock.auth_user_id == driver_id)
    return q.first()


def _ledger_row(db: Session, driver_id: str | None, route_id: str, work_date: date, product_id: str):
    q = db.query(AssignedStock).filter(
        AssignedStock.route_id == route_id, AssignedStock.date == work_date, AssignedStock.product_id == product_id,
    )
    if driver_id is None:
        q = q.filter(AssignedStock.driver_id.is_(None))
    else:
        q = q.filter(AssignedStock.driver_id == driver_id)
    return q.first()


def _set_stock_item(stock: list, product_id: str, total_pcs: int, ppb: int) -> list:
    boxes, pcs = from_pieces(max(0, total_pcs), ppb)
    out = [dict(i) for i in stock if i.get("productId") != product_id]
    out.append({"productId": product_id, "boxQty": boxes, "pcsQty": pcs})
    return out


def _stock_item_pcs(stock: list, product_id: str, ppb: int) -> int:
    for i in stock:
        if i.get("productId") == product_id:
            return to_pieces(i.get("boxQty") or 0, i.get("pcsQty") or 0, ppb)
    return 0


def assign_stock(db: Session, body: AssignStockIn, actor_user_id: str | None = None) -> dict:
    """Move stock from the warehouse onto a route (optionally a driver) for a day.

    Everything is validated before the first write; one commit at the end.
    """
    if not db.get(Route, body.route_id):
        raise StockError("Please select a route")
    if body.driver_id and not db.get(User, body.driver_id):
        raise StockError("Unknown driver")

    # the same product may be listed more than once
    wanted: dict[str, list[int]] = {}
    for item in body.items:
        boxes_pcs = wanted.setdefault(item.product_id, [0, 0])
        boxes_pcs[0] += item.box_qty
        boxes_pcs[1] += item.pcs_qty

    plan = []
    for product_id, (box_qty, pcs_qty) in wanted.items():
        product = db.get(Product, product_id)
        if not product or product.status == "deleted":
            raise StockError(f"Unknown product: {product_id}")
        ppb = product_pcs_per_box(product)
        pieces = to_pieces(box_qty, pcs_qty, ppb)
        if pieces <= 0:
            continue
        ws = db.query(WarehouseStock).filter(WarehouseStock.product_id == product.id).first()
        available = to_pieces(ws.boxes, ws.pcs, ppb) if ws else 0
        if pieces > available:
            raise InsufficientStock(f"Not enough {product.name} in the warehouse ({available} pcs available)")
        plan.append((product, ppb, pieces, ws, box_qty, pcs_qty))
    if not plan:
        raise StockError("Nothing to assign")

    row = _daily_row(db, body.driver_id, body.route_id, body.date)
    if not row:
        row = DailyStock(auth_user_id=body.driver_id, route_id=body.route_id, date=body.date, stock=[])
        db.add(row)
    stock = list(row.stock or [])

    for product, ppb, pieces, ws, box_qty, pcs_qty in plan:
        ws.boxes, ws.pcs = from_pieces(to_pieces(ws.boxes, ws.pcs, ppb) - pieces, ppb)
        db.add(WarehouseMovement(product_id=product.id, movement_type=MovementType.ASSIGN,
                                 boxes=box_qty, pcs=pcs_qty,
                                 note=f"Assigned to route {body.route_id} for {body.date.isoformat()}"))
        stock = _set_stock_item(stock, product.id, _stock_item_pcs(stock, product.id, ppb) + pieces, ppb)

        led = _ledger_row(db, body.driver_id, body.route_id, body.date, product.id)
        if led:
            led.qty_assigned += pieces
            led.qty_remaining += pieces
        else:
            db.add(AssignedStock(driver_id=body.driver_id, route_id=body.route_id, date=body.date,
                                 product_id=product.id, qty_assigned=pieces, qty_remaining=pieces))
    row.stock = stock
    row.closed_at = None
    db.flush()
    audit(db, actor_user_id, "daily_stock", row.id, "ASSIGN", after={"items": [i.model_dump() for i in body.items]})
    db.commit()
    logger.info("assigned %d product(s) route=%s date=%s driver=%s", len(plan), body.route_id, body.date, body.driver_id)
    return {"daily_stock_id": row.id, "products": len(plan)}


def record_sale(db: Session, body: SaleIn, driver_id: str | None) -> Sale:
    """Bill a shop from the driver's stock (or the route's, if the driver has none)."""
    scope_driver = driver_id
    row = _daily_row(db, driver_id, body.route_id, body.date) if driver_id else None
    if not row:
        scope_driver = None
        row = _daily_row(db, None, body.route_id, body.date)
    if not row or not row.stock:
        raise StockError("No stock assigned for this route and day")

    stock = list(row.stock)
    lines_out = []
    total = 0.0
    for line in body.lines:
        product = db.get(Product, line.product_id)
        if not product:
            raise StockError(f"Unknown product: {line.product_id}")
        ppb = product_pcs_per_box(product)
        box_price, pcs_price = product_prices(product, ppb)
        pieces = line_pieces(line.unit, line.quantity, ppb)

        on_truck = _stock_item_pcs(stock, product.id, ppb)
        led = _ledger_row(db, scope_driver, body.route_id, body.date, product.id)
        if pieces > on_truck or not led or pieces > led.qty_remaining:
            raise InsufficientStock(f"Sale qty exceeds remaining for {product.name}")
        stock = _set_stock_item(stock, product.id, on_truck - pieces, ppb)
        led.qty_remaining -= pieces

        amount = _money(line_total(line.unit, line.quantity, price=line.price,
                                   box_price=box_price, pcs_price=pcs_price))
        total += amount
        lines_out.append({
            "productId": product.id, "productName": product.name, "unit": line.unit,
            "quantity": line.quantity,
            "price": line.price if line.price is not None else (box_price if line.unit == "box" else pcs_price),
            "total": amount,
        })

    row.stock = stock
    count = db.query(Sale).filter(Sale.date == body.date).count()
    sale = Sale(route_id=body.route_id, date=body.date, auth_user_id=driver_id, shop_name=body.shop_name,
                products_sold=lines_out, total_amount=_money(total),
                invoice_no=f"INV-{body.date:%Y%m%d}-{count + 1:04d}")
    db.add(sale)
    db.flush()
    audit(db, driver_id, "sale", sale.id, "CREATE", after={"total": sale.total_amount, "lines": len(lines_out)})
    db.commit()
    logger.info("sale %s route=%s date=%s total=%.2f", sale.invoice_no, body.route_id, body.date, sale.total_amount)
    return sale
