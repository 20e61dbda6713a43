"""Day summary: what a route (or one driver on it) started with, sold and has left.

Start stock is never read from anywhere. It is derived as
``remaining + sold`` in pieces and then split back into boxes and pieces.
"""
import asyncio
import logging
from datetime import date

from freshsoda.schemas.summary import DaySummary, SummaryItem, SummaryTotals
from freshsoda.services.billing import _money, line_total
from freshsoda.services.data import DataService
from freshsoda.services.units import from_pieces, to_pieces, product_pcs_per_box, product_prices

logger = logging.getLogger(__name__)


def merge_assigned(results, driver_id: str | None):
    """Fold assigned-stock result sets into ``{product_id: (row, source)}``.

    When a driver is known ``results[0]`` is the driver's own stock and wins
    over route-only rows for the same product; otherwise the first row seen
    for a product is kept. ``source`` is ``"driver"`` or ``"route"``.
    """
    stock = {}
    has_stock = False
    for index, rows in enumerate(results):
        is_driver_stock = bool(driver_id) and index == 0
        for product, row in rows:
            if product.id not in stock or is_driver_stock:
                stock[product.id] = (row, "driver" if is_driver_stock else "route")
            if row.box_qty > 0 or row.pcs_qty > 0:
                has_stock = True
    return stock, has_stock


def summarize(products, sales, stock: dict) -> list[SummaryItem]:
    items: list[SummaryItem] = []
    for product in products:
        ppb = product_pcs_per_box(product)
        box_price, pcs_price = product_prices(product, ppb)

        row, source = stock.get(product.id, (None, None))
        remaining_box = row.box_qty if row else 0
        remaining_pcs = row.pcs_qty if row else 0
        remaining_total = to_pieces(remaining_box, remaining_pcs, ppb)

        sold_box = sold_pcs = 0
        revenue = 0.0
        for sale in sales:
            for line in sale.items:
                if line.product_id != product.id:
                    continue
                if line.unit == "box":
                    sold_box += line.quantity
                else:
                    sold_pcs += line.quantity
                revenue += line_total(line.unit, line.quantity, total=line.total, price=line.price,
                                      box_price=box_price, pcs_price=pcs_price)
        sold_total = to_pieces(sold_box, sold_pcs, ppb)

        start_total = remaining_total + sold_total
        if start_total <= 0 and sold_total <= 0:
            continue
        start_box, start_pcs = from_pieces(start_total, ppb)
        items.append(SummaryItem(
            product_id=product.id,
            product_name=product.name,
            start_box=start_box,
            start_pcs=start_pcs,
            sold_box=sold_box,
            sold_pcs=sold_pcs,
            remaining_box=remaining_box,
            remaining_pcs=remaining_pcs,
            box_price=_money(box_price),
            pcs_price=_money(pcs_price),
            total_revenue=_money(revenue),
            stock_source=source,
        ))
    return items


def totals_of(items: list[SummaryItem]) -> SummaryTotals:
    t = SummaryTotals()
    for it in items:
        t.start_box += it.start_box
        t.start_pcs += it.start_pcs
        t.sold_box += it.sold_box
        t.sold_pcs += it.sold_pcs
        t.remaining_box += it.remaining_box
        t.remaining_pcs += it.remaining_pcs
    return t


async def build_summary(data: DataService, work_date: date, route_id: str, driver_id: str | None = None) -> DaySummary:
    """Reconcile assigned stock and recorded sales for one route-day.

    With a ``driver_id`` only that driver's own sales count, and their
    assigned stock is read alongside the route-only stock.
    """
    fetches = [data.get_products(), data.get_sales_for(work_date, route_id)]
    if driver_id:
        fetches.append(data.get_assigned_stock_for_billing(driver_id, route_id, work_date))
    fetches.append(data.get_assigned_stock_for_billing(None, route_id, work_date))
    products, all_sales, *stock_results = await asyncio.gather(*fetches)

    sales = [s for s in all_sales if s.driver_id == driver_id] if driver_id else all_sales
    malformed = sum(1 for s in sales if s.malformed)
    if malformed:
        logger.warning("summary route=%s date=%s: %d sale(s) skipped, unreadable line items",
                       route_id, work_date, malformed)

    stock, has_stock = merge_assigned(stock_results, driver_id)
    items = summarize(products, sales, stock)
    summary = DaySummary(
        work_date=work_date,
        route_id=route_id,
        driver_id=driver_id,
        items=items,
        totals=totals_of(items),
        grand_total=_money(sum(it.total_revenue for it in items)),
        has_assigned_stock=has_stock,
        malformed_sales=malformed,
    )
    logger.info("summary route=%s date=%s driver=%s items=%d has_stock=%s",
                route_id, work_date, driver_id, len(items), has_stock)
    return summary
