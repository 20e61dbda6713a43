import logging
from datetime import date, datetime, timezone

import httpx

from freshsoda.schemas.catalog import ProductOut, RouteOption
from freshsoda.schemas.stock import AssignedStockRow, AssignedRemaining, MovementOut
from freshsoda.services.data import DataService, DataServiceError
from freshsoda.services.sales_payload import sale_record
from freshsoda.services.sql_data import merge_stock_lists

logger = logging.getLogger(__name__)


def _eq(v) -> str:
    return f"eq.{v}"


class RestDataService(DataService):
    """Ledgers on a hosted PostgREST-style backend.

    ``client`` must already point at ``<project>/rest/v1`` and carry the api
    key / bearer headers (see ``services.data.rest_client``).
    """

    # fn_end_route_return_stock and fn_end_route_return_stock_route credit warehouse_stock
    return_rpc_credits_warehouse = True

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _call(self, method: str, path: str, fallback: str, **kw):
        try:
            r = await self.client.request(method, path, **kw)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise DataServiceError(fallback) from e
        if r.status_code >= 400:
            message = None
            try:
                body = r.json()
                if isinstance(body, dict):
                    message = body.get("message")
            except ValueError:
                pass
            logger.error("%s %s -> %s: %s", method, path, r.status_code, r.text)
            raise DataServiceError(message or fallback)
        if not r.content:
            return None
        return r.json()

    async def _rpc(self, fn: str, payload: dict, fallback: str):
        return await self._call("POST", f"/rpc/{fn}", fallback, json=payload)

    async def get_products(self):
        rows = await self._call("GET", "/products", "Failed to load products",
                                params={"select": "*", "order": "name.asc"})
        return [
            ProductOut.model_validate({**p, "id": str(p["id"]), "price": p.get("price") or 0})
            for p in rows or []
            if p.get("status") != "deleted"
        ]

    async def get_active_routes(self):
        rows = await self._call("GET", "/routes", "Failed to load routes",
                                params={"select": "id,name", "is_active": _eq("true"), "order": "name.asc"})
        return [RouteOption(id=str(r["id"]), name=r["name"]) for r in rows or []]

    async def get_sales_for(self, work_date: date, route_id: str | None = None):
        params = {"select": "*", "date": _eq(work_date.isoformat()), "order": "created_at.desc"}
        if route_id:
            params["route_id"] = _eq(route_id)
        rows = await self._call("GET", "/sales", "Failed to load sales", params=params)
        return [sale_record(r) for r in rows or []]

    async def get_assigned_stock_for_billing(self, driver_id, route_id, work_date):
        params = {
            "select": "stock,auth_user_id",
            "route_id": _eq(route_id),
            "date": _eq(work_date.isoformat()),
            "auth_user_id": _eq(driver_id) if driver_id else "is.null",
        }
        rows = await self._call("GET", "/daily_stock", "Failed to load assigned stock", params=params)
        stock = merge_stock_lists(r.get("stock") for r in rows or [] if isinstance(r.get("stock"), list))
        if not stock:
            return []
        products = {p.id: p for p in await self.get_products()}
        return [
            (products[i["productId"]], AssignedStockRow(product_id=i["productId"], box_qty=i["boxQty"], pcs_qty=i["pcsQty"]))
            for i in stock
            if i["productId"] in products
        ]

    async def add_warehouse_stock(self, product_id, boxes, pcs, note=None, movement_type="IN"):
        if boxes < 0 or pcs < 0:
            raise DataServiceError("Cannot add negative stock")
        existing = await self._call("GET", "/warehouse_stock", "Failed to check warehouse stock. Please try again.",
                                    params={"select": "*", "product_id": _eq(product_id)})
        now = datetime.now(timezone.utc).isoformat()
        if existing:
            row = existing[0]
            await self._call(
                "PATCH", "/warehouse_stock", "Failed to add stock. Please try again.",
                params={"product_id": _eq(product_id)},
                json={"boxes": int(row.get("boxes") or 0) + boxes, "pcs": int(row.get("pcs") or 0) + pcs, "updated_at": now},
            )
        else:
            await self._call(
                "POST", "/warehouse_stock", "Failed to create warehouse stock entry. Please try again.",
                json={"product_id": product_id, "boxes": boxes, "pcs": pcs, "created_at": now, "updated_at": now},
            )
        try:
            await self._call(
                "POST", "/warehouse_movements", "Failed to log warehouse movement",
                json={"product_id": product_id, "movement_type": movement_type, "boxes": boxes, "pcs": pcs, "note": note},
            )
        except DataServiceError as e:
            # stock is already credited; a retry here would credit it twice
            logger.error("movement log for product %s not written: %s", product_id, e.message)

    async def end_route_return_stock_rpc(self, driver_id, route_id, work_date):
        await self._rpc("fn_end_route_return_stock",
                        {"p_driver_id": driver_id, "p_route_id": route_id, "p_work_date": work_date.isoformat()},
                        "Failed to return stock to warehouse")

    async def end_route_return_stock_route_rpc(self, route_id, work_date):
        await self._rpc("fn_end_route_return_stock_route",
                        {"p_route_id": route_id, "p_work_date": work_date.isoformat()},
                        "Failed to return stock to warehouse")

    async def clear_daily_stock(self, driver_id, route_id, work_date):
        params = {"route_id": _eq(route_id), "date": _eq(work_date.isoformat())}
        if driver_id:
            params["auth_user_id"] = _eq(driver_id)
        await self._call("PATCH", "/daily_stock", "Failed to update route status", params=params, json={"stock": []})

    async def get_route_assigned_stock(self, route_id, work_date):
        rows = await self._rpc("fn_get_route_assigned_stock",
                               {"route_id": route_id, "work_date": work_date.isoformat()},
                               "Failed to fetch assigned stock")
        return [AssignedRemaining.model_validate(r) for r in rows or []]

    async def get_driver_assigned_stock(self, driver_id, route_id, work_date):
        rows = await self._rpc("fn_get_driver_assigned_stock",
                               {"driver_id": driver_id, "route_id": route_id, "work_date": work_date.isoformat()},
                               "Failed to fetch assigned stock")
        return [AssignedRemaining.model_validate(r) for r in rows or []]

    async def get_warehouse_movements(self, product_id=None, limit=50):
        params = {"select": "*", "order": "created_at.desc", "limit": str(limit)}
        if product_id:
            params["product_id"] = _eq(product_id)
        rows = await self._call("GET", "/warehouse_movements",
                                "Failed to fetch warehouse movements. Please try again.", params=params)
        return [
            MovementOut(
                id=str(m["id"]), product_id=str(m["product_id"]), movement_type=m["movement_type"],
                boxes=int(m.get("boxes") or 0), pcs=int(m.get("pcs") or 0),
                note=m.get("note"), created_at=m.get("created_at"),
            )
            for m in rows or []
        ]
