from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from freshsoda.deps import Actor, require_auth, get_data_service
from freshsoda.schemas.summary import DaySummary, DaySummaryOut
from freshsoda.services.autoloadout import local_now
from freshsoda.services.data import DataService, DataServiceError
from freshsoda.services.loadout import LoadOutScope
from freshsoda.services.receipt import format_day_receipt
from freshsoda.services.summary import build_summary

router = APIRouter(prefix="/summary", tags=["summary"])

NO_DATA = "No data found for the selected date and route"


def scope_driver(actor: Actor, driver_id: str | None) -> str | None:
    # drivers only ever see their own day
    return driver_id if actor.is_admin else actor.id


async def load_summary(data: DataService, work_date: date, route_id: str, driver_id: str | None) -> DaySummary:
    try:
        return await build_summary(data, work_date, route_id, driver_id)
    except DataServiceError as e:
        raise HTTPException(502, detail=e.message)


async def receipt_text(data: DataService, summary: DaySummary) -> str:
    try:
        routes = await data.get_active_routes()
    except DataServiceError:
        routes = []
    name = next((r.name for r in routes if r.id == summary.route_id), summary.route_id)
    return format_day_receipt(summary, name, local_now())


@router.get("", response_model=DaySummaryOut)
async def get_summary(date: date, route_id: str, request: Request,
                      driver_id: str | None = None, view_id: str | None = None,
                      data: DataService = Depends(get_data_service),
                      actor: Actor = Depends(require_auth)):
    """Day summary for a route, optionally narrowed to one driver.

    Passing a ``view_id`` keeps an auto load-out armed for as long as the view
    is open; it fires at local midnight, or at once for a past day.
    """
    driver_id = scope_driver(actor, driver_id)
    summary = await load_summary(data, date, route_id, driver_id)
    out = DaySummaryOut(**summary.model_dump())
    if summary.is_empty:
        out.no_data = True
        out.message = NO_DATA
    if view_id:
        scope = LoadOutScope(driver_id, route_id, date)
        out.auto_loadout_at = request.app.state.scheduler.arm(
            view_id, scope, summary.has_assigned_stock and not summary.is_empty)
    return out


@router.delete("/views/{view_id}")
def close_view(view_id: str, request: Request, actor: Actor = Depends(require_auth)):
    return {"cancelled": request.app.state.scheduler.disarm(view_id)}


@router.get("/receipt", response_class=PlainTextResponse)
async def get_receipt(date: date, route_id: str, driver_id: str | None = None,
                      data: DataService = Depends(get_data_service),
                      actor: Actor = Depends(require_auth)):
    summary = await load_summary(data, date, route_id, scope_driver(actor, driver_id))
    if summary.is_empty:
        raise HTTPException(404, detail=NO_DATA)
    return await receipt_text(data, summary)
