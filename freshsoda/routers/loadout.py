from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from freshsoda.db import get_db
from freshsoda.config import settings
from freshsoda.deps import Actor, require_auth, get_data_service
from freshsoda.models.core import LoadOutRun, LoadOutTrigger
from freshsoda.schemas.loadout import LoadOutIn, LoadOutOut, LoadOutRunOut, LoadOutMarkerOut
from freshsoda.schemas.summary import DaySummary
from freshsoda.services.data import DataService, DataServiceError
from freshsoda.services.loadout import (
    LoadOutFinalizer, LoadOutJournal, LoadOutPreconditionError, LoadOutBusyError, LoadOutStepError,
)
from freshsoda.services.summary import build_summary

router = APIRouter(prefix="/loadout", tags=["loadout"])


def run_out(db: Session, run: LoadOutRun) -> LoadOutRunOut:
    markers = LoadOutJournal(db).markers(run)
    return LoadOutRunOut(
        id=run.id, driver_id=run.driver_id, route_id=run.route_id, work_date=run.work_date,
        trigger=run.trigger.value, status=run.status.value, current_step=run.current_step,
        error=run.error, warning=run.warning,
        remaining_before=run.remaining_before, remaining_after=run.remaining_after,
        markers=[
            LoadOutMarkerOut(step=m.step, product_id=m.product_id, boxes=m.boxes, pcs=m.pcs,
                             status=m.status.value, detail=m.detail)
            for m in markers
        ],
    )


def _step_failed(e: LoadOutStepError) -> HTTPException:
    return HTTPException(502, detail={"message": f"Failed to finalize load-out: {e.message}",
                                      "step": e.step, "run_id": e.run_id})


async def finalize(finalizer: LoadOutFinalizer, summary: DaySummary, trigger: LoadOutTrigger,
                   actor_user_id: str | None) -> LoadOutRun:
    try:
        return await finalizer.run(summary, trigger, actor_user_id)
    except LoadOutPreconditionError as e:
        raise HTTPException(400, detail=e.message)
    except LoadOutBusyError as e:
        raise HTTPException(409, detail=e.message)
    except LoadOutStepError as e:
        raise _step_failed(e)


def _visible(run: LoadOutRun | None, actor: Actor) -> LoadOutRun:
    if not run or (not actor.is_admin and run.driver_id != actor.id):
        raise HTTPException(404, detail="Load-out run not found")
    return run


@router.post("", response_model=LoadOutOut)
async def load_out(body: LoadOutIn, request: Request,
                   db: Session = Depends(get_db),
                   data: DataService = Depends(get_data_service),
                   actor: Actor = Depends(require_auth)):
    # drivers always act for themselves
    driver_id = body.driver_id if actor.is_admin else actor.id
    try:
        summary = await build_summary(data, body.date, body.route_id, driver_id)
    except DataServiceError as e:
        raise HTTPException(502, detail=e.message)
    run = await finalize(LoadOutFinalizer(data, LoadOutJournal(db)), summary, LoadOutTrigger.MANUAL, actor.id)
    if body.view_id:
        request.app.state.scheduler.disarm(body.view_id)
    return LoadOutOut(
        ok=True,
        run=run_out(db, run),
        navigate_to="/admin/dashboard" if actor.is_admin else "/driver/dashboard",
        navigate_after_ms=settings.LOADOUT_NAV_DELAY_MS,
    )


@router.get("/runs", response_model=list[LoadOutRunOut])
def list_runs(route_id: str | None = None, date: date | None = None, limit: int = 20,
              db: Session = Depends(get_db), actor: Actor = Depends(require_auth)):
    q = db.query(LoadOutRun)
    if not actor.is_admin:
        q = q.filter(LoadOutRun.driver_id == actor.id)
    if route_id:
        q = q.filter(LoadOutRun.route_id == route_id)
    if date:
        q = q.filter(LoadOutRun.work_date == date)
    runs = q.order_by(LoadOutRun.created_at.desc()).limit(min(max(limit, 1), 200)).all()
    return [run_out(db, r) for r in runs]


@router.get("/runs/{run_id}", response_model=LoadOutRunOut)
def get_run(run_id: str, db: Session = Depends(get_db), actor: Actor = Depends(require_auth)):
    return run_out(db, _visible(db.get(LoadOutRun, run_id), actor))


@router.post("/runs/{run_id}/resume", response_model=LoadOutOut)
async def resume_run(run_id: str,
                     db: Session = Depends(get_db),
                     data: DataService = Depends(get_data_service),
                     actor: Actor = Depends(require_auth)):
    run = _visible(db.get(LoadOutRun, run_id), actor)
    try:
        run = await LoadOutFinalizer(data, LoadOutJournal(db)).resume(run)
    except LoadOutBusyError as e:
        raise HTTPException(409, detail=e.message)
    except LoadOutStepError as e:
        raise _step_failed(e)
    return LoadOutOut(ok=True, run=run_out(db, run))
