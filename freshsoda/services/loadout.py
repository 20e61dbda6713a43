"""Load-out: close a route-day and send what is left back to the warehouse.

The run is a saga over independent remote calls. Each step (and each
product's warehouse increment) gets a persisted marker, so a failed run can be
inspected and resumed without crediting a product twice.

    PRECHECK -> RETURN_TO_WAREHOUSE -> RETURN_RPC -> CLEAR_DAILY_STOCK -> VERIFY
"""
import asyncio
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy.orm import Session

from freshsoda.models.core import (
    LoadOutRun, LoadOutMarker, LoadOutStatus, LoadOutTrigger, MarkerStatus,
)
from freshsoda.schemas.summary import DaySummary
from freshsoda.services.data import DataService, DataServiceError
from freshsoda.util.audit import audit

logger = logging.getLogger(__name__)

PRECHECK = "PRECHECK"
RETURN_TO_WAREHOUSE = "RETURN_TO_WAREHOUSE"
RETURN_RPC = "RETURN_RPC"
CLEAR_DAILY_STOCK = "CLEAR_DAILY_STOCK"
VERIFY = "VERIFY"
STEPS = [PRECHECK, RETURN_TO_WAREHOUSE, RETURN_RPC, CLEAR_DAILY_STOCK, VERIFY]


@dataclass(frozen=True)
class LoadOutScope:
    driver_id: str | None
    route_id: str
    work_date: date

    @property
    def stock_source(self) -> str:
        # the return RPC for a scope only closes its own ledger rows
        return "driver" if self.driver_id else "route"


class LoadOutError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class LoadOutPreconditionError(LoadOutError):
    pass


class LoadOutBusyError(LoadOutError):
    pass


class LoadOutStepError(LoadOutError):
    def __init__(self, step: str, message: str, run_id: str):
        self.step = step
        self.run_id = run_id
        super().__init__(message)


# scopes with a run in progress in this process
_inflight: set[LoadOutScope] = set()


@contextmanager
def loadout_guard(scope: LoadOutScope):
    if scope in _inflight:
        raise LoadOutBusyError("Load-out already in progress for this route and day")
    _inflight.add(scope)
    try:
        yield
    finally:
        _inflight.discard(scope)


class LoadOutJournal:
    """Step markers for load-out runs, kept in our own database."""

    def __init__(self, db: Session):
        self.db = db

    def start(self, scope: LoadOutScope, summary: DaySummary, trigger: LoadOutTrigger,
              actor_user_id: str | None = None) -> LoadOutRun:
        run = LoadOutRun(
            driver_id=scope.driver_id, route_id=scope.route_id, work_date=scope.work_date,
            trigger=trigger, status=LoadOutStatus.RUNNING, actor_user_id=actor_user_id,
        )
        self.db.add(run)
        self.db.flush()
        for step in STEPS:
            if step == RETURN_TO_WAREHOUSE:
                for it in summary.items:
                    if it.stock_source != scope.stock_source:
                        continue
                    if it.remaining_box > 0 or it.remaining_pcs > 0:
                        self.db.add(LoadOutMarker(run_id=run.id, step=step, product_id=it.product_id,
                                                  boxes=it.remaining_box, pcs=it.remaining_pcs))
            else:
                self.db.add(LoadOutMarker(run_id=run.id, step=step))
        audit(self.db, actor_user_id, "loadout_run", run.id, "START",
              after={"trigger": trigger.value, "route_id": scope.route_id, "date": scope.work_date.isoformat()})
        self.db.commit()
        return run

    def open_run(self, scope: LoadOutScope) -> LoadOutRun | None:
        """Latest run for the scope that neither completed nor skipped."""
        q = self.db.query(LoadOutRun).filter(
            LoadOutRun.route_id == scope.route_id,
            LoadOutRun.work_date == scope.work_date,
            LoadOutRun.status.in_([LoadOutStatus.RUNNING, LoadOutStatus.FAILED]),
        )
        if scope.driver_id is None:
            q = q.filter(LoadOutRun.driver_id.is_(None))
        else:
            q = q.filter(LoadOutRun.driver_id == scope.driver_id)
        return q.order_by(LoadOutRun.created_at.desc()).first()

    def markers(self, run: LoadOutRun, step: str | None = None) -> list[LoadOutMarker]:
        q = self.db.query(LoadOutMarker).filter(LoadOutMarker.run_id == run.id)
        if step:
            q = q.filter(LoadOutMarker.step == step)
        return q.order_by(LoadOutMarker.created_at.asc()).all()

    def step_done(self, run: LoadOutRun, step: str) -> bool:
        ms = self.markers(run, step)
        return all(m.status == MarkerStatus.DONE for m in ms)

    def mark(self, marker: LoadOutMarker, status: MarkerStatus, detail: str | None = None):
        marker.status = status
        marker.detail = detail
        self.db.commit()

    def enter(self, run: LoadOutRun, step: str):
        run.current_step = step
        self.db.commit()

    def finish(self, run: LoadOutRun, status: LoadOutStatus, error: str | None = None):
        run.status = status
        run.error = error
        run.finished_at = datetime.now(timezone.utc)
        audit(self.db, run.actor_user_id, "loadout_run", run.id, status.value,
              after={"step": run.current_step, "error": error, "warning": run.warning})
        self.db.commit()


class LoadOutFinalizer:
    def __init__(self, data: DataService, journal: LoadOutJournal):
        self.data = data
        self.journal = journal

    async def scope_remaining(self, scope: LoadOutScope) -> int:
        """Pieces still on the ledger rows this scope's return RPC closes."""
        if scope.driver_id:
            rows = await self.data.get_driver_assigned_stock(scope.driver_id, scope.route_id, scope.work_date)
        else:
            rows = await self.data.get_route_assigned_stock(scope.route_id, scope.work_date)
        return sum(r.qty_remaining or 0 for r in rows)

    async def run(self, summary: DaySummary, trigger: LoadOutTrigger = LoadOutTrigger.MANUAL,
                  actor_user_id: str | None = None) -> LoadOutRun:
        """Close the summary's scope, or carry on with its unfinished run if it has one."""
        scope = LoadOutScope(summary.driver_id, summary.route_id, summary.work_date)
        with loadout_guard(scope):
            open_run = self.journal.open_run(scope)
            if open_run:
                logger.info("LoadOut %s -> retry picks up %s run", open_run.id, open_run.status.value)
                return await self._restart(open_run, scope)
            if summary.is_empty:
                raise LoadOutPreconditionError("No summary data for this route and day")
            if not summary.has_assigned_stock:
                raise LoadOutPreconditionError("No assigned stock left to return")
            run = self.journal.start(scope, summary, trigger, actor_user_id)
            logger.info("LoadOut %s -> start trigger=%s route=%s date=%s driver=%s",
                        run.id, trigger.value, scope.route_id, scope.work_date, scope.driver_id)
            return await self._execute(run, scope)

    async def resume(self, run: LoadOutRun) -> LoadOutRun:
        if run.status in (LoadOutStatus.COMPLETED, LoadOutStatus.SKIPPED):
            return run
        scope = LoadOutScope(run.driver_id, run.route_id, run.work_date)
        with loadout_guard(scope):
            return await self._restart(run, scope)

    async def _restart(self, run: LoadOutRun, scope: LoadOutScope) -> LoadOutRun:
        logger.info("LoadOut %s -> resume from %s", run.id, run.current_step)
        run.status = LoadOutStatus.RUNNING
        run.error = None
        self.journal.db.commit()
        return await self._execute(run, scope)

    async def _execute(self, run: LoadOutRun, scope: LoadOutScope) -> LoadOutRun:
        steps = {
            PRECHECK: self._precheck,
            RETURN_TO_WAREHOUSE: self._return_to_warehouse,
            RETURN_RPC: self._return_rpc,
            CLEAR_DAILY_STOCK: self._clear,
            VERIFY: self._verify,
        }
        for step in STEPS:
            if self.journal.step_done(run, step):
                continue
            self.journal.enter(run, step)
            try:
                proceed = await steps[step](run, scope)
            except DataServiceError as e:
                logger.error("LoadOut %s -> %s failed: %s", run.id, step, e.message)
                self.journal.finish(run, LoadOutStatus.FAILED, e.message)
                raise LoadOutStepError(step, e.message, run.id) from e
            except Exception as e:
                logger.exception("LoadOut %s -> %s failed", run.id, step)
                self.journal.db.rollback()
                self.journal.finish(run, LoadOutStatus.FAILED, str(e) or type(e).__name__)
                raise
            if proceed is False:
                self.journal.finish(run, LoadOutStatus.SKIPPED)
                return run
        self.journal.finish(run, LoadOutStatus.COMPLETED)
        logger.info("LoadOut %s -> completed", run.id)
        return run

    async def _precheck(self, run, scope) -> bool:
        (marker,) = self.journal.markers(run, PRECHECK)
        remaining = await self.scope_remaining(scope)
        run.remaining_before = remaining
        logger.info("LoadOut %s -> before assigned remaining (pcs) %d", run.id, remaining)
        if remaining <= 0:
            # already returned by an earlier run or by the admin
            self.journal.mark(marker, MarkerStatus.DONE, "nothing left on the ledger")
            for m in self.journal.markers(run, RETURN_TO_WAREHOUSE):
                self.journal.mark(m, MarkerStatus.DONE, "skipped")
            return False
        self.journal.mark(marker, MarkerStatus.DONE, f"{remaining} pcs outstanding")
        return True

    async def _return_to_warehouse(self, run, scope):
        pending = [m for m in self.journal.markers(run, RETURN_TO_WAREHOUSE) if m.status != MarkerStatus.DONE]
        if self.data.return_rpc_credits_warehouse:
            for m in pending:
                self.journal.mark(m, MarkerStatus.DONE, "credited by the return RPC")
            logger.info("LoadOut %s -> %d product(s) left to the return RPC to credit", run.id, len(pending))
            return
        note = f"Return from Route: {scope.route_id} (Driver Load-out)"
        results = await asyncio.gather(
            *(self.data.add_warehouse_stock(m.product_id, m.boxes, m.pcs, note, movement_type="RETURN") for m in pending),
            return_exceptions=True,
        )
        failed = []
        for m, res in zip(pending, results):
            if isinstance(res, DataServiceError):
                logger.error("LoadOut %s -> return %s (%dB|%dp) failed: %s", run.id, m.product_id, m.boxes, m.pcs, res.message)
                self.journal.mark(m, MarkerStatus.FAILED, res.message)
                failed.append(res)
            elif isinstance(res, BaseException):
                raise res
            else:
                logger.info("LoadOut %s -> returned %s (%dB|%dp) to warehouse", run.id, m.product_id, m.boxes, m.pcs)
                self.journal.mark(m, MarkerStatus.DONE)
        if failed:
            raise DataServiceError(f"{len(failed)} of {len(pending)} stock returns failed: {failed[0].message}")

    async def _return_rpc(self, run, scope):
        (marker,) = self.journal.markers(run, RETURN_RPC)
        if scope.driver_id:
            logger.info("LoadOut %s -> using driver RPC %s", run.id, scope.driver_id)
            await self.data.end_route_return_stock_rpc(scope.driver_id, scope.route_id, scope.work_date)
        else:
            logger.info("LoadOut %s -> using route RPC (no driver)", run.id)
            await self.data.end_route_return_stock_route_rpc(scope.route_id, scope.work_date)
        self.journal.mark(marker, MarkerStatus.DONE)

    async def _clear(self, run, scope):
        (marker,) = self.journal.markers(run, CLEAR_DAILY_STOCK)
        await self.data.clear_daily_stock(scope.driver_id, scope.route_id, scope.work_date)
        logger.info("LoadOut %s -> daily stock cleared", run.id)
        self.journal.mark(marker, MarkerStatus.DONE)

    async def _verify(self, run, scope):
        (marker,) = self.journal.markers(run, VERIFY)
        remaining = await self.scope_remaining(scope)
        run.remaining_after = remaining
        if remaining:
            run.warning = f"{remaining} pcs still assigned after load-out; reconcile manually"
            logger.warning("LoadOut %s -> after assigned remaining (pcs) %d", run.id, remaining)
        else:
            logger.info("LoadOut %s -> after assigned remaining (pcs) 0", run.id)
        movements = await self.data.get_warehouse_movements(None, 20)
        returns = [m for m in movements if m.movement_type == "RETURN"]
        logger.info("LoadOut %s -> recent RETURN movements: %d", run.id, len(returns))
        self.journal.mark(marker, MarkerStatus.DONE, json.dumps({"remaining_after": remaining, "recent_returns": len(returns)}))
