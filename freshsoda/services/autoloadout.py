"""Automatic load-out for a day that was left open.

``next_fire_time`` holds all of the timing rules and is pure. The
``LoadOutScheduler`` only turns its answer into one asyncio task per open
summary view.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from freshsoda.config import settings
from freshsoda.db import SessionLocal
from freshsoda.models.core import LoadOutTrigger
from freshsoda.services.data import open_data_service
from freshsoda.services.loadout import LoadOutFinalizer, LoadOutJournal, LoadOutScope, LoadOutError
from freshsoda.services.summary import build_summary

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    return datetime.now(ZoneInfo(settings.TZ))


def next_fire_time(work_date: date, now: datetime) -> datetime | None:
    """When a still-open ``work_date`` should be loaded out, seen at ``now``.

    Past days fire at once, today fires at the next local midnight, future
    days never fire.
    """
    today = now.date()
    if work_date < today:
        return now
    if work_date == today:
        return datetime.combine(today + timedelta(days=1), time.min, tzinfo=now.tzinfo)
    return None


def seconds_until(fire_at: datetime, now: datetime) -> float:
    # compare in UTC; same-zone aware subtraction ignores a DST shift in between
    return max(0.0, (fire_at.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds())


@dataclass
class _Pending:
    key: tuple
    fire_at: datetime
    task: asyncio.Task


class LoadOutScheduler:
    def __init__(self, fire: Callable[[LoadOutScope], Awaitable[object]],
                 clock: Callable[[], datetime] = local_now):
        self._fire = fire
        self._clock = clock
        self._pending: dict[str, _Pending] = {}

    def pending(self, view_id: str) -> datetime | None:
        p = self._pending.get(view_id)
        return p.fire_at if p else None

    def arm(self, view_id: str, scope: LoadOutScope, has_assigned_stock: bool) -> datetime | None:
        """(Re)arm the timer of one summary view. Must run inside the event loop."""
        key = (scope, has_assigned_stock)
        current = self._pending.get(view_id)
        if current and current.key == key and not current.task.done():
            return current.fire_at
        self.disarm(view_id)
        if not has_assigned_stock:
            return None
        now = self._clock()
        fire_at = next_fire_time(scope.work_date, now)
        if fire_at is None:
            return None
        delay = seconds_until(fire_at, now)
        task = asyncio.get_running_loop().create_task(self._run(view_id, scope, delay))
        self._pending[view_id] = _Pending(key, fire_at, task)
        logger.info("Auto LoadOut -> scheduled view=%s at=%s route=%s date=%s delay_s=%.0f",
                    view_id, fire_at.isoformat(), scope.route_id, scope.work_date, delay)
        return fire_at

    def disarm(self, view_id: str) -> bool:
        p = self._pending.pop(view_id, None)
        if not p:
            return False
        if not p.task.done():
            p.task.cancel()
            logger.info("Auto LoadOut -> cancelled view=%s", view_id)
        return True

    async def shutdown(self):
        tasks = [p.task for p in self._pending.values()]
        for view_id in list(self._pending):
            self.disarm(view_id)
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, view_id: str, scope: LoadOutScope, delay: float):
        if delay:
            await asyncio.sleep(delay)
        current = self._pending.get(view_id)
        if current and current.task is asyncio.current_task():
            del self._pending[view_id]
        logger.info("Auto LoadOut -> firing view=%s route=%s date=%s", view_id, scope.route_id, scope.work_date)
        try:
            await self._fire(scope)
        except LoadOutError as e:
            logger.warning("Auto LoadOut -> not finalized view=%s: %s", view_id, e.message)
        except Exception:
            logger.exception("Auto LoadOut -> failed view=%s", view_id)


async def run_scheduled_loadout(scope: LoadOutScope):
    """Timer callback: rebuild the summary and finalize the day if stock is left."""
    with SessionLocal() as db:
        async with open_data_service(db) as data:
            summary = await build_summary(data, scope.work_date, scope.route_id, scope.driver_id)
            if summary.is_empty or not summary.has_assigned_stock:
                logger.info("Auto LoadOut -> nothing to return route=%s date=%s", scope.route_id, scope.work_date)
                return None
            return await LoadOutFinalizer(data, LoadOutJournal(db)).run(summary, LoadOutTrigger.AUTO)
