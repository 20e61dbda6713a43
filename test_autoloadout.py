# test_autoloadout.py
import asyncio
from datetime import date, datetime
from zoneinfo import ZoneInfo

from freshsoda.services.autoloadout import LoadOutScheduler, next_fire_time, seconds_until
from freshsoda.services.loadout import LoadOutError, LoadOutScope

IST = ZoneInfo("Asia/Kolkata")
NOW = datetime(2025, 1, 10, 22, 15, tzinfo=IST)

def test_past_day_fires_now():
    assert next_fire_time(date(2025, 1, 9), NOW) == NOW

def test_today_fires_at_next_local_midnight():
    fire = next_fire_time(date(2025, 1, 10), NOW)
    assert fire == datetime(2025, 1, 11, 0, 0, tzinfo=IST)
    assert fire.utcoffset() == NOW.utcoffset()

def test_future_day_never_fires():
    assert next_fire_time(date(2025, 1, 11), NOW) is None

def test_delay_to_midnight_spans_dst_change():
    ny = ZoneInfo("America/New_York")
    # clocks jump from 02:00 to 03:00 on 2025-03-09
    now = datetime(2025, 3, 9, 1, 0, tzinfo=ny)
    fire = next_fire_time(date(2025, 3, 9), now)
    assert fire == datetime(2025, 3, 10, 0, 0, tzinfo=ny)
    assert seconds_until(fire, now) == 22 * 3600

    # and back from 02:00 to 01:00 on 2025-11-02
    now = datetime(2025, 11, 2, 0, 30, tzinfo=ny)
    assert seconds_until(next_fire_time(date(2025, 11, 2), now), now) == 24.5 * 3600

def test_delay_never_negative():
    assert seconds_until(NOW, datetime(2025, 1, 10, 23, 0, tzinfo=IST)) == 0.0

def _scheduler(fired, fail=None):
    async def fire(scope):
        fired.append(scope)
        if fail:
            raise fail
    return LoadOutScheduler(fire, clock=lambda: NOW)

def test_past_day_runs_immediately():
    fired = []
    scope = LoadOutScope("D", "R1", date(2025, 1, 9))

    async def go():
        s = _scheduler(fired)
        assert s.arm("view-1", scope, True) == NOW
        await asyncio.sleep(0.05)
        assert s.pending("view-1") is None
        await s.shutdown()

    asyncio.run(go())
    assert fired == [scope]

def test_arm_is_idempotent_and_rearms_on_change():
    fired = []
    today = LoadOutScope("D", "R1", date(2025, 1, 10))

    async def go():
        s = _scheduler(fired)
        first = s.arm("view-1", today, True)
        task = s._pending["view-1"].task
        assert first == datetime(2025, 1, 11, tzinfo=IST)
        assert s.arm("view-1", today, True) == first
        assert s._pending["view-1"].task is task

        other = LoadOutScope("D", "R2", date(2025, 1, 10))
        s.arm("view-1", other, True)
        await asyncio.sleep(0.01)
        assert task.cancelled()
        assert s._pending["view-1"].key[0] == other

        # stock gone: nothing left to arm
        assert s.arm("view-1", other, False) is None
        assert s.pending("view-1") is None
        await s.shutdown()

    asyncio.run(go())
    assert fired == []

def test_future_day_is_not_armed_and_views_are_independent():
    fired = []

    async def go():
        s = _scheduler(fired)
        assert s.arm("view-1", LoadOutScope(None, "R1", date(2025, 1, 12)), True) is None
        s.arm("view-2", LoadOutScope(None, "R1", date(2025, 1, 10)), True)
        s.arm("view-3", LoadOutScope(None, "R2", date(2025, 1, 10)), True)
        assert s.pending("view-2") and s.pending("view-3")
        assert s.disarm("view-2") is True
        assert s.disarm("view-2") is False
        assert s.pending("view-3")
        await s.shutdown()
        assert s.pending("view-3") is None

    asyncio.run(go())
    assert fired == []

def test_failed_auto_loadout_does_not_escape():
    fired = []

    async def go():
        s = _scheduler(fired, fail=LoadOutError("nope"))
        s.arm("view-1", LoadOutScope("D", "R1", date(2025, 1, 1)), True)
        await asyncio.sleep(0.05)
        await s.shutdown()

    asyncio.run(go())
    assert len(fired) == 1
