"""Tests for the virtual clock used to drive session timers."""

from __future__ import annotations

import asyncio
import datetime

from workforce_session.session.clock import AsyncioScheduler, ManualScheduler

START = datetime.datetime(2025, 3, 3, 9, 0, tzinfo=datetime.UTC)


class TestManualScheduler:
    def test_time_only_moves_on_advance(self) -> None:
        scheduler = ManualScheduler(start=START)
        assert scheduler.now() == START
        scheduler.advance(90)
        assert scheduler.now() == START + datetime.timedelta(seconds=90)

    def test_timers_fire_in_due_order(self) -> None:
        scheduler = ManualScheduler(start=START)
        fired: list[str] = []
        scheduler.call_later(20, lambda: fired.append("late"))
        scheduler.call_later(10, lambda: fired.append("early"))
        scheduler.call_later(10, lambda: fired.append("early-second"))

        scheduler.advance(30)

        assert fired == ["early", "early-second", "late"]

    def test_callback_sees_its_due_time(self) -> None:
        scheduler = ManualScheduler(start=START)
        seen: list[datetime.datetime] = []
        scheduler.call_later(5, lambda: seen.append(scheduler.now()))
        scheduler.advance(60)
        assert seen == [START + datetime.timedelta(seconds=5)]

    def test_cancelled_timer_does_not_fire(self) -> None:
        scheduler = ManualScheduler(start=START)
        fired: list[int] = []
        handle = scheduler.call_later(5, lambda: fired.append(1))
        handle.cancel()
        scheduler.advance(10)
        assert fired == []
        assert scheduler.active_timers == []

    def test_timer_scheduled_while_advancing_fires_if_due(self) -> None:
        scheduler = ManualScheduler(start=START)
        fired: list[str] = []

        def first() -> None:
            fired.append("first")
            scheduler.call_later(5, lambda: fired.append("chained"))

        scheduler.call_later(5, first)
        scheduler.advance(10)

        assert fired == ["first", "chained"]

    def test_negative_delay_is_due_immediately(self) -> None:
        scheduler = ManualScheduler(start=START)
        fired: list[int] = []
        scheduler.call_later(-3, lambda: fired.append(1))
        scheduler.advance(0)
        assert fired == [1]

    def test_drain_awaits_spawned_work(self) -> None:
        scheduler = ManualScheduler(start=START)
        done: list[str] = []

        async def work() -> None:
            done.append("ran")

        scheduler.spawn(work())
        assert done == []
        asyncio.run(scheduler.drain())
        assert done == ["ran"]
        assert scheduler.pending == []


class TestAsyncioScheduler:
    def test_now_is_utc(self) -> None:
        assert AsyncioScheduler().now().tzinfo is datetime.UTC

    def test_call_later_and_spawn_use_running_loop(self) -> None:
        events: list[str] = []

        async def background() -> None:
            events.append("spawned")

        async def main() -> None:
            scheduler = AsyncioScheduler()
            fired = asyncio.Event()
            scheduler.call_later(0.01, fired.set)
            scheduler.spawn(background())
            await asyncio.wait_for(fired.wait(), timeout=1)
            events.append("timer")

        asyncio.run(main())
        assert events == ["spawned", "timer"]
