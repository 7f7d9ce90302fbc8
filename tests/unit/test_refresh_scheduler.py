"""Unit tests for ical_merger.refresh_scheduler."""

import asyncio
import logging

import pytest

from ical_merger.core.config_store import ConfigStore
from ical_merger.exceptions import BuildFailure, SchedulerMisconfigured
from ical_merger.refresh_scheduler import RefreshScheduler

pytestmark = [pytest.mark.unit, pytest.mark.fast]


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class TestRefreshOnce:
    async def test_refresh_once_when_one_calendar_fails_then_others_still_cached(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a", "b"])
        builder = stub_builder_factory({"a": BuildFailure("a", "HTTP 500"), "b": "DOCB"})
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)

        summary = await scheduler.refresh_once(config.calendars)

        assert cache.get("b") == "DOCB"
        assert cache.get("a") is None
        assert summary.succeeded == ["b"]
        assert summary.failed == ["a"]
        assert summary.total == 2
        assert scheduler.ticks == 1

    async def test_refresh_once_when_build_fails_then_previous_document_kept(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a"])
        cache.put("a", "OLD")
        builder = stub_builder_factory({"a": BuildFailure("a", "timeout")})
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)

        await scheduler.refresh_once(config.calendars)

        assert cache.get("a") == "OLD"

    async def test_refresh_once_when_no_calendars_then_warns_and_builds_nothing(
        self, make_config, stub_builder_factory, cache, caplog: pytest.LogCaptureFixture
    ) -> None:
        config = make_config([])
        builder = stub_builder_factory()
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)

        with caplog.at_level(logging.WARNING, logger="ical_merger.refresh_scheduler"):
            summary = await scheduler.refresh_once(config.calendars)

        assert summary.total == 0
        assert builder.calls == []
        assert "No calendars configured" in caplog.text

    async def test_refresh_once_when_calendars_slow_then_built_concurrently(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a", "b", "c", "d"])
        builder = stub_builder_factory(delay=0.2)
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await scheduler.refresh_once(config.calendars)

        assert loop.time() - started < 0.6
        assert len(cache) == 4


class TestRun:
    async def test_run_when_on_demand_then_returns_immediately(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a"], fetch_on_demand=True)
        builder = stub_builder_factory()
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)

        await asyncio.wait_for(scheduler.run(asyncio.Event()), timeout=1)

        assert builder.calls == []
        assert scheduler.ticks == 0

    async def test_run_when_periodic_without_interval_then_raises(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a"], fetch_interval_seconds=None)
        scheduler = RefreshScheduler(ConfigStore(config), cache, stub_builder_factory())

        with pytest.raises(SchedulerMisconfigured):
            await scheduler.run(asyncio.Event())

    async def test_run_when_started_then_first_refresh_waits_one_interval(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a"], fetch_interval_seconds=3600)
        builder = stub_builder_factory()
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)
        stop_event = asyncio.Event()

        task = asyncio.create_task(scheduler.run(stop_event))
        await asyncio.sleep(0.05)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1)

        assert builder.calls == []
        assert cache.get("a") is None

    async def test_run_when_refresh_on_start_then_builds_immediately(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a", "b"], fetch_interval_seconds=3600, refresh_on_start=True)
        builder = stub_builder_factory()
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)
        stop_event = asyncio.Event()

        task = asyncio.create_task(scheduler.run(stop_event))
        await _wait_until(lambda: scheduler.ticks == 1)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1)

        assert cache.get("a") == "DOC:a"
        assert cache.get("b") == "DOC:b"

    async def test_run_when_interval_elapses_then_refreshes_repeatedly(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a"], fetch_interval_seconds=0.01)
        builder = stub_builder_factory()
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)
        stop_event = asyncio.Event()

        task = asyncio.create_task(scheduler.run(stop_event))
        await _wait_until(lambda: scheduler.ticks >= 3)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1)

        assert builder.calls.count("a") >= 3
        assert scheduler.last_tick_monotonic is not None

    async def test_run_when_every_build_fails_then_loop_keeps_going(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a"], fetch_interval_seconds=0.01)
        builder = stub_builder_factory({"a": RuntimeError("feed down")})
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)
        stop_event = asyncio.Event()

        task = asyncio.create_task(scheduler.run(stop_event))
        await _wait_until(lambda: scheduler.ticks >= 2)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1)

        assert cache.get("a") is None

    async def test_run_when_build_slower_than_half_interval_then_rate_not_stretched(
        self, make_config, stub_builder_factory, cache
    ) -> None:
        config = make_config(["a"], fetch_interval_seconds=0.2)
        builder = stub_builder_factory(delay=0.15)
        scheduler = RefreshScheduler(ConfigStore(config), cache, builder)
        stop_event = asyncio.Event()

        task = asyncio.create_task(scheduler.run(stop_event))
        await asyncio.sleep(1.1)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1)

        # Builds start at 0.2, 0.4, 0.6, 0.8, 1.0; waiting a full interval after
        # each build would only start three of them.
        assert len(builder.calls) >= 4


class TestNextDeadline:
    def test_next_deadline_when_on_time_then_one_interval_later(self) -> None:
        assert RefreshScheduler._next_deadline(10.0, 5.0, 12.0) == 15.0

    def test_next_deadline_when_overrun_then_skips_missed_ticks(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="ical_merger.refresh_scheduler"):
            deadline = RefreshScheduler._next_deadline(0.0, 1.0, 2.5)

        assert deadline == 3.0
        assert "skipping 2 tick(s)" in caplog.text

    def test_next_deadline_when_exactly_on_boundary_then_moves_to_next(self) -> None:
        assert RefreshScheduler._next_deadline(0.0, 1.0, 1.0) == 2.0
