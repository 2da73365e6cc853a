"""
Tests unitarios para CoinSyncScheduler.

Verifica:
- Exclusión mutua (un disparo durante un ciclo en curso se descarta).
- Un ciclo con error no detiene disparos futuros.
- Shutdown interrumpe esperas en curso y bloquea nuevos disparos.
- Registro del job de intervalo en APScheduler.
"""
from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from coinsync.application.services.sync_scheduler import CoinSyncScheduler, SchedulerState


def _apscheduler_mock() -> MagicMock:
    scheduler = MagicMock()
    scheduler.running = False
    scheduler.get_job.return_value = None
    return scheduler


class BlockingCycle:
    """Ciclo que queda bloqueado hasta que el test lo libere."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self, cancel):
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return f"result-{self.calls}"


@pytest.mark.asyncio
async def test_trigger_runs_cycle_and_returns_result() -> None:
    async def cycle(cancel):
        return "ok"

    scheduler = CoinSyncScheduler(cycle, scheduler=_apscheduler_mock())

    result = await scheduler.trigger(source="manual")

    assert result == "ok"
    assert scheduler.state is SchedulerState.IDLE
    assert scheduler.runs_started == 1
    assert scheduler.last_finished_at is not None


@pytest.mark.asyncio
async def test_concurrent_trigger_is_dropped() -> None:
    cycle = BlockingCycle()
    scheduler = CoinSyncScheduler(cycle, scheduler=_apscheduler_mock())

    first = asyncio.create_task(scheduler.trigger(source="startup"))
    await asyncio.wait_for(cycle.started.wait(), timeout=1)
    assert scheduler.state is SchedulerState.RUNNING

    second = await scheduler.trigger(source="interval")

    assert second is None
    assert scheduler.runs_dropped == 1
    assert scheduler.trigger_in_background(source="manual") is False

    cycle.release.set()
    assert await first == "result-1"
    assert cycle.calls == 1
    assert scheduler.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_failed_cycle_does_not_stop_future_triggers() -> None:
    calls = []

    async def cycle(cancel):
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database down")
        return "recovered"

    scheduler = CoinSyncScheduler(cycle, scheduler=_apscheduler_mock())

    assert await scheduler.trigger() is None
    assert scheduler.last_error == "database down"
    assert scheduler.state is SchedulerState.IDLE

    assert await scheduler.trigger() == "recovered"
    assert scheduler.last_error is None
    assert scheduler.runs_started == 2


@pytest.mark.asyncio
async def test_trigger_in_background_runs_cycle() -> None:
    cycle = BlockingCycle()
    scheduler = CoinSyncScheduler(cycle, scheduler=_apscheduler_mock())

    assert scheduler.trigger_in_background(source="manual") is True
    await asyncio.wait_for(cycle.started.wait(), timeout=1)
    cycle.release.set()

    assert await scheduler.wait_idle(timeout=1) is True
    assert scheduler.last_result == "result-1"


@pytest.mark.asyncio
async def test_shutdown_interrupts_running_cycle() -> None:
    observed = {}

    async def cycle(cancel):
        observed["completed"] = await cancel.sleep(30)
        return "partial"

    apscheduler = _apscheduler_mock()
    apscheduler.running = True
    scheduler = CoinSyncScheduler(cycle, scheduler=apscheduler)

    task = asyncio.create_task(scheduler.trigger(source="startup"))
    await asyncio.sleep(0.01)
    await asyncio.wait_for(scheduler.shutdown(timeout=1), timeout=2)

    assert observed["completed"] is False
    assert await task == "partial"
    assert scheduler.state is SchedulerState.IDLE
    apscheduler.shutdown.assert_called_once_with(wait=False)

    # Tras el shutdown no se inician ciclos nuevos
    assert await scheduler.trigger(source="interval") is None
    assert scheduler.runs_started == 1


def test_start_registers_interval_job_with_startup_run() -> None:
    apscheduler = _apscheduler_mock()
    scheduler = CoinSyncScheduler(MagicMock(), interval_minutes=15, scheduler=apscheduler)

    scheduler.start()

    apscheduler.add_job.assert_called_once()
    args, kwargs = apscheduler.add_job.call_args
    assert args[0] == scheduler.trigger
    assert isinstance(kwargs["trigger"], IntervalTrigger)
    assert kwargs["id"] == CoinSyncScheduler.JOB_ID
    assert kwargs["max_instances"] == 1
    assert kwargs["coalesce"] is True
    assert "next_run_time" in kwargs
    apscheduler.start.assert_called_once()


def test_start_without_startup_run_waits_for_interval() -> None:
    apscheduler = _apscheduler_mock()
    scheduler = CoinSyncScheduler(MagicMock(), run_on_startup=False, scheduler=apscheduler)

    scheduler.start()

    _, kwargs = apscheduler.add_job.call_args
    assert "next_run_time" not in kwargs


@pytest.mark.asyncio
async def test_status_reports_last_result_summary() -> None:
    result = MagicMock()
    result.summary.return_value = {"fetch": {"records": 3}}

    async def cycle(cancel):
        return result

    scheduler = CoinSyncScheduler(cycle, interval_minutes=30, scheduler=_apscheduler_mock())
    await scheduler.trigger()

    status = scheduler.status()

    assert status["state"] == "idle"
    assert status["interval_minutes"] == 30
    assert status["runs_started"] == 1
    assert status["last_result"] == {"fetch": {"records": 3}}
    assert status["next_run_time"] is None


@pytest.mark.asyncio
async def test_background_and_timer_triggers_in_same_tick_run_one_cycle() -> None:
    """El disparo manual reserva de forma atómica: el del timer se descarta."""
    cycle = BlockingCycle()
    scheduler = CoinSyncScheduler(cycle, scheduler=_apscheduler_mock())

    timer = asyncio.create_task(scheduler.trigger(source="interval"))
    accepted = scheduler.trigger_in_background(source="manual")

    assert accepted is True
    assert scheduler.state is SchedulerState.RUNNING
    assert await asyncio.wait_for(timer, timeout=1) is None
    assert scheduler.runs_dropped == 1

    await asyncio.wait_for(cycle.started.wait(), timeout=1)
    cycle.release.set()
    assert await scheduler.wait_idle(timeout=1) is True
    assert cycle.calls == 1
    assert scheduler.runs_started == 1
    assert scheduler.last_result == "result-1"


@pytest.mark.asyncio
async def test_trigger_in_background_after_shutdown_is_rejected() -> None:
    async def cycle(cancel):
        return "ok"

    scheduler = CoinSyncScheduler(cycle, scheduler=_apscheduler_mock())
    await scheduler.shutdown(timeout=1)

    assert scheduler.trigger_in_background(source="manual") is False
    assert scheduler.runs_started == 0


def test_non_positive_interval_is_rejected() -> None:
    with pytest.raises(ValueError):
        CoinSyncScheduler(MagicMock(), interval_minutes=0, scheduler=_apscheduler_mock())
