"""
Scheduler del sync de monedas.

Responsabilidades (y solo estas):
- Cadencia: un disparo al arrancar el proceso y luego cada intervalo fijo.
- Exclusión mutua: como máximo un ciclo a la vez. Un disparo que llega
  mientras hay un ciclo corriendo se descarta (sin cola, sin solapamiento).
- Shutdown ordenado: cancela esperas en curso y detiene el timer.

Los reintentos viven en el cliente de CoinGecko, no aquí.
El scheduler es un objeto explícito (se guarda en `app.state.scheduler`),
sin estado global a nivel de módulo.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from coinsync.shared.utils.cancellation import CancellationToken


SyncCycle = Callable[[CancellationToken], Awaitable[Any]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class CoinSyncScheduler:
    """
    Dispara ciclos de sync con exclusión mutua.

    El check-and-set del estado (`_reserve`) es sincrono y corre bajo un
    asyncio.Lock; tanto `trigger` como `trigger_in_background` reservan
    antes de ejecutar, por lo que disparos concurrentes (timer, arranque,
    endpoint manual) no pueden iniciar dos ciclos en paralelo.
    """

    JOB_ID = "coin_sync"

    def __init__(
        self,
        cycle: SyncCycle,
        *,
        interval_minutes: float = 30,
        run_on_startup: bool = True,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        if interval_minutes <= 0:
            raise ValueError(f"interval_minutes debe ser > 0 (recibido: {interval_minutes})")
        self._cycle = cycle
        self._interval_minutes = interval_minutes
        self._run_on_startup = run_on_startup
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

        self._state = SchedulerState.IDLE
        self._state_lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._cancel = CancellationToken()
        self._background_tasks: Set[asyncio.Task] = set()

        self.runs_started = 0
        self.runs_dropped = 0
        self.last_started_at: Optional[datetime] = None
        self.last_finished_at: Optional[datetime] = None
        self.last_result: Any = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    def start(self) -> None:
        """Registra el job de intervalo y arranca el timer."""
        next_run_time = datetime.now(timezone.utc) if self._run_on_startup else None
        job_kwargs: Dict[str, Any] = {
            "trigger": IntervalTrigger(minutes=self._interval_minutes),
            "id": self.JOB_ID,
            "kwargs": {"source": "interval"},
            "max_instances": 1,
            "coalesce": True,
            "replace_existing": True,
        }
        # APScheduler interpreta next_run_time=None como "job pausado"
        if next_run_time is not None:
            job_kwargs["next_run_time"] = next_run_time
        self._scheduler.add_job(self.trigger, **job_kwargs)
        self._scheduler.start()
        logger.info(
            f"Scheduler de monedas iniciado: cada {self._interval_minutes} min "
            f"(disparo inicial: {'si' if self._run_on_startup else 'no'})"
        )

    def _reserve(self, source: str) -> bool:
        """
        Check-and-set del estado IDLE -> RUNNING.

        Es sincrono (sin await), asi que en el event loop no puede
        intercalarse con otro disparo: el primero que reserva gana.
        """
        if self._state is SchedulerState.RUNNING:
            self.runs_dropped += 1
            logger.warning(f"Disparo '{source}' descartado: ya hay un ciclo de sync en curso")
            return False
        if self._cancel.is_cancelled:
            logger.info(f"Disparo '{source}' ignorado: scheduler detenido")
            return False
        self._state = SchedulerState.RUNNING
        self._idle.clear()
        self.runs_started += 1
        self.last_started_at = datetime.now(timezone.utc)
        return True

    async def trigger(self, source: str = "manual") -> Any:
        """
        Ejecuta un ciclo si no hay otro en curso.

        Returns:
            El resultado del ciclo, o None si el disparo se descartó
            (o si el ciclo falló; el error queda en `last_error`).
        """
        async with self._state_lock:
            reserved = self._reserve(source)
        if not reserved:
            return None
        return await self._run_reserved(source)

    async def _run_reserved(self, source: str) -> Any:
        logger.info(f"Ciclo de sync iniciado (origen: {source})")
        try:
            result = await self._cycle(self._cancel)
            self.last_result = result
            self.last_error = None
            return result
        except Exception as e:
            self.last_error = str(e)
            logger.exception(f"Error en ciclo de sync (origen: {source}): {e}")
            return None
        finally:
            self.last_finished_at = datetime.now(timezone.utc)
            self._state = SchedulerState.IDLE
            self._idle.set()

    def trigger_in_background(self, source: str = "manual") -> bool:
        """
        Reserva el ciclo y lo lanza como task sin esperar su resultado.

        Returns:
            False si ya hay un ciclo en curso o el scheduler está detenido
            (no se lanza nada).
        """
        if not self._reserve(source):
            return False
        task = asyncio.create_task(self._run_reserved(source))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return True

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Espera a que no haya ciclo en curso. Retorna False si vence el timeout."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def shutdown(self, timeout: float = 30.0) -> None:
        """
        Detiene el timer y cancela el ciclo en curso en el siguiente
        punto de cancelación (límite de página o espera de backoff).
        """
        self._cancel.cancel()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        if not await self.wait_idle(timeout):
            logger.warning(f"El ciclo de sync no termino dentro de {timeout}s")
        logger.info("Scheduler de monedas detenido")

    def next_run_time(self) -> Optional[datetime]:
        job = self._scheduler.get_job(self.JOB_ID)
        return getattr(job, "next_run_time", None) if job else None

    def status(self) -> Dict[str, Any]:
        """Snapshot del estado para monitoreo."""
        last_result = self.last_result
        next_run = self.next_run_time()
        return {
            "state": self._state.value,
            "interval_minutes": self._interval_minutes,
            "next_run_time": next_run.isoformat() if next_run else None,
            "runs_started": self.runs_started,
            "runs_dropped": self.runs_dropped,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_result": last_result.summary() if hasattr(last_result, "summary") else None,
            "last_error": self.last_error,
        }
