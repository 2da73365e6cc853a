"""
Casos de uso para la sincronización de monedas (CoinGecko -> base de datos).

Un ciclo = fetch paginado completo + reconciliación de lo obtenido.
El ciclo nunca se ejecuta dentro de un request: lo dispara el scheduler
(arranque + intervalo fijo), el endpoint manual en background o el CLI.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coinsync.core.config import settings
from coinsync.infrastructure.external.coingecko.gecko_client import CoinGeckoClient
from coinsync.infrastructure.external.coingecko.paginator import CoinMarketPaginator
from coinsync.infrastructure.external.coingecko.reconciler import (
    CoinReconciler,
    ReconciliationAbortedError,
)
from coinsync.infrastructure.external.coingecko.types import (
    FetchCycleState,
    ReconcileReport,
    utc_now,
)
from coinsync.shared.utils.cancellation import CancellationToken


@dataclass
class SyncCycleResult:
    """Resultado de un ciclo fetch + reconcile."""
    started_at: datetime
    finished_at: datetime
    fetch: FetchCycleState
    report: ReconcileReport = field(default_factory=ReconcileReport)

    def summary(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_s": round((self.finished_at - self.started_at).total_seconds(), 3),
            "fetch": self.fetch.summary(),
            "reconcile": self.report.summary(),
        }


class CoinSyncUseCases:
    """
    Orquestador del ciclo de sincronización.
    """

    def __init__(self, paginator: CoinMarketPaginator, reconciler: CoinReconciler):
        self.paginator = paginator
        self.reconciler = reconciler

    async def run_cycle(self, cancel: Optional[CancellationToken] = None) -> SyncCycleResult:
        """
        Ejecuta un ciclo completo.

        Los errores de fetch quedan reflejados en `result.fetch` (datos parciales);
        una reconciliación estricta abortada queda en `result.report.aborted`.
        """
        started_at = utc_now()
        logger.info("Iniciando ciclo de sincronizacion de monedas")

        fetch_state = await self.paginator.collect(cancel)

        report = ReconcileReport()
        if fetch_state.records:
            try:
                report = await self.reconciler.reconcile(fetch_state.records)
            except ReconciliationAbortedError as e:
                logger.error(f"{e}. Persistidas antes del corte: {e.report.succeeded}")
                report = e.report
        else:
            logger.warning("El fetch no devolvio monedas; no hay nada que reconciliar")

        result = SyncCycleResult(
            started_at=started_at,
            finished_at=utc_now(),
            fetch=fetch_state,
            report=report,
        )

        if report.failed or report.aborted or not fetch_state.records:
            logger.warning(f"Ciclo de sincronizacion con errores: {result.summary()}")
        else:
            logger.success(f"Monedas actualizadas correctamente: {result.summary()}")
        return result


def build_coin_sync_use_cases(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    max_pages: Optional[int] = None,
    isolate_failures: Optional[bool] = None,
) -> CoinSyncUseCases:
    """
    Constructor "oficial" del ciclo leyendo la configuración global.

    Los parámetros opcionales permiten overrides puntuales (CLI, tests).
    """
    client = CoinGeckoClient(
        settings.GECKO_API_KEY,
        base_url=settings.GECKO_BASE_URL,
        vs_currency=settings.GECKO_VS_CURRENCY,
        order=settings.GECKO_ORDER,
        timeout_s=settings.GECKO_TIMEOUT_S,
        max_retries=settings.GECKO_MAX_RETRIES,
        base_delay_s=settings.GECKO_BASE_DELAY_S,
        max_delay_s=settings.GECKO_MAX_DELAY_S,
        transport=transport,
    )
    paginator = CoinMarketPaginator(
        client,
        per_page=settings.GECKO_PER_PAGE,
        max_pages=settings.GECKO_MAX_PAGES if max_pages is None else max_pages,
        page_delay_s=settings.GECKO_PAGE_DELAY_S,
    )
    reconciler = CoinReconciler(
        session_factory,
        isolate_failures=(
            settings.COIN_SYNC_ISOLATE_FAILURES if isolate_failures is None else isolate_failures
        ),
    )
    return CoinSyncUseCases(paginator, reconciler)
