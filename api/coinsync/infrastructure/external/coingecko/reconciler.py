"""
Reconciliación de registros de mercado contra la base de datos.

Cada registro se aplica como UPSERT por identificador natural, en orden,
y cada UPSERT corre en su propia transacción (unidad atómica).

Política de fallos:
- isolate_failures=True (default): un registro que falla se revierte, se
  reporta en ReconcileReport.failed y se continúa con el resto.
- isolate_failures=False: el primer fallo aborta el lote restante y se
  propaga como ReconciliationAbortedError (con el reporte parcial).

No hay borrados: monedas que ya no vienen en el fetch quedan como están.
"""

from __future__ import annotations

from typing import Callable, Iterable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coinsync.infrastructure.repositories.coin_repository import CoinRepository

from .types import MarketRecord, ReconcileFailure, ReconcileReport, utc_now


class ReconciliationAbortedError(RuntimeError):
    """Reconciliación estricta abortada por un fallo de escritura."""

    def __init__(self, coin_id: str, report: ReconcileReport, cause: Exception):
        self.coin_id = coin_id
        self.report = report
        super().__init__(f"Reconciliacion abortada en la moneda '{coin_id}': {cause}")


class CoinReconciler:
    """
    Aplica MarketRecord -> CoinModel vía CoinRepository.upsert_market_record.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        isolate_failures: bool = True,
        repository_factory: Callable[[AsyncSession], CoinRepository] = CoinRepository,
    ) -> None:
        self._session_factory = session_factory
        self._isolate_failures = isolate_failures
        self._repository_factory = repository_factory

    async def reconcile(self, records: Iterable[MarketRecord]) -> ReconcileReport:
        report = ReconcileReport()
        synced_at = utc_now()

        for record in records:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        repo = self._repository_factory(session)
                        created = await repo.upsert_market_record(record.to_row(), synced_at=synced_at)
            except Exception as e:
                report.failed.append(ReconcileFailure(coin_id=record.id, reason=str(e)[:500]))
                if not self._isolate_failures:
                    report.aborted = True
                    logger.error(f"Error guardando moneda {record.id}. Abortando el lote: {e}")
                    raise ReconciliationAbortedError(record.id, report, e) from e
                logger.error(f"Error guardando moneda {record.id} (se continua con el lote): {e}")
                continue

            if created:
                report.inserted += 1
            else:
                report.updated += 1

        logger.info(
            f"Reconciliacion completada: insertadas={report.inserted}, "
            f"actualizadas={report.updated}, fallidas={len(report.failed)}"
        )
        return report
