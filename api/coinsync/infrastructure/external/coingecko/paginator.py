"""
Paginación secuencial de /coins/markets.

Recorre páginas 1..N con pausa fija entre requests (para quedar bajo el
rate-limit incluso cuando todo responde bien) y acumula los registros.
Nunca lanza: ante cualquier condición terminal retorna lo acumulado.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from coinsync.shared.utils.cancellation import CancellationToken

from .gecko_client import CoinGeckoClient
from .types import FetchCycleState, MarketRecord, PageStatus, StopReason


_TERMINAL_STATUSES = {
    PageStatus.EXHAUSTED: StopReason.RETRIES_EXHAUSTED,
    PageStatus.FATAL: StopReason.FATAL_ERROR,
    PageStatus.CANCELLED: StopReason.CANCELLED,
    PageStatus.NO_CREDENTIALS: StopReason.NO_CREDENTIALS,
}


class CoinMarketPaginator:
    """
    Driver de paginación sobre CoinGeckoClient.

    Condiciones de corte:
    - página vacía (no hay más datos)
    - max_pages alcanzado (0 / None = sin límite)
    - reintentos agotados o 400 irrecuperable en el cliente
    - cancelación (shutdown)
    Una página con 400 "invalid" se salta y se continúa con la siguiente.
    """

    def __init__(
        self,
        client: CoinGeckoClient,
        *,
        per_page: int = 250,
        max_pages: Optional[int] = 10,
        page_delay_s: float = 6.0,
    ) -> None:
        self._client = client
        self._per_page = per_page
        self._max_pages = max_pages or None
        self._page_delay_s = page_delay_s

    async def fetch_all(self, cancel: Optional[CancellationToken] = None) -> list[MarketRecord]:
        """Trae todas las páginas posibles y retorna los registros acumulados."""
        state = await self.collect(cancel)
        return state.records

    async def collect(self, cancel: Optional[CancellationToken] = None) -> FetchCycleState:
        """Igual que fetch_all, pero retorna el estado completo de la corrida."""
        cancel = cancel or CancellationToken()
        state = FetchCycleState()

        if not self._client.has_credentials:
            logger.error("GECKO_API_KEY no configurada. Se omite el fetch de monedas.")
            state.stop_reason = StopReason.NO_CREDENTIALS
            return state

        try:
            await self._run(state, cancel)
        except Exception as e:
            logger.exception(f"Error inesperado paginando monedas (pagina {state.page}): {e}")
            state.last_error = str(e)
            state.stop_reason = StopReason.FATAL_ERROR

        logger.info(
            f"Total de monedas obtenidas: {len(state.records)} "
            f"(paginas={state.pages_fetched}, saltadas={state.pages_skipped}, "
            f"corte={state.stop_reason.value if state.stop_reason else None})"
        )
        return state

    async def _run(self, state: FetchCycleState, cancel: CancellationToken) -> None:
        while True:
            if self._max_pages and state.page > self._max_pages:
                logger.info(f"Limite maximo de paginas alcanzado ({self._max_pages})")
                state.stop_reason = StopReason.MAX_PAGES
                return

            # Pausa entre paginas; tambien es punto de cancelacion
            if state.page > 1 and not await cancel.sleep(self._page_delay_s):
                state.stop_reason = StopReason.CANCELLED
                return
            if cancel.is_cancelled:
                state.stop_reason = StopReason.CANCELLED
                return

            result = await self._client.fetch_page(state.page, self._per_page, cancel=cancel)
            state.retry_count = result.retries
            if result.error:
                state.last_error = result.error

            if result.status in _TERMINAL_STATUSES:
                state.stop_reason = _TERMINAL_STATUSES[result.status]
                logger.warning(
                    f"Paginacion detenida en pagina {state.page} ({result.status.value}). "
                    f"Se conservan {len(state.records)} monedas parciales."
                )
                return

            if result.status is PageStatus.SKIPPED:
                state.pages_skipped += 1
            elif not result.records:
                logger.info(f"Pagina {state.page} vacia: no hay mas monedas")
                state.stop_reason = StopReason.EMPTY_PAGE
                return
            else:
                state.records.extend(result.records)
                state.pages_fetched += 1
                logger.info(f"Pagina {state.page} obtenida con {len(result.records)} monedas")

            state.page += 1
