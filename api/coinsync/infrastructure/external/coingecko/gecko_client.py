"""
Cliente mínimo de CoinGecko REST API (sin SDKs externos).

Requisitos cubiertos:
- httpx async (las esperas no bloquean el event loop de la API)
- una página de /coins/markets por llamada
- rate-limit/backoff (429, red, 5xx) vía RetryPolicy
- 400 recuperable (pagina saltada) vs 400 fatal (abortar)
- proxies de solo lectura: market_chart, trending, categories
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import httpx
from loguru import logger

from coinsync.shared.utils.cancellation import CancellationToken

from .retry_policy import RetryAction, RetryPolicy, classify_response, parse_retry_after
from .types import ErrorKind, MarketPayloadError, MarketRecord, PageResult, PageStatus


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


class UpstreamApiError(RuntimeError):
    """Error de integración con CoinGecko (requests single-shot)."""


def _extract_error_message(response: httpx.Response) -> str:
    """
    Extrae el mensaje de error del body.

    CoinGecko responde con distintas formas segun el endpoint:
    {"error": "..."}, {"message": "..."} o {"status": {"error_message": "..."}}.
    """
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    if isinstance(body, dict):
        status = body.get("status")
        if isinstance(status, dict) and status.get("error_message"):
            return str(status["error_message"])
        for key in ("message", "error"):
            if body.get(key):
                return str(body[key])
    return response.text or f"HTTP {response.status_code}"


class CoinGeckoClient:
    """
    Cliente HTTP de CoinGecko.

    Importante:
    - fetch_page NUNCA lanza por errores HTTP: todo se traduce a PageResult.
    - Sin API key no se hace ninguna llamada de red (fail soft).
    - `transport` permite inyectar httpx.MockTransport en tests.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.coingecko.com/api/v3",
        vs_currency: str = "usd",
        order: str = "market_cap_desc",
        timeout_s: float = 30.0,
        max_retries: int = 5,
        base_delay_s: float = 6.0,
        max_delay_s: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rng: Optional[Callable[[], float]] = None,
    ) -> None:
        self._api_key = api_key or ""
        self._base_url = base_url.rstrip("/")
        self._vs_currency = vs_currency
        self._order = order
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._base_delay_s = base_delay_s
        self._max_delay_s = max_delay_s
        self._transport = transport
        self._rng = rng

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": DEFAULT_USER_AGENT,
            "x-cg-api-key": self._api_key,
        }

    def _new_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self._max_retries,
            base_delay=self._base_delay_s,
            max_delay=self._max_delay_s,
            rng=self._rng,
        )

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport) as client:
            return await client.get(
                f"{self._base_url}{path}",
                params=params,
                headers=self._headers(),
            )

    async def fetch_page(
        self,
        page: int,
        per_page: int,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> PageResult:
        """
        Trae una página de /coins/markets aplicando la política de reintentos.

        Returns:
            PageResult con status OK (records, posiblemente vacío), SKIPPED,
            EXHAUSTED, FATAL, CANCELLED o NO_CREDENTIALS.
        """
        if not self.has_credentials:
            logger.error("GECKO_API_KEY no configurada: no se consulta CoinGecko")
            return PageResult(status=PageStatus.NO_CREDENTIALS)

        cancel = cancel or CancellationToken()
        policy = self._new_policy()
        params = {
            "vs_currency": self._vs_currency,
            "order": self._order,
            "per_page": per_page,
            "page": page,
            "sparkline": "false",
        }

        while True:
            if cancel.is_cancelled:
                return PageResult(
                    status=PageStatus.CANCELLED,
                    retries=policy.retry_count,
                    error=policy.last_error,
                )

            policy.begin_attempt()
            records: list[MarketRecord] = []
            retry_after: Optional[float] = None
            message = ""

            try:
                response = await self._get("/coins/markets", params)
            except httpx.HTTPError as e:
                kind = ErrorKind.TRANSIENT
                message = f"{e.__class__.__name__}: {e}"
            else:
                kind = classify_response(response.status_code)
                if kind is ErrorKind.SUCCESS:
                    try:
                        records = self._parse_records(response, page)
                    except ValueError as e:
                        kind = ErrorKind.TRANSIENT
                        message = f"Respuesta invalida: {e}"
                else:
                    message = _extract_error_message(response)
                    kind = classify_response(response.status_code, message)
                    retry_after = parse_retry_after(response.headers.get("retry-after"))
                    message = f"HTTP {response.status_code}: {message}"

            decision = policy.decide(kind, retry_after=retry_after, reason=message)

            if decision.action is RetryAction.RETURN:
                return PageResult(status=PageStatus.OK, records=records, retries=policy.retry_count)

            if decision.action is RetryAction.RETRY:
                label = "Rate limited" if kind is ErrorKind.RATE_LIMITED else "Error transitorio"
                logger.warning(
                    f"{label} en pagina {page} ({decision.reason}). "
                    f"Esperando {decision.delay:.1f}s antes del reintento "
                    f"{policy.retry_count}/{policy.max_retries}..."
                )
                if not await cancel.sleep(decision.delay):
                    logger.info(f"Backoff de pagina {page} interrumpido por cancelacion")
                    return PageResult(
                        status=PageStatus.CANCELLED,
                        retries=policy.retry_count,
                        error=decision.reason,
                    )
                continue

            if decision.action is RetryAction.SKIP:
                logger.error(f"Parametro invalido en pagina {page} ({decision.reason}). Saltando pagina.")
                return PageResult(status=PageStatus.SKIPPED, retries=policy.retry_count, error=decision.reason)

            if decision.action is RetryAction.GIVE_UP:
                logger.error(
                    f"Reintentos agotados para pagina {page} "
                    f"({policy.retry_count}/{policy.max_retries}, {kind.value}): {decision.reason}"
                )
                return PageResult(status=PageStatus.EXHAUSTED, retries=policy.retry_count, error=decision.reason)

            logger.error(f"Bad request irrecuperable en pagina {page}: {decision.reason}")
            return PageResult(status=PageStatus.FATAL, retries=policy.retry_count, error=decision.reason)

    def _parse_records(self, response: httpx.Response, page: int) -> list[MarketRecord]:
        """
        Convierte el body (array JSON) en MarketRecord.
        Items inválidos se descartan con warning; el resto de la página sigue.
        """
        payload = response.json()
        if not isinstance(payload, list):
            raise ValueError(f"se esperaba un array JSON, llego {type(payload).__name__}")

        records: list[MarketRecord] = []
        for item in payload:
            try:
                records.append(MarketRecord.from_payload(item))
            except MarketPayloadError as e:
                logger.warning(f"Item descartado en pagina {page}: {e}")
        return records

    async def _get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET single-shot (sin reintentos) para los endpoints proxy."""
        try:
            response = await self._get(path, params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise UpstreamApiError(f"CoinGecko {path} falló: {e}") from e
        except ValueError as e:
            raise UpstreamApiError(f"CoinGecko {path} devolvió JSON inválido") from e

    async def get_market_chart(self, coin_id: str, days: str) -> dict[str, Any]:
        """Serie histórica (prices, market_caps, total_volumes) de una moneda."""
        return await self._get_json(
            f"/coins/{coin_id}/market_chart",
            {"vs_currency": self._vs_currency, "days": days},
        )

    async def get_trending(self) -> list[Any]:
        """Monedas en tendencia (solo la lista `coins` del payload)."""
        payload = await self._get_json("/search/trending")
        return payload.get("coins", []) if isinstance(payload, dict) else []

    async def get_categories(self) -> list[Any]:
        """Categorías de monedas con sus métricas agregadas."""
        payload = await self._get_json("/coins/categories")
        return payload if isinstance(payload, list) else []
