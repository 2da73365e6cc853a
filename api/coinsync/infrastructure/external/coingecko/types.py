"""
Tipos y utilidades puras para el pipeline CoinGecko -> base de datos.

Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


class MarketPayloadError(ValueError):
    """Item de /coins/markets que no se puede convertir en MarketRecord."""


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None else None


@dataclass(frozen=True)
class MarketRecord:
    """
    Snapshot de un activo en el momento del fetch.

    `id` es el identificador natural de CoinGecko y la clave del UPSERT.
    Los campos numéricos pueden venir vacíos desde la API.
    """

    id: str
    symbol: str
    name: str
    image: Optional[str] = None
    current_price: Optional[float] = None
    market_cap: Optional[float] = None
    market_cap_rank: Optional[int] = None
    total_volume: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    price_change_24h: Optional[float] = None
    price_change_percentage_24h: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "MarketRecord":
        """
        Construye un MarketRecord desde un objeto JSON de /coins/markets.

        Ignora campos extra (sparkline, roi, ath, ...). Falla si faltan
        id, symbol o name.
        """
        if not isinstance(payload, dict):
            raise MarketPayloadError(f"Item inesperado (no es objeto JSON): {payload!r}")

        for key in ("id", "symbol", "name"):
            if not payload.get(key):
                raise MarketPayloadError(
                    f"Item sin campo obligatorio '{key}': id={payload.get('id')!r}"
                )

        return cls(
            id=str(payload["id"]),
            symbol=str(payload["symbol"]),
            name=str(payload["name"]),
            image=payload.get("image"),
            current_price=_to_float(payload.get("current_price")),
            market_cap=_to_float(payload.get("market_cap")),
            market_cap_rank=_to_int(payload.get("market_cap_rank")),
            total_volume=_to_float(payload.get("total_volume")),
            high_24h=_to_float(payload.get("high_24h")),
            low_24h=_to_float(payload.get("low_24h")),
            price_change_24h=_to_float(payload.get("price_change_24h")),
            price_change_percentage_24h=_to_float(payload.get("price_change_percentage_24h")),
        )

    def to_row(self) -> dict[str, Any]:
        """Dict con todas las columnas de mercado, listo para UPSERT."""
        return asdict(self)


class ErrorKind(str, Enum):
    """Clasificacion del resultado HTTP de un request de pagina."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    BAD_REQUEST_SKIPPABLE = "bad_request_skippable"
    BAD_REQUEST_FATAL = "bad_request_fatal"
    TRANSIENT = "transient"


class PageStatus(str, Enum):
    """Resultado final de fetch_page para una pagina."""

    OK = "ok"
    SKIPPED = "skipped"
    EXHAUSTED = "exhausted"
    FATAL = "fatal"
    CANCELLED = "cancelled"
    NO_CREDENTIALS = "no_credentials"


@dataclass(frozen=True)
class PageResult:
    status: PageStatus
    records: list[MarketRecord] = field(default_factory=list)
    retries: int = 0
    error: Optional[str] = None


class StopReason(str, Enum):
    """Condicion terminal de una corrida de paginacion."""

    EMPTY_PAGE = "empty_page"
    MAX_PAGES = "max_pages"
    RETRIES_EXHAUSTED = "retries_exhausted"
    FATAL_ERROR = "fatal_error"
    NO_CREDENTIALS = "no_credentials"
    CANCELLED = "cancelled"


@dataclass
class FetchCycleState:
    """
    Estado efimero de una corrida de fetch.

    Se crea al iniciar el ciclo y se descarta al terminar; `records`
    siempre contiene lo acumulado hasta la condicion terminal.
    """

    page: int = 1
    records: list[MarketRecord] = field(default_factory=list)
    retry_count: int = 0
    last_error: Optional[str] = None
    pages_fetched: int = 0
    pages_skipped: int = 0
    stop_reason: Optional[StopReason] = None

    def summary(self) -> dict[str, Any]:
        return {
            "records": len(self.records),
            "pages_fetched": self.pages_fetched,
            "pages_skipped": self.pages_skipped,
            "last_page": self.page,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class ReconcileFailure:
    coin_id: str
    reason: str


@dataclass
class ReconcileReport:
    """Resultado por registro de una reconciliacion."""

    inserted: int = 0
    updated: int = 0
    failed: list[ReconcileFailure] = field(default_factory=list)
    aborted: bool = False

    @property
    def succeeded(self) -> int:
        return self.inserted + self.updated

    @property
    def total(self) -> int:
        return self.succeeded + len(self.failed)

    def summary(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "failed": len(self.failed),
            "aborted": self.aborted,
        }
