"""
Politica de reintentos para requests de pagina a CoinGecko.

Separa tres responsabilidades:
- classify_response: resultado HTTP -> ErrorKind (funcion pura)
- compute_backoff: delay exponencial con jitter y tope (funcion pura)
- RetryPolicy: maquina de estados pequena que decide el siguiente paso
  (FETCHING -> BACKOFF -> FETCHING ... -> DONE | SKIPPED | ABORTED)

Estrategia:
- 429: respeta Retry-After si existe, si no backoff exponencial.
- 400 con mensaje "invalid": se salta la pagina sin reintentar.
- 400 sin ese patron: error irrecuperable, se aborta el fetch.
- Red / 5xx / otros status: backoff exponencial, mismo presupuesto que 429.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .types import ErrorKind


# Patron que identifica un 400 recuperable (parametro invalido)
SKIPPABLE_BAD_REQUEST_MARKER = "invalid"

DEFAULT_JITTER_RATIO = 0.1


def classify_response(status_code: Optional[int], message: str = "") -> ErrorKind:
    """
    Clasifica el resultado de un request.

    Args:
        status_code: Status HTTP, o None si hubo error de red
        message: Mensaje de error del body (solo relevante para 400)
    """
    if status_code is None:
        return ErrorKind.TRANSIENT
    if 200 <= status_code < 300:
        return ErrorKind.SUCCESS
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code == 400:
        if SKIPPABLE_BAD_REQUEST_MARKER in (message or "").lower():
            return ErrorKind.BAD_REQUEST_SKIPPABLE
        return ErrorKind.BAD_REQUEST_FATAL
    return ErrorKind.TRANSIENT


def parse_retry_after(value: Any) -> Optional[float]:
    """
    Interpreta el header Retry-After (segundos).
    Retorna None si no existe, no es numerico o no es positivo.
    """
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def compute_backoff(
    retry_count: int,
    *,
    base_delay: float,
    max_delay: float,
    jitter_ratio: float = DEFAULT_JITTER_RATIO,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Backoff exponencial: base * 2^retry_count, con jitter de hasta
    `jitter_ratio` hacia arriba, limitado a `max_delay`.

    Con jitter <= 100% el delay es no decreciente en retry_count
    (el minimo del intento n+1 duplica al del intento n).
    """
    delay = base_delay * (2 ** max(retry_count, 0)) * (1 + rng() * jitter_ratio)
    return min(delay, max_delay)


class RetryState(str, Enum):
    """Estados de la politica para una pagina."""

    FETCHING = "fetching"
    BACKOFF = "backoff"
    SKIPPED = "skipped"
    ABORTED = "aborted"
    DONE = "done"


class RetryAction(str, Enum):
    """Accion que debe ejecutar el caller."""

    RETURN = "return"
    RETRY = "retry"
    SKIP = "skip"
    GIVE_UP = "give_up"
    ABORT = "abort"


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    delay: float = 0.0
    reason: str = ""


class RetryPolicy:
    """
    Maquina de estados de reintentos para UNA pagina.

    Crear una instancia nueva por pagina: el contador de reintentos
    no se arrastra entre paginas.
    """

    def __init__(
        self,
        *,
        max_retries: int = 5,
        base_delay: float = 6.0,
        max_delay: float = 60.0,
        jitter_ratio: float = DEFAULT_JITTER_RATIO,
        rng: Optional[Callable[[], float]] = None,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_ratio = jitter_ratio
        self._rng = rng or random.random
        self.state = RetryState.FETCHING
        self.retry_count = 0
        self.last_error: Optional[str] = None

    def begin_attempt(self) -> None:
        if self.state in (RetryState.SKIPPED, RetryState.ABORTED, RetryState.DONE):
            raise RuntimeError(f"RetryPolicy en estado terminal: {self.state.value}")
        self.state = RetryState.FETCHING

    def backoff_delay(self) -> float:
        return compute_backoff(
            self.retry_count,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter_ratio=self.jitter_ratio,
            rng=self._rng,
        )

    def decide(
        self,
        kind: ErrorKind,
        *,
        retry_after: Optional[float] = None,
        reason: str = "",
    ) -> RetryDecision:
        """
        Consume el resultado de un intento y decide el siguiente paso.

        Para RETRY, el delay retornado es el que el caller debe esperar
        antes de volver a llamar a begin_attempt().
        """
        if kind is ErrorKind.SUCCESS:
            self.state = RetryState.DONE
            return RetryDecision(RetryAction.RETURN)

        self.last_error = reason or kind.value

        if kind is ErrorKind.BAD_REQUEST_SKIPPABLE:
            self.state = RetryState.SKIPPED
            return RetryDecision(RetryAction.SKIP, reason=self.last_error)

        if kind is ErrorKind.BAD_REQUEST_FATAL:
            self.state = RetryState.ABORTED
            return RetryDecision(RetryAction.ABORT, reason=self.last_error)

        # RATE_LIMITED / TRANSIENT comparten presupuesto
        if self.retry_count >= self.max_retries:
            self.state = RetryState.ABORTED
            return RetryDecision(RetryAction.GIVE_UP, reason=self.last_error)

        if kind is ErrorKind.RATE_LIMITED and retry_after:
            delay = retry_after
        else:
            delay = self.backoff_delay()

        self.retry_count += 1
        self.state = RetryState.BACKOFF
        return RetryDecision(RetryAction.RETRY, delay=delay, reason=self.last_error)
