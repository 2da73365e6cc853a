"""
Senal de cancelacion cooperativa para jobs de larga duracion.

Motivacion:
- El sync de monedas espera varios segundos entre paginas y durante los
  backoffs. Un `asyncio.sleep` plano no se puede interrumpir sin cancelar
  la task completa.
- Necesitamos que el shutdown de la app despierte esas esperas y que el
  job termine en el siguiente limite de pagina, conservando lo ya obtenido.

Uso:
    token = CancellationToken()
    completed = await token.sleep(6.0)
    if not completed:
        # cancelado durante la espera
        ...
"""

from __future__ import annotations

import asyncio


class CancellationToken:
    """
    Token de cancelacion basado en `asyncio.Event`.

    Una vez cancelado permanece cancelado; crear uno nuevo para el
    siguiente ciclo de vida (p.ej. tras reiniciar el scheduler).
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Marca el token como cancelado y despierta a quien este esperando."""
        self._event.set()

    async def sleep(self, seconds: float) -> bool:
        """
        Espera `seconds` sin bloquear el event loop.

        Returns:
            True si la espera se completo, False si fue interrumpida
            (o el token ya estaba cancelado).
        """
        if self.is_cancelled:
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False
