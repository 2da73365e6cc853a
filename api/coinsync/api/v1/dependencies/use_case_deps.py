"""
Dependencias para inyeccion de repositorios, casos de uso y del scheduler.
"""
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from coinsync.application.services.sync_scheduler import CoinSyncScheduler
from coinsync.application.use_cases.coin_use_cases import CoinUseCases
from coinsync.core.config import settings
from coinsync.infrastructure.database.session import get_db
from coinsync.infrastructure.external.coingecko.gecko_client import CoinGeckoClient
from coinsync.infrastructure.repositories.coin_repository import CoinRepository


def get_coin_repository(db: AsyncSession = Depends(get_db)) -> CoinRepository:
    """
    Dependencia para obtener el repositorio de monedas.

    Args:
        db: Sesion de base de datos

    Returns:
        CoinRepository: Instancia del repositorio
    """
    return CoinRepository(db)


def get_gecko_client() -> CoinGeckoClient:
    """Cliente CoinGecko para los endpoints proxy (sin reintentos)."""
    return CoinGeckoClient(
        settings.GECKO_API_KEY,
        base_url=settings.GECKO_BASE_URL,
        vs_currency=settings.GECKO_VS_CURRENCY,
        timeout_s=settings.GECKO_TIMEOUT_S,
    )


def get_coin_use_cases(
    repository: CoinRepository = Depends(get_coin_repository),
    gecko_client: CoinGeckoClient = Depends(get_gecko_client),
) -> CoinUseCases:
    """
    Dependencia para obtener los casos de uso de monedas.

    Returns:
        CoinUseCases: Instancia de casos de uso de monedas
    """
    return CoinUseCases(repository, gecko_client)


def get_coin_sync_scheduler(request: Request) -> Optional[CoinSyncScheduler]:
    """Scheduler creado en el startup (None si el sync esta deshabilitado)."""
    return getattr(request.app.state, "scheduler", None)
