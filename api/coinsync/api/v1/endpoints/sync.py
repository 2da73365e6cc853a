"""
Endpoints para el sync de monedas.
Permite consultar el estado del scheduler y disparar un ciclo manual.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from loguru import logger

from coinsync.application.dto.coin_dto import SyncTriggerResponseDTO
from coinsync.application.services.sync_scheduler import CoinSyncScheduler
from coinsync.api.v1.dependencies.use_case_deps import get_coin_sync_scheduler
from coinsync.shared.exceptions.base import AppException
from coinsync.shared.exceptions.domain import SyncAlreadyRunningException


router = APIRouter(prefix="/sync", tags=["Sync"])


def _require_scheduler(scheduler: Optional[CoinSyncScheduler]) -> CoinSyncScheduler:
    if scheduler is None:
        raise AppException(
            message="El sync de monedas esta deshabilitado (COIN_SYNC_ENABLED=false)",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="SYNC_DISABLED",
        )
    return scheduler


@router.get("/status")
async def get_sync_status(
    scheduler: Optional[CoinSyncScheduler] = Depends(get_coin_sync_scheduler)
) -> Dict[str, Any]:
    """
    Estado del scheduler: Idle/Running, proxima ejecucion y ultimo resultado.
    """
    return _require_scheduler(scheduler).status()


@router.post(
    "/run",
    response_model=SyncTriggerResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Disparar un ciclo de sync de monedas"
)
async def run_sync(
    scheduler: Optional[CoinSyncScheduler] = Depends(get_coin_sync_scheduler)
) -> SyncTriggerResponseDTO:
    """
    Lanza un ciclo fetch + reconcile en background.

    El ciclo no corre dentro del request: la respuesta es inmediata (202).
    Si ya hay un ciclo en curso responde 409.
    """
    scheduler = _require_scheduler(scheduler)
    if not scheduler.trigger_in_background(source="manual"):
        raise SyncAlreadyRunningException()

    logger.info("Sync de monedas disparado manualmente desde API")
    return SyncTriggerResponseDTO(
        message="Ciclo de sincronizacion iniciado",
        status=scheduler.status(),
    )
