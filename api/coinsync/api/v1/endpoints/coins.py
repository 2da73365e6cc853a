"""
Endpoints de monedas.
Lectura/edicion de lo que persiste el sync y proxies hacia CoinGecko.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from coinsync.application.dto.coin_dto import (
    CoinCreateDTO,
    CoinDTO,
    CoinListResponseDTO,
    CoinUpdateDTO,
    MessageDTO,
)
from coinsync.application.use_cases.coin_use_cases import CoinUseCases
from coinsync.api.v1.dependencies.use_case_deps import get_coin_use_cases

router = APIRouter(prefix="/coins", tags=["Coins"])


@router.get("", response_model=CoinListResponseDTO)
async def list_coins(
    page: int = Query(1, ge=1, description="Numero de pagina"),
    limit: int = Query(10, ge=1, le=250, description="Items por pagina"),
    search: str = Query("", description="Busqueda por nombre o simbolo"),
    use_cases: CoinUseCases = Depends(get_coin_use_cases)
):
    """
    Listar monedas con paginacion y busqueda.
    """
    return await use_cases.list_coins(page=page, limit=limit, search=search)


@router.get("/top", response_model=List[CoinDTO])
async def get_top_coins(
    limit: int = Query(10, ge=1, le=250),
    by: str = Query("market_cap", description="market_cap | volume | price_change_24h"),
    use_cases: CoinUseCases = Depends(get_coin_use_cases)
):
    """
    Ranking de monedas por criterio.
    """
    return await use_cases.get_top_coins(limit=limit, by=by)


@router.get("/trending")
async def get_trending_coins(use_cases: CoinUseCases = Depends(get_coin_use_cases)) -> List[Any]:
    """Monedas en tendencia (proxy CoinGecko)."""
    return await use_cases.get_trending()


@router.get("/categories")
async def get_coin_categories(use_cases: CoinUseCases = Depends(get_coin_use_cases)) -> List[Any]:
    """Categorias de monedas (proxy CoinGecko)."""
    return await use_cases.get_categories()


@router.get("/{coin_id}", response_model=CoinDTO)
async def get_coin(
    coin_id: str,
    use_cases: CoinUseCases = Depends(get_coin_use_cases)
):
    """
    Obtener una moneda por su identificador de CoinGecko.
    """
    return await use_cases.get_coin(coin_id)


@router.get("/{coin_id}/history")
async def get_coin_history(
    coin_id: str,
    days: Optional[str] = Query(None, description="Cantidad de dias (o 'max')"),
    use_cases: CoinUseCases = Depends(get_coin_use_cases)
) -> Dict[str, Any]:
    """
    Historial de mercado de una moneda (proxy CoinGecko).
    """
    return await use_cases.get_coin_history(coin_id, days)


@router.post("", response_model=CoinDTO, status_code=status.HTTP_201_CREATED)
async def create_coin(
    dto: CoinCreateDTO,
    use_cases: CoinUseCases = Depends(get_coin_use_cases)
):
    return await use_cases.create_coin(dto)


@router.put("/{coin_id}", response_model=CoinDTO)
async def update_coin(
    coin_id: str,
    dto: CoinUpdateDTO,
    use_cases: CoinUseCases = Depends(get_coin_use_cases)
):
    return await use_cases.update_coin(coin_id, dto)


@router.delete("/{coin_id}", response_model=MessageDTO)
async def delete_coin(
    coin_id: str,
    use_cases: CoinUseCases = Depends(get_coin_use_cases)
):
    await use_cases.delete_coin(coin_id)
    return MessageDTO(message="Coin deleted")
