"""
Casos de uso relacionados con monedas.
Contiene la logica de consulta/edicion sobre lo que el sync persiste,
mas los proxies de solo lectura hacia CoinGecko.
"""
import math
from typing import Any, Dict, List, Optional

from loguru import logger

from coinsync.application.dto.coin_dto import (
    CoinCreateDTO,
    CoinDTO,
    CoinListResponseDTO,
    CoinUpdateDTO,
)
from coinsync.infrastructure.external.coingecko.gecko_client import CoinGeckoClient, UpstreamApiError
from coinsync.infrastructure.repositories.coin_repository import CoinRepository
from coinsync.shared.exceptions.domain import (
    EntityAlreadyExistsException,
    EntityNotFoundException,
    UpstreamServiceException,
    ValidationException,
)


# Criterio publico -> columna de ordenamiento
TOP_SORT_CRITERIA = {
    "market_cap": "market_cap",
    "volume": "total_volume",
    "price_change_24h": "price_change_percentage_24h",
}


class CoinUseCases:
    """
    Casos de uso para gestion de informacion de monedas.
    """

    def __init__(self, repository: CoinRepository, gecko_client: Optional[CoinGeckoClient] = None):
        self.repository = repository
        self.gecko_client = gecko_client

    async def list_coins(self, page: int = 1, limit: int = 10, search: str = "") -> CoinListResponseDTO:
        """
        Lista monedas paginadas con busqueda por nombre o simbolo.
        """
        coins = await self.repository.list_paginated(page=page, limit=limit, search=search)
        total = await self.repository.count(search=search)
        return CoinListResponseDTO(
            coins=[CoinDTO.model_validate(c) for c in coins],
            total_pages=math.ceil(total / limit) if limit else 0,
            current_page=page,
            total=total,
        )

    async def get_coin(self, coin_id: str) -> CoinDTO:
        """
        Obtiene una moneda por su identificador.

        Raises:
            EntityNotFoundException: Si la moneda no existe
        """
        coin = await self.repository.get_by_id(coin_id)
        if not coin:
            raise EntityNotFoundException("Coin", coin_id)
        return CoinDTO.model_validate(coin)

    async def create_coin(self, dto: CoinCreateDTO) -> CoinDTO:
        if await self.repository.get_by_id(dto.id):
            raise EntityAlreadyExistsException("Coin", "id", dto.id)
        coin = await self.repository.create(dto.model_dump())
        logger.info(f"Moneda creada manualmente: {coin.id}")
        return CoinDTO.model_validate(coin)

    async def update_coin(self, coin_id: str, dto: CoinUpdateDTO) -> CoinDTO:
        coin = await self.repository.update(coin_id, dto.model_dump(exclude_unset=True))
        if not coin:
            raise EntityNotFoundException("Coin", coin_id)
        return CoinDTO.model_validate(coin)

    async def delete_coin(self, coin_id: str) -> None:
        if not await self.repository.delete(coin_id):
            raise EntityNotFoundException("Coin", coin_id)
        logger.info(f"Moneda eliminada: {coin_id}")

    async def get_top_coins(self, limit: int = 10, by: str = "market_cap") -> List[CoinDTO]:
        """
        Ranking descendente por capitalizacion, volumen o variacion 24h.

        Raises:
            ValidationException: Si el criterio no es soportado
        """
        sort_field = TOP_SORT_CRITERIA.get(by)
        if sort_field is None:
            raise ValidationException("Criterio de ordenamiento invalido", field="by")
        coins = await self.repository.get_top(sort_field, limit=limit)
        return [CoinDTO.model_validate(c) for c in coins]

    def _require_client(self) -> CoinGeckoClient:
        if self.gecko_client is None:
            raise UpstreamServiceException("CoinGecko", "cliente no configurado")
        return self.gecko_client

    async def get_coin_history(self, coin_id: str, days: Optional[str]) -> Dict[str, Any]:
        if not days:
            raise ValidationException("El parametro days es obligatorio", field="days")
        try:
            return await self._require_client().get_market_chart(coin_id, days)
        except UpstreamApiError as e:
            logger.error(f"Error obteniendo historial de {coin_id}: {e}")
            raise UpstreamServiceException("CoinGecko", str(e)) from e

    async def get_trending(self) -> List[Any]:
        try:
            return await self._require_client().get_trending()
        except UpstreamApiError as e:
            logger.error(f"Error obteniendo monedas en tendencia: {e}")
            raise UpstreamServiceException("CoinGecko", str(e)) from e

    async def get_categories(self) -> List[Any]:
        try:
            return await self._require_client().get_categories()
        except UpstreamApiError as e:
            logger.error(f"Error obteniendo categorias: {e}")
            raise UpstreamServiceException("CoinGecko", str(e)) from e
