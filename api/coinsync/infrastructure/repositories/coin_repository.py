"""
Implementación del repositorio de monedas.
Maneja las operaciones de base de datos para la entidad CoinModel.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from coinsync.infrastructure.database.models import CoinModel, MARKET_COLUMNS


# Columnas por las que se permite ordenar el ranking "top"
SORTABLE_COLUMNS = {
    "market_cap": CoinModel.market_cap,
    "total_volume": CoinModel.total_volume,
    "price_change_percentage_24h": CoinModel.price_change_percentage_24h,
    "current_price": CoinModel.current_price,
    "market_cap_rank": CoinModel.market_cap_rank,
}


class CoinRepository:
    """Repositorio para gestionar monedas en la base de datos."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _search_filter(self, search: Optional[str]):
        if not search:
            return None
        pattern = f"%{search}%"
        return or_(CoinModel.name.ilike(pattern), CoinModel.symbol.ilike(pattern))

    async def get_by_id(self, coin_id: str) -> Optional[CoinModel]:
        """
        Obtiene una moneda por su identificador de CoinGecko.
        """
        return await self.db.get(CoinModel, coin_id)

    async def list_paginated(self, page: int = 1, limit: int = 10, search: Optional[str] = None) -> List[CoinModel]:
        """
        Lista monedas paginadas, filtrando por substring en name o symbol.
        """
        query = select(CoinModel)
        condition = self._search_filter(search)
        if condition is not None:
            query = query.where(condition)
        query = (
            query.order_by(CoinModel.market_cap_rank.asc().nulls_last(), CoinModel.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count(self, search: Optional[str] = None) -> int:
        """Cuenta las monedas que cumplen el filtro de busqueda."""
        query = select(func.count()).select_from(CoinModel)
        condition = self._search_filter(search)
        if condition is not None:
            query = query.where(condition)
        result = await self.db.execute(query)
        return int(result.scalar_one())

    async def get_top(self, sort_field: str, limit: int = 10) -> List[CoinModel]:
        """
        Retorna las primeras `limit` monedas ordenadas de forma descendente.
        Los valores nulos quedan al final.
        """
        column = SORTABLE_COLUMNS.get(sort_field)
        if column is None:
            raise ValueError(f"Columna de ordenamiento no soportada: {sort_field}")
        result = await self.db.execute(
            select(CoinModel).order_by(column.desc().nulls_last(), CoinModel.id).limit(limit)
        )
        return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]) -> CoinModel:
        coin = CoinModel(**data)
        self.db.add(coin)
        await self.db.flush()
        return coin

    async def update(self, coin_id: str, data: Dict[str, Any]) -> Optional[CoinModel]:
        """Actualiza los campos recibidos. Retorna None si no existe."""
        coin = await self.get_by_id(coin_id)
        if not coin:
            return None
        for key, value in data.items():
            if hasattr(coin, key) and key != "id":
                setattr(coin, key, value)
        await self.db.flush()
        return coin

    async def delete(self, coin_id: str) -> bool:
        """Elimina una moneda. Retorna False si no existe."""
        coin = await self.get_by_id(coin_id)
        if coin is None:
            return False
        await self.db.delete(coin)
        await self.db.flush()
        return True

    async def upsert_market_record(self, row: Dict[str, Any], synced_at: datetime) -> bool:
        """
        UPSERT por identificador natural.

        Si la moneda existe se sobrescriben TODAS las columnas de mercado
        (un valor ausente se guarda como NULL); si no existe se inserta.

        Returns:
            True si se insertó, False si se actualizó.
        """
        coin_id = row.get("id")
        if not coin_id:
            raise ValueError("Falta 'id' en row para UPSERT")

        coin = await self.get_by_id(coin_id)
        created = coin is None
        if created:
            coin = CoinModel(id=coin_id)
            self.db.add(coin)

        for column in MARKET_COLUMNS:
            setattr(coin, column, row.get(column))
        coin.synced_at = synced_at

        await self.db.flush()
        return created
