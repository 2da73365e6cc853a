"""
DTOs relacionados con monedas.
Definen la estructura de datos para transferir informacion de monedas.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class CoinBaseDTO(BaseModel):
    """Campos de mercado comunes a lectura y escritura."""
    symbol: str = Field(..., description="Simbolo (p.ej. btc)")
    name: str = Field(..., description="Nombre para mostrar")
    image: Optional[str] = None
    current_price: Optional[float] = None
    market_cap: Optional[float] = None
    market_cap_rank: Optional[int] = None
    total_volume: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    price_change_24h: Optional[float] = None
    price_change_percentage_24h: Optional[float] = None


class CoinDTO(CoinBaseDTO):
    """
    DTO para representar una moneda persistida.
    """
    id: str = Field(..., description="Identificador de CoinGecko")
    synced_at: Optional[datetime] = Field(None, description="Ultima reconciliacion del sync")

    class Config:
        from_attributes = True


class CoinCreateDTO(CoinBaseDTO):
    """DTO para crear una moneda manualmente."""
    id: str = Field(..., min_length=1, description="Identificador de CoinGecko")


class CoinUpdateDTO(BaseModel):
    """DTO para actualizar una moneda. Solo se aplican los campos enviados."""
    symbol: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    current_price: Optional[float] = None
    market_cap: Optional[float] = None
    market_cap_rank: Optional[int] = None
    total_volume: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    price_change_24h: Optional[float] = None
    price_change_percentage_24h: Optional[float] = None

    @field_validator("symbol", "name")
    @classmethod
    def not_null(cls, value: Optional[str]) -> str:
        # Columnas NOT NULL: se pueden omitir, no anular
        if value is None:
            raise ValueError("no puede ser null")
        return value


class CoinListResponseDTO(BaseModel):
    """Respuesta paginada del listado de monedas."""
    coins: List[CoinDTO]
    total_pages: int = Field(..., alias="totalPages")
    current_page: int = Field(..., alias="currentPage")
    total: int

    class Config:
        populate_by_name = True


class MessageDTO(BaseModel):
    message: str


class SyncTriggerResponseDTO(BaseModel):
    """Respuesta al disparo manual del sync."""
    message: str
    status: Dict[str, Any]
