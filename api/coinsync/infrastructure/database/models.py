"""
Modelos de base de datos (ORM).
"""
from sqlalchemy import Column, String, Integer, Float, DateTime
from sqlalchemy.sql import func

from coinsync.infrastructure.database.session import Base


# Columnas de mercado que el sync sobrescribe en cada corrida
MARKET_COLUMNS = (
    "symbol",
    "name",
    "image",
    "current_price",
    "market_cap",
    "market_cap_rank",
    "total_volume",
    "high_24h",
    "low_24h",
    "price_change_24h",
    "price_change_percentage_24h",
)


class CoinModel(Base):
    """
    Modelo de base de datos para activos del mercado (monedas).

    El PK es el identificador estable de CoinGecko (p.ej. 'bitcoin'),
    por lo que el sync puede hacer UPSERT por clave natural y los
    colaboradores (API HTTP) pueden buscar por el mismo id entre corridas.

    Los campos numericos son opcionales: CoinGecko puede omitirlos.
    """

    __tablename__ = "coins"

    id = Column(String(255), primary_key=True)
    symbol = Column(String(50), nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    image = Column(String(1024), nullable=True)
    current_price = Column(Float, nullable=True)
    market_cap = Column(Float, nullable=True)
    market_cap_rank = Column(Integer, nullable=True)
    total_volume = Column(Float, nullable=True)
    high_24h = Column(Float, nullable=True)
    low_24h = Column(Float, nullable=True)
    price_change_24h = Column(Float, nullable=True)
    price_change_percentage_24h = Column(Float, nullable=True)

    # Columnas tecnicas
    synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Coin(id={self.id}, symbol={self.symbol}, rank={self.market_cap_rank})>"
