"""
Configuracion central de la aplicacion.
Gestiona variables de entorno y configuraciones globales.
Soporta configuracion dinamica para desarrollo (ENVIRONMENT=development)
y produccion (ENVIRONMENT=production).
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    Grupos de configuracion:
    - Aplicacion / servidor / CORS / logging
    - Base de datos (DATABASE_URL completa o SQLite local por defecto)
    - CoinGecko: credencial, paginacion y politica de reintentos
    - Sync: cadencia del job recurrente y politica de reconciliacion
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="Crypto Market API")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8080)

    # Base de datos (postgresql+asyncpg://... en produccion)
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./coinsync.db")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")

    # CoinGecko - Sin API key el sync no hace llamadas HTTP
    GECKO_API_KEY: str = Field(default="")
    GECKO_BASE_URL: str = Field(default="https://api.coingecko.com/api/v3")
    GECKO_VS_CURRENCY: str = Field(default="usd")
    GECKO_ORDER: str = Field(default="market_cap_desc")
    GECKO_PER_PAGE: int = Field(default=250)
    # 0 = sin limite de paginas
    GECKO_MAX_PAGES: int = Field(default=10)
    GECKO_MAX_RETRIES: int = Field(default=5)
    GECKO_BASE_DELAY_S: float = Field(default=6.0)
    GECKO_MAX_DELAY_S: float = Field(default=60.0)
    GECKO_PAGE_DELAY_S: float = Field(default=6.0)
    GECKO_TIMEOUT_S: float = Field(default=30.0)

    # Sync recurrente de monedas
    COIN_SYNC_ENABLED: bool = Field(default=True)
    COIN_SYNC_ON_STARTUP: bool = Field(default=True)
    COIN_SYNC_INTERVAL_MINUTES: int = Field(default=30, gt=0)
    # False = aborta el lote completo ante el primer error de escritura
    COIN_SYNC_ISOLATE_FAILURES: bool = Field(default=True)

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Normaliza 'postgres://' y 'postgresql://' al driver async (asyncpg).
        """
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        if url.startswith("postgresql://"):
            url = "postgresql+asyncpg://" + url[len("postgresql://"):]
        return url

    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuracion de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON valido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuracion
settings = Settings()
