"""
Configuración de base de datos.

Importa todos los modelos para que se registren con Base
antes de crear las tablas.
"""
from coinsync.infrastructure.database.models import CoinModel
