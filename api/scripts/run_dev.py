"""
Script para ejecutar el servidor en modo desarrollo (autoreload).

Ejecutar desde la carpeta `api/`:
  python scripts/run_dev.py
"""
import uvicorn
from coinsync.core.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
