"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
from typing import Callable
from fastapi import FastAPI
from loguru import logger

from coinsync.core.config import settings
from coinsync.infrastructure.database.session import AsyncSessionLocal, init_db, close_db
from coinsync.application.services.sync_scheduler import CoinSyncScheduler
from coinsync.application.use_cases.coin_sync_use_cases import build_coin_sync_use_cases


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Inicializa recursos al inicio de la aplicacion."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            # Configurar logging a archivo
            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            # Validar configuracion critica
            _validate_config()

            # Inicializar base de datos (crea tablas si no existen)
            await init_db()
            logger.info("Base de datos inicializada")

            # Scheduler del sync de monedas (disparo al arrancar + intervalo)
            app.state.scheduler = None
            if settings.COIN_SYNC_ENABLED:
                use_cases = build_coin_sync_use_cases(AsyncSessionLocal)
                scheduler = CoinSyncScheduler(
                    use_cases.run_cycle,
                    interval_minutes=settings.COIN_SYNC_INTERVAL_MINUTES,
                    run_on_startup=settings.COIN_SYNC_ON_STARTUP,
                )
                scheduler.start()
                app.state.scheduler = scheduler
            else:
                logger.warning("Sync de monedas deshabilitado (COIN_SYNC_ENABLED=false)")

            logger.success("Aplicacion iniciada correctamente")

            _print_available_urls()

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config() -> None:
    """Valida que la configuracion critica este presente."""
    warnings = []

    if not settings.GECKO_API_KEY:
        warnings.append("GECKO_API_KEY no configurada - el sync de monedas no consultara CoinGecko")

    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def _print_available_urls() -> None:
    """Imprime las URLs disponibles de la aplicacion."""
    if settings.HOST == "0.0.0.0":
        access_host = "localhost"
    else:
        access_host = settings.HOST

    base_url = f"http://{access_host}:{settings.PORT}"

    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info("<bold><green>URLS DISPONIBLES:</green></bold>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Monedas:     {base_url}/api/v1/coins</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Sync:        {base_url}/api/v1/sync/status</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicacion."""
        logger.info("Cerrando aplicacion...")

        # Detener scheduler (interrumpe backoffs y pausas en curso)
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            await scheduler.shutdown()

        # Cerrar conexiones de base de datos
        await close_db()
        logger.info("Conexiones de base de datos cerradas")

        logger.success("Aplicacion cerrada correctamente")

    return shutdown
