"""
Middleware para manejo centralizado de errores.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware para capturar errores no manejados por los exception handlers."""

    async def dispatch(self, request: Request, call_next):
        """
        Procesa la petición y captura errores.

        Args:
            request: Petición HTTP
            call_next: Siguiente middleware/handler

        Returns:
            Response: Respuesta HTTP (500 generico si algo explota)
        """
        try:
            return await call_next(request)
        except Exception as exc:
            logger.opt(exception=exc).error(
                "Error no manejado en {} {}: {}", request.method, request.url.path, exc
            )

            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "INTERNAL_SERVER_ERROR",
                    "message": "Ha ocurrido un error interno del servidor",
                    "details": {}
                }
            )
