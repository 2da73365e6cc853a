"""
Excepciones relacionadas con la lógica de dominio.
"""
from typing import Any

from coinsync.shared.exceptions.base import AppException


class DomainException(AppException):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, error_code: str = "DOMAIN_ERROR", details=None, status_code: int = 400):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details
        )


class EntityNotFoundException(DomainException):
    """Excepción cuando no se encuentra una entidad."""

    def __init__(self, entity_name: str, entity_id: Any):
        super().__init__(
            message=f"{entity_name} con ID {entity_id} no encontrado",
            error_code="ENTITY_NOT_FOUND",
            details={"entity": entity_name, "id": str(entity_id)},
            status_code=404,
        )


class EntityAlreadyExistsException(DomainException):
    """Excepción cuando una entidad ya existe."""

    def __init__(self, entity_name: str, field: str, value: Any):
        super().__init__(
            message=f"{entity_name} con {field}={value} ya existe",
            error_code="ENTITY_ALREADY_EXISTS",
            details={"entity": entity_name, "field": field, "value": str(value)},
            status_code=409,
        )


class ValidationException(DomainException):
    """Excepción para errores de validación."""

    def __init__(self, message: str, field: str = None):
        details = {"field": field} if field else None
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details
        )


class SyncAlreadyRunningException(DomainException):
    """Excepcion cuando se solicita un sync mientras otro ciclo esta en curso."""

    def __init__(self):
        super().__init__(
            message="Ya hay un ciclo de sincronizacion en curso",
            error_code="SYNC_ALREADY_RUNNING",
            status_code=409,
        )


class UpstreamServiceException(AppException):
    """Excepcion cuando el proveedor externo (CoinGecko) falla en un proxy."""

    def __init__(self, service: str, reason: str):
        super().__init__(
            message=f"Error consultando {service}",
            status_code=502,
            error_code="UPSTREAM_ERROR",
            details={"service": service, "reason": reason},
        )
