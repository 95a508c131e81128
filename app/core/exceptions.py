"""Errores del núcleo de autorización y auditoría y su traducción a HTTP."""
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Error de dominio con código estable y estado HTTP asociado."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    default_detail: str = "Error interno del servidor"

    def __init__(self, detail: str | None = None, **extra: Any):
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.detail, "code": self.code}
        payload.update(self.extra)
        return payload


# --- Autenticación (401) ---

class CredentialError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class MissingCredential(CredentialError):
    code = "MISSING_CREDENTIAL"
    default_detail = "Token de acceso requerido"


class InvalidCredential(CredentialError):
    code = "INVALID_CREDENTIAL"
    default_detail = "Token inválido"


class ExpiredCredential(CredentialError):
    code = "EXPIRED_CREDENTIAL"
    default_detail = "Token expirado, vuelva a iniciar sesión o renueve el token"


# --- Autorización (403) ---

class Forbidden(AppError):
    """Rol, permiso o módulo insuficiente. `extra` lleva lo requerido y los roles del usuario."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_detail = "No tienes permisos para realizar esta acción"


# --- Auditoría (500 cuando lo dispara una operación de negocio) ---

class AuditError(AppError):
    code = "AUDIT_FAILURE"
    default_detail = "La operación no pudo registrarse en auditoría"


class InvalidAuditEntry(AuditError):
    default_detail = "Los campos accion, tabla y registro_id son obligatorios"


class InvalidLogEntry(AuditError):
    default_detail = (
        "Los campos evento, descripcion y modulo son obligatorios y el nivel "
        "debe ser uno de: INFO, WARNING, ERROR, DEBUG"
    )


class AuditoriaNoRegistrada(AuditError):
    default_detail = "No se pudo escribir el registro de auditoría"


class RegistroInmutable(AuditError):
    default_detail = "Los registros de auditoría y bitácora no se modifican ni eliminan"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, CredentialError):
        headers = {"WWW-Authenticate": "Bearer"}
    if isinstance(exc, AuditError):
        logger.error(
            "Fallo de auditoría en %s %s: %s", request.method, request.url.path, exc.detail
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Registra la traducción de AppError a respuestas JSON."""
    app.add_exception_handler(AppError, app_error_handler)
