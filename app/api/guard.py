"""
Dependencias de control de acceso para los endpoints.

Uso típico:

    @router.post("/roles/asignar")
    async def asignar(
        claims: SessionClaims = Depends(
            require_access(
                module_access(Modulo.CONFIGURACION_INSTITUCIONAL),
                permission(Permiso.ASIGNAR_ROL),
            )
        ),
    ): ...

Las reglas se evalúan en orden y la primera que falla corta con 403. El handler
recibe los SessionClaims verificados como parámetro.
"""
import logging
from collections.abc import Callable
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.exceptions import Forbidden, MissingCredential
from app.core.permisos import (
    CodigoRol,
    Modulo,
    Permiso,
    has_module_access,
    has_permission,
    resolve_module,
    resolve_permission,
)
from app.core.security import SessionClaims, decode_access_token
from app.services.auditoria_service import AuditRecorder, get_audit_recorder

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

Regla = Callable[[SessionClaims], None]


async def get_session_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> SessionClaims:
    """Dependencia: exige un JWT Bearer válido y devuelve sus claims. No consulta la BD."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise MissingCredential()
    return decode_access_token(credentials.credentials)


def _denegar(claims: SessionClaims, detail: str, **requerido: Any) -> None:
    roles = sorted(claims.roles)
    logger.warning(
        "Acceso denegado: usuario_id=%s roles=%s requerido=%s",
        claims.user_id,
        roles,
        requerido,
    )
    raise Forbidden(detail, **requerido, roles_usuario=roles)


def _permisos(permisos: tuple["Permiso | str", ...]) -> tuple[Permiso, ...]:
    if not permisos:
        raise ValueError("Se requiere al menos un permiso")
    resueltos = []
    for p in permisos:
        permiso = resolve_permission(p)
        if permiso is None:
            raise ValueError(f"Permiso desconocido: {p!r}")
        resueltos.append(permiso)
    return tuple(resueltos)


def permission(p: "Permiso | str") -> Regla:
    """Exige un permiso concreto."""
    return any_permission(p)


def any_permission(*permisos: "Permiso | str") -> Regla:
    """Exige al menos uno de los permisos."""
    requeridos = _permisos(permisos)

    def _regla(claims: SessionClaims) -> None:
        if not any(has_permission(claims.roles, p) for p in requeridos):
            _denegar(
                claims,
                "No tienes permisos para realizar esta acción",
                permisos_requeridos=[p.name for p in requeridos],
            )

    return _regla


def all_permissions(*permisos: "Permiso | str") -> Regla:
    """Exige todos los permisos; informa solo de los que faltan."""
    requeridos = _permisos(permisos)

    def _regla(claims: SessionClaims) -> None:
        faltantes = [p for p in requeridos if not has_permission(claims.roles, p)]
        if faltantes:
            _denegar(
                claims,
                "No tienes todos los permisos necesarios para esta acción",
                permisos_requeridos=[p.name for p in faltantes],
            )

    return _regla


def module_access(m: "Modulo | str") -> Regla:
    """Exige algún permiso dentro del módulo."""
    modulo = resolve_module(m)
    if modulo is None:
        raise ValueError(f"Módulo desconocido: {m!r}")

    def _regla(claims: SessionClaims) -> None:
        if not has_module_access(claims.roles, modulo):
            _denegar(
                claims,
                f"No tienes acceso al módulo {modulo.value}",
                modulo_requerido=modulo.value,
            )

    return _regla


def admin_only() -> Regla:
    """Exige el rol ADMIN."""

    def _regla(claims: SessionClaims) -> None:
        if CodigoRol.ADMIN.value not in claims.roles:
            _denegar(
                claims,
                "Solo los administradores pueden realizar esta acción",
                rol_requerido=CodigoRol.ADMIN.value,
            )

    return _regla


def require_access(*rules: Regla) -> Callable:
    """Construye la dependencia que autentica y luego aplica las reglas en orden."""

    async def _check(claims: SessionClaims = Depends(get_session_claims)) -> SessionClaims:
        for regla in rules:
            regla(claims)
        return claims

    return _check


def require_self_or_admin(param: str = "usuario_id") -> Callable:
    """El usuario solo accede a su propio recurso (parámetro de ruta `param`), salvo ADMIN."""

    async def _check(
        request: Request,
        claims: SessionClaims = Depends(get_session_claims),
    ) -> SessionClaims:
        if CodigoRol.ADMIN.value in claims.roles:
            return claims
        if str(claims.user_id) != str(request.path_params.get(param)):
            _denegar(
                claims,
                "Solo puedes consultar tu propia información",
                rol_requerido=CodigoRol.ADMIN.value,
            )
        return claims

    return _check


def client_info(request: Request) -> dict[str, str | None]:
    """IP y user-agent del cliente, para los registros de auditoría."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def audited(accion: str, tabla: str, *rules: Regla) -> Callable:
    """
    Igual que require_access, y además anexa a auditoría la lectura autorizada
    antes de que corra el handler: ruta, método y parámetros de la consulta.

    Si la auditoría no puede escribirse la petición falla y no se entregan datos.
    """
    guard = require_access(*rules)

    async def _check(
        request: Request,
        claims: SessionClaims = Depends(guard),
        recorder: AuditRecorder = Depends(get_audit_recorder),
    ) -> SessionClaims:
        await recorder.record_audit(
            accion=accion,
            tabla=tabla,
            registro_id=request.url.path,
            usuario_id=claims.user_id,
            datos_nuevos={
                "metodo": request.method,
                "path_params": dict(request.path_params),
                "query_params": dict(request.query_params),
            },
            **client_info(request),
        )
        return claims

    return _check
