"""Routers de la API."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.endpoints import auditoria, auth, roles
from app.api.guard import get_session_claims
from app.core.database import get_db
from app.core.permisos import Modulo, has_module_access, permissions_for_roles
from app.core.security import SessionClaims
from app.services.roles_service import obtener_usuario

router = APIRouter()
router.include_router(auth.router)
router.include_router(roles.router)
router.include_router(auditoria.router)


@router.get(
    "/me",
    tags=["api"],
    summary="Usuario actual (protegido)",
    response_description="Datos del usuario autenticado y sus permisos efectivos",
    responses={
        200: {"description": "Usuario obtenido correctamente"},
        401: {"description": "Token no enviado, inválido o expirado"},
    },
)
async def get_me(
    claims: SessionClaims = Depends(get_session_claims),
    db: AsyncSession = Depends(get_db),
):
    """
    Devuelve el usuario actual a partir del JWT. Roles, permisos y módulos
    salen del token, no de las asignaciones actuales.
    **Requiere:** header `Authorization: Bearer <access_token>`.
    """
    usuario = await obtener_usuario(db, claims.user_id)
    if not usuario:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario no encontrado")
    return {
        "id": usuario.id,
        "nombre": usuario.nombre,
        "apellido": usuario.apellido,
        "email": usuario.email,
        "activo": usuario.activo,
        "institucion_id": claims.institucion_id,
        "ultimo_acceso": usuario.ultimo_acceso,
        "roles": sorted(claims.roles),
        "permisos": sorted(p.value for p in permissions_for_roles(claims.roles)),
        "modulos": [m.value for m in Modulo if has_module_access(claims.roles, m)],
    }


@router.get(
    "/",
    tags=["api"],
    summary="Raíz de la API v1",
    response_description="Mensaje de bienvenida y enlace a la documentación",
)
async def api_root():
    """Información básica de la API y enlace a la documentación Swagger."""
    return {"message": "Plataforma de Planificación Institucional API v1", "docs": "/docs", "redoc": "/redoc"}
