"""Endpoints de roles: consulta, gestión (solo ADMIN) y asignación a usuarios."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.guard import (
    admin_only,
    client_info,
    module_access,
    permission,
    require_access,
    require_self_or_admin,
)
from app.core.database import get_db
from app.core.permisos import (
    CATALOGO,
    DESCRIPCION_MODULOS,
    MODULO_DE_PERMISO,
    ROLES_PERMISOS,
    Modulo,
    Permiso,
    permissions_for_roles,
)
from app.core.security import SessionClaims
from app.models import AccionAuditoria, Rol, UsuarioRol
from app.schemas.rol import (
    AsignacionRolRequest,
    AsignacionRolResponse,
    PermisosUsuarioResponse,
    RolCreateRequest,
    RolItem,
    RolesListResponse,
    RolUpdateRequest,
)
from app.services import roles_service
from app.services.auditoria_service import AuditRecorder, get_audit_recorder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/roles", tags=["roles"])

puede_ver_roles = require_access(
    module_access(Modulo.CONFIGURACION_INSTITUCIONAL),
    permission(Permiso.VER_ROLES),
)
puede_asignar_roles = require_access(
    module_access(Modulo.CONFIGURACION_INSTITUCIONAL),
    permission(Permiso.ASIGNAR_ROL),
)


@router.get(
    "",
    response_model=RolesListResponse,
    summary="Listar roles",
    description="Roles activos ordenados por nivel y nombre, con sus permisos y número de usuarios.",
)
async def listar_roles(
    db: AsyncSession = Depends(get_db),
    _: SessionClaims = Depends(puede_ver_roles),
):
    roles = await roles_service.listar_roles(db)
    return RolesListResponse(total=len(roles), roles=[RolItem(**r) for r in roles])


@router.get(
    "/sistema/permisos",
    summary="Catálogo de permisos del sistema",
    description="Módulos con sus permisos y la matriz completa rol → permisos.",
)
async def permisos_sistema(_: SessionClaims = Depends(puede_ver_roles)):
    modulos = [
        {
            "modulo": modulo.value,
            "descripcion": DESCRIPCION_MODULOS[modulo],
            "permisos": [
                {"nombre": p.name, "codigo": p.value}
                for p in sorted(CATALOGO[modulo], key=lambda p: p.value)
            ],
        }
        for modulo in Modulo
    ]
    matriz = {
        rol: sorted(p.value for p in permisos) for rol, permisos in ROLES_PERMISOS.items()
    }
    return {
        "modulos": modulos,
        "roles_permisos": matriz,
        "total_permisos": len(MODULO_DE_PERMISO),
    }


@router.get(
    "/usuarios/{usuario_id}/permisos",
    response_model=PermisosUsuarioResponse,
    summary="Permisos efectivos de un usuario",
    description="Unión de los permisos de sus roles activos. Cada usuario ve los suyos; ADMIN ve los de cualquiera.",
)
async def permisos_usuario(
    usuario_id: int,
    db: AsyncSession = Depends(get_db),
    _: SessionClaims = Depends(require_self_or_admin("usuario_id")),
):
    usuario = await roles_service.obtener_usuario(db, usuario_id)
    if not usuario:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario no encontrado")
    roles = await roles_service.obtener_roles_activos(db, usuario_id)
    permisos = permissions_for_roles(roles)
    por_modulo = roles_service.permisos_por_modulo(permisos)
    return PermisosUsuarioResponse(
        usuario_id=usuario_id,
        roles=roles,
        permisos=sorted(p.value for p in permisos),
        permisos_por_modulo=por_modulo,
        modulos=sorted(por_modulo),
    )


@router.get(
    "/{rol_id}",
    response_model=RolItem,
    summary="Obtener rol",
)
async def obtener_rol(
    rol_id: int,
    db: AsyncSession = Depends(get_db),
    _: SessionClaims = Depends(puede_ver_roles),
):
    rol = await roles_service.obtener_rol(db, rol_id)
    if not rol:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rol no encontrado")
    return RolItem(**roles_service.rol_a_dict(rol))


@router.post(
    "",
    response_model=RolItem,
    status_code=status.HTTP_201_CREATED,
    summary="Crear rol (solo ADMIN)",
    description="Sin código explícito se deriva del nombre. Un rol sin entrada en la matriz no concede permisos.",
)
async def crear_rol(
    body: RolCreateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    claims: SessionClaims = Depends(require_access(admin_only(), permission(Permiso.CREAR_ROL))),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    codigo = (body.codigo or roles_service.codigo_desde_nombre(body.nombre)).upper()
    if await roles_service.obtener_rol_por_codigo(db, codigo):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Ya existe un rol con el código {codigo}",
        )
    rol = Rol(codigo=codigo, nombre=body.nombre, descripcion=body.descripcion, nivel=body.nivel)
    db.add(rol)
    await db.commit()

    await recorder.record_audit(
        accion=AccionAuditoria.INSERT,
        tabla="rol",
        registro_id=rol.id,
        usuario_id=claims.user_id,
        datos_nuevos=roles_service.snapshot_rol(rol),
        **client_info(request),
    )
    logger.info("Rol %s creado por usuario_id=%s", codigo, claims.user_id)
    return RolItem(**roles_service.rol_a_dict(rol))


@router.patch(
    "/{rol_id}",
    response_model=RolItem,
    summary="Editar rol (solo ADMIN)",
)
async def editar_rol(
    rol_id: int,
    body: RolUpdateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    claims: SessionClaims = Depends(require_access(admin_only())),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    campos = body.model_dump(exclude_none=True)
    if not campos:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Debe enviar al menos un campo para actualizar.",
        )
    rol = await roles_service.obtener_rol(db, rol_id)
    if not rol:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rol no encontrado")

    antes = roles_service.snapshot_rol(rol)
    for campo, valor in campos.items():
        setattr(rol, campo, valor)
    await db.commit()

    await recorder.record_audit(
        accion=AccionAuditoria.UPDATE,
        tabla="rol",
        registro_id=rol.id,
        usuario_id=claims.user_id,
        datos_anteriores=antes,
        datos_nuevos=roles_service.snapshot_rol(rol),
        **client_info(request),
    )
    return RolItem(**roles_service.rol_a_dict(rol))


@router.delete(
    "/{rol_id}",
    summary="Desactivar rol (solo ADMIN)",
    description="Baja lógica: el rol deja de conceder permisos a quien lo tenga asignado.",
)
async def desactivar_rol(
    rol_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    claims: SessionClaims = Depends(require_access(admin_only())),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    rol = await roles_service.obtener_rol(db, rol_id)
    if not rol:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rol no encontrado")
    if not rol.activo:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El rol ya está inactivo")

    antes = roles_service.snapshot_rol(rol)
    rol.activo = False
    await db.commit()

    await recorder.record_audit(
        accion=AccionAuditoria.INACTIVATE,
        tabla="rol",
        registro_id=rol.id,
        usuario_id=claims.user_id,
        datos_anteriores=antes,
        datos_nuevos=roles_service.snapshot_rol(rol),
        **client_info(request),
    )
    return {"message": "Rol desactivado correctamente", "id": rol.id}


@router.post(
    "/asignar",
    response_model=AsignacionRolResponse,
    summary="Asignar rol a usuario",
    description="Crea la asignación o reactiva una removida. Los tokens ya emitidos no cambian.",
)
async def asignar_rol(
    body: AsignacionRolRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    claims: SessionClaims = Depends(puede_asignar_roles),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    usuario = await roles_service.obtener_usuario(db, body.usuario_id)
    if not usuario:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario no encontrado")
    rol = await roles_service.obtener_rol(db, body.rol_id)
    if not rol or not rol.activo:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rol no encontrado o inactivo")

    asignacion = await roles_service.obtener_asignacion(db, body.usuario_id, body.rol_id)
    if asignacion and asignacion.activo:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="El usuario ya tiene asignado este rol",
        )

    if asignacion:
        antes = roles_service.snapshot_asignacion(asignacion)
        asignacion.activo = True
        asignacion.asignado_por_id = claims.user_id
        accion = AccionAuditoria.ACTIVATE
    else:
        antes = None
        asignacion = UsuarioRol(
            usuario_id=body.usuario_id,
            rol_id=body.rol_id,
            asignado_por_id=claims.user_id,
        )
        db.add(asignacion)
        accion = AccionAuditoria.INSERT
    await db.commit()

    await recorder.record_audit(
        accion=accion,
        tabla="usuario_rol",
        registro_id=asignacion.id,
        usuario_id=claims.user_id,
        datos_anteriores=antes,
        datos_nuevos=roles_service.snapshot_asignacion(asignacion),
        **client_info(request),
    )
    return AsignacionRolResponse(
        message="Rol asignado correctamente",
        usuario_id=body.usuario_id,
        rol_id=body.rol_id,
        rol_codigo=rol.codigo,
        activo=True,
    )


@router.post(
    "/remover",
    response_model=AsignacionRolResponse,
    summary="Remover rol de usuario",
    description="Baja lógica de la asignación. Los tokens ya emitidos conservan el rol hasta expirar.",
)
async def remover_rol(
    body: AsignacionRolRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    claims: SessionClaims = Depends(puede_asignar_roles),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    asignacion = await roles_service.obtener_asignacion(db, body.usuario_id, body.rol_id)
    if not asignacion or not asignacion.activo:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="El usuario no tiene asignado este rol",
        )
    rol = await roles_service.obtener_rol(db, body.rol_id)

    antes = roles_service.snapshot_asignacion(asignacion)
    asignacion.activo = False
    await db.commit()

    await recorder.record_audit(
        accion=AccionAuditoria.INACTIVATE,
        tabla="usuario_rol",
        registro_id=asignacion.id,
        usuario_id=claims.user_id,
        datos_anteriores=antes,
        datos_nuevos=roles_service.snapshot_asignacion(asignacion),
        **client_info(request),
    )
    return AsignacionRolResponse(
        message="Rol removido correctamente",
        usuario_id=body.usuario_id,
        rol_id=body.rol_id,
        rol_codigo=rol.codigo if rol else "",
        activo=False,
    )
