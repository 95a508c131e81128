"""Consultas de roles y asignaciones, y su serialización con los permisos de la matriz."""
import re
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permisos import ALIAS_ROLES, MODULO_DE_PERMISO, Permiso, ROLES_PERMISOS
from app.models import Rol, Usuario, UsuarioRol

MAX_LONGITUD_CODIGO = 10


def normalizar_codigo_rol(codigo: str) -> str:
    """Aplica los alias heredados (VALIDADOR -> VALID)."""
    return ALIAS_ROLES.get(codigo, codigo)


def codigo_desde_nombre(nombre: str) -> str:
    """'Analista de Datos' -> 'ANALISTA_D'."""
    return re.sub(r"\s+", "_", nombre.strip().upper())[:MAX_LONGITUD_CODIGO]


def permisos_de_rol(codigo: str) -> list[str]:
    """Códigos de permiso que la matriz concede al rol, ordenados."""
    return sorted(p.value for p in ROLES_PERMISOS.get(normalizar_codigo_rol(codigo), frozenset()))


def rol_a_dict(rol: Rol, total_usuarios: int | None = None) -> dict[str, Any]:
    permisos = permisos_de_rol(rol.codigo)
    data = {
        "id": rol.id,
        "codigo": rol.codigo,
        "nombre": rol.nombre,
        "descripcion": rol.descripcion,
        "nivel": rol.nivel,
        "activo": rol.activo,
        "permisos": permisos,
        "total_permisos": len(permisos),
    }
    if total_usuarios is not None:
        data["total_usuarios"] = total_usuarios
    return data


def snapshot_rol(rol: Rol) -> dict[str, Any]:
    """Columnas persistidas del rol, para datos_anteriores/datos_nuevos."""
    return {
        "id": rol.id,
        "codigo": rol.codigo,
        "nombre": rol.nombre,
        "descripcion": rol.descripcion,
        "nivel": rol.nivel,
        "activo": rol.activo,
    }


def snapshot_asignacion(asignacion: UsuarioRol) -> dict[str, Any]:
    return {
        "id": asignacion.id,
        "usuario_id": asignacion.usuario_id,
        "rol_id": asignacion.rol_id,
        "activo": asignacion.activo,
        "asignado_por_id": asignacion.asignado_por_id,
    }


async def obtener_roles_activos(db: AsyncSession, usuario_id: int) -> list[str]:
    """Códigos de los roles activos asignados (asignación activa) al usuario, sin repetidos."""
    q = (
        select(Rol.codigo)
        .join(UsuarioRol, UsuarioRol.rol_id == Rol.id)
        .where(
            UsuarioRol.usuario_id == usuario_id,
            UsuarioRol.activo.is_(True),
            Rol.activo.is_(True),
        )
    )
    result = await db.execute(q)
    return sorted({normalizar_codigo_rol(codigo) for codigo in result.scalars().all()})


async def listar_roles(db: AsyncSession) -> list[dict[str, Any]]:
    """Roles activos con su número de asignaciones activas, ordenados por nivel y nombre."""
    total = (
        select(UsuarioRol.rol_id, func.count().label("total"))
        .where(UsuarioRol.activo.is_(True))
        .group_by(UsuarioRol.rol_id)
        .subquery()
    )
    q = (
        select(Rol, func.coalesce(total.c.total, 0))
        .outerjoin(total, total.c.rol_id == Rol.id)
        .where(Rol.activo.is_(True))
        .order_by(Rol.nivel, Rol.nombre)
    )
    result = await db.execute(q)
    return [rol_a_dict(rol, total_usuarios) for rol, total_usuarios in result.all()]


async def obtener_rol(db: AsyncSession, rol_id: int) -> Rol | None:
    result = await db.execute(select(Rol).where(Rol.id == rol_id))
    return result.scalar_one_or_none()


async def obtener_rol_por_codigo(db: AsyncSession, codigo: str) -> Rol | None:
    result = await db.execute(select(Rol).where(Rol.codigo == codigo))
    return result.scalar_one_or_none()


async def obtener_usuario(db: AsyncSession, usuario_id: int) -> Usuario | None:
    result = await db.execute(select(Usuario).where(Usuario.id == usuario_id))
    return result.scalar_one_or_none()


async def obtener_asignacion(db: AsyncSession, usuario_id: int, rol_id: int) -> UsuarioRol | None:
    result = await db.execute(
        select(UsuarioRol).where(
            UsuarioRol.usuario_id == usuario_id,
            UsuarioRol.rol_id == rol_id,
        )
    )
    return result.scalar_one_or_none()


def permisos_por_modulo(permisos: set[Permiso] | frozenset[Permiso]) -> dict[str, list[str]]:
    """Agrupa los permisos por módulo: {modulo: [codigos]}."""
    agrupados: dict[str, list[str]] = {}
    for permiso in sorted(permisos, key=lambda p: p.value):
        agrupados.setdefault(MODULO_DE_PERMISO[permiso].value, []).append(permiso.value)
    return agrupados
