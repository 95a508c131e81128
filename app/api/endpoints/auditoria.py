"""Endpoints de auditoría (cambios de datos) y bitácora (eventos del sistema)."""
from datetime import date, datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import AfterValidator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.guard import audited, client_info, permission, require_access
from app.core.database import get_db
from app.core.exceptions import InvalidAuditEntry, InvalidLogEntry
from app.core.permisos import Permiso
from app.core.security import SessionClaims
from app.models import AccionAuditoria
from app.schemas.auditoria import (
    AuditoriaCreateRequest,
    AuditoriaItem,
    AuditoriaListResponse,
    BitacoraCreateRequest,
    BitacoraItem,
    BitacoraListResponse,
    Paginacion,
)
from app.services.auditoria_service import AuditRecorder, get_audit_recorder
from app.services.event_log import AUDITORIA_LOG, BITACORA_LOG, FilaLog, Pagina

router = APIRouter(prefix="/auditoria", tags=["auditoria"])


def _fecha_filtro(valor: str | None) -> date | datetime | None:
    """
    `AAAA-MM-DD` cubre el día completo en UTC. Con hora se respeta el instante
    y su zona; una fecha-hora sin zona se toma como UTC.
    """
    if valor is None:
        return None
    texto = valor.strip()
    if "T" not in texto and " " not in texto:
        return date.fromisoformat(texto)
    instante = datetime.fromisoformat(texto)
    if instante.tzinfo is None:
        instante = instante.replace(tzinfo=timezone.utc)
    return instante


FechaFiltro = Annotated[
    str | None,
    AfterValidator(_fecha_filtro),
    Query(description="Fecha (AAAA-MM-DD) o fecha-hora ISO 8601; el rango es cerrado"),
]
Page = Annotated[int, Query(ge=1, description="Página (desde 1)")]
Limit = Annotated[int | None, Query(ge=1, le=100, description="Registros por página")]


def _auditoria_item(fila: FilaLog) -> AuditoriaItem:
    item = AuditoriaItem.model_validate(fila.registro)
    return item.model_copy(
        update={"usuario_nombre": fila.usuario_nombre, "usuario_email": fila.usuario_email}
    )


def _bitacora_item(fila: FilaLog) -> BitacoraItem:
    item = BitacoraItem.model_validate(fila.registro)
    return item.model_copy(
        update={"usuario_nombre": fila.usuario_nombre, "usuario_email": fila.usuario_email}
    )


def _paginacion(pagina: Pagina) -> Paginacion:
    return Paginacion(
        total=pagina.total,
        page=pagina.page,
        limit=pagina.limit,
        total_pages=pagina.total_pages,
    )


# --- Auditoría ---

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Registrar acción de auditoría",
    responses={400: {"description": "Faltan accion, tabla o registro_id"}},
)
async def registrar_auditoria(
    body: AuditoriaCreateRequest,
    request: Request,
    claims: SessionClaims = Depends(require_access(permission(Permiso.REGISTRAR_AUDITORIA))),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """El usuario del registro es siempre el del token."""
    try:
        registro = await recorder.record_audit(
            accion=body.accion,
            tabla=body.tabla,
            registro_id=body.registro_id,
            usuario_id=claims.user_id,
            datos_anteriores=body.datos_anteriores,
            datos_nuevos=body.datos_nuevos,
            **client_info(request),
        )
    except InvalidAuditEntry as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.detail) from exc
    return {
        "message": "Acción registrada en auditoría",
        "data": AuditoriaItem.model_validate(registro),
    }


@router.get(
    "",
    response_model=AuditoriaListResponse,
    summary="Listar registros de auditoría",
)
async def listar_auditoria(
    db: AsyncSession = Depends(get_db),
    _: SessionClaims = Depends(
        audited(AccionAuditoria.CONSULTAR, "auditoria", permission(Permiso.CONSULTAR_ACCION))
    ),
    tabla: Annotated[str | None, Query()] = None,
    accion: Annotated[str | None, Query()] = None,
    usuario_id: Annotated[int | None, Query()] = None,
    fecha_inicio: FechaFiltro = None,
    fecha_fin: FechaFiltro = None,
    page: Page = 1,
    limit: Limit = None,
):
    filtros = {
        "tabla": tabla,
        "accion": accion,
        "usuario_id": usuario_id,
        "fecha_inicio": fecha_inicio,
        "fecha_fin": fecha_fin,
    }
    pagina = await AUDITORIA_LOG.listar(db, filtros, page=page, limit=limit)
    return AuditoriaListResponse(
        data=[_auditoria_item(f) for f in pagina.items],
        pagination=_paginacion(pagina),
    )


@router.get(
    "/estadisticas/resumen",
    summary="Estadísticas de auditoría",
    description="Acciones y tablas de los últimos 30 días, usuarios más activos y actividad diaria de 7 días.",
)
async def estadisticas_auditoria(
    db: AsyncSession = Depends(get_db),
    _: SessionClaims = Depends(require_access(permission(Permiso.CONSULTAR_ACCION))),
):
    return await AUDITORIA_LOG.estadisticas(db)


# --- Bitácora (antes de /{auditoria_id} para no capturar "bitacora" como id) ---

@router.post(
    "/bitacora",
    status_code=status.HTTP_201_CREATED,
    summary="Registrar evento en bitácora",
    responses={400: {"description": "Faltan campos o nivel inválido"}},
)
async def registrar_evento(
    body: BitacoraCreateRequest,
    request: Request,
    claims: SessionClaims = Depends(require_access(permission(Permiso.REGISTRAR_EVENTO))),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    try:
        evento = await recorder.record_event(
            evento=body.evento,
            descripcion=body.descripcion,
            modulo=body.modulo,
            nivel=body.nivel,
            usuario_id=claims.user_id,
            detalles=body.detalles,
            ip_address=client_info(request)["ip_address"],
        )
    except InvalidLogEntry as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.detail) from exc
    return {
        "message": "Evento registrado en bitácora",
        "data": BitacoraItem.model_validate(evento),
    }


@router.get(
    "/bitacora",
    response_model=BitacoraListResponse,
    summary="Listar eventos de bitácora",
)
async def listar_bitacora(
    db: AsyncSession = Depends(get_db),
    _: SessionClaims = Depends(require_access(permission(Permiso.VER_BITACORA))),
    modulo: Annotated[str | None, Query()] = None,
    nivel: Annotated[str | None, Query()] = None,
    evento: Annotated[str | None, Query(description="Búsqueda parcial, sin distinguir mayúsculas")] = None,
    usuario_id: Annotated[int | None, Query()] = None,
    fecha_inicio: FechaFiltro = None,
    fecha_fin: FechaFiltro = None,
    page: Page = 1,
    limit: Limit = None,
):
    filtros = {
        "modulo": modulo,
        "nivel": nivel,
        "evento": evento,
        "usuario_id": usuario_id,
        "fecha_inicio": fecha_inicio,
        "fecha_fin": fecha_fin,
    }
    pagina = await BITACORA_LOG.listar(db, filtros, page=page, limit=limit)
    return BitacoraListResponse(
        data=[_bitacora_item(f) for f in pagina.items],
        pagination=_paginacion(pagina),
    )


@router.get(
    "/bitacora/estadisticas/resumen",
    summary="Estadísticas de bitácora",
)
async def estadisticas_bitacora(
    db: AsyncSession = Depends(get_db),
    _: SessionClaims = Depends(require_access(permission(Permiso.VER_BITACORA))),
):
    return await BITACORA_LOG.estadisticas(db)


@router.get(
    "/bitacora/{evento_id}",
    response_model=BitacoraItem,
    summary="Obtener evento de bitácora",
)
async def obtener_evento(
    evento_id: int,
    db: AsyncSession = Depends(get_db),
    _: SessionClaims = Depends(require_access(permission(Permiso.VER_BITACORA))),
):
    fila = await BITACORA_LOG.obtener(db, evento_id)
    if not fila:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Evento no encontrado")
    return _bitacora_item(fila)


@router.get(
    "/{auditoria_id}",
    response_model=AuditoriaItem,
    summary="Obtener registro de auditoría",
)
async def obtener_auditoria(
    auditoria_id: int,
    db: AsyncSession = Depends(get_db),
    _: SessionClaims = Depends(
        audited(AccionAuditoria.CONSULTAR, "auditoria", permission(Permiso.CONSULTAR_ACCION))
    ),
):
    fila = await AUDITORIA_LOG.obtener(db, auditoria_id)
    if not fila:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registro de auditoría no encontrado")
    return _auditoria_item(fila)
