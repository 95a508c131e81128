"""
Consulta genérica sobre un registro de solo anexión (auditoría o bitácora).

Las dos tablas comparten la misma forma de lectura: filtros por igualdad o por
texto, rango cerrado de fechas, paginación y estadísticas agrupadas en una
ventana móvil. Cada instancia de EventLog describe qué columnas usa.
"""
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import Base
from app.models import Auditoria, Bitacora, Usuario

T = TypeVar("T", bound=Base)


@dataclass(frozen=True)
class FilaLog(Generic[T]):
    """Registro junto con el nombre y correo de quien lo generó (si existe)."""
    registro: T
    usuario_nombre: str | None
    usuario_email: str | None


@dataclass(frozen=True)
class Pagina(Generic[T]):
    items: list[FilaLog[T]]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(frozen=True)
class EventLog(Generic[T]):
    model: type[T]
    columna_fecha: str
    filtros_exactos: tuple[str, ...]
    # clave de la respuesta -> columna agrupada en la ventana de estadísticas
    agrupaciones: Mapping[str, str]
    # (clave de la respuesta, columna) del top-N
    ranking: tuple[str, str]
    filtros_texto: tuple[str, ...] = ()
    limite_ranking: int = 10

    @property
    def _fecha(self):
        return getattr(self.model, self.columna_fecha)

    def condiciones(self, filtros: Mapping[str, Any]) -> list:
        """Traduce los filtros no vacíos a cláusulas WHERE."""
        clausulas = []
        for nombre in self.filtros_exactos:
            valor = filtros.get(nombre)
            if valor is not None and valor != "":
                clausulas.append(getattr(self.model, nombre) == valor)
        for nombre in self.filtros_texto:
            valor = filtros.get(nombre)
            if valor:
                clausulas.append(getattr(self.model, nombre).ilike(f"%{valor}%"))

        desde = filtros.get("fecha_inicio")
        if desde is not None:
            if not isinstance(desde, datetime):
                desde = datetime.combine(desde, time.min, tzinfo=timezone.utc)
            clausulas.append(self._fecha >= desde)
        hasta = filtros.get("fecha_fin")
        if hasta is not None:
            if isinstance(hasta, datetime):
                clausulas.append(self._fecha <= hasta)
            else:
                # Día completo incluido
                siguiente = datetime.combine(hasta + timedelta(days=1), time.min, tzinfo=timezone.utc)
                clausulas.append(self._fecha < siguiente)
        return clausulas

    def consulta_listado(self, filtros: Mapping[str, Any], page: int, limit: int) -> Select:
        return (
            select(self.model, Usuario.nombre, Usuario.apellido, Usuario.email)
            .outerjoin(Usuario, Usuario.id == self.model.usuario_id)
            .where(*self.condiciones(filtros))
            .order_by(self._fecha.desc(), self.model.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )

    def consulta_conteo(self, filtros: Mapping[str, Any]) -> Select:
        return select(func.count()).select_from(self.model).where(*self.condiciones(filtros))

    async def listar(
        self,
        db: AsyncSession,
        filtros: Mapping[str, Any],
        page: int = 1,
        limit: int | None = None,
    ) -> Pagina[T]:
        page = max(page, 1)
        limit = min(max(limit or settings.default_page_size, 1), settings.max_page_size)

        total = (await db.execute(self.consulta_conteo(filtros))).scalar_one()
        result = await db.execute(self.consulta_listado(filtros, page, limit))
        items = [_fila(row) for row in result.all()]
        return Pagina(items=items, total=total, page=page, limit=limit)

    async def obtener(self, db: AsyncSession, registro_id: int) -> FilaLog[T] | None:
        q = (
            select(self.model, Usuario.nombre, Usuario.apellido, Usuario.email)
            .outerjoin(Usuario, Usuario.id == self.model.usuario_id)
            .where(self.model.id == registro_id)
        )
        row = (await db.execute(q)).first()
        return _fila(row) if row else None

    def consultas_estadisticas(self, now: datetime | None = None) -> dict[str, Select]:
        """Consultas de estadísticas: agrupaciones y ranking en la ventana larga, actividad diaria en la corta."""
        now = now or datetime.now(timezone.utc)
        desde = now - timedelta(days=settings.estadisticas_ventana_dias)
        desde_actividad = now - timedelta(days=settings.actividad_ventana_dias)
        cantidad = func.count().label("cantidad")

        consultas: dict[str, Select] = {}
        for clave, nombre in self.agrupaciones.items():
            columna = getattr(self.model, nombre)
            consultas[clave] = (
                select(columna.label(nombre), cantidad)
                .where(self._fecha >= desde)
                .group_by(columna)
                .order_by(cantidad.desc())
            )

        clave, nombre = self.ranking
        columna = getattr(self.model, nombre)
        if nombre == "usuario_id":
            consultas[clave] = (
                select(
                    Usuario.id.label("usuario_id"),
                    Usuario.nombre,
                    Usuario.apellido,
                    Usuario.email,
                    cantidad,
                )
                .select_from(self.model)
                .outerjoin(Usuario, Usuario.id == columna)
                .where(self._fecha >= desde)
                .group_by(Usuario.id, Usuario.nombre, Usuario.apellido, Usuario.email)
                .order_by(cantidad.desc())
                .limit(self.limite_ranking)
            )
        else:
            consultas[clave] = (
                select(columna.label(nombre), cantidad)
                .where(self._fecha >= desde)
                .group_by(columna)
                .order_by(cantidad.desc())
                .limit(self.limite_ranking)
            )

        dia = func.date(self._fecha).label("fecha")
        consultas["actividad_diaria"] = (
            select(dia, cantidad)
            .where(self._fecha >= desde_actividad)
            .group_by(dia)
            .order_by(dia.desc())
        )
        return consultas

    async def estadisticas(self, db: AsyncSession, now: datetime | None = None) -> dict[str, Any]:
        resumen: dict[str, Any] = {}
        for clave, consulta in self.consultas_estadisticas(now).items():
            result = await db.execute(consulta)
            resumen[clave] = [_como_dict(row) for row in result.mappings().all()]
        resumen["periodo"] = f"Últimos {settings.estadisticas_ventana_dias} días"
        return resumen


def _fila(row) -> FilaLog:
    registro, nombre, apellido, email = row
    nombre_completo = f"{nombre or ''} {apellido or ''}".strip() or None
    return FilaLog(registro=registro, usuario_nombre=nombre_completo, usuario_email=email)


def _como_dict(row: Mapping[str, Any]) -> dict[str, Any]:
    fila = dict(row)
    if "apellido" in fila:
        apellido = fila.pop("apellido")
        fila["usuario_nombre"] = f"{fila.pop('nombre') or ''} {apellido or ''}".strip() or None
    if isinstance(fila.get("fecha"), (date, datetime)):
        fila["fecha"] = fila["fecha"].isoformat()
    return fila


AUDITORIA_LOG: EventLog[Auditoria] = EventLog(
    model=Auditoria,
    columna_fecha="fecha_accion",
    filtros_exactos=("tabla", "accion", "usuario_id"),
    agrupaciones={"acciones": "accion", "tablas": "tabla"},
    ranking=("usuarios_mas_activos", "usuario_id"),
)

BITACORA_LOG: EventLog[Bitacora] = EventLog(
    model=Bitacora,
    columna_fecha="fecha_evento",
    filtros_exactos=("modulo", "nivel", "usuario_id"),
    filtros_texto=("evento",),
    agrupaciones={"niveles": "nivel", "modulos": "modulo"},
    ranking=("eventos_frecuentes", "evento"),
)
