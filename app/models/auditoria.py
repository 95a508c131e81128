"""Modelos de los dos registros de solo anexión: auditoría (cambios de datos) y bitácora (eventos)."""
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import BigInteger, DateTime, ForeignKey, Identity, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JsonDocument
from app.core.exceptions import RegistroInmutable

if TYPE_CHECKING:
    from app.models.user import Usuario


class AccionAuditoria:
    """Acciones habituales. La columna admite otras (ej. REPORTES_EXPORTAR)."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ACTIVATE = "ACTIVATE"
    INACTIVATE = "INACTIVATE"
    CONSULTAR = "CONSULTAR"


class NivelBitacora:
    """Valores permitidos para el nivel de un evento de bitácora."""
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    DEBUG = "DEBUG"

    VALIDOS = frozenset({INFO, WARNING, ERROR, DEBUG})


def _ahora() -> datetime:
    return datetime.now(timezone.utc)


class Auditoria(Base):
    """Registro inmutable de una mutación: quién, qué tabla/fila, antes y después."""

    __tablename__ = "auditoria"

    id: Mapped[int] = mapped_column(BigInteger, Identity(always=True), primary_key=True)
    accion: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    tabla: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    registro_id: Mapped[str] = mapped_column(Text, nullable=False)
    usuario_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("usuario.id"), nullable=True, index=True
    )
    fecha_accion: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_ahora, index=True
    )
    datos_anteriores: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)
    datos_nuevos: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    usuario: Mapped["Usuario | None"] = relationship("Usuario")


class Bitacora(Base):
    """Registro inmutable de un evento operativo, independiente de los cambios de datos."""

    __tablename__ = "bitacora"

    id: Mapped[int] = mapped_column(BigInteger, Identity(always=True), primary_key=True)
    evento: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    descripcion: Mapped[str] = mapped_column(Text, nullable=False)
    modulo: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    nivel: Mapped[str] = mapped_column(Text, nullable=False, default=NivelBitacora.INFO)
    usuario_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("usuario.id"), nullable=True, index=True
    )
    fecha_evento: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_ahora, index=True
    )
    ip_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    detalles: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False, default=dict)

    usuario: Mapped["Usuario | None"] = relationship("Usuario")


def _rechazar_cambio(mapper, connection, target) -> None:
    raise RegistroInmutable(
        f"{type(target).__name__} id={target.id}: los registros no se modifican ni eliminan"
    )


for _modelo in (Auditoria, Bitacora):
    event.listen(_modelo, "before_update", _rechazar_cambio)
    event.listen(_modelo, "before_delete", _rechazar_cambio)
