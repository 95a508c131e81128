"""Modelo UsuarioRol: asignación de roles a usuarios (baja lógica, nunca borrado)."""
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Identity, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.role import Rol
    from app.models.user import Usuario


class UsuarioRol(Base):
    """Un usuario puede tener varias asignaciones activas a la vez."""

    __tablename__ = "usuario_rol"
    __table_args__ = (UniqueConstraint("usuario_id", "rol_id", name="uq_usuario_rol"),)

    id: Mapped[int] = mapped_column(BigInteger, Identity(always=True), primary_key=True)
    usuario_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("usuario.id"), nullable=False
    )
    rol_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("rol.id"), nullable=False)
    activo: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    fecha_asignacion: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    asignado_por_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("usuario.id"), nullable=True
    )

    usuario: Mapped["Usuario"] = relationship(
        "Usuario", back_populates="asignaciones", foreign_keys=[usuario_id]
    )
    rol: Mapped["Rol"] = relationship("Rol", back_populates="asignaciones")
