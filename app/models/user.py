"""Modelo Usuario: solo las columnas que lee el núcleo de autorización."""
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, Identity, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.usuario_rol import UsuarioRol


class Usuario(Base):
    """Usuario del sistema. Sus roles vigentes son las asignaciones activas en usuario_rol."""

    __tablename__ = "usuario"

    id: Mapped[int] = mapped_column(BigInteger, Identity(always=True), primary_key=True)
    nombre: Mapped[str] = mapped_column(Text, nullable=False)
    apellido: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    activo: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    institucion_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    ultimo_acceso: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    asignaciones: Mapped[list["UsuarioRol"]] = relationship(
        "UsuarioRol",
        back_populates="usuario",
        foreign_keys="UsuarioRol.usuario_id",
    )

    @property
    def nombre_completo(self) -> str:
        return f"{self.nombre} {self.apellido}".strip()
