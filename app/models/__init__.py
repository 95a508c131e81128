"""Modelos SQLAlchemy (tablas de la base de datos)."""
from app.models.role import Rol
from app.models.user import Usuario
from app.models.usuario_rol import UsuarioRol
from app.models.auditoria import AccionAuditoria, Auditoria, Bitacora, NivelBitacora

__all__ = [
    "Rol",
    "Usuario",
    "UsuarioRol",
    "AccionAuditoria",
    "Auditoria",
    "Bitacora",
    "NivelBitacora",
]
