"""Esquemas para roles y asignación de roles a usuarios."""
from pydantic import BaseModel, Field, field_validator


class RolItem(BaseModel):
    """Rol con los permisos que le concede la matriz."""
    id: int
    codigo: str
    nombre: str
    descripcion: str | None = None
    nivel: int
    activo: bool
    permisos: list[str]
    total_permisos: int
    total_usuarios: int | None = None


class RolesListResponse(BaseModel):
    total: int
    roles: list[RolItem]


class RolCreateRequest(BaseModel):
    """Request para crear un rol. Sin código, se deriva del nombre."""
    nombre: str = Field(min_length=1, description="Nombre visible del rol")
    codigo: str | None = Field(default=None, max_length=10, description="Código único (máx. 10)")
    descripcion: str | None = None
    nivel: int = Field(default=0, ge=0, description="Orden de presentación")

    @field_validator("nombre")
    @classmethod
    def nombre_no_vacio(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("nombre no puede estar vacío")
        return v.strip()


class RolUpdateRequest(BaseModel):
    """Solo se modifican los campos enviados."""
    nombre: str | None = Field(default=None, min_length=1)
    descripcion: str | None = None
    nivel: int | None = Field(default=None, ge=0)
    activo: bool | None = None


class AsignacionRolRequest(BaseModel):
    """Body de asignar/remover un rol."""
    usuario_id: int = Field(gt=0)
    rol_id: int = Field(gt=0)


class AsignacionRolResponse(BaseModel):
    message: str
    usuario_id: int
    rol_id: int
    rol_codigo: str
    activo: bool


class PermisosUsuarioResponse(BaseModel):
    """Permisos efectivos de un usuario según sus roles activos."""
    usuario_id: int
    roles: list[str]
    permisos: list[str]
    permisos_por_modulo: dict[str, list[str]]
    modulos: list[str]
