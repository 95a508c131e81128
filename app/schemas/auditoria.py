"""Esquemas para auditoría y bitácora."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Paginacion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    page: int
    limit: int
    total_pages: int = Field(serialization_alias="totalPages", alias="totalPages")


class AuditoriaCreateRequest(BaseModel):
    """Registro manual de auditoría. La validación de obligatorios la hace el registrador."""
    accion: str | None = None
    tabla: str | None = None
    registro_id: str | int | None = None
    datos_anteriores: dict[str, Any] | None = None
    datos_nuevos: dict[str, Any] | None = None


class AuditoriaItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    accion: str
    tabla: str
    registro_id: str
    usuario_id: int | None = None
    usuario_nombre: str | None = None
    usuario_email: str | None = None
    fecha_accion: datetime
    datos_anteriores: dict[str, Any] | None = None
    datos_nuevos: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class AuditoriaListResponse(BaseModel):
    data: list[AuditoriaItem]
    pagination: Paginacion


class BitacoraCreateRequest(BaseModel):
    """Registro manual de un evento de bitácora."""
    evento: str | None = None
    descripcion: str | None = None
    modulo: str | None = None
    nivel: str = Field(default="INFO", description="INFO, WARNING, ERROR o DEBUG")
    detalles: dict[str, Any] | None = None


class BitacoraItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    evento: str
    descripcion: str
    modulo: str
    nivel: str
    usuario_id: int | None = None
    usuario_nombre: str | None = None
    usuario_email: str | None = None
    fecha_evento: datetime
    ip_address: str | None = None
    detalles: dict[str, Any] = Field(default_factory=dict)


class BitacoraListResponse(BaseModel):
    data: list[BitacoraItem]
    pagination: Paginacion
