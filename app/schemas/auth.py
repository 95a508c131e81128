"""Esquemas para autenticación y JWT."""
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    """Body del endpoint de login."""

    email: EmailStr = Field(description="Correo electrónico del usuario", examples=["admin@planificacion.gob"])
    password: str = Field(description="Contraseña en texto plano", min_length=1, examples=["Admin123!"])


class UsuarioSesion(BaseModel):
    """Identidad incluida en el token."""
    id: int
    nombre: str
    email: str
    roles: list[str]
    institucion_id: int | None = None


class TokenResponse(BaseModel):
    """Respuesta con access_token JWT y datos del usuario."""

    access_token: str = Field(description="Token JWT para enviar en header Authorization: Bearer <token>")
    token_type: str = Field(default="bearer", description="Tipo de token (siempre 'bearer')")
    expires_in: int = Field(description="Segundos de vigencia del token")
    usuario: UsuarioSesion


class TokenValidationResponse(BaseModel):
    """Claims de un token válido."""
    valido: bool = True
    usuario_id: int
    email: str
    roles: list[str]
    institucion_id: int | None = None
    emitido: datetime
    expira: datetime
