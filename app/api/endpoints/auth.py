"""Endpoints de autenticación: login, renovación y validación del JWT."""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.guard import client_info, get_session_claims
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import InvalidCredential
from app.core.permisos import Modulo
from app.core.security import SessionClaims, create_access_token, verify_password
from app.models import NivelBitacora, Usuario
from app.schemas.auth import LoginRequest, TokenResponse, TokenValidationResponse, UsuarioSesion
from app.services.auditoria_service import AuditRecorder, get_audit_recorder
from app.services.roles_service import obtener_roles_activos, obtener_usuario

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

CREDENCIALES_INCORRECTAS = "Correo o contraseña incorrectos"


async def _emitir_token(db: AsyncSession, usuario: Usuario) -> TokenResponse:
    """Firma un token con los roles activos que el usuario tiene ahora mismo."""
    roles = await obtener_roles_activos(db, usuario.id)
    token = create_access_token(
        user_id=usuario.id,
        email=usuario.email,
        roles=roles,
        institucion_id=usuario.institucion_id,
    )
    return TokenResponse(
        access_token=token,
        expires_in=settings.jwt_expire_minutes * 60,
        usuario=UsuarioSesion(
            id=usuario.id,
            nombre=usuario.nombre_completo,
            email=usuario.email,
            roles=roles,
            institucion_id=usuario.institucion_id,
        ),
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Iniciar sesión",
    response_description="Token JWT para usar en el header Authorization",
    responses={
        200: {"description": "Login correcto, se devuelve el access_token"},
        401: {"description": "Correo o contraseña incorrectos"},
        403: {"description": "Usuario inactivo"},
        422: {"description": "Datos de entrada inválidos (ej. email mal formado)"},
    },
)
async def login(
    data: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """
    Autenticación con **correo** y **contraseña**.
    Si las credenciales son correctas, devuelve un **access_token** (JWT) con los roles activos del usuario.
    Los intentos, exitosos o no, quedan en la bitácora.
    """
    ip_address = client_info(request)["ip_address"]
    result = await db.execute(select(Usuario).where(Usuario.email == data.email))
    usuario = result.scalar_one_or_none()

    if not usuario or not verify_password(data.password, usuario.password_hash or ""):
        await recorder.record_event(
            evento="LOGIN_FALLIDO",
            descripcion=f"Intento de login fallido para {data.email}",
            modulo=Modulo.CONFIGURACION_INSTITUCIONAL.value,
            nivel=NivelBitacora.WARNING,
            usuario_id=usuario.id if usuario else None,
            detalles={"email": data.email, "motivo": "credenciales"},
            ip_address=ip_address,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=CREDENCIALES_INCORRECTAS)
    if not usuario.activo:
        await recorder.record_event(
            evento="LOGIN_FALLIDO",
            descripcion=f"Intento de login de usuario inactivo {data.email}",
            modulo=Modulo.CONFIGURACION_INSTITUCIONAL.value,
            nivel=NivelBitacora.WARNING,
            usuario_id=usuario.id,
            detalles={"email": data.email, "motivo": "inactivo"},
            ip_address=ip_address,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Usuario inactivo. Contacte al administrador.",
        )

    respuesta = await _emitir_token(db, usuario)
    usuario.ultimo_acceso = datetime.now(timezone.utc)
    await db.commit()

    await recorder.record_event(
        evento="LOGIN_EXITOSO",
        descripcion=f"Inicio de sesión de {usuario.email}",
        modulo=Modulo.CONFIGURACION_INSTITUCIONAL.value,
        nivel=NivelBitacora.INFO,
        usuario_id=usuario.id,
        detalles={"roles": respuesta.usuario.roles},
        ip_address=ip_address,
    )
    logger.info("Login correcto usuario_id=%s roles=%s", usuario.id, respuesta.usuario.roles)
    return respuesta


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Renovar token",
    description="Emite un token nuevo con los roles activos actuales del usuario.",
    responses={401: {"description": "Token no enviado, inválido o expirado, o usuario inactivo"}},
)
async def refresh(
    claims: SessionClaims = Depends(get_session_claims),
    db: AsyncSession = Depends(get_db),
):
    usuario = await obtener_usuario(db, claims.user_id)
    if not usuario or not usuario.activo:
        logger.info("Renovación rechazada para usuario_id=%s", claims.user_id)
        raise InvalidCredential("Usuario inexistente o inactivo")
    return await _emitir_token(db, usuario)


@router.get(
    "/validate",
    response_model=TokenValidationResponse,
    summary="Validar token",
    responses={401: {"description": "Token no enviado, inválido o expirado"}},
)
async def validate(claims: SessionClaims = Depends(get_session_claims)):
    """Devuelve los claims del token si es válido. No consulta la base de datos."""
    return TokenValidationResponse(
        usuario_id=claims.user_id,
        email=claims.email,
        roles=sorted(claims.roles),
        institucion_id=claims.institucion_id,
        emitido=claims.issued_at,
        expira=claims.expires_at,
    )


@router.post(
    "/logout",
    summary="Cerrar sesión",
    description="Los tokens no se revocan en el servidor: el cliente debe descartarlo.",
)
async def logout():
    return {"message": "Sesión cerrada. Elimine el token en el cliente."}
