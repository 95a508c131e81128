"""Utilidades de seguridad: contraseñas, emisión y validación de JWT."""
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from app.core.config import settings
from app.core.exceptions import ExpiredCredential, InvalidCredential, MissingCredential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionClaims:
    """Identidad verificada del usuario que hace la petición. Inmutable durante la vida del token."""

    user_id: int
    email: str
    roles: frozenset[str]
    issued_at: datetime
    expires_at: datetime
    institucion_id: int | None = None

    def to_identity(self) -> dict[str, Any]:
        """Forma que consumen los handlers: {id, email, roles[], institucion_id?}."""
        return {
            "id": self.user_id,
            "email": self.email,
            "roles": sorted(self.roles),
            "institucion_id": self.institucion_id,
        }


def hash_password(plain_password: str) -> str:
    """Genera el hash bcrypt de la contraseña en texto."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Comprueba si la contraseña en texto coincide con el hash."""
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except ValueError:
        return False


def create_access_token(
    user_id: int,
    email: str,
    roles: Iterable[str],
    institucion_id: int | None = None,
    *,
    issued_at: datetime | None = None,
) -> str:
    """Firma un JWT con la identidad y los roles vigentes en este momento."""
    now = issued_at or datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.jwt_expire_minutes)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "userId": user_id,
        "email": email,
        "roles": sorted(set(roles)),
        "iat": now,
        "exp": expire,
    }
    if institucion_id is not None:
        payload["institucion_id"] = institucion_id
    return jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str | None) -> SessionClaims:
    """
    Verifica firma y vigencia del JWT y devuelve sus claims.

    No consulta la base de datos: los roles son los firmados al emitir el token.
    """
    if not token:
        raise MissingCredential()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        logger.info("Token expirado rechazado")
        raise ExpiredCredential() from exc
    except jwt.PyJWTError as exc:
        logger.info("Token inválido rechazado: %s", exc)
        raise InvalidCredential() from exc

    return _claims_from_payload(payload)


def _claims_from_payload(payload: dict[str, Any]) -> SessionClaims:
    roles = payload.get("roles", [])
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        raise InvalidCredential("Token inválido: roles mal formados")
    institucion_id = payload.get("institucion_id")
    try:
        user_id = int(payload.get("userId", payload["sub"]))
        if institucion_id is not None:
            institucion_id = int(institucion_id)
    except (TypeError, ValueError) as exc:
        raise InvalidCredential("Token inválido: identificadores mal formados") from exc
    email = payload.get("email")
    if not isinstance(email, str):
        raise InvalidCredential("Token inválido: email ausente")
    return SessionClaims(
        user_id=user_id,
        email=email,
        roles=frozenset(roles),
        issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        institucion_id=institucion_id,
    )
