"""
Registro de auditoría y bitácora.

Cada anexión usa su propia transacción corta, distinta de la sesión del
handler, y se espera antes de responder. Los fallos transitorios del
almacenamiento se reintentan un número acotado de veces; cualquier otro fallo
se propaga como AuditoriaNoRegistrada.
"""
import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from app.core.config import settings
from app.core.database import AsyncSessionLocal, Base
from app.core.exceptions import AuditoriaNoRegistrada, InvalidAuditEntry, InvalidLogEntry
from app.models import AccionAuditoria, Auditoria, Bitacora, NivelBitacora

logger = logging.getLogger(__name__)


def is_transient_storage_error(exc: BaseException) -> bool:
    """
    Errores de conexión o disponibilidad: vale la pena reintentar.

    asyncpg no envuelve en SQLAlchemy los fallos al conectar
    (ConnectionRefusedError, TimeoutError), por eso se aceptan OSError y
    TimeoutError tal cual.
    """
    if isinstance(exc, (OperationalError, InterfaceError, OSError, TimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Reintento %s al escribir auditoría: %s",
        retry_state.attempt_number,
        exc,
    )


def _vacio(valor: Any) -> bool:
    return valor is None or (isinstance(valor, str) and not valor.strip())


class AuditRecorder:
    """Escribe en las tablas auditoria y bitacora."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        intentos: int | None = None,
        espera_inicial: float | None = None,
        espera_maxima: float | None = None,
    ):
        self._session_factory = session_factory
        self._intentos = intentos or settings.audit_retry_attempts
        self._espera_inicial = (
            settings.audit_retry_wait_seconds if espera_inicial is None else espera_inicial
        )
        self._espera_maxima = (
            settings.audit_retry_max_wait_seconds if espera_maxima is None else espera_maxima
        )

    async def record_audit(
        self,
        accion: str | None,
        tabla: str | None,
        registro_id: Any,
        usuario_id: int | None,
        datos_anteriores: dict[str, Any] | None = None,
        datos_nuevos: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Auditoria:
        """Anexa un registro de auditoría. Los snapshots se guardan tal cual, sin calcular diferencias."""
        if _vacio(accion) or _vacio(tabla) or _vacio(registro_id):
            logger.error(
                "Registro de auditoría inválido: accion=%r tabla=%r registro_id=%r usuario_id=%s",
                accion, tabla, registro_id, usuario_id,
            )
            raise InvalidAuditEntry()
        if accion == AccionAuditoria.INSERT and datos_anteriores is not None:
            logger.error(
                "INSERT con datos_anteriores: tabla=%r registro_id=%r usuario_id=%s",
                tabla, registro_id, usuario_id,
            )
            raise InvalidAuditEntry("Una acción INSERT no lleva datos_anteriores")
        if accion == AccionAuditoria.UPDATE and not (datos_anteriores and datos_nuevos):
            logger.error(
                "UPDATE sin snapshots: tabla=%r registro_id=%r usuario_id=%s",
                tabla, registro_id, usuario_id,
            )
            raise InvalidAuditEntry("Una acción UPDATE requiere datos_anteriores y datos_nuevos")

        return await self._append(
            Auditoria,
            accion=accion,
            tabla=tabla,
            registro_id=str(registro_id),
            usuario_id=usuario_id,
            datos_anteriores=datos_anteriores,
            datos_nuevos=datos_nuevos,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def record_event(
        self,
        evento: str | None,
        descripcion: str | None,
        modulo: str | None,
        nivel: str = NivelBitacora.INFO,
        usuario_id: int | None = None,
        detalles: dict[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> Bitacora:
        """Anexa un evento a la bitácora."""
        if _vacio(evento) or _vacio(descripcion) or _vacio(modulo):
            logger.error(
                "Evento de bitácora inválido: evento=%r modulo=%r usuario_id=%s",
                evento, modulo, usuario_id,
            )
            raise InvalidLogEntry()
        if nivel not in NivelBitacora.VALIDOS:
            logger.error(
                "Nivel de bitácora inválido: %r (evento=%r usuario_id=%s)", nivel, evento, usuario_id
            )
            raise InvalidLogEntry(
                f"El nivel debe ser uno de: {', '.join(sorted(NivelBitacora.VALIDOS))}"
            )

        return await self._append(
            Bitacora,
            evento=evento,
            descripcion=descripcion,
            modulo=modulo,
            nivel=nivel,
            usuario_id=usuario_id,
            detalles=detalles or {},
            ip_address=ip_address,
        )

    async def _append(self, model: type[Base], **valores: Any):
        try:
            async for intento in AsyncRetrying(
                stop=stop_after_attempt(self._intentos),
                wait=wait_exponential(multiplier=self._espera_inicial, max=self._espera_maxima)
                + wait_random(0, self._espera_inicial),
                retry=retry_if_exception(is_transient_storage_error),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with intento:
                    async with self._session_factory() as session:
                        registro = model(**valores)
                        session.add(registro)
                        await session.commit()
                        return registro
        except (SQLAlchemyError, OSError, TimeoutError) as exc:
            logger.error(
                "No se pudo anexar %s tras %s intento(s): %s (usuario_id=%s)",
                model.__tablename__, self._intentos, exc, valores.get("usuario_id"),
            )
            raise AuditoriaNoRegistrada() from exc


audit_recorder = AuditRecorder()


def get_audit_recorder() -> AuditRecorder:
    """Dependencia FastAPI; en tests se sustituye con dependency_overrides."""
    return audit_recorder
