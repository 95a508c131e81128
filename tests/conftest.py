"""
Configuración de pytest y fixtures compartidas.

Ningún test abre una conexión real: la sesión de base de datos y el
registrador de auditoría se sustituyen por dobles en memoria.
"""
import itertools
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.core.security import create_access_token
from app.main import app
from app.models import Auditoria, Bitacora
from app.services.auditoria_service import get_audit_recorder


def pytest_configure(config) -> None:
    config.addinivalue_line("markers", "unit: tests rápidos sin dependencias externas")


class FakeResult:
    """Resultado de execute() con las formas de lectura que usa la app."""

    def __init__(self, value: Any = None, rows: list | None = None):
        self._value = value
        self._rows = rows if rows is not None else []

    def scalar_one_or_none(self):
        return self._value

    def scalar_one(self):
        return self._value

    def scalars(self):
        return SimpleNamespace(all=lambda: list(self._rows))

    def all(self):
        return list(self._rows)

    def first(self):
        return self._rows[0] if self._rows else None

    def mappings(self):
        return SimpleNamespace(all=lambda: list(self._rows))


class FakeSession:
    """
    Sesión asíncrona en memoria.

    `results` se consume en orden por cada execute(). `failures` se lanza en
    orden por cada commit() antes de dar por buena la escritura.
    """

    _ids = itertools.count(1000)

    def __init__(self, results: list | None = None, failures: list | None = None, assign_ids: bool = True):
        self.results = list(results or [])
        self.failures = list(failures or [])
        self.assign_ids = assign_ids
        self.added: list = []
        self.committed: list = []
        self.statements: list = []
        self.commits = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.added = []
        return False

    def add(self, obj) -> None:
        self.added.append(obj)

    async def execute(self, statement):
        self.statements.append(statement)
        if not self.results:
            return FakeResult()
        return self.results.pop(0)

    async def commit(self) -> None:
        self.commits += 1
        if self.failures:
            raise self.failures.pop(0)
        for obj in self.added:
            _completar(obj, self.assign_ids)
        self.committed.extend(self.added)
        self.added = []

    async def rollback(self) -> None:
        self.added = []

    async def close(self) -> None:
        pass


def _completar(obj, assign_ids: bool) -> None:
    """Valores que la base de datos rellenaría al insertar."""
    if assign_ids and getattr(obj, "id", None) is None:
        obj.id = next(FakeSession._ids)
    if isinstance(obj, Auditoria) and obj.fecha_accion is None:
        obj.fecha_accion = datetime.now(timezone.utc)
    if isinstance(obj, Bitacora):
        if obj.fecha_evento is None:
            obj.fecha_evento = datetime.now(timezone.utc)
        if obj.detalles is None:
            obj.detalles = {}
    if hasattr(obj, "activo") and obj.activo is None:
        obj.activo = True


class FakeRecorder:
    """Registrador que guarda las llamadas en memoria."""

    def __init__(self):
        self.audits: list[dict[str, Any]] = []
        self.events: list[dict[str, Any]] = []

    async def record_audit(self, **kwargs):
        self.audits.append(kwargs)
        return SimpleNamespace(id=len(self.audits), **kwargs)

    async def record_event(self, **kwargs):
        self.events.append(kwargs)
        return SimpleNamespace(id=len(self.events), **kwargs)


def bearer(roles, user_id: int = 1, email: str = "usuario@planificacion.gob", **kwargs) -> dict[str, str]:
    """Cabecera Authorization con un token firmado para los roles dados."""
    token = create_access_token(user_id=user_id, email=email, roles=roles, **kwargs)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def fake_db() -> FakeSession:
    return FakeSession()


@pytest.fixture
def recorder() -> FakeRecorder:
    return FakeRecorder()


@pytest.fixture
def client(fake_db: FakeSession, recorder: FakeRecorder):
    """TestClient de la app real con BD y registrador sustituidos."""

    async def _get_db():
        yield fake_db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_audit_recorder] = lambda: recorder
    yield TestClient(app)
    app.dependency_overrides.clear()
