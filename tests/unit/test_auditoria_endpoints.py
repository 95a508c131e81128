"""Endpoints de auditoría y bitácora."""
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.core.database import get_db
from app.main import app
from app.models import Auditoria
from app.services.auditoria_service import AuditRecorder, get_audit_recorder
from app.services.event_log import FilaLog, Pagina
from tests.conftest import FakeSession, bearer

pytestmark = pytest.mark.unit


@pytest.fixture
def real_recorder_client(client):
    """Cliente cuyo registrador valida de verdad y escribe en una sesión en memoria."""
    audit_db = FakeSession()
    app.dependency_overrides[get_audit_recorder] = lambda: AuditRecorder(
        session_factory=lambda: audit_db, espera_inicial=0, espera_maxima=0
    )
    return client, audit_db


def _auditoria(**kwargs) -> Auditoria:
    datos = {
        "id": 10,
        "accion": "UPDATE",
        "tabla": "rol",
        "registro_id": "3",
        "usuario_id": 1,
        "fecha_accion": datetime(2024, 6, 1, tzinfo=timezone.utc),
        "datos_anteriores": {"nivel": 1},
        "datos_nuevos": {"nivel": 2},
    }
    datos.update(kwargs)
    return Auditoria(**datos)


class TestRegistrar:
    def test_register_audit_uses_token_user(self, real_recorder_client):
        client, audit_db = real_recorder_client
        resp = client.post(
            "/api/v1/auditoria",
            json={"accion": "REPORTES_EXPORTAR", "tabla": "reporte", "registro_id": "r-1"},
            headers=bearer(["ADMIN"], user_id=7),
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["usuario_id"] == 7
        assert audit_db.committed[0].accion == "REPORTES_EXPORTAR"

    def test_missing_fields_are_a_bad_request(self, real_recorder_client):
        client, audit_db = real_recorder_client
        resp = client.post(
            "/api/v1/auditoria",
            json={"accion": "INSERT", "tabla": "rol"},
            headers=bearer(["AUDITOR"]),
        )
        assert resp.status_code == 400
        assert audit_db.commits == 0

    def test_register_requires_permission(self, client):
        resp = client.post(
            "/api/v1/auditoria",
            json={"accion": "INSERT", "tabla": "rol", "registro_id": 1},
            headers=bearer(["PLANIF"]),
        )
        assert resp.status_code == 403
        assert resp.json()["permisos_requeridos"] == ["REGISTRAR_AUDITORIA"]

    def test_register_event(self, real_recorder_client):
        client, audit_db = real_recorder_client
        resp = client.post(
            "/api/v1/auditoria/bitacora",
            json={"evento": "EXPORTACION", "descripcion": "Exportó reporte", "modulo": "REPORTES"},
            headers=bearer(["PLANIF"], user_id=2),
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["nivel"] == "INFO"
        assert audit_db.committed[0].usuario_id == 2

    def test_invalid_level_is_a_bad_request(self, real_recorder_client):
        client, _ = real_recorder_client
        resp = client.post(
            "/api/v1/auditoria/bitacora",
            json={"evento": "X", "descripcion": "Y", "modulo": "Z", "nivel": "FATAL"},
            headers=bearer(["TECNICO"]),
        )
        assert resp.status_code == 400

    def test_storage_outage_is_a_server_error(self):
        caida = OperationalError("INSERT", {}, Exception("sin conexión"))
        audit_db = FakeSession(failures=[caida, caida, caida])
        app.dependency_overrides[get_audit_recorder] = lambda: AuditRecorder(
            session_factory=lambda: audit_db, intentos=3, espera_inicial=0, espera_maxima=0
        )
        try:
            resp = TestClient(app).post(
                "/api/v1/auditoria",
                json={"accion": "DELETE", "tabla": "rol", "registro_id": 1},
                headers=bearer(["ADMIN"]),
            )
        finally:
            app.dependency_overrides.clear()
        assert resp.status_code == 500
        assert resp.json()["code"] == "AUDIT_FAILURE"
        assert audit_db.commits == 3

    def test_unreachable_database_is_an_audit_failure(self):
        def _sin_servidor():
            raise ConnectionRefusedError(111, "Connect call failed")

        app.dependency_overrides[get_audit_recorder] = lambda: AuditRecorder(
            session_factory=_sin_servidor, intentos=2, espera_inicial=0, espera_maxima=0
        )
        try:
            resp = TestClient(app).post(
                "/api/v1/auditoria/bitacora",
                json={"evento": "EXPORTACION", "descripcion": "Exportó reporte", "modulo": "REPORTES"},
                headers=bearer(["ADMIN"]),
            )
        finally:
            app.dependency_overrides.clear()
        assert resp.status_code == 500
        assert resp.json()["code"] == "AUDIT_FAILURE"


class TestConsultar:
    def test_list_with_pagination(self, client):
        pagina = Pagina(
            items=[FilaLog(registro=_auditoria(), usuario_nombre="Ana Pérez", usuario_email="ana@x.gob")],
            total=41,
            page=2,
            limit=20,
        )
        listar = AsyncMock(return_value=pagina)
        with patch("app.api.endpoints.auditoria.AUDITORIA_LOG", SimpleNamespace(listar=listar)):
            resp = client.get(
                "/api/v1/auditoria?tabla=rol&page=2&fecha_inicio=2024-06-01",
                headers=bearer(["AUDITOR"]),
            )

        assert resp.status_code == 200
        body = resp.json()
        assert body["pagination"] == {"total": 41, "page": 2, "limit": 20, "totalPages": 3}
        assert body["data"][0]["usuario_nombre"] == "Ana Pérez"
        filtros = listar.call_args.args[1]
        assert filtros["tabla"] == "rol"
        assert str(filtros["fecha_inicio"]) == "2024-06-01"

    def test_reading_requires_consult_permission(self, client):
        resp = client.get("/api/v1/auditoria", headers=bearer(["PLANIF"]))
        assert resp.status_code == 403
        assert resp.json()["permisos_requeridos"] == ["CONSULTAR_ACCION"]

    def test_bitacora_is_not_captured_as_an_id(self, client):
        pagina = Pagina(items=[], total=0, page=1, limit=20)
        listar = AsyncMock(return_value=pagina)
        with patch("app.api.endpoints.auditoria.BITACORA_LOG", SimpleNamespace(listar=listar)):
            resp = client.get("/api/v1/auditoria/bitacora?evento=login", headers=bearer(["REVISOR"]))
        assert resp.status_code == 200
        assert listar.call_args.args[1]["evento"] == "login"

    def test_get_missing_record(self, client):
        obtener = AsyncMock(return_value=None)
        with patch("app.api.endpoints.auditoria.AUDITORIA_LOG", SimpleNamespace(obtener=obtener)):
            resp = client.get("/api/v1/auditoria/999", headers=bearer(["ADMIN"]))
        assert resp.status_code == 404

    def test_get_record(self, client):
        fila = FilaLog(registro=_auditoria(), usuario_nombre=None, usuario_email=None)
        obtener = AsyncMock(return_value=fila)
        with patch("app.api.endpoints.auditoria.AUDITORIA_LOG", SimpleNamespace(obtener=obtener)):
            resp = client.get("/api/v1/auditoria/10", headers=bearer(["AUDITOR"]))
        assert resp.status_code == 200
        assert resp.json()["datos_nuevos"] == {"nivel": 2}

    def test_statistics(self, client):
        estadisticas = AsyncMock(return_value={"acciones": [], "periodo": "Últimos 30 días"})
        with patch("app.api.endpoints.auditoria.AUDITORIA_LOG", SimpleNamespace(estadisticas=estadisticas)):
            resp = client.get("/api/v1/auditoria/estadisticas/resumen", headers=bearer(["AUDITOR"]))
        assert resp.status_code == 200
        assert resp.json()["periodo"] == "Últimos 30 días"

    def test_bitacora_statistics_require_permission(self, client):
        resp = client.get("/api/v1/auditoria/bitacora/estadisticas/resumen", headers=bearer(["SIN_ROL"]))
        assert resp.status_code == 403


class TestFiltroFechas:
    def _filtros(self, client, **params):
        listar = AsyncMock(return_value=Pagina(items=[], total=0, page=1, limit=20))
        with patch("app.api.endpoints.auditoria.BITACORA_LOG", SimpleNamespace(listar=listar)):
            resp = client.get("/api/v1/auditoria/bitacora", params=params, headers=bearer(["AUDITOR"]))
        assert resp.status_code == 200
        return listar.call_args.args[1]

    def test_midnight_with_offset_keeps_the_instant(self, client):
        filtros = self._filtros(client, fecha_fin="2024-03-31T00:00:00-05:00")
        assert isinstance(filtros["fecha_fin"], datetime)
        assert filtros["fecha_fin"] == datetime(2024, 3, 31, 5, tzinfo=timezone.utc)

    def test_plain_date_is_a_whole_day(self, client):
        filtros = self._filtros(client, fecha_inicio="2024-03-01")
        assert type(filtros["fecha_inicio"]) is date

    def test_datetime_without_zone_is_utc(self, client):
        filtros = self._filtros(client, fecha_inicio="2024-03-01T08:30:00")
        assert filtros["fecha_inicio"] == datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)

    def test_malformed_date(self, client):
        resp = client.get("/api/v1/auditoria/bitacora?fecha_fin=31-03-2024", headers=bearer(["AUDITOR"]))
        assert resp.status_code == 422


class TestLecturaAuditada:
    def test_listing_is_recorded(self, client, recorder):
        listar = AsyncMock(return_value=Pagina(items=[], total=0, page=1, limit=20))
        with patch("app.api.endpoints.auditoria.AUDITORIA_LOG", SimpleNamespace(listar=listar)):
            resp = client.get("/api/v1/auditoria?tabla=rol", headers=bearer(["AUDITOR"], user_id=12))

        assert resp.status_code == 200
        audit = recorder.audits[0]
        assert audit["accion"] == "CONSULTAR"
        assert audit["tabla"] == "auditoria"
        assert audit["registro_id"] == "/api/v1/auditoria"
        assert audit["usuario_id"] == 12
        assert audit["datos_nuevos"]["query_params"] == {"tabla": "rol"}

    def test_detail_records_path_params(self, client, recorder):
        obtener = AsyncMock(return_value=None)
        with patch("app.api.endpoints.auditoria.AUDITORIA_LOG", SimpleNamespace(obtener=obtener)):
            client.get("/api/v1/auditoria/55", headers=bearer(["ADMIN"]))
        assert recorder.audits[0]["datos_nuevos"]["path_params"] == {"auditoria_id": "55"}

    def test_denied_read_is_not_recorded(self, client, recorder):
        client.get("/api/v1/auditoria", headers=bearer(["PLANIF"]))
        assert recorder.audits == []

    def test_audit_failure_blocks_the_read(self):
        audit_db = FakeSession(failures=[OperationalError("INSERT", {}, Exception("sin conexión"))])
        listar = AsyncMock()

        async def _get_db():
            yield FakeSession()

        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_audit_recorder] = lambda: AuditRecorder(
            session_factory=lambda: audit_db, intentos=1, espera_inicial=0, espera_maxima=0
        )
        try:
            with patch("app.api.endpoints.auditoria.AUDITORIA_LOG", SimpleNamespace(listar=listar)):
                resp = TestClient(app).get("/api/v1/auditoria", headers=bearer(["AUDITOR"]))
        finally:
            app.dependency_overrides.clear()
        assert resp.status_code == 500
        assert resp.json()["code"] == "AUDIT_FAILURE"
        listar.assert_not_called()
