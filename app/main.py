"""Punto de entrada de la aplicación FastAPI."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import router as api_router
from app.core.config import settings
from app.core.database import init_db
from app.core.exceptions import register_exception_handlers
from app.models import *  # noqa: F401, F403 - Registra modelos en Base.metadata antes de init_db

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Documentación Swagger: disponible en /docs (OpenAPI 3.0)
OPENAPI_TAGS = [
    {
        "name": "auth",
        "description": "Autenticación: login con correo y contraseña, renovación y validación del JWT.",
    },
    {
        "name": "api",
        "description": "Endpoints generales de la API v1. Incluye el perfil del usuario con sus permisos.",
    },
    {
        "name": "roles",
        "description": "Roles del sistema, matriz de permisos y asignación de roles a usuarios.",
    },
    {
        "name": "auditoria",
        "description": "Auditoría de cambios de datos y bitácora de eventos: registro, consulta y estadísticas.",
    },
    {
        "name": "salud",
        "description": "Comprobación del estado del servicio.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestiona el ciclo de vida: inicio y cierre de la aplicación."""
    await init_db()
    logger.info("%s iniciada", settings.app_name)
    yield


app = FastAPI(
    title=settings.app_name,
    description="""
API REST del núcleo de autorización de la **Plataforma de Planificación Institucional**.

## Autenticación

1. Obtén un token con **POST /api/v1/auth/login** (correo y contraseña).
2. En Swagger UI, clic en **Authorize** y pega solo el `access_token`.
3. Las rutas protegidas responden 401 sin token válido y 403 si tus roles no conceden el permiso.
""",
    version="0.1.0",
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    swagger_ui_parameters={"persistAuthorization": True, "tryItOutEnabled": True},
)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get(
    "/health",
    tags=["salud"],
    summary="Estado del servicio",
    response_description="Indica que la API está en ejecución",
)
async def health_check():
    """Comprueba que el servicio está activo. No requiere autenticación."""
    return {"status": "ok", "message": "Servicio en ejecución"}
