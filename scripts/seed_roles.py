"""Crea los roles de la matriz de permisos y un usuario ADMIN inicial."""
import asyncio
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select
from app.core.database import AsyncSessionLocal, init_db
from app.core.permisos import CodigoRol
from app.core.security import hash_password
from app.models import Rol, Usuario, UsuarioRol

# codigo -> (nombre, descripcion, nivel)
ROLES = {
    CodigoRol.ADMIN: ("Administrador", "Configuración completa del sistema", 1),
    CodigoRol.TECNICO: ("Técnico de Planificación", "Gestión de objetivos y proyectos", 2),
    CodigoRol.PLANIF: ("Planificador", "Formulación de objetivos y proyectos", 3),
    CodigoRol.VALID: ("Validador", "Validación de objetivos estratégicos", 4),
    CodigoRol.REVISOR: ("Revisor", "Revisión de proyectos de inversión", 5),
    CodigoRol.AUDITOR: ("Auditor", "Consulta de reportes y auditoría", 6),
}

ADMIN_NOMBRE = "Administrador"
ADMIN_APELLIDO = "Sistema"
ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@planificacion.gob")
# Contraseña inicial (se guarda hasheada con bcrypt)
ADMIN_PASSWORD_PLAIN = os.getenv("SEED_ADMIN_PASSWORD", "Admin123!")


async def seed_roles():
    await init_db()
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Rol))
        existentes = {r.codigo: r for r in result.scalars().all()}
        print("Roles existentes en la BD:", list(existentes) if existentes else "(ninguno)")

        creados = []
        for codigo, (nombre, descripcion, nivel) in ROLES.items():
            if codigo.value not in existentes:
                rol = Rol(codigo=codigo.value, nombre=nombre, descripcion=descripcion, nivel=nivel)
                session.add(rol)
                existentes[codigo.value] = rol
                creados.append(codigo.value)
        await session.flush()
        print(f"Roles creados: {creados}" if creados else "Todos los roles ya existen.")

        result = await session.execute(select(Usuario).where(Usuario.email == ADMIN_EMAIL))
        admin = result.scalar_one_or_none()
        if not admin:
            admin = Usuario(
                nombre=ADMIN_NOMBRE,
                apellido=ADMIN_APELLIDO,
                email=ADMIN_EMAIL,
                password_hash=hash_password(ADMIN_PASSWORD_PLAIN),
            )
            session.add(admin)
            await session.flush()
            print(f"  + Usuario ADMIN creado: id={admin.id}, email={admin.email}")
        else:
            print(f"  = Usuario ADMIN existente: id={admin.id}")

        rol_admin = existentes[CodigoRol.ADMIN.value]
        result = await session.execute(
            select(UsuarioRol).where(
                UsuarioRol.usuario_id == admin.id,
                UsuarioRol.rol_id == rol_admin.id,
            )
        )
        asignacion = result.scalar_one_or_none()
        if not asignacion:
            session.add(UsuarioRol(usuario_id=admin.id, rol_id=rol_admin.id))
        elif not asignacion.activo:
            asignacion.activo = True
        await session.commit()

        result = await session.execute(select(Rol).order_by(Rol.nivel, Rol.nombre))
        print("\nRoles actuales en la BD:")
        for r in result.scalars().all():
            print(f"  id={r.id} | codigo={r.codigo} | nombre={r.nombre} | activo={r.activo}")
    print(f"\nLogin: {ADMIN_EMAIL} / {ADMIN_PASSWORD_PLAIN}")


if __name__ == "__main__":
    asyncio.run(seed_roles())
