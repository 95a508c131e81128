"""
Catálogo de permisos, matriz rol→permisos y resolución de acceso.

La matriz es fija en código: se construye una sola vez al importar el módulo y
se expone como mapeos de solo lectura. Cualquier rol, permiso o módulo que no
figure aquí resuelve a "sin acceso".
"""
from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType


class Modulo(str, Enum):
    """Agrupaciones funcionales de permisos."""

    CONFIGURACION_INSTITUCIONAL = "CONFIGURACION_INSTITUCIONAL"
    GESTION_OBJETIVOS = "GESTION_OBJETIVOS"
    PROYECTOS_INVERSION = "PROYECTOS_INVERSION"
    REPORTES = "REPORTES"
    AUDITORIA = "AUDITORIA"


class Permiso(str, Enum):
    """Permisos atómicos. El nombre es el identificador, el valor el código en el token/API."""

    # Configuración institucional: instituciones
    REGISTRAR_INSTITUCION = "config.institucion.crear"
    EDITAR_INSTITUCION = "config.institucion.editar"
    ACTIVAR_INSTITUCION = "config.institucion.activar"
    INACTIVAR_INSTITUCION = "config.institucion.inactivar"
    VER_INSTITUCIONES = "config.institucion.ver"
    # Configuración institucional: usuarios
    CREAR_USUARIO = "config.usuario.crear"
    MODIFICAR_USUARIO = "config.usuario.modificar"
    ASIGNAR_ROL = "config.usuario.asignar_rol"
    CAMBIAR_PASSWORD = "config.usuario.cambiar_password"
    ACTIVAR_USUARIO = "config.usuario.activar"
    INACTIVAR_USUARIO = "config.usuario.inactivar"
    VER_USUARIOS = "config.usuario.ver"
    # Configuración institucional: roles
    CREAR_ROL = "config.rol.crear"
    ASIGNAR_PERMISO = "config.rol.asignar_permiso"
    VER_ROLES = "config.rol.ver"
    # Configuración institucional: jerarquías
    DEFINIR_JERARQUIA = "config.jerarquia.definir"
    ASIGNAR_RELACIONES = "config.jerarquia.asignar_relaciones"
    VER_JERARQUIAS = "config.jerarquia.ver"

    # Objetivos estratégicos
    CREAR_OBJETIVO = "objetivos.objetivo.crear"
    EDITAR_OBJETIVO = "objetivos.objetivo.editar"
    VER_OBJETIVOS = "objetivos.objetivo.ver"
    ELIMINAR_OBJETIVO = "objetivos.objetivo.eliminar"
    REGISTRAR_META = "objetivos.meta.registrar"
    AGREGAR_INDICADOR = "objetivos.indicador.agregar"
    EDITAR_INDICADOR = "objetivos.indicador.editar"
    VER_INDICADORES = "objetivos.indicador.ver"
    VALIDAR_OBJETIVO = "objetivos.validacion.validar"
    VER_VALIDACIONES = "objetivos.validacion.ver"
    CONSULTAR_PND = "objetivos.pnd.consultar"
    CONSULTAR_ODS = "objetivos.ods.consultar"

    # Proyectos de inversión
    CREAR_PROYECTO = "proyectos.proyecto.crear"
    ELIMINAR_PROYECTO = "proyectos.proyecto.eliminar"
    VER_PROYECTOS = "proyectos.proyecto.ver"
    EDITAR_PROYECTO = "proyectos.proyecto.editar"
    REGISTRAR_ACTIVIDAD = "proyectos.actividad.registrar"
    ACTUALIZAR_ACTIVIDAD = "proyectos.actividad.actualizar"
    VER_ACTIVIDADES = "proyectos.actividad.ver"
    ASIGNAR_PRESUPUESTO = "proyectos.presupuesto.asignar"
    REVISAR_PRESUPUESTO = "proyectos.presupuesto.revisar"
    VER_PRESUPUESTO = "proyectos.presupuesto.ver"
    VALIDAR_PROYECTO = "proyectos.validacion.validar"
    VER_VALIDACIONES_PROYECTO = "proyectos.validacion.ver"

    # Reportes
    CONSULTAR_REPORTES = "reportes.consultar"
    FILTRAR_REPORTES = "reportes.filtrar"
    EXPORTAR_REPORTES = "reportes.exportar"
    GENERAR_REPORTE_OBJETIVOS = "reportes.objetivos.generar"
    GENERAR_REPORTE_PROYECTOS = "reportes.proyectos.generar"
    VISUALIZAR_RESUMEN_PRESUPUESTARIO = "reportes.presupuesto.resumen"
    REPORTE_DINAMICO_COMPARATIVO = "reportes.dinamico.comparativo"

    # Auditoría y bitácora (transversal)
    REGISTRAR_AUDITORIA = "auditoria.registrar"
    CONSULTAR_ACCION = "auditoria.consultar"
    VER_BITACORA = "auditoria.bitacora.ver"
    REGISTRAR_EVENTO = "auditoria.evento.registrar"


_PREFIJOS_MODULO = {
    "config.": Modulo.CONFIGURACION_INSTITUCIONAL,
    "objetivos.": Modulo.GESTION_OBJETIVOS,
    "proyectos.": Modulo.PROYECTOS_INVERSION,
    "reportes.": Modulo.REPORTES,
    "auditoria.": Modulo.AUDITORIA,
}


def _construir_catalogo() -> Mapping[Modulo, frozenset[Permiso]]:
    agrupados: dict[Modulo, set[Permiso]] = {m: set() for m in Modulo}
    for permiso in Permiso:
        modulo = next(
            m for prefijo, m in _PREFIJOS_MODULO.items() if permiso.value.startswith(prefijo)
        )
        agrupados[modulo].add(permiso)
    return MappingProxyType({m: frozenset(p) for m, p in agrupados.items()})


CATALOGO: Mapping[Modulo, frozenset[Permiso]] = _construir_catalogo()

MODULO_DE_PERMISO: Mapping[Permiso, Modulo] = MappingProxyType(
    {p: m for m, permisos in CATALOGO.items() for p in permisos}
)

DESCRIPCION_MODULOS: Mapping[Modulo, str] = MappingProxyType({
    Modulo.CONFIGURACION_INSTITUCIONAL: "Gestión de instituciones, usuarios y roles",
    Modulo.GESTION_OBJETIVOS: "Gestión de objetivos estratégicos, metas e indicadores",
    Modulo.PROYECTOS_INVERSION: "Gestión de proyectos de inversión y actividades",
    Modulo.REPORTES: "Consulta, filtrado y exportación de reportes",
    Modulo.AUDITORIA: "Auditoría y bitácora del sistema",
})


class CodigoRol(str, Enum):
    """Roles con entrada en la matriz."""

    ADMIN = "ADMIN"
    TECNICO = "TECNICO"
    PLANIF = "PLANIF"
    VALID = "VALID"
    REVISOR = "REVISOR"
    AUDITOR = "AUDITOR"


# Códigos heredados que se normalizan al emitir el token
ALIAS_ROLES: Mapping[str, str] = MappingProxyType({"VALIDADOR": CodigoRol.VALID.value})


P = Permiso

_OBJETIVOS_SIN_VALIDAR = frozenset({
    P.CREAR_OBJETIVO, P.EDITAR_OBJETIVO, P.VER_OBJETIVOS, P.ELIMINAR_OBJETIVO,
    P.REGISTRAR_META, P.AGREGAR_INDICADOR, P.EDITAR_INDICADOR, P.VER_INDICADORES,
    P.VER_VALIDACIONES, P.CONSULTAR_PND, P.CONSULTAR_ODS,
})

_PROYECTOS_GESTION = frozenset({
    P.CREAR_PROYECTO, P.ELIMINAR_PROYECTO, P.VER_PROYECTOS, P.EDITAR_PROYECTO,
    P.REGISTRAR_ACTIVIDAD, P.ACTUALIZAR_ACTIVIDAD, P.VER_ACTIVIDADES,
    P.ASIGNAR_PRESUPUESTO, P.REVISAR_PRESUPUESTO, P.VER_PRESUPUESTO,
})

_CONFIG_CONSULTA = frozenset({
    P.VER_INSTITUCIONES, P.VER_USUARIOS, P.VER_ROLES, P.VER_JERARQUIAS,
})

_TODOS_LOS_REPORTES = CATALOGO[Modulo.REPORTES]

ROLES_PERMISOS: Mapping[str, frozenset[Permiso]] = MappingProxyType({
    # Configuración completa; objetivos y proyectos sin validar
    CodigoRol.ADMIN.value: (
        CATALOGO[Modulo.CONFIGURACION_INSTITUCIONAL]
        | _OBJETIVOS_SIN_VALIDAR
        | _PROYECTOS_GESTION
        | {P.VER_VALIDACIONES_PROYECTO}
        | _TODOS_LOS_REPORTES
        | CATALOGO[Modulo.AUDITORIA]
    ),
    CodigoRol.TECNICO.value: (
        _CONFIG_CONSULTA
        | _OBJETIVOS_SIN_VALIDAR
        | _PROYECTOS_GESTION
        | {P.VER_VALIDACIONES_PROYECTO}
        | _TODOS_LOS_REPORTES
        | {P.REGISTRAR_EVENTO, P.VER_BITACORA}
    ),
    CodigoRol.PLANIF.value: (
        _CONFIG_CONSULTA
        | _OBJETIVOS_SIN_VALIDAR
        | _PROYECTOS_GESTION
        | _TODOS_LOS_REPORTES
        | {P.REGISTRAR_EVENTO, P.VER_BITACORA}
    ),
    # Solo validación de objetivos; sin configuración ni proyectos
    CodigoRol.VALID.value: frozenset({
        P.VER_OBJETIVOS, P.VER_INDICADORES, P.VALIDAR_OBJETIVO, P.VER_VALIDACIONES,
        P.CONSULTAR_PND, P.CONSULTAR_ODS,
        P.CONSULTAR_REPORTES, P.FILTRAR_REPORTES, P.EXPORTAR_REPORTES,
        P.GENERAR_REPORTE_OBJETIVOS,
        P.REGISTRAR_AUDITORIA, P.VER_BITACORA,
    }),
    # Solo revisión de proyectos; sin configuración ni objetivos
    CodigoRol.REVISOR.value: frozenset({
        P.VER_PROYECTOS, P.VER_ACTIVIDADES, P.VER_PRESUPUESTO,
        P.VALIDAR_PROYECTO, P.VER_VALIDACIONES_PROYECTO,
        P.CONSULTAR_REPORTES, P.FILTRAR_REPORTES, P.EXPORTAR_REPORTES,
        P.GENERAR_REPORTE_PROYECTOS,
        P.VER_BITACORA,
    }),
    # Lectura de objetivos y proyectos, todos los reportes, auditoría completa
    CodigoRol.AUDITOR.value: (
        frozenset({
            P.VER_OBJETIVOS, P.VER_INDICADORES, P.VER_VALIDACIONES,
            P.CONSULTAR_PND, P.CONSULTAR_ODS,
            P.VER_PROYECTOS, P.VER_ACTIVIDADES, P.VER_PRESUPUESTO,
            P.VER_VALIDACIONES_PROYECTO,
        })
        | _TODOS_LOS_REPORTES
        | CATALOGO[Modulo.AUDITORIA]
    ),
})

del P


def resolve_permission(permission: "Permiso | str") -> Permiso | None:
    """Acepta un Permiso, su nombre (CREAR_USUARIO) o su código (config.usuario.crear)."""
    if isinstance(permission, Permiso):
        return permission
    if not isinstance(permission, str):
        return None
    try:
        return Permiso(permission)
    except ValueError:
        return Permiso.__members__.get(permission)


def resolve_module(module: "Modulo | str") -> Modulo | None:
    if isinstance(module, Modulo):
        return module
    if not isinstance(module, str):
        return None
    return Modulo.__members__.get(module)


def permissions_for_roles(roles: Iterable[str]) -> frozenset[Permiso]:
    """Unión de los permisos concedidos por la matriz a los roles dados."""
    concedidos: set[Permiso] = set()
    for rol in roles:
        concedidos |= ROLES_PERMISOS.get(rol, frozenset())
    return frozenset(concedidos)


def has_permission(roles: Iterable[str], permission: "Permiso | str") -> bool:
    """True si algún rol concede el permiso. Roles o permisos desconocidos: False."""
    permiso = resolve_permission(permission)
    if permiso is None:
        return False
    return any(permiso in ROLES_PERMISOS.get(rol, frozenset()) for rol in roles)


def has_module_access(roles: Iterable[str], module: "Modulo | str") -> bool:
    """True si los roles tienen al menos un permiso, de cualquier tipo, dentro del módulo."""
    modulo = resolve_module(module)
    if modulo is None:
        return False
    return not permissions_for_roles(roles).isdisjoint(CATALOGO[modulo])
