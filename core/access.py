from django.contrib.auth.models import AbstractBaseUser

ROLE_DG = "DG"
ROLE_ADMIN = "ADMIN"
ROLE_ALMACEN = "ALMACEN"
ROLE_PRODUCCION = "PRODUCCION"
ROLE_VENTAS = "VENTAS"
ROLE_LOGISTICA = "LOGISTICA"
ROLE_LECTURA = "LECTURA"

ROLE_ORDER = [
    ROLE_DG,
    ROLE_ADMIN,
    ROLE_ALMACEN,
    ROLE_PRODUCCION,
    ROLE_VENTAS,
    ROLE_LOGISTICA,
    ROLE_LECTURA,
]


def _group_names(user: AbstractBaseUser) -> set[str]:
    if not user or not user.is_authenticated:
        return set()
    return set(user.groups.values_list("name", flat=True))


def has_any_role(user: AbstractBaseUser, *roles: str) -> bool:
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return bool(_group_names(user).intersection(set(roles)))


def primary_role(user: AbstractBaseUser) -> str:
    groups = _group_names(user)
    for role in ROLE_ORDER:
        if role in groups:
            return role
    return ""


def can_view_inventario(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_DG, ROLE_ADMIN, ROLE_ALMACEN, ROLE_PRODUCCION, ROLE_LOGISTICA, ROLE_LECTURA)


def can_manage_inventario(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN, ROLE_ALMACEN)


def can_view_recetas(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_DG, ROLE_ADMIN, ROLE_ALMACEN, ROLE_PRODUCCION, ROLE_VENTAS, ROLE_LECTURA)


def can_manage_produccion(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN, ROLE_PRODUCCION)


def can_manage_ventas(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN, ROLE_VENTAS, ROLE_LOGISTICA)
