from django.contrib.auth.models import Group, Permission
from django.core.management.base import BaseCommand

from core.access import ROLE_ORDER

_LECTURA_INVENTARIO = [
    "inventario.view_producto",
    "inventario.view_movimientoinventario",
    "recetas.view_lineareceta",
]

# Permisos de admin de Django por rol; el acceso a la API se decide en core.access.
ROLE_PERMS = {
    "DG": _LECTURA_INVENTARIO
    + [
        "core.view_auditlog",
        "pedidos.view_pedido",
        "pedidos.view_pedidoitem",
        "finanzas.view_ingreso",
        "finanzas.view_egreso",
    ],
    "ADMIN": _LECTURA_INVENTARIO
    + [
        "core.view_auditlog",
        "inventario.add_producto",
        "inventario.change_producto",
        "recetas.add_lineareceta",
        "recetas.change_lineareceta",
        "recetas.delete_lineareceta",
        "pedidos.view_cliente",
        "pedidos.add_cliente",
        "pedidos.change_cliente",
        "pedidos.view_pedido",
        "pedidos.add_pedido",
        "pedidos.change_pedido",
        "pedidos.view_pedidoitem",
        "pedidos.add_pedidoitem",
        "finanzas.view_ingreso",
        "finanzas.view_egreso",
        "finanzas.add_egreso",
        "finanzas.change_egreso",
    ],
    "ALMACEN": _LECTURA_INVENTARIO + ["inventario.add_producto", "inventario.change_producto"],
    "PRODUCCION": _LECTURA_INVENTARIO
    + ["recetas.add_lineareceta", "recetas.change_lineareceta", "recetas.delete_lineareceta"],
    "VENTAS": [
        "inventario.view_producto",
        "pedidos.view_cliente",
        "pedidos.add_cliente",
        "pedidos.change_cliente",
        "pedidos.view_pedido",
        "pedidos.add_pedido",
        "pedidos.change_pedido",
        "pedidos.view_pedidoitem",
        "pedidos.add_pedidoitem",
        "finanzas.view_ingreso",
    ],
    "LOGISTICA": _LECTURA_INVENTARIO + ["pedidos.view_pedido", "pedidos.view_pedidoitem"],
    "LECTURA": _LECTURA_INVENTARIO + ["pedidos.view_pedido", "pedidos.view_pedidoitem"],
}


class Command(BaseCommand):
    help = "Crea los grupos de rol y les asigna permisos de admin."

    def handle(self, *args, **options):
        created = 0
        for role in ROLE_ORDER:
            group, was_created = Group.objects.get_or_create(name=role)
            if was_created:
                created += 1
            perms = []
            for code in ROLE_PERMS.get(role, []):
                app_label, codename = code.split(".", 1)
                perm = Permission.objects.filter(content_type__app_label=app_label, codename=codename).first()
                if perm is None:
                    self.stdout.write(self.style.WARNING(f"Permiso no encontrado: {code}"))
                    continue
                perms.append(perm)
            group.permissions.set(perms)
        self.stdout.write(self.style.SUCCESS(f"Roles listos. Nuevos grupos creados: {created}"))
