from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser, Group
from django.core.management import call_command
from django.db import OperationalError
from django.test import TestCase
from django.urls import reverse

from core.access import (
    ROLE_ALMACEN,
    ROLE_LECTURA,
    ROLE_VENTAS,
    can_manage_inventario,
    can_manage_ventas,
    can_view_inventario,
    primary_role,
)
from core.audit import log_event
from core.models import AuditLog


class AccessTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="almacenista", password="test12345")

    def test_roles_por_grupo(self):
        self.assertFalse(can_view_inventario(self.user))
        self.user.groups.add(Group.objects.create(name=ROLE_ALMACEN))
        self.assertTrue(can_view_inventario(self.user))
        self.assertTrue(can_manage_inventario(self.user))
        self.assertFalse(can_manage_ventas(self.user))
        self.assertEqual(primary_role(self.user), ROLE_ALMACEN)

    def test_lectura_no_escribe(self):
        self.user.groups.add(Group.objects.create(name=ROLE_LECTURA), Group.objects.create(name=ROLE_VENTAS))
        self.assertFalse(can_manage_inventario(self.user))
        self.assertTrue(can_manage_ventas(self.user))
        self.assertEqual(primary_role(self.user), ROLE_VENTAS)

    def test_anonimo_sin_permisos(self):
        self.assertFalse(can_view_inventario(AnonymousUser()))
        self.assertEqual(primary_role(AnonymousUser()), "")


class AuditLogTests(TestCase):
    def test_payload_con_decimales_y_fechas(self):
        log = log_event(
            AnonymousUser(),
            "AJUSTE",
            "inventario.MovimientoInventario",
            7,
            {"cantidad": Decimal("1.50"), "fecha": datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc), "ids": (1, 2)},
        )
        log.refresh_from_db()
        self.assertIsNone(log.user)
        self.assertEqual(log.object_id, "7")
        self.assertEqual(log.payload["cantidad"], "1.50")
        self.assertEqual(log.payload["fecha"], "2026-03-01T12:00:00+00:00")
        self.assertEqual(log.payload["ids"], [1, 2])
        self.assertEqual(AuditLog.objects.count(), 1)


class HealthCheckTests(TestCase):
    def test_ok(self):
        resp = self.client.get(reverse("health"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    def test_base_no_disponible(self):
        with patch("core.views.connection") as connection:
            connection.cursor.side_effect = OperationalError("db down")
            resp = self.client.get(reverse("health"))
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json()["status"], "error")


class BootstrapRolesCommandTests(TestCase):
    def test_crea_grupos_con_permisos(self):
        out = StringIO()
        call_command("bootstrap_roles", stdout=out)
        self.assertIn("Nuevos grupos creados: 7", out.getvalue())
        almacen = Group.objects.get(name=ROLE_ALMACEN)
        self.assertTrue(almacen.permissions.filter(codename="view_movimientoinventario").exists())

        call_command("bootstrap_roles", stdout=StringIO())
        self.assertEqual(Group.objects.count(), 7)
