from decimal import Decimal
from io import BytesIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase
from django.urls import reverse
from openpyxl import load_workbook
from rest_framework.authtoken.models import Token

from core.access import ROLE_LECTURA, ROLE_VENTAS
from finanzas.models import Ingreso
from inventario.models import MovimientoInventario, Producto
from inventario.services import registrar_movimiento
from pedidos.models import Cliente, Pedido, PedidoItem
from recetas.models import LineaReceta


class AuthTokenApiTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="api_user", password="test12345")
        self.user.groups.add(Group.objects.create(name=ROLE_VENTAS))

    def test_obtiene_token_y_rol(self):
        resp = self.client.post(
            reverse("api_auth_token"),
            {"username": "api_user", "password": "test12345"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        payload = resp.json()
        self.assertEqual(payload["token"], Token.objects.get(user=self.user).key)
        self.assertEqual(payload["user"]["rol"], ROLE_VENTAS)

    def test_credenciales_invalidas(self):
        resp = self.client.post(
            reverse("api_auth_token"),
            {"username": "api_user", "password": "otra"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 400)

    def test_token_autentica_peticiones(self):
        token = Token.objects.create(user=self.user)
        resp = self.client.post(
            reverse("api_pedido_item_pago", args=[999999]),
            HTTP_AUTHORIZATION=f"Token {token.key}",
        )
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "ItemPedidoNoEncontradoError")


class InventarioApiTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.user = user_model.objects.create_superuser(
            username="admin_api_inv",
            email="admin_api_inv@example.com",
            password="test12345",
        )
        self.client.force_login(self.user)
        self.producto = Producto.objects.create(
            nombre="Alfajor API",
            tipo=Producto.TIPO_FINAL,
            unidad=Producto.UNIDAD_PIEZA,
        )
        self.url = reverse("api_inventario_movimientos")

    def _post(self, **data):
        body = {"producto_id": self.producto.id, "tipo": "entrada", "motivo": "ENTRADA_PRODUCCION", "cantidad": "20"}
        body.update(data)
        return self.client.post(self.url, body, content_type="application/json")

    def test_registrar_movimiento(self):
        resp = self._post()
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["stock_actual"], Decimal("20"))
        self.assertEqual(resp.data["motivo"], "ENTRADA_PRODUCCION")
        self.assertEqual(resp.data["creado_por"], "admin_api_inv")

        resp = self._post(tipo="salida", motivo="salida_venta", cantidad="5")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["stock_actual"], Decimal("15"))

    def test_salida_sin_stock_devuelve_409(self):
        resp = self._post(tipo="salida", motivo="SALIDA_VENTA", cantidad="1")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "StockInsuficienteError")
        self.assertFalse(MovimientoInventario.objects.exists())

    def test_motivo_invalido_y_producto_inexistente(self):
        self.assertEqual(self._post(motivo="SALIDA_VENTA").status_code, 400)
        self.assertEqual(self._post(producto_id=999999).status_code, 404)
        self.assertEqual(self._post(cantidad="-1").status_code, 400)

    def test_listado_filtra_por_producto(self):
        otro = Producto.objects.create(nombre="Otro", unidad=Producto.UNIDAD_PIEZA)
        registrar_movimiento(producto_id=self.producto.id, tipo="entrada", motivo="ENTRADA_PRODUCCION", cantidad=3)
        registrar_movimiento(producto_id=otro.id, tipo="entrada", motivo="ENTRADA_COMPRA", cantidad=1)

        resp = self.client.get(self.url, {"producto": self.producto.id})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["count"], 1)
        self.assertEqual(resp.json()["results"][0]["producto_nombre"], "Alfajor API")

    def test_kardex(self):
        registrar_movimiento(producto_id=self.producto.id, tipo="entrada", motivo="ENTRADA_PRODUCCION", cantidad=8)
        registrar_movimiento(producto_id=self.producto.id, tipo="salida", motivo="SALIDA_YAPA", cantidad=1)

        resp = self.client.get(reverse("api_inventario_kardex", args=[self.producto.id]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["stock_segun_kardex"], Decimal("7"))
        self.assertEqual(resp.data["producto"]["id"], self.producto.id)
        self.assertEqual(resp.data["producto"]["nombre"], "Alfajor API")
        self.assertEqual(resp.data["producto"]["unidad"], Producto.UNIDAD_PIEZA)
        self.assertEqual(Decimal(resp.data["producto"]["stock"]), Decimal("7"))
        self.assertEqual([m["motivo"] for m in resp.data["movimientos"]], ["ENTRADA_PRODUCCION", "SALIDA_YAPA"])

        self.assertEqual(self.client.get(reverse("api_inventario_kardex", args=[999999])).status_code, 404)

    def test_resumen_diario_json_y_xlsx(self):
        registrar_movimiento(producto_id=self.producto.id, tipo="entrada", motivo="ENTRADA_PRODUCCION", cantidad=40)
        registrar_movimiento(producto_id=self.producto.id, tipo="salida", motivo="SALIDA_DANIADO", cantidad=2)
        url = reverse("api_inventario_resumen_diario")

        resp = self.client.get(url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["global"]["merma_pct"], Decimal("5.00"))
        self.assertEqual(resp.data["totales_por_motivo"]["SALIDA_DANIADO"], Decimal("2"))

        resp = self.client.get(url, {"export": "xlsx"})
        self.assertEqual(resp.status_code, 200)
        self.assertIn("spreadsheetml", resp["Content-Type"])
        wb = load_workbook(BytesIO(resp.content), read_only=True)
        self.assertEqual(wb.sheetnames, ["Resumen", "Totales por motivo"])
        filas = list(wb["Resumen"].iter_rows(values_only=True))
        self.assertEqual(filas[1][0], "Alfajor API")
        self.assertEqual(filas[1][2], 40)


class PermisosApiTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="lector", password="test12345")
        self.user.groups.add(Group.objects.create(name=ROLE_LECTURA))
        self.client.force_login(self.user)
        self.producto = Producto.objects.create(nombre="Pan", unidad=Producto.UNIDAD_PIEZA)

    def test_lectura_consulta_pero_no_registra(self):
        self.assertEqual(self.client.get(reverse("api_inventario_movimientos")).status_code, 200)
        resp = self.client.post(
            reverse("api_inventario_movimientos"),
            {"producto_id": self.producto.id, "tipo": "entrada", "motivo": "ENTRADA_COMPRA", "cantidad": "1"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 403)
        self.assertFalse(MovimientoInventario.objects.exists())

    def test_lectura_no_registra_produccion_ni_pagos(self):
        resp = self.client.post(reverse("api_produccion_registrar"), {}, content_type="application/json")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(self.client.post(reverse("api_pedido_item_pago", args=[1])).status_code, 403)

    def test_sin_sesion(self):
        self.client.logout()
        self.assertIn(self.client.get(reverse("api_inventario_movimientos")).status_code, (401, 403))


class RecetasApiTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.user = user_model.objects.create_superuser(
            username="admin_api_costeo",
            email="admin_api_costeo@example.com",
            password="test12345",
        )
        self.client.force_login(self.user)
        self.harina = Producto.objects.create(nombre="Harina", precio=Decimal("2"), peso_neto=Decimal("500"))
        self.masa = Producto.objects.create(
            nombre="Masa base",
            tipo=Producto.TIPO_INTERMEDIO,
            rendimiento_g=Decimal("100"),
        )
        self.pastel = Producto.objects.create(
            nombre="Pastel",
            tipo=Producto.TIPO_FINAL,
            unidad=Producto.UNIDAD_PIEZA,
        )
        LineaReceta.objects.create(producto_final=self.masa, producto_insumo=self.harina, cantidad=Decimal("50"))
        LineaReceta.objects.create(producto_final=self.pastel, producto_insumo=self.masa, cantidad=Decimal("200"))

    def test_costeo(self):
        resp = self.client.get(
            reverse("api_receta_costeo", args=[self.pastel.id]),
            {"cantidad": "10", "extras_pct": "10", "mano_obra_pct": "0"},
        )
        self.assertEqual(resp.status_code, 200)
        totales = resp.data["resumen"]["totales"]
        self.assertEqual(totales["subtotal_insumos"], Decimal("4.00"))
        self.assertEqual(totales["total_lote"], Decimal("4.40"))
        self.assertEqual(resp.data["filas"][0]["ruta"], "Pastel > Masa base > Harina")

    def test_costeo_producto_inexistente(self):
        self.assertEqual(self.client.get(reverse("api_receta_costeo", args=[999999])).status_code, 404)

    def test_alta_de_lineas_y_ciclo(self):
        url = reverse("api_receta_lineas", args=[self.masa.id])
        azucar = Producto.objects.create(nombre="Azúcar")

        resp = self.client.post(
            url,
            {"lineas": [{"producto_insumo_id": azucar.id, "cantidad": "20"}]},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(len(resp.json()["lineas"]), 1)

        resp = self.client.post(
            url,
            {"lineas": [{"producto_insumo_id": self.pastel.id, "cantidad": "1"}]},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "RecetaCiclicaError")


class ProduccionApiTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_superuser(
            username="admin_api_prod",
            email="admin_api_prod@example.com",
            password="test12345",
        )
        self.client.force_login(self.user)
        self.masa = Producto.objects.create(nombre="Masa", tipo=Producto.TIPO_INTERMEDIO, stock=Decimal("500"))
        self.pan = Producto.objects.create(nombre="Pan", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)

    def test_registra_produccion_simple(self):
        resp = self.client.post(
            reverse("api_produccion_registrar"),
            {"intermedio": {"id": self.masa.id, "gramos": 300}, "productos": [{"id": self.pan.id, "cantidad": 6}]},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 201)
        self.assertTrue(resp.data["resumen"]["op_id"].startswith("PR-"))
        self.pan.refresh_from_db()
        self.assertEqual(self.pan.stock, Decimal("6"))

    def test_payload_invalido(self):
        resp = self.client.post(
            reverse("api_produccion_registrar"),
            {"intermedio": {"id": self.masa.id}},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "DatosInvalidosError")


class PedidoItemApiTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="vendedor", password="test12345")
        self.user.groups.add(Group.objects.create(name=ROLE_VENTAS))
        self.client.force_login(self.user)
        self.producto = Producto.objects.create(
            nombre="Empanada",
            tipo=Producto.TIPO_FINAL,
            unidad=Producto.UNIDAD_PIEZA,
            stock=Decimal("30"),
        )
        pedido = Pedido.objects.create(cliente=Cliente.objects.create(nombre="Tienda Sol"))
        self.item = PedidoItem.objects.create(
            pedido=pedido,
            producto=self.producto,
            cantidad=Decimal("10"),
            precio=Decimal("2.50"),
        )

    def test_pago_y_reversa(self):
        url = reverse("api_pedido_item_pago", args=[self.item.id])
        resp = self.client.post(url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["ingreso"]["monto"], "25.00")
        self.assertEqual(resp.json()["item"]["pedido_estatus"], Pedido.ESTATUS_PAGADO)

        self.assertEqual(self.client.post(url).status_code, 409)

        resp = self.client.delete(url)
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(Ingreso.objects.exists())

    def test_patch_item(self):
        resp = self.client.patch(
            reverse("api_pedido_item", args=[self.item.id]),
            {"cantidad_vendida": "8", "pagado_en": True},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Ingreso.objects.get().monto, Decimal("20.00"))

        resp = self.client.patch(
            reverse("api_pedido_item", args=[self.item.id]),
            {"cantidad_daniada": "5"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 400)

    def test_cierre_y_entrega(self):
        resp = self.client.post(
            reverse("api_pedido_item_cierre", args=[self.item.id]),
            {"cantidad_vendida": "7", "cantidad_yapa": "1"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()["movimientos"]), 2)
        self.producto.refresh_from_db()
        self.assertEqual(self.producto.stock, Decimal("22"))

        resp = self.client.post(
            reverse("api_pedido_item_cierre", args=[self.item.id]),
            {"cantidad_vendida": "6"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 409)

        resp = self.client.post(reverse("api_pedido_item_entrega", args=[self.item.id]))
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()["consignacion"])
        self.assertEqual(resp.json()["movimiento"]["motivo"], "SALIDA_VENTA")
        self.producto.refresh_from_db()
        self.assertEqual(self.producto.stock, Decimal("12"))
