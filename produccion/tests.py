from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from core.models import AuditLog
from inventario.exceptions import DatosInvalidosError, ProductoNoEncontradoError, StockInsuficienteError
from inventario.models import MovimientoInventario, Producto
from inventario.signals import produccion_registrada
from produccion.services import parse_payload, registrar_produccion

Mov = MovimientoInventario


def _producto(nombre, stock, *, tipo=Producto.TIPO_MATERIA_PRIMA, unidad=Producto.UNIDAD_GRAMO, **extra):
    return Producto.objects.create(nombre=nombre, tipo=tipo, unidad=unidad, stock=Decimal(stock), **extra)


class ProduccionSimpleTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="panadero", password="test12345")
        self.masa = _producto("Masa", "1000", tipo=Producto.TIPO_INTERMEDIO)
        self.pan = _producto("Pan", "0", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)
        self.torta = _producto("Torta", "0", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)
        self.azucar = _producto("Azúcar", "500")

    def _payload(self, **overrides):
        payload = {
            "intermedio": {"id": self.masa.id, "gramos": "600"},
            "productos": [
                {"id": self.pan.id, "cantidad": "10", "gramosPorUnidadIntermedio": "50"},
                {"id": self.torta.id, "cantidad": "2"},
            ],
            "insumos": [{"id": self.azucar.id, "gramos": "100"}],
        }
        payload.update(overrides)
        return payload

    def _stocks(self):
        return {
            p.nombre: p.stock
            for p in Producto.objects.filter(id__in=[self.masa.id, self.pan.id, self.torta.id, self.azucar.id])
        }

    def test_registra_lote_completo(self):
        resumen = registrar_produccion(self._payload(), usuario=self.user)

        self.assertTrue(resumen["op_id"].startswith("PR-"))
        self.assertEqual(
            self._stocks(),
            {"Masa": Decimal("400"), "Pan": Decimal("10"), "Torta": Decimal("2"), "Azúcar": Decimal("400")},
        )
        movimientos = Mov.objects.filter(referencia_tipo=Mov.REFERENCIA_PRODUCCION, referencia_id=resumen["op_id"])
        self.assertEqual(movimientos.count(), 4)
        self.assertEqual(movimientos.filter(motivo=Mov.MOTIVO_ENTRADA_PRODUCCION).count(), 2)
        self.assertEqual(movimientos.filter(motivo=Mov.MOTIVO_SALIDA_CONSUMO_INTERNO).count(), 2)

        self.assertEqual(resumen["intermedio"]["delta"], Decimal("-600"))
        self.assertEqual(len(resumen["productos_agregados"]), 2)
        self.assertEqual(resumen["productos_agregados"][0]["gramos_por_unidad_intermedio"], Decimal("50"))
        self.assertEqual(resumen["insumos_descontados"][0]["despues"], Decimal("400"))
        self.assertTrue(AuditLog.objects.filter(action="PRODUCCION", object_id=resumen["op_id"]).exists())

    def test_producto_inexistente_revierte_todo(self):
        payload = self._payload(
            productos=[
                {"id": self.pan.id, "cantidad": "10"},
                {"id": 999999, "cantidad": "1"},
                {"id": self.torta.id, "cantidad": "2"},
            ]
        )
        antes = self._stocks()
        with self.assertRaises(ProductoNoEncontradoError):
            registrar_produccion(payload, usuario=self.user)
        self.assertEqual(self._stocks(), antes)
        self.assertFalse(Mov.objects.exists())

    def test_stock_insuficiente_en_insumo_revierte_lo_ya_aplicado(self):
        antes = self._stocks()
        with self.assertRaises(StockInsuficienteError):
            registrar_produccion(self._payload(insumos=[{"id": self.azucar.id, "gramos": "900"}]))
        self.assertEqual(self._stocks(), antes)
        self.assertFalse(Mov.objects.exists())
        self.assertFalse(AuditLog.objects.exists())

    def test_senal_una_vez_por_lote(self):
        recibidos = []

        def receptor(sender, **kwargs):
            recibidos.append(kwargs)

        produccion_registrada.connect(receptor)
        self.addCleanup(produccion_registrada.disconnect, receptor)

        with self.captureOnCommitCallbacks(execute=True):
            resumen = registrar_produccion(self._payload())

        self.assertEqual(len(recibidos), 1)
        self.assertEqual(recibidos[0]["op_id"], resumen["op_id"])
        self.assertEqual(
            recibidos[0]["producto_ids"], sorted([self.masa.id, self.pan.id, self.torta.id, self.azucar.id])
        )


class ProduccionSimuladaTests(TestCase):
    def setUp(self):
        self.harina = _producto("Harina", "1000")
        self.masa = _producto("Masa", "50", tipo=Producto.TIPO_INTERMEDIO)
        self.pastel = _producto("Pastel", "0", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)

    def _payload(self, harina_g="1000", sobrante="30"):
        return {
            "productId": self.pastel.id,
            "quantity": 10,
            "simulated": {
                "id": self.pastel.id,
                "producto": "Pastel",
                "cantidadDeseada": 10,
                "requiere": [
                    {
                        "id": self.masa.id,
                        "producto": "Masa",
                        "esIntermedio": True,
                        "cantidadGramos": 2000,
                        "sobrante": sobrante,
                        "requiere": [{"id": self.harina.id, "producto": "Harina", "cantidadGramos": harina_g}],
                    }
                ],
            },
        }

    def test_recorre_hijos_antes_que_padre(self):
        resumen = registrar_produccion(self._payload())

        self.assertTrue(resumen["op_id"].startswith("PF-"))
        for producto in (self.harina, self.masa, self.pastel):
            producto.refresh_from_db()
        self.assertEqual(self.harina.stock, Decimal("0"))
        self.assertEqual(self.masa.stock, Decimal("30"))
        self.assertEqual(self.pastel.stock, Decimal("10"))

        movimientos_masa = list(Mov.objects.filter(producto=self.masa).order_by("id").values_list("tipo", "motivo"))
        self.assertEqual(
            movimientos_masa,
            [
                (Mov.TIPO_ENTRADA, Mov.MOTIVO_ENTRADA_PRODUCCION),
                (Mov.TIPO_SALIDA, Mov.MOTIVO_SALIDA_CONSUMO_INTERNO),
                (Mov.TIPO_AJUSTE, Mov.MOTIVO_AJUSTE_SALIDA),
            ],
        )
        final = Mov.objects.get(producto=self.pastel)
        self.assertEqual(final.tipo, Mov.TIPO_PRODUCCION)
        self.assertEqual(final.cantidad, Decimal("10"))
        self.assertEqual(Mov.objects.filter(referencia_id=resumen["op_id"]).count(), 5)

        self.assertEqual(resumen["intermedios"][0]["sobrante"], Decimal("30"))
        self.assertEqual(resumen["insumos_descontados"][0]["id"], self.harina.id)
        self.assertEqual(resumen["producto"]["despues"], Decimal("10"))

    def test_sin_sobrante_el_intermedio_no_cambia(self):
        registrar_produccion(self._payload(sobrante=None))
        self.masa.refresh_from_db()
        self.assertEqual(self.masa.stock, Decimal("50"))
        self.assertFalse(Mov.objects.filter(producto=self.masa, tipo=Mov.TIPO_AJUSTE).exists())

    def test_insumo_sin_stock_revierte_lote(self):
        with self.assertRaises(StockInsuficienteError):
            registrar_produccion(self._payload(harina_g="1500"))
        self.pastel.refresh_from_db()
        self.assertEqual(self.pastel.stock, Decimal("0"))
        self.assertFalse(Mov.objects.exists())


class ProduccionSimuladaUnidadesTests(TestCase):
    def setUp(self):
        self.huevo = _producto("Huevo", "600", peso_estandar_g=Decimal("60"))
        self.caja = _producto("Caja", "20", unidad=Producto.UNIDAD_PIEZA)
        self.chispas = _producto("Chispas", "100", unidad=Producto.UNIDAD_PIEZA, peso_estandar_g=Decimal("5"))
        self.bizcocho = _producto(
            "Bizcocho", "0", tipo=Producto.TIPO_INTERMEDIO, unidad=Producto.UNIDAD_PIEZA, peso_estandar_g=Decimal("250")
        )
        self.torta = _producto("Torta", "0", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)

    def test_cantidades_se_llevan_a_la_unidad_de_stock(self):
        payload = {
            "productId": self.torta.id,
            "quantity": 2,
            "simulated": {
                "id": self.torta.id,
                "producto": "Torta",
                "requiere": [
                    {
                        "id": self.bizcocho.id,
                        "producto": "Bizcocho",
                        "esIntermedio": True,
                        "cantidadGramos": 500,
                        "requiere": [
                            {"id": self.huevo.id, "producto": "Huevo", "cantidadUnidades": 4},
                            {"id": self.chispas.id, "producto": "Chispas", "cantidadGramos": 50},
                        ],
                    },
                    {"id": self.caja.id, "producto": "Caja", "cantidadUnidades": 2},
                ],
            },
        }

        registrar_produccion(payload)

        # producto en gramos: 4 u * 60 g
        self.assertEqual(Mov.objects.get(producto=self.huevo).cantidad, Decimal("240"))
        # producto por pieza: 50 g / 5 g
        self.assertEqual(Mov.objects.get(producto=self.chispas).cantidad, Decimal("10"))
        # producto por pieza en unidades: sin conversión
        self.assertEqual(Mov.objects.get(producto=self.caja).cantidad, Decimal("2"))
        # intermedio por pieza: 500 g / 250 g
        traza = Mov.objects.filter(producto=self.bizcocho).order_by("id")
        self.assertEqual([m.cantidad for m in traza], [Decimal("2"), Decimal("2")])

        for producto in (self.huevo, self.chispas, self.caja, self.bizcocho, self.torta):
            producto.refresh_from_db()
        self.assertEqual(self.huevo.stock, Decimal("360"))
        self.assertEqual(self.chispas.stock, Decimal("90"))
        self.assertEqual(self.caja.stock, Decimal("18"))
        self.assertEqual(self.bizcocho.stock, Decimal("0"))
        self.assertEqual(self.torta.stock, Decimal("2"))


class PayloadProduccionTests(TestCase):
    def test_requiere_gramos_o_unidades_pero_no_ambos(self):
        with self.assertRaises(DatosInvalidosError):
            parse_payload({"intermedio": {"id": 1, "gramos": 10}, "insumos": [{"id": 2}]})
        with self.assertRaises(DatosInvalidosError):
            parse_payload({"intermedio": {"id": 1, "gramos": 10}, "insumos": [{"id": 2, "gramos": 1, "unidades": 1}]})

    def test_intermedio_requiere_gramos(self):
        with self.assertRaises(DatosInvalidosError):
            parse_payload({"intermedio": {"id": 1, "unidades": 3}})
        data = parse_payload({"intermedio": {"id": 1, "cantidadGramos": "250"}})
        self.assertEqual(data.intermedio.gramos, Decimal("250"))

    def test_simulacion_valida_estructura(self):
        with self.assertRaises(DatosInvalidosError):
            parse_payload({"productId": 1, "quantity": 0, "simulated": {"requiere": []}})
        with self.assertRaises(DatosInvalidosError):
            parse_payload({"productId": 1, "quantity": 2, "simulated": {}})
        with self.assertRaises(DatosInvalidosError):
            parse_payload({"productId": 1, "quantity": 2, "simulated": {"id": 2, "requiere": []}})

        data = parse_payload({"productId": 1, "quantity": 2, "simulated": {"id": 1, "requiere": []}})
        self.assertEqual(data.cantidad_deseada, Decimal("2"))

    def test_payload_sin_flujo_reconocible(self):
        with self.assertRaises(DatosInvalidosError):
            parse_payload({"productos": []})
        with self.assertRaises(DatosInvalidosError):
            parse_payload(["no", "es", "objeto"])
