from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase, override_settings

from core.models import AuditLog
from finanzas.models import Egreso
from inventario.exceptions import (
    ConsistenciaError,
    DatosInvalidosError,
    MotivoInvalidoError,
    ProductoNoEncontradoError,
    StockInsuficienteError,
)
from inventario.models import MovimientoInventario, Producto
from inventario.reportes import historial, resolver_rango, resumen_logistico, resumen_por_motivo, stock_segun_kardex
from inventario.services import registrar_movimiento
from inventario.signals import movimiento_registrado
from inventario.utils.conversion import gramos_a_unidad_stock, unidades_a_unidad_stock


Mov = MovimientoInventario


class ConversionTests(TestCase):
    def setUp(self):
        self.pieza = Producto(nombre="Galleta", unidad=Producto.UNIDAD_PIEZA, peso_estandar_g=Decimal("50"))
        self.masa = Producto(nombre="Masa", unidad=Producto.UNIDAD_GRAMO, peso_estandar_g=Decimal("25"))

    def test_pieza_convierte_gramos_a_unidades(self):
        self.assertEqual(gramos_a_unidad_stock(self.pieza, Decimal("200")), Decimal("4"))
        self.assertEqual(unidades_a_unidad_stock(self.pieza, Decimal("3")), Decimal("3"))

    def test_gramos_pasan_directo_en_producto_por_gramo(self):
        self.assertEqual(gramos_a_unidad_stock(self.masa, Decimal("200")), Decimal("200"))
        self.assertEqual(unidades_a_unidad_stock(self.masa, Decimal("3")), Decimal("75"))

    def test_round_trip_en_producto_por_gramo(self):
        for gramos in (Decimal("0"), Decimal("1.5"), Decimal("1234.567")):
            self.assertEqual(unidades_a_unidad_stock(self.masa, gramos_a_unidad_stock(self.masa, gramos)), gramos)

    def test_sin_peso_estandar_degrada_a_uno_a_uno(self):
        sin_peso = Producto(nombre="Sin peso", unidad=Producto.UNIDAD_PIEZA, peso_estandar_g=None)
        with self.assertLogs("inventario.utils.conversion", level="WARNING"):
            self.assertEqual(gramos_a_unidad_stock(sin_peso, Decimal("80")), Decimal("80"))

    @override_settings(INVENTARIO_PERMITIR_FALLBACK_PESO=False)
    def test_sin_peso_estandar_falla_si_fallback_deshabilitado(self):
        sin_peso = Producto(nombre="Sin peso", unidad=Producto.UNIDAD_PIEZA, peso_estandar_g=Decimal("0"))
        with self.assertRaises(DatosInvalidosError):
            gramos_a_unidad_stock(sin_peso, Decimal("80"))


class MovimientosLedgerTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.user = user_model.objects.create_superuser(
            username="admin_inv",
            email="admin_inv@example.com",
            password="test12345",
        )
        self.producto = Producto.objects.create(
            nombre="Alfajor A",
            tipo=Producto.TIPO_FINAL,
            unidad=Producto.UNIDAD_PIEZA,
            peso_estandar_g=Decimal("50"),
        )

    def test_escenario_entrada_y_venta(self):
        registrar_movimiento(
            producto_id=self.producto.id,
            tipo="entrada",
            motivo="ENTRADA_PRODUCCION",
            cantidad=Decimal("20"),
            usuario=self.user,
        )
        self.producto.refresh_from_db()
        self.assertEqual(self.producto.stock, Decimal("20"))

        registrar_movimiento(
            producto_id=self.producto.id,
            tipo="salida",
            motivo="SALIDA_VENTA",
            cantidad=Decimal("5"),
            usuario=self.user,
        )
        self.producto.refresh_from_db()
        self.assertEqual(self.producto.stock, Decimal("15"))
        self.assertEqual(Mov.objects.filter(producto=self.producto).count(), 2)

        desde, hasta = resolver_rango()
        resumen = resumen_por_motivo(desde, hasta, self.producto.id)
        self.assertEqual(resumen, {"ENTRADA_PRODUCCION": Decimal("20"), "SALIDA_VENTA": Decimal("5")})
        self.assertEqual([m.motivo for m in historial(self.producto.id)], ["ENTRADA_PRODUCCION", "SALIDA_VENTA"])
        self.assertEqual(AuditLog.objects.filter(model="inventario.MovimientoInventario").count(), 2)

    def test_salida_sin_stock_no_deja_rastro(self):
        Producto.objects.filter(pk=self.producto.pk).update(stock=Decimal("5"))
        with self.assertRaises(StockInsuficienteError):
            registrar_movimiento(
                producto_id=self.producto.id,
                tipo="salida",
                motivo="SALIDA_VENTA",
                cantidad=Decimal("6"),
            )
        self.producto.refresh_from_db()
        self.assertEqual(self.producto.stock, Decimal("5"))
        self.assertFalse(Mov.objects.exists())

    def test_producto_inexistente(self):
        with self.assertRaises(ProductoNoEncontradoError):
            registrar_movimiento(producto_id=999999, tipo="entrada", motivo="ENTRADA_COMPRA", cantidad=1)
        self.assertFalse(Mov.objects.exists())

    def test_motivo_fuera_de_vocabulario_o_de_otro_tipo(self):
        with self.assertRaises(MotivoInvalidoError):
            registrar_movimiento(producto_id=self.producto.id, tipo="salida", motivo="SALIDA_REGALO", cantidad=1)
        with self.assertRaises(MotivoInvalidoError):
            registrar_movimiento(producto_id=self.producto.id, tipo="entrada", motivo="SALIDA_VENTA", cantidad=1)
        with self.assertRaises(DatosInvalidosError):
            registrar_movimiento(producto_id=self.producto.id, tipo="entrada", motivo="ENTRADA_COMPRA", cantidad=-1)
        self.assertFalse(Mov.objects.exists())

    def test_ajuste_sobrescribe_y_reinicia_el_kardex(self):
        registrar_movimiento(producto_id=self.producto.id, tipo="entrada", motivo="ENTRADA_PRODUCCION", cantidad=10)
        registrar_movimiento(producto_id=self.producto.id, tipo="ajuste", motivo="AJUSTE_SALIDA", cantidad=7)
        registrar_movimiento(producto_id=self.producto.id, tipo="salida", motivo="SALIDA_DANIADO", cantidad=2)

        self.producto.refresh_from_db()
        self.assertEqual(self.producto.stock, Decimal("5"))
        self.assertEqual(stock_segun_kardex(self.producto.id), Decimal("5"))
        ajuste = Mov.objects.get(tipo=Mov.TIPO_AJUSTE)
        self.assertEqual(ajuste.cantidad, Decimal("7"))
        self.assertTrue(AuditLog.objects.filter(action="AJUSTE", object_id=str(ajuste.id)).exists())
        self.assertTrue(ajuste.descripcion.startswith("Ajuste de stock 10"))
        self.assertIn("-> 7", ajuste.descripcion)

    def test_ajuste_conserva_descripcion_explicita(self):
        mov = registrar_movimiento(
            producto_id=self.producto.id,
            tipo="ajuste",
            motivo="AJUSTE_ENTRADA",
            cantidad=4,
            descripcion="Conteo físico",
        )
        self.assertEqual(mov.descripcion, "Conteo físico")

    def test_movimientos_son_inmutables(self):
        mov = registrar_movimiento(producto_id=self.producto.id, tipo="entrada", motivo="ENTRADA_PRODUCCION", cantidad=3)
        mov.cantidad = Decimal("30")
        with self.assertRaises(ConsistenciaError):
            mov.save()
        with self.assertRaises(ConsistenciaError):
            mov.delete()
        self.assertEqual(Mov.objects.get(pk=mov.pk).cantidad, Decimal("3"))

    def test_compra_con_precio_genera_egreso(self):
        registrar_movimiento(
            producto_id=self.producto.id,
            tipo="entrada",
            motivo="ENTRADA_COMPRA",
            cantidad=Decimal("12"),
            precio=Decimal("240.50"),
            usuario=self.user,
        )
        egreso = Egreso.objects.get()
        self.assertEqual(egreso.monto, Decimal("240.50"))
        self.assertEqual(egreso.categoria, Egreso.CATEGORIA_COMPRAS)
        self.assertEqual(egreso.referencia_tipo, Egreso.REFERENCIA_ENTRADA_INVENTARIO)
        self.assertEqual(egreso.referencia_id, self.producto.id)

        registrar_movimiento(producto_id=self.producto.id, tipo="entrada", motivo="ENTRADA_COMPRA", cantidad=1)
        self.assertEqual(Egreso.objects.count(), 1)

    def test_senal_se_publica_al_confirmar(self):
        recibidos = []

        def receptor(sender, **kwargs):
            recibidos.append(kwargs)

        movimiento_registrado.connect(receptor)
        self.addCleanup(movimiento_registrado.disconnect, receptor)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            registrar_movimiento(producto_id=self.producto.id, tipo="entrada", motivo="ENTRADA_PRODUCCION", cantidad=4)
            self.assertEqual(recibidos, [])

        self.assertEqual(len(callbacks), 1)
        self.assertEqual(recibidos[0]["producto_id"], self.producto.id)
        self.assertEqual(recibidos[0]["motivo"], "ENTRADA_PRODUCCION")

    def test_senal_no_se_publica_si_falla(self):
        with self.captureOnCommitCallbacks() as callbacks:
            with self.assertRaises(StockInsuficienteError):
                registrar_movimiento(producto_id=self.producto.id, tipo="salida", motivo="SALIDA_VENTA", cantidad=1)
        self.assertEqual(callbacks, [])


class ResumenLogisticoTests(TestCase):
    def setUp(self):
        self.pan = Producto.objects.create(nombre="Pan", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)
        self.torta = Producto.objects.create(nombre="Torta", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)
        for producto, producido, daniado in ((self.pan, 100, 5), (self.torta, 10, 2)):
            registrar_movimiento(producto_id=producto.id, tipo="entrada", motivo="ENTRADA_PRODUCCION", cantidad=producido)
            registrar_movimiento(producto_id=producto.id, tipo="salida", motivo="SALIDA_DANIADO", cantidad=daniado)
        registrar_movimiento(producto_id=self.pan.id, tipo="salida", motivo="SALIDA_VENTA", cantidad=60)

    def test_merma_por_producto_y_global(self):
        desde, hasta = resolver_rango()
        resumen = resumen_logistico(desde, hasta)

        self.assertEqual(resumen["global"]["producido"], Decimal("110"))
        self.assertEqual(resumen["global"]["merma"], Decimal("7"))
        self.assertEqual(resumen["global"]["merma_pct"], Decimal("6.36"))

        productos = resumen["productos"]
        self.assertEqual([p["producto_id"] for p in productos], [self.pan.id, self.torta.id])
        self.assertEqual(productos[0]["vendido"], Decimal("60"))
        self.assertEqual(productos[0]["merma_pct"], Decimal("5.00"))
        self.assertEqual(productos[1]["merma_pct"], Decimal("20.00"))

    def test_rango_invertido_se_corrige(self):
        desde, hasta = resolver_rango(desde="2026-03-10", hasta="2026-03-01")
        self.assertEqual(desde, hasta)
        self.assertEqual(str(desde), "2026-03-10")


class ConciliarStockCommandTests(TestCase):
    def test_dry_run_reporta_y_apply_corrige(self):
        producto = Producto.objects.create(nombre="Brownie", unidad=Producto.UNIDAD_PIEZA)
        registrar_movimiento(producto_id=producto.id, tipo="entrada", motivo="ENTRADA_PRODUCCION", cantidad=8)
        Producto.objects.filter(pk=producto.pk).update(stock=Decimal("11"))

        out = StringIO()
        call_command("conciliar_stock", stdout=out)
        self.assertIn("con diferencia: 1", out.getvalue())
        producto.refresh_from_db()
        self.assertEqual(producto.stock, Decimal("11"))

        call_command("conciliar_stock", "--apply", stdout=StringIO())
        producto.refresh_from_db()
        self.assertEqual(producto.stock, Decimal("8"))
        self.assertEqual(stock_segun_kardex(producto.id), Decimal("8"))
        self.assertEqual(Mov.objects.filter(producto=producto, tipo=Mov.TIPO_AJUSTE).count(), 1)
