from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from core.models import AuditLog
from finanzas.models import Ingreso
from finanzas.services import (
    actualizar_item_pedido,
    cantidad_cobrable,
    cerrar_logistica_item,
    desmarcar_item_pagado,
    marcar_item_entregado,
    marcar_item_pagado,
)
from inventario.exceptions import (
    ConsistenciaError,
    DatosInvalidosError,
    ItemPedidoNoEncontradoError,
    StockInsuficienteError,
)
from inventario.models import MovimientoInventario, Producto
from pedidos.models import Cliente, Pedido, PedidoItem

Mov = MovimientoInventario


class PedidoItemBaseTestCase(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="ventas", password="test12345")
        self.cliente = Cliente.objects.create(nombre="Café Central")
        self.producto = Producto.objects.create(
            nombre="Empanada",
            tipo=Producto.TIPO_FINAL,
            unidad=Producto.UNIDAD_PIEZA,
            stock=Decimal("50"),
        )
        self.pedido = Pedido.objects.create(cliente=self.cliente)
        self.item = PedidoItem.objects.create(
            pedido=self.pedido,
            producto=self.producto,
            cantidad=Decimal("10"),
            precio=Decimal("3.50"),
        )

    def _stock(self):
        self.producto.refresh_from_db()
        return self.producto.stock


class PagoItemTests(PedidoItemBaseTestCase):
    def test_pagar_crea_un_ingreso_y_cierra_pedido(self):
        item, ingreso = marcar_item_pagado(self.item.id, usuario=self.user)

        self.assertIsNotNone(item.pagado_en)
        self.assertEqual(ingreso.monto, Decimal("35.00"))
        self.assertEqual(ingreso.referencia_tipo, Ingreso.REFERENCIA_ORDER_ITEM)
        self.assertEqual(ingreso.referencia_id, self.item.id)
        self.assertEqual(ingreso.contraparte, "Café Central")
        self.assertIn("Empanada x10", ingreso.concepto)
        self.assertEqual(ingreso.creado_por, self.user)
        self.pedido.refresh_from_db()
        self.assertEqual(self.pedido.estatus, Pedido.ESTATUS_PAGADO)
        self.assertTrue(AuditLog.objects.filter(action="PAGO", object_id=str(self.item.id)).exists())

    def test_pagar_dos_veces_falla(self):
        marcar_item_pagado(self.item.id)
        with self.assertRaises(ConsistenciaError):
            marcar_item_pagado(self.item.id)
        self.assertEqual(Ingreso.objects.count(), 1)

    def test_revertir_pago_elimina_ingreso(self):
        marcar_item_pagado(self.item.id)
        item = desmarcar_item_pagado(self.item.id)

        self.assertIsNone(item.pagado_en)
        self.assertFalse(Ingreso.objects.exists())
        self.pedido.refresh_from_db()
        self.assertEqual(self.pedido.estatus, Pedido.ESTATUS_PENDIENTE)
        with self.assertRaises(ConsistenciaError):
            desmarcar_item_pagado(self.item.id)

    def test_pedido_con_items_pendientes_sigue_pendiente(self):
        PedidoItem.objects.create(pedido=self.pedido, producto=self.producto, cantidad=1, precio=Decimal("2"))
        marcar_item_pagado(self.item.id)
        self.pedido.refresh_from_db()
        self.assertEqual(self.pedido.estatus, Pedido.ESTATUS_PENDIENTE)

    def test_item_inexistente(self):
        with self.assertRaises(ItemPedidoNoEncontradoError):
            marcar_item_pagado(999999)

    def test_cantidad_cobrable_prefiere_vendida(self):
        self.assertEqual(cantidad_cobrable(self.item), Decimal("10"))
        self.item.cantidad_vendida = Decimal("8")
        self.assertEqual(cantidad_cobrable(self.item), Decimal("8"))


class ActualizarItemTests(PedidoItemBaseTestCase):
    def test_cambio_de_vendida_resincroniza_ingreso(self):
        marcar_item_pagado(self.item.id)
        actualizar_item_pedido(self.item.id, {"cantidad_vendida": "8"})

        ingreso = Ingreso.objects.get()
        self.assertEqual(ingreso.monto, Decimal("28.00"))
        self.assertEqual(self._stock(), Decimal("50"))

    def test_toggle_pagado_en(self):
        actualizar_item_pedido(self.item.id, {"pagado_en": "now", "precio": "4"})
        self.assertEqual(Ingreso.objects.get().monto, Decimal("40.00"))

        item = actualizar_item_pedido(self.item.id, {"pagado_en": None})
        self.assertIsNone(item.pagado_en)
        self.assertFalse(Ingreso.objects.exists())

    def test_fecha_iso_y_fecha_invalida(self):
        item = actualizar_item_pedido(self.item.id, {"entregado_en": "2026-03-10T09:30:00"})
        self.assertEqual(item.entregado_en.day, 10)
        with self.assertRaises(DatosInvalidosError):
            actualizar_item_pedido(self.item.id, {"entregado_en": "ayer"})

    def test_rechaza_salidas_mayores_a_cantidad(self):
        with self.assertRaises(DatosInvalidosError):
            actualizar_item_pedido(self.item.id, {"cantidad_vendida": "6", "cantidad_yapa": "5"})
        self.item.refresh_from_db()
        self.assertEqual(self.item.cantidad_vendida, Decimal("0"))

    def test_sin_cambios_devuelve_item(self):
        item = actualizar_item_pedido(self.item.id, {"cantidad_daniada": ""})
        self.assertEqual(item.id, self.item.id)
        self.assertFalse(AuditLog.objects.exists())


class CierreLogisticaTests(PedidoItemBaseTestCase):
    def test_cierre_registra_salidas_por_split(self):
        resultado = cerrar_logistica_item(
            self.item.id, {"cantidad_vendida": "6", "cantidad_daniada": "1"}, usuario=self.user
        )

        self.assertEqual(self._stock(), Decimal("43"))
        motivos = sorted(m.motivo for m in resultado["movimientos"])
        self.assertEqual(motivos, [Mov.MOTIVO_SALIDA_DANIADO, Mov.MOTIVO_SALIDA_VENTA])
        self.assertEqual(resultado["deltas"]["cantidad_vendida"], Decimal("6"))
        self.assertTrue(
            all(
                m.referencia_tipo == Mov.REFERENCIA_ORDER_ITEM and m.referencia_id == str(self.item.id)
                for m in resultado["movimientos"]
            )
        )

    def test_cierre_es_monotono(self):
        cerrar_logistica_item(self.item.id, {"cantidad_vendida": "6", "cantidad_daniada": "1"})

        with self.assertRaises(ConsistenciaError):
            cerrar_logistica_item(self.item.id, {"cantidad_vendida": "5"})
        self.assertEqual(self._stock(), Decimal("43"))
        self.assertEqual(Mov.objects.count(), 2)

        resultado = cerrar_logistica_item(self.item.id, {"cantidad_vendida": "7"})
        self.assertEqual(len(resultado["movimientos"]), 1)
        self.assertEqual(resultado["movimientos"][0].cantidad, Decimal("1"))
        self.assertEqual(resultado["item"].cantidad_daniada, Decimal("1"))
        self.assertEqual(self._stock(), Decimal("42"))

    def test_edicion_no_reduce_splits_cerrados(self):
        cerrar_logistica_item(self.item.id, {"cantidad_vendida": "6"})
        self.assertEqual(self._stock(), Decimal("44"))

        with self.assertRaises(ConsistenciaError):
            actualizar_item_pedido(self.item.id, {"cantidad_vendida": "0"})
        with self.assertRaises(ConsistenciaError):
            actualizar_item_pedido(self.item.id, {"cantidad_vendida": None})
        self.item.refresh_from_db()
        self.assertEqual(self.item.cantidad_vendida, Decimal("6"))

        resultado = cerrar_logistica_item(self.item.id, {"cantidad_vendida": "6"})
        self.assertEqual(resultado["movimientos"], [])
        self.assertEqual(self._stock(), Decimal("44"))
        self.assertEqual(Mov.objects.count(), 1)

        actualizar_item_pedido(self.item.id, {"cantidad_vendida": "7"})
        self.item.refresh_from_db()
        self.assertEqual(self.item.cantidad_vendida, Decimal("7"))

    def test_cierre_sin_stock_no_mueve_nada(self):
        Producto.objects.filter(pk=self.producto.pk).update(stock=Decimal("2"))
        with self.assertRaises(StockInsuficienteError):
            cerrar_logistica_item(self.item.id, {"cantidad_vendida": "5"})
        self.assertEqual(self._stock(), Decimal("2"))
        self.item.refresh_from_db()
        self.assertEqual(self.item.cantidad_vendida, Decimal("0"))

    def test_cierre_incoherente(self):
        with self.assertRaises(DatosInvalidosError):
            cerrar_logistica_item(self.item.id, {"cantidad_vendida": "8", "cantidad_daniada": "3"})
        self.assertFalse(Mov.objects.exists())

    def test_cierre_de_item_pagado_actualiza_ingreso(self):
        marcar_item_pagado(self.item.id)
        cerrar_logistica_item(self.item.id, {"cantidad_vendida": "4"})
        self.assertEqual(Ingreso.objects.get().monto, Decimal("14.00"))


class EntregaItemTests(PedidoItemBaseTestCase):
    def test_entrega_normal_descuenta_stock(self):
        resultado = marcar_item_entregado(self.item.id, usuario=self.user)

        self.assertFalse(resultado["consignacion"])
        self.assertEqual(resultado["movimiento"].motivo, Mov.MOTIVO_SALIDA_VENTA)
        self.assertEqual(self._stock(), Decimal("40"))
        self.pedido.refresh_from_db()
        self.assertEqual(self.pedido.estatus, Pedido.ESTATUS_ENTREGADO)

        with self.assertRaises(ConsistenciaError):
            marcar_item_entregado(self.item.id)
        self.assertEqual(self._stock(), Decimal("40"))

    def test_entrega_en_consignacion_no_mueve_stock(self):
        Pedido.objects.filter(pk=self.pedido.pk).update(notas="Entrega semanal #PANADERIA")
        resultado = marcar_item_entregado(self.item.id)

        self.assertTrue(resultado["consignacion"])
        self.assertIsNone(resultado["movimiento"])
        self.assertIsNotNone(resultado["item"].entregado_en)
        self.assertEqual(self._stock(), Decimal("50"))

    def test_entrega_sin_stock(self):
        Producto.objects.filter(pk=self.producto.pk).update(stock=Decimal("3"))
        with self.assertRaises(StockInsuficienteError):
            marcar_item_entregado(self.item.id)
        self.item.refresh_from_db()
        self.assertIsNone(self.item.entregado_en)

    def test_pedido_pagado_no_vuelve_a_entregado(self):
        marcar_item_pagado(self.item.id)
        marcar_item_entregado(self.item.id)
        self.pedido.refresh_from_db()
        self.assertEqual(self.pedido.estatus, Pedido.ESTATUS_PAGADO)
