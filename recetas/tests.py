from decimal import Decimal

from django.test import TestCase, override_settings

from inventario.exceptions import RecetaCiclicaError
from inventario.models import Producto
from recetas.models import LineaReceta
from recetas.services import crear_lineas_receta
from recetas.utils.costeo import CosteoReceta, calcular_costeo_receta
from recetas.utils.grafo import crea_ciclo, detectar_ciclo


def _producto(nombre, *, tipo=Producto.TIPO_MATERIA_PRIMA, unidad=Producto.UNIDAD_GRAMO, **extra):
    return Producto.objects.create(nombre=nombre, tipo=tipo, unidad=unidad, **extra)


class CosteoRecetaTests(TestCase):
    def setUp(self):
        # R: $2 por paquete de 500 g
        self.harina = _producto("Harina", precio=Decimal("2"), peso_neto=Decimal("500"))
        # I: 50 g de harina por cada 100 g producidos
        self.masa = _producto("Masa base", tipo=Producto.TIPO_INTERMEDIO, rendimiento_g=Decimal("100"))
        # F: 200 g de masa por unidad
        self.pastel = _producto("Pastel", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)
        LineaReceta.objects.create(producto_final=self.masa, producto_insumo=self.harina, cantidad=Decimal("50"))
        LineaReceta.objects.create(producto_final=self.pastel, producto_insumo=self.masa, cantidad=Decimal("200"))

    def test_arbol_y_filas_suman_lo_mismo(self):
        resultado = calcular_costeo_receta(self.pastel.id, 10)

        # 10 * 200 g * (2/500 * 50/100)
        self.assertEqual(resultado.resumen["totales"]["subtotal_insumos"], Decimal("4.00"))
        self.assertEqual(resultado.arbol.total_nodo, Decimal("4"))
        self.assertEqual(sum((fila["valor"] for fila in resultado.filas), Decimal("0")), resultado.arbol.total_nodo)
        self.assertEqual(resultado.resumen["totales"]["costo_unitario"], Decimal("0.4000"))

        self.assertEqual(len(resultado.filas), 1)
        self.assertEqual(resultado.filas[0]["ruta"], "Pastel > Masa base > Harina")
        self.assertEqual(resultado.filas[0]["peso_en_masa_g"], Decimal("1000"))

        hijo = resultado.arbol.hijos[0]
        self.assertEqual(hijo.producto_id, self.masa.id)
        self.assertEqual(hijo.multiplicador, Decimal("2000"))
        self.assertEqual(hijo.costo_unitario, Decimal("0.002"))
        self.assertEqual(resultado.arbol.items_directos, [])

    def test_as_dict_expone_arbol_filas_resumen_y_rendimiento(self):
        data = calcular_costeo_receta(self.pastel.id, 10).as_dict()
        self.assertEqual(set(data.keys()), {"arbol", "filas", "resumen", "rendimiento"})
        self.assertEqual(data["arbol"]["info"]["id"], self.pastel.id)
        self.assertEqual(data["arbol"]["costo"]["costo_unitario_label"], "/u")
        self.assertEqual(data["arbol"]["hijos"][0]["subtotal_directo"]["total_valor"], Decimal("4.000000"))

    def test_materiales_no_entran_en_recargos(self):
        caja = _producto("Caja", unidad=Producto.UNIDAD_PIEZA, precio=Decimal("5"), peso_neto=Decimal("10"))
        galleta = _producto("Galleta", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)
        LineaReceta.objects.create(producto_final=galleta, producto_insumo=self.harina, cantidad=Decimal("100"))
        LineaReceta.objects.create(
            producto_final=galleta,
            producto_insumo=caja,
            cantidad=Decimal("1"),
            cantidad_en_gramos=False,
            tipo_item=LineaReceta.ITEM_MATERIAL,
        )

        totales = calcular_costeo_receta(galleta.id, 4, extras_pct=10, mano_obra_pct=20).resumen["totales"]

        self.assertEqual(totales["subtotal_insumos"], Decimal("1.60"))
        self.assertEqual(totales["subtotal_materiales"], Decimal("2.00"))
        self.assertEqual(totales["extras"], Decimal("0.16"))
        self.assertEqual(totales["base_con_extras"], Decimal("1.76"))
        self.assertEqual(totales["mano_obra"], Decimal("0.35"))
        self.assertEqual(totales["total_lote"], Decimal("2.11"))
        self.assertEqual(totales["costo_unitario"], Decimal("0.5280"))

    def test_porcentajes_se_acotan(self):
        totales = calcular_costeo_receta(self.pastel.id, 1, extras_pct=150, mano_obra_pct=-5).resumen["totales"]
        self.assertEqual(totales["extras_pct"], 100)
        self.assertEqual(totales["mano_obra_pct"], 0)

        with override_settings(COSTEO_PORCENTAJE_MAXIMO=30):
            totales = calcular_costeo_receta(self.pastel.id, 1, extras_pct=45).resumen["totales"]
        self.assertEqual(totales["extras_pct"], 30)

    def test_sin_cantidad_usa_multiplicador_uno_y_costo_unitario_cero(self):
        resultado = calcular_costeo_receta(self.pastel.id)
        self.assertEqual(resultado.arbol.multiplicador, Decimal("1"))
        self.assertEqual(resultado.resumen["totales"]["subtotal_insumos"], Decimal("0.40"))
        self.assertEqual(resultado.resumen["totales"]["costo_unitario"], Decimal("0"))

    def test_rendimiento_inverso_un_nivel(self):
        resultado = calcular_costeo_receta(self.masa.id, 1000)
        self.assertEqual(resultado.resumen["totales"]["subtotal_insumos"], Decimal("2.00"))

        self.assertEqual(len(resultado.rendimiento), 1)
        fila = resultado.rendimiento[0]
        self.assertEqual(fila["padre_id"], self.pastel.id)
        self.assertEqual(fila["gramos_por_unidad_padre"], Decimal("200"))
        self.assertEqual(fila["unidades_posibles"], Decimal("5"))

    def test_rendimiento_g_reemplaza_suma_de_lineas(self):
        agua = _producto("Agua")
        mezcla = _producto("Mezcla", tipo=Producto.TIPO_INTERMEDIO)
        LineaReceta.objects.create(producto_final=mezcla, producto_insumo=self.harina, cantidad=Decimal("300"))
        LineaReceta.objects.create(producto_final=mezcla, producto_insumo=agua, cantidad=Decimal("200"))

        self.assertEqual(CosteoReceta().gramos_producidos(mezcla), Decimal("500"))
        self.assertEqual(calcular_costeo_receta(mezcla.id, 500).arbol.total_nodo, Decimal("1.2"))

        Producto.objects.filter(pk=mezcla.pk).update(rendimiento_g=Decimal("1000"))
        mezcla.refresh_from_db()
        self.assertEqual(CosteoReceta().gramos_producidos(mezcla), Decimal("1000"))
        self.assertEqual(calcular_costeo_receta(mezcla.id, 500).arbol.total_nodo, Decimal("0.6"))

    def test_ciclo_falla_rapido(self):
        LineaReceta.objects.create(producto_final=self.harina, producto_insumo=self.pastel, cantidad=Decimal("1"))
        self.assertIsNotNone(detectar_ciclo(self.pastel.id))
        with self.assertRaises(RecetaCiclicaError):
            calcular_costeo_receta(self.pastel.id, 1)


class CosteoIntermedioPorPiezaTests(TestCase):
    def setUp(self):
        self.harina = _producto("Harina", precio=Decimal("2"), peso_neto=Decimal("500"))
        # intermedio por pieza: 100 g de harina por bizcocho de 100 g
        self.bizcocho = _producto(
            "Bizcocho",
            tipo=Producto.TIPO_INTERMEDIO,
            unidad=Producto.UNIDAD_PIEZA,
            peso_estandar_g=Decimal("100"),
        )
        self.torta = _producto("Torta", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)
        self.tarta = _producto("Tarta", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)
        LineaReceta.objects.create(producto_final=self.bizcocho, producto_insumo=self.harina, cantidad=Decimal("100"))
        # 200 g de bizcocho por torta
        LineaReceta.objects.create(producto_final=self.torta, producto_insumo=self.bizcocho, cantidad=Decimal("200"))
        # 1 bizcocho por tarta
        LineaReceta.objects.create(
            producto_final=self.tarta,
            producto_insumo=self.bizcocho,
            cantidad=Decimal("1"),
            cantidad_en_gramos=False,
        )

    def test_gramos_de_intermedio_por_pieza_se_convierten_a_piezas(self):
        resultado = calcular_costeo_receta(self.torta.id, 3)

        hijo = resultado.arbol.hijos[0]
        # 3 * 200 g / 100 g por pieza
        self.assertEqual(hijo.multiplicador, Decimal("6"))
        self.assertEqual(resultado.filas[0]["peso_en_masa_g"], Decimal("600"))
        self.assertEqual(resultado.arbol.total_nodo, Decimal("2.4"))
        self.assertEqual(resultado.resumen["totales"]["subtotal_insumos"], Decimal("2.40"))

    def test_unidades_de_intermedio_por_pieza_pasan_directo(self):
        resultado = calcular_costeo_receta(self.tarta.id, 3)

        self.assertEqual(resultado.arbol.hijos[0].multiplicador, Decimal("3"))
        self.assertEqual(resultado.filas[0]["peso_en_masa_g"], Decimal("300"))
        self.assertEqual(resultado.resumen["totales"]["subtotal_insumos"], Decimal("1.20"))

    def test_rendimiento_inverso_de_producto_por_pieza(self):
        filas = CosteoReceta().rendimiento_inverso(self.bizcocho, Decimal("4"))

        self.assertEqual([fila["padre_id"] for fila in filas], [self.torta.id, self.tarta.id])
        torta, tarta = filas
        # 4 piezas * 100 g = 400 g disponibles
        self.assertEqual(torta["total_gramos_disponibles"], Decimal("400"))
        self.assertEqual(torta["gramos_por_unidad_padre"], Decimal("200"))
        self.assertEqual(torta["unidades_posibles"], Decimal("2"))
        self.assertEqual(tarta["cantidad_por_unidad_padre"], Decimal("1"))
        self.assertEqual(tarta["gramos_por_unidad_padre"], Decimal("100"))
        self.assertEqual(tarta["unidades_posibles"], Decimal("4"))

        self.assertEqual(CosteoReceta().rendimiento_inverso(self.bizcocho, Decimal("0")), [])


class CrearLineasRecetaTests(TestCase):
    def setUp(self):
        self.azucar = _producto("Azúcar")
        self.crema = _producto("Crema", tipo=Producto.TIPO_INTERMEDIO)
        self.tarta = _producto("Tarta", tipo=Producto.TIPO_FINAL, unidad=Producto.UNIDAD_PIEZA)
        LineaReceta.objects.create(producto_final=self.tarta, producto_insumo=self.crema, cantidad=Decimal("150"))

    def test_crea_lineas(self):
        lineas = crear_lineas_receta(self.crema.id, [{"producto_insumo_id": self.azucar.id, "cantidad": "30"}])
        self.assertEqual(len(lineas), 1)
        self.assertEqual(lineas[0].cantidad, Decimal("30"))
        self.assertTrue(lineas[0].cantidad_en_gramos)

    def test_rechaza_ciclo_sin_guardar_nada(self):
        self.assertTrue(crea_ciclo(self.crema.id, self.tarta.id))
        with self.assertRaises(RecetaCiclicaError):
            crear_lineas_receta(
                self.crema.id,
                [
                    {"producto_insumo_id": self.azucar.id, "cantidad": "30"},
                    {"producto_insumo_id": self.tarta.id, "cantidad": "1"},
                ],
            )
        self.assertFalse(LineaReceta.objects.filter(producto_final=self.crema).exists())

    def test_autorreferencia_es_ciclo(self):
        with self.assertRaises(RecetaCiclicaError):
            crear_lineas_receta(self.azucar.id, [{"producto_insumo_id": self.azucar.id, "cantidad": "1"}])
