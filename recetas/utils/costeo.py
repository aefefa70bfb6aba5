"""Costeo recursivo de recetas multinivel.

El árbol de costos y las filas planas salen del mismo recorrido: cada nodo
acumula sus filas y las de sus hijos, así la suma de ``filas[*].valor`` es el
``total_nodo`` de la raíz.

Escala de consumo: si el producto se maneja por unidad, ``multiplicador`` son
unidades pedidas y cada línea se multiplica por él; si se maneja por gramos,
``multiplicador`` son gramos pedidos y la línea se escala por
``multiplicador / gramos_producidos`` de la receta.

Los costos son una estimación puntual: no se bloquea nada y el resultado no se
guarda (recetas y precios cambian entre consultas).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from django.conf import settings

from inventario.exceptions import DatosInvalidosError, ProductoNoEncontradoError, RecetaCiclicaError
from inventario.models import Producto
from inventario.utils.conversion import gramos_a_unidad_stock, unidades_a_unidad_stock
from inventario.utils.numeros import ZERO, dec, parse_decimal, q2, q4, q6, safe_div
from recetas.models import LineaReceta
from recetas.utils.grafo import validar_receta_aciclica

log = logging.getLogger(__name__)

HUNDRED = Decimal("100")
NOTA_RECARGOS = "Extras = % de INSUMOS; Mano de obra = % de (INSUMOS + EXTRAS). Materiales no entran en la base."


@dataclass
class CostoNodo:
    producto_id: int
    nombre: str
    tipo: str
    unidad: str
    multiplicador: Decimal
    subtotal_insumos: Decimal = ZERO
    subtotal_materiales: Decimal = ZERO
    total_peso_g: Decimal = ZERO
    total_unidades_material: Decimal = ZERO
    total_nodo: Decimal = ZERO
    costo_unitario: Decimal = ZERO
    hijos: list["CostoNodo"] = field(default_factory=list)
    filas: list[dict[str, Any]] = field(default_factory=list)
    items_directos: list[dict[str, Any]] = field(default_factory=list)
    directo_peso_g: Decimal = ZERO
    directo_unidades_material: Decimal = ZERO
    directo_valor: Decimal = ZERO

    def finalizar(self) -> "CostoNodo":
        self.total_nodo = self.subtotal_insumos + self.subtotal_materiales
        self.costo_unitario = self.total_nodo / self.multiplicador if self.multiplicador > 0 else ZERO
        return self

    def acumular(self, hijo: "CostoNodo") -> None:
        self.hijos.append(hijo)
        self.subtotal_insumos += hijo.subtotal_insumos
        self.subtotal_materiales += hijo.subtotal_materiales
        self.total_peso_g += hijo.total_peso_g
        self.total_unidades_material += hijo.total_unidades_material
        self.filas.extend(hijo.filas)

    def as_dict(self) -> dict[str, Any]:
        return {
            "info": {
                "id": self.producto_id,
                "nombre": self.nombre,
                "tipo": self.tipo,
                "unidad": self.unidad,
                "multiplicador": q6(self.multiplicador),
            },
            "costo": {
                "subtotal_insumos": q6(self.subtotal_insumos),
                "subtotal_materiales": q6(self.subtotal_materiales),
                "total_peso_g": q6(self.total_peso_g),
                "total_unidades_material": q6(self.total_unidades_material),
                "total_nodo": q6(self.total_nodo),
                "costo_unitario": q6(self.costo_unitario),
                "costo_unitario_label": "/u" if self.unidad == "unidad" else "/g",
            },
            "items_directos": self.items_directos,
            "subtotal_directo": {
                "total_peso_g": q6(self.directo_peso_g),
                "total_unidades_material": q6(self.directo_unidades_material),
                "total_valor": q6(self.directo_valor),
            },
            "hijos": [hijo.as_dict() for hijo in self.hijos],
        }


@dataclass(frozen=True)
class ResultadoCosteo:
    arbol: CostoNodo
    filas: list[dict[str, Any]]
    resumen: dict[str, Any]
    rendimiento: list[dict[str, Any]]

    def as_dict(self) -> dict[str, Any]:
        return {
            "arbol": self.arbol.as_dict(),
            "filas": [{**fila, "valor": q6(fila["valor"])} for fila in self.filas],
            "resumen": self.resumen,
            "rendimiento": self.rendimiento,
        }


def _porcentaje_entero(value: Any) -> int:
    parsed = parse_decimal(value)
    if parsed is None or parsed < 0:
        return 0
    maximo = int(getattr(settings, "COSTEO_PORCENTAJE_MAXIMO", 100))
    return min(int(parsed), maximo)


class CosteoReceta:
    """Un recorrido de costeo. Memoriza productos y líneas solo durante la consulta."""

    def __init__(self):
        self._productos: dict[int, Producto] = {}
        self._lineas: dict[int, list[LineaReceta]] = {}

    def producto(self, producto_id: int) -> Producto:
        if producto_id not in self._productos:
            try:
                self._productos[producto_id] = Producto.objects.get(pk=producto_id)
            except Producto.DoesNotExist:
                raise ProductoNoEncontradoError(f"Producto {producto_id} no encontrado.")
        return self._productos[producto_id]

    def lineas(self, producto_id: int) -> list[LineaReceta]:
        if producto_id not in self._lineas:
            lineas = list(
                LineaReceta.objects.filter(producto_final_id=producto_id).select_related("producto_insumo").order_by("id")
            )
            for linea in lineas:
                self._productos.setdefault(linea.producto_insumo_id, linea.producto_insumo)
            self._lineas[producto_id] = lineas
        return self._lineas[producto_id]

    def gramos_producidos(self, producto: Producto) -> Decimal:
        """Masa que rinde la receta del producto (``rendimiento_g`` si está capturado)."""
        rendimiento = dec(producto.rendimiento_g)
        if rendimiento > 0:
            return rendimiento

        total = ZERO
        for linea in self.lineas(producto.id):
            cantidad = dec(linea.cantidad)
            if linea.cantidad_en_gramos:
                total += cantidad
            else:
                total += cantidad * dec(linea.producto_insumo.peso_estandar_g)
        return total

    def construir_nodo(self, producto_id: int, multiplicador: Decimal, ruta: tuple[int, ...] = ()) -> CostoNodo:
        if producto_id in ruta:
            raise RecetaCiclicaError(f"La receta del producto {producto_id} forma un ciclo.")

        producto = self.producto(producto_id)
        nodo = CostoNodo(
            producto_id=producto.id,
            nombre=producto.nombre,
            tipo=producto.tipo,
            unidad=producto.unidad_label,
            multiplicador=dec(multiplicador),
        )
        lineas = self.lineas(producto.id)
        if not lineas:
            return nodo.finalizar()

        ruta_actual = ruta + (producto.id,)
        nombres_ruta = [self.producto(pid).nombre for pid in ruta_actual]

        if producto.es_unitario:
            escala = nodo.multiplicador
        else:
            escala = safe_div(nodo.multiplicador, self.gramos_producidos(producto))

        for linea in lineas:
            insumo = self.producto(linea.producto_insumo_id)
            base = dec(linea.cantidad) * escala

            if not insumo.es_intermedio:
                self._costear_hoja(nodo, linea, insumo, base, nombres_ruta)
                continue

            if insumo.es_unitario:
                mult_hijo = gramos_a_unidad_stock(insumo, base) if linea.cantidad_en_gramos else base
            else:
                mult_hijo = base if linea.cantidad_en_gramos else unidades_a_unidad_stock(insumo, base)

            nodo.acumular(self.construir_nodo(insumo.id, mult_hijo, ruta_actual))

        return nodo.finalizar()

    def _costear_hoja(
        self,
        nodo: CostoNodo,
        linea: LineaReceta,
        insumo: Producto,
        base: Decimal,
        nombres_ruta: list[str],
    ) -> None:
        precio_neto = dec(insumo.precio)
        peso_neto = dec(insumo.peso_neto)
        precio_unit_base = safe_div(precio_neto, peso_neto)
        fila = {
            "ruta": " > ".join([*nombres_ruta, insumo.nombre]),
            "producto_final_id": nodo.producto_id,
            "producto_final": nodo.nombre,
            "insumo_id": insumo.id,
            "insumo": insumo.nombre,
            "tipo": linea.tipo_item,
            "precio_neto": precio_neto,
            "peso_neto": peso_neto,
            "precio_unit_base": q6(precio_unit_base),
        }

        if linea.es_material:
            unidades = base
            valor = precio_unit_base * unidades
            nodo.subtotal_materiales += valor
            nodo.total_unidades_material += unidades
            nodo.directo_unidades_material += unidades
            fila.update({"cantidad_usada": q6(unidades), "notas": "Material: precio/peso_neto * unidades"})
        else:
            if linea.cantidad_en_gramos:
                gramos = base
            else:
                gramos = base * dec(insumo.peso_estandar_g)
            valor = precio_unit_base * gramos
            nodo.subtotal_insumos += valor
            nodo.total_peso_g += gramos
            nodo.directo_peso_g += gramos
            fila.update(
                {
                    "peso_en_masa_g": q6(gramos),
                    "cantidad_en_gramos": linea.cantidad_en_gramos,
                    "peso_estandar_g": dec(insumo.peso_estandar_g),
                    "notas": "Cantidad en gramos" if linea.cantidad_en_gramos else "Unidades -> gramos (peso estándar)",
                }
            )

        nodo.directo_valor += valor
        fila["valor"] = valor
        nodo.filas.append(fila)
        nodo.items_directos.append(
            {
                "nombre": insumo.nombre,
                "tipo": linea.tipo_item,
                "unidad_base": "unidad" if linea.es_material else "gramos",
                "consumo": q6(fila.get("cantidad_usada", fila.get("peso_en_masa_g"))),
                "precio_neto": precio_neto,
                "peso_neto": peso_neto,
                "precio_unit_base": q6(precio_unit_base),
                "valor": q6(valor),
            }
        )

    def rendimiento_inverso(self, producto: Producto, cantidad: Decimal) -> list[dict[str, Any]]:
        """Cuántos padres (un nivel) alcanzan con ``cantidad`` de este producto."""
        if cantidad <= 0:
            return []

        gramos_por_unidad = self.gramos_producidos(producto) if producto.es_unitario else ZERO
        total_gramos = gramos_por_unidad * cantidad if producto.es_unitario else cantidad

        por_padre: dict[int, dict[str, Any]] = {}
        usos = LineaReceta.objects.filter(producto_insumo_id=producto.id).select_related("producto_final").order_by("id")
        for uso in usos:
            cantidad_linea = dec(uso.cantidad)
            if uso.cantidad_en_gramos:
                gramos_linea = cantidad_linea
            elif producto.es_unitario:
                gramos_linea = cantidad_linea * gramos_por_unidad
            else:
                gramos_linea = unidades_a_unidad_stock(producto, cantidad_linea)

            padre = uso.producto_final
            acumulado = por_padre.setdefault(
                padre.id,
                {"padre": padre, "cantidad": ZERO, "gramos": ZERO, "lineas": 0},
            )
            acumulado["cantidad"] += cantidad_linea
            acumulado["gramos"] += gramos_linea
            acumulado["lineas"] += 1

        resultado = []
        for data in por_padre.values():
            padre = data["padre"]
            gramos_por_padre = data["gramos"]
            posibles = safe_div(total_gramos, gramos_por_padre) if total_gramos > 0 else ZERO
            unidad_padre = "1" if padre.es_unitario else "unidad/gr de"
            resultado.append(
                {
                    "padre_id": padre.id,
                    "padre": padre.nombre,
                    "padre_tipo": padre.tipo,
                    "unidad": padre.unidad_label,
                    "cantidad_por_unidad_padre": q6(data["cantidad"]),
                    "gramos_por_unidad_padre": q6(gramos_por_padre),
                    "lineas": data["lineas"],
                    "total_gramos_disponibles": q6(total_gramos),
                    "unidades_posibles": q4(posibles),
                    "nota": f"{q4(gramos_por_padre)} g de {producto.nombre} por {unidad_padre} {padre.nombre}",
                }
            )
        return resultado


def calcular_costeo_receta(
    producto_id: int,
    cantidad_producida: Any = 0,
    extras_pct: Any = 0,
    mano_obra_pct: Any = 0,
) -> ResultadoCosteo:
    try:
        producto_id = int(producto_id)
    except (TypeError, ValueError):
        raise DatosInvalidosError("producto_id inválido.")
    if producto_id <= 0:
        raise DatosInvalidosError("producto_id inválido.")

    cantidad = parse_decimal(cantidad_producida) or ZERO
    if cantidad < 0:
        cantidad = ZERO
    extras_int = _porcentaje_entero(extras_pct)
    mano_obra_int = _porcentaje_entero(mano_obra_pct)

    motor = CosteoReceta()
    producto = motor.producto(producto_id)
    validar_receta_aciclica(producto.id)

    multiplicador_raiz = cantidad if cantidad > 0 else Decimal("1")
    arbol = motor.construir_nodo(producto.id, multiplicador_raiz)

    subtotal_insumos = q2(arbol.subtotal_insumos)
    subtotal_materiales = q2(arbol.subtotal_materiales)
    extras = subtotal_insumos * Decimal(extras_int) / HUNDRED
    base_con_extras = subtotal_insumos + extras
    mano_obra = base_con_extras * Decimal(mano_obra_int) / HUNDRED
    total_lote = base_con_extras + mano_obra
    costo_unitario = q4(total_lote / cantidad) if cantidad > 0 else ZERO

    efectiva = cantidad if cantidad > 0 else (Decimal("1") if producto.es_unitario else ZERO)
    rendimiento = motor.rendimiento_inverso(producto, efectiva)

    resumen = {
        "totales": {
            "subtotal_insumos": subtotal_insumos,
            "subtotal_materiales": subtotal_materiales,
            "subtotal": q2(subtotal_insumos + subtotal_materiales),
            "extras_pct": extras_int,
            "extras": q2(extras),
            "base_con_extras": q2(base_con_extras),
            "mano_obra_pct": mano_obra_int,
            "mano_obra": q2(mano_obra),
            "total_lote": q2(total_lote),
            "cantidad_producida": cantidad,
            "costo_unitario": costo_unitario,
        },
        "acumulados": {
            "total_peso_g": q2(arbol.total_peso_g),
            "total_unidades_material": q2(arbol.total_unidades_material),
        },
        "notas": NOTA_RECARGOS,
    }
    log.debug("Costeo producto %s x%s: total lote %s", producto.id, cantidad, resumen["totales"]["total_lote"])
    return ResultadoCosteo(arbol=arbol, filas=arbol.filas, resumen=resumen, rendimiento=rendimiento)
