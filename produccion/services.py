"""Registro de lotes de producción.

Dos flujos, ambos en una sola transacción con todos los productos tocados
bloqueados en orden ascendente de id:

- Simple (``intermedio`` + ``productos`` + ``insumos``): el operador captura
  las cantidades reales; no se consulta la receta.
- Simulado (``productId`` + ``quantity`` + ``simulated``): se recorre el árbol
  que arma el planificador, hijos antes que el padre.

Si cualquier paso falla se revierte el lote completo.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from django.db import transaction

from core.audit import log_event
from inventario.exceptions import DatosInvalidosError
from inventario.models import MovimientoInventario, Producto
from inventario.services import (
    aplicar_delta,
    bloquear_productos,
    fijar_stock_absoluto,
    registrar_traza_produccion,
    validar_cantidad,
)
from inventario.signals import produccion_registrada, publicar_al_confirmar
from inventario.utils.conversion import gramos_a_unidad_stock, unidades_a_unidad_stock
from inventario.utils.numeros import ZERO, dec, parse_decimal, q6
from recetas.utils.grafo import validar_receta_aciclica

log = logging.getLogger(__name__)

Mov = MovimientoInventario

PREFIJO_SIMPLE = "PR"
PREFIJO_SIMULADO = "PF"


def nuevo_op_id(prefijo: str) -> str:
    return f"{prefijo}-{int(time.time() * 1000)}-{random.randint(0, 99999)}"


def _id_requerido(value: Any, campo: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise DatosInvalidosError(f"{campo} es requerido.")
    if parsed <= 0:
        raise DatosInvalidosError(f"{campo} inválido.")
    return parsed


def _cantidad_opcional(value: Any, campo: str) -> Decimal | None:
    if value is None or value == "":
        return None
    return validar_cantidad(value, campo=campo)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CantidadCapturada:
    """Cantidad en gramos o en unidades; exactamente una de las dos."""

    producto_id: int
    gramos: Decimal | None = None
    unidades: Decimal | None = None

    def a_unidad_stock(self, producto: Producto) -> Decimal:
        if self.gramos is not None:
            return gramos_a_unidad_stock(producto, self.gramos)
        return unidades_a_unidad_stock(producto, self.unidades)

    @property
    def detalle(self) -> str:
        if self.gramos is not None:
            return f"{self.gramos} g"
        return f"{self.unidades} u"


@dataclass(frozen=True)
class ProductoProducido:
    producto_id: int
    cantidad: Decimal
    gramos_por_unidad_intermedio: Decimal = ZERO


@dataclass(frozen=True)
class ProduccionSimple:
    intermedio: CantidadCapturada
    productos: list[ProductoProducido]
    insumos: list[CantidadCapturada]
    transformaciones: list[Any] = field(default_factory=list)

    def ids(self) -> set[int]:
        return {self.intermedio.producto_id} | {p.producto_id for p in self.productos} | {
            i.producto_id for i in self.insumos
        }


@dataclass(frozen=True)
class NodoSimulado:
    producto_id: int
    nombre: str
    cantidad: CantidadCapturada
    es_intermedio: bool = False
    sobrante: Decimal | None = None
    requiere: list["NodoSimulado"] = field(default_factory=list)

    def ids(self) -> set[int]:
        out = {self.producto_id}
        for hijo in self.requiere:
            out |= hijo.ids()
        return out


@dataclass(frozen=True)
class ProduccionSimulada:
    producto_id: int
    nombre: str
    cantidad_deseada: Decimal
    requiere: list[NodoSimulado]

    def ids(self) -> set[int]:
        out = {self.producto_id}
        for nodo in self.requiere:
            out |= nodo.ids()
        return out


def _lista(payload: dict, key: str) -> list:
    value = payload.get(key) or []
    if not isinstance(value, list):
        raise DatosInvalidosError(f"{key} debe ser una lista.")
    return value


def _parse_cantidad_capturada(raw: dict, campo: str, *, id_key: str = "id") -> CantidadCapturada:
    if not isinstance(raw, dict):
        raise DatosInvalidosError(f"{campo} inválido.")
    producto_id = _id_requerido(raw.get(id_key), f"{campo}.id")
    gramos = _cantidad_opcional(raw.get("gramos", raw.get("cantidadGramos")), f"{campo}.gramos")
    unidades = _cantidad_opcional(raw.get("unidades", raw.get("cantidadUnidades")), f"{campo}.unidades")
    if gramos is None and unidades is None:
        raise DatosInvalidosError(f"{campo} (producto {producto_id}) requiere gramos o unidades.")
    if gramos is not None and unidades is not None:
        raise DatosInvalidosError(f"{campo} (producto {producto_id}) trae gramos y unidades; envía solo uno.")
    return CantidadCapturada(producto_id=producto_id, gramos=gramos, unidades=unidades)


def parse_produccion_simple(payload: dict) -> ProduccionSimple:
    intermedio_raw = payload.get("intermedio") or {}
    if not isinstance(intermedio_raw, dict) or intermedio_raw.get("gramos", intermedio_raw.get("cantidadGramos")) in (
        None,
        "",
    ):
        raise DatosInvalidosError("intermedio.id y intermedio.gramos son requeridos.")
    intermedio = _parse_cantidad_capturada(intermedio_raw, "intermedio")

    productos = []
    for idx, raw in enumerate(_lista(payload, "productos")):
        if not isinstance(raw, dict):
            raise DatosInvalidosError(f"productos[{idx}] inválido.")
        productos.append(
            ProductoProducido(
                producto_id=_id_requerido(raw.get("id"), f"productos[{idx}].id"),
                cantidad=validar_cantidad(raw.get("cantidad"), campo=f"productos[{idx}].cantidad"),
                gramos_por_unidad_intermedio=parse_decimal(raw.get("gramosPorUnidadIntermedio")) or ZERO,
            )
        )

    insumos = [
        _parse_cantidad_capturada(raw, f"insumos[{idx}]") for idx, raw in enumerate(_lista(payload, "insumos"))
    ]
    return ProduccionSimple(
        intermedio=intermedio,
        productos=productos,
        insumos=insumos,
        transformaciones=_lista(payload, "transformaciones"),
    )


def _parse_nodo(raw: Any, ruta: str, profundidad: int) -> NodoSimulado:
    if profundidad > 50:
        raise DatosInvalidosError("El árbol de simulación es demasiado profundo.")
    if not isinstance(raw, dict):
        raise DatosInvalidosError(f"{ruta} inválido.")
    cantidad = _parse_cantidad_capturada(raw, ruta)
    sobrante = _cantidad_opcional(raw.get("sobrante"), f"{ruta}.sobrante")
    requiere_raw = raw.get("requiere") or []
    if not isinstance(requiere_raw, list):
        raise DatosInvalidosError(f"{ruta}.requiere debe ser una lista.")
    return NodoSimulado(
        producto_id=cantidad.producto_id,
        nombre=str(raw.get("producto") or ""),
        cantidad=cantidad,
        es_intermedio=bool(raw.get("esIntermedio")),
        sobrante=sobrante,
        requiere=[
            _parse_nodo(hijo, f"{ruta}.requiere[{idx}]", profundidad + 1) for idx, hijo in enumerate(requiere_raw)
        ],
    )


def parse_produccion_simulada(payload: dict) -> ProduccionSimulada:
    producto_id = _id_requerido(payload.get("productId"), "productId")
    cantidad = validar_cantidad(payload.get("quantity"), campo="quantity")
    if cantidad <= 0:
        raise DatosInvalidosError("quantity debe ser mayor a cero.")

    simulado = payload.get("simulated")
    if not isinstance(simulado, dict) or not isinstance(simulado.get("requiere"), list):
        raise DatosInvalidosError("Falta estructura de simulación.")
    if simulado.get("id") not in (None, "") and _id_requerido(simulado.get("id"), "simulated.id") != producto_id:
        raise DatosInvalidosError("simulated.id no coincide con productId.")

    deseada = _cantidad_opcional(simulado.get("cantidadDeseada"), "simulated.cantidadDeseada")
    return ProduccionSimulada(
        producto_id=producto_id,
        nombre=str(simulado.get("producto") or ""),
        cantidad_deseada=deseada if deseada is not None else cantidad,
        requiere=[
            _parse_nodo(raw, f"simulated.requiere[{idx}]", 1) for idx, raw in enumerate(simulado["requiere"])
        ],
    )


def parse_payload(payload: Any) -> ProduccionSimple | ProduccionSimulada:
    if not isinstance(payload, dict):
        raise DatosInvalidosError("Payload de producción inválido.")
    if "simulated" in payload:
        return parse_produccion_simulada(payload)
    if "intermedio" in payload:
        return parse_produccion_simple(payload)
    raise DatosInvalidosError("El payload debe traer 'intermedio' o 'simulated'.")


# ---------------------------------------------------------------------------
# Flujos
# ---------------------------------------------------------------------------


def _cambio(producto: Producto, antes: Decimal) -> dict[str, Any]:
    despues = dec(producto.stock)
    return {
        "id": producto.id,
        "nombre": producto.nombre,
        "antes": q6(antes),
        "despues": q6(despues),
        "delta": q6(despues - antes),
    }


def registrar_produccion_intermedia(data: ProduccionSimple, *, usuario=None) -> dict[str, Any]:
    op_id = nuevo_op_id(PREFIJO_SIMPLE)
    meta = {"referencia_tipo": Mov.REFERENCIA_PRODUCCION, "referencia_id": op_id, "usuario": usuario}
    resumen: dict[str, Any] = {
        "op_id": op_id,
        "intermedio": None,
        "productos_agregados": [],
        "insumos_descontados": [],
    }

    with transaction.atomic():
        productos = bloquear_productos(data.ids())

        intermedio = productos[data.intermedio.producto_id]
        antes = dec(intermedio.stock)
        aplicar_delta(
            intermedio,
            tipo=Mov.TIPO_SALIDA,
            motivo=Mov.MOTIVO_SALIDA_CONSUMO_INTERNO,
            cantidad=data.intermedio.a_unidad_stock(intermedio),
            descripcion=f'Consumo intermedio "{intermedio.nombre}" ({data.intermedio.detalle}). OP:{op_id}',
            **meta,
        )
        resumen["intermedio"] = _cambio(intermedio, antes)

        for item in data.productos:
            producto = productos[item.producto_id]
            antes = dec(producto.stock)
            aplicar_delta(
                producto,
                tipo=Mov.TIPO_ENTRADA,
                motivo=Mov.MOTIVO_ENTRADA_PRODUCCION,
                cantidad=item.cantidad,
                descripcion=f'Producción "{producto.nombre}". OP:{op_id}',
                **meta,
            )
            resumen["productos_agregados"].append(
                {**_cambio(producto, antes), "gramos_por_unidad_intermedio": item.gramos_por_unidad_intermedio}
            )

        for insumo in data.insumos:
            producto = productos[insumo.producto_id]
            antes = dec(producto.stock)
            aplicar_delta(
                producto,
                tipo=Mov.TIPO_SALIDA,
                motivo=Mov.MOTIVO_SALIDA_CONSUMO_INTERNO,
                cantidad=insumo.a_unidad_stock(producto),
                descripcion=f'Consumo insumo "{producto.nombre}" ({insumo.detalle}). OP:{op_id}',
                **meta,
            )
            resumen["insumos_descontados"].append(_cambio(producto, antes))

        if data.transformaciones:
            resumen["transformaciones_registradas"] = data.transformaciones

        log_event(usuario, "PRODUCCION", "produccion.LoteIntermedio", op_id, resumen)
        publicar_al_confirmar(
            produccion_registrada,
            Producto,
            op_id=op_id,
            producto_ids=sorted(data.ids()),
        )

    log.info(
        "Producción %s registrada: intermedio %s, %s productos, %s insumos",
        op_id,
        data.intermedio.producto_id,
        len(data.productos),
        len(data.insumos),
    )
    return resumen


class _RecorridoSimulado:
    def __init__(self, op_id: str, productos: dict[int, Producto], usuario=None):
        self.op_id = op_id
        self.productos = productos
        self.meta = {"referencia_tipo": Mov.REFERENCIA_PRODUCCION, "referencia_id": op_id, "usuario": usuario}
        self.consumos: list[dict[str, Any]] = []
        self.intermedios: list[dict[str, Any]] = []

    def procesar(self, nodo: NodoSimulado, padre: str) -> None:
        producto = self.productos[nodo.producto_id]
        nombre = nodo.nombre or producto.nombre
        cantidad = nodo.cantidad.a_unidad_stock(producto)

        if nodo.requiere:
            for hijo in nodo.requiere:
                self.procesar(hijo, nombre)

            if nodo.es_intermedio and cantidad > 0:
                registrar_traza_produccion(
                    producto,
                    cantidad=cantidad,
                    descripcion_entrada=f"Producción intermedia de {nombre}. OP:{self.op_id}",
                    descripcion_salida=f"Consumo de {nombre} para {padre}. OP:{self.op_id}",
                    **self.meta,
                )
                registro = {"id": producto.id, "nombre": nombre, "cantidad": q6(cantidad), "sobrante": None}
                if nodo.sobrante is not None:
                    fijar_stock_absoluto(
                        producto,
                        cantidad=nodo.sobrante,
                        descripcion=f"Sobrante de {nombre} tras producción. OP:{self.op_id}",
                        **self.meta,
                    )
                    registro["sobrante"] = nodo.sobrante
                self.intermedios.append(registro)
            return

        if cantidad > 0:
            antes = dec(producto.stock)
            aplicar_delta(
                producto,
                tipo=Mov.TIPO_SALIDA,
                motivo=Mov.MOTIVO_SALIDA_CONSUMO_INTERNO,
                cantidad=cantidad,
                descripcion=f"Consumo de insumo {nombre} ({nodo.cantidad.detalle}) para {padre}. OP:{self.op_id}",
                **self.meta,
            )
            self.consumos.append(_cambio(producto, antes))


def registrar_produccion_final(data: ProduccionSimulada, *, usuario=None) -> dict[str, Any]:
    op_id = nuevo_op_id(PREFIJO_SIMULADO)
    validar_receta_aciclica(data.producto_id)

    with transaction.atomic():
        productos = bloquear_productos(data.ids())
        final = productos[data.producto_id]
        nombre = data.nombre or final.nombre

        recorrido = _RecorridoSimulado(op_id, productos, usuario)
        for nodo in data.requiere:
            recorrido.procesar(nodo, nombre)

        antes = dec(final.stock)
        aplicar_delta(
            final,
            tipo=Mov.TIPO_PRODUCCION,
            motivo=Mov.MOTIVO_ENTRADA_PRODUCCION,
            cantidad=data.cantidad_deseada,
            descripcion=f"Producción final de {nombre}. OP:{op_id}",
            **recorrido.meta,
        )
        resumen = {
            "op_id": op_id,
            "producto": _cambio(final, antes),
            "insumos_descontados": recorrido.consumos,
            "intermedios": recorrido.intermedios,
        }

        log_event(usuario, "PRODUCCION", "produccion.LoteFinal", op_id, resumen)
        publicar_al_confirmar(
            produccion_registrada,
            Producto,
            op_id=op_id,
            producto_ids=sorted(data.ids()),
        )

    log.info(
        "Producción %s registrada: %s x%s (%s insumos, %s intermedios)",
        op_id,
        final.id,
        data.cantidad_deseada,
        len(recorrido.consumos),
        len(recorrido.intermedios),
    )
    return resumen


def registrar_produccion(payload: Any, *, usuario=None) -> dict[str, Any]:
    """Valida el payload (antes de cualquier lock) y despacha al flujo que corresponde."""
    data = parse_payload(payload)
    if isinstance(data, ProduccionSimulada):
        return registrar_produccion_final(data, usuario=usuario)
    return registrar_produccion_intermedia(data, usuario=usuario)
