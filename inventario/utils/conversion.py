"""Conversión entre gramos/unidades y la unidad de stock de un producto.

Un producto se maneja en ``UNIDAD`` (piezas) o en ``GRAMO``. Las recetas y los
payloads de producción expresan cantidades en gramos o en unidades; estas
funciones las llevan a la unidad en la que vive ``Producto.stock``.

Política de ``peso_estandar_g`` faltante: si el producto no tiene peso estándar
la conversión degrada a 1:1 (1 g == 1 unidad) y se registra un warning. Con
``INVENTARIO_PERMITIR_FALLBACK_PESO=False`` se rechaza con
``DatosInvalidosError``.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from django.conf import settings

from inventario.exceptions import DatosInvalidosError
from inventario.utils.numeros import dec as _dec

log = logging.getLogger(__name__)

ONE = Decimal("1")


def _peso_estandar(producto) -> Decimal:
    peso = _dec(getattr(producto, "peso_estandar_g", None))
    if peso > 0:
        return peso
    if not getattr(settings, "INVENTARIO_PERMITIR_FALLBACK_PESO", True):
        raise DatosInvalidosError(
            f"El producto {getattr(producto, 'nombre', producto)} no tiene peso estándar; no se puede convertir."
        )
    log.warning(
        "Producto %s sin peso_estandar_g: conversión gramos/unidades degradada a 1:1",
        getattr(producto, "pk", None),
    )
    return ONE


def gramos_a_unidad_stock(producto, gramos) -> Decimal:
    """Gramos -> unidad de stock del producto."""
    gramos = _dec(gramos)
    if producto.es_unitario:
        return gramos / _peso_estandar(producto)
    return gramos


def unidades_a_unidad_stock(producto, unidades) -> Decimal:
    """Unidades (piezas) -> unidad de stock del producto."""
    unidades = _dec(unidades)
    if producto.es_unitario:
        return unidades
    return unidades * _peso_estandar(producto)
