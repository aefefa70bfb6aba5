"""Kardex de inventario: alta de movimientos y proyección de ``Producto.stock``.

Toda escritura de stock pasa por aquí y ocurre dentro de la misma transacción
que el movimiento que la explica, con la fila del producto bloqueada
(``select_for_update``). Hay tres operaciones de escritura:

- ``aplicar_delta``: entradas/producción suman, salidas restan.
- ``fijar_stock_absoluto``: el ajuste; sobrescribe el stock con la cantidad.
- ``registrar_traza_produccion``: par ENTRADA_PRODUCCION + SALIDA_CONSUMO_INTERNO
  que no mueve el stock; deja visible que un intermedio se hizo y se consumió
  en el mismo lote.

Las tres asumen que el producto ya está bloqueado por ``bloquear_productos``.
``registrar_movimiento`` es la entrada pública que abre la transacción.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable

from django.db import transaction
from django.utils import timezone

from core.audit import log_event
from finanzas.models import Egreso
from inventario.exceptions import (
    ConsistenciaError,
    DatosInvalidosError,
    MotivoInvalidoError,
    ProductoNoEncontradoError,
    StockInsuficienteError,
)
from inventario.models import MovimientoInventario, Producto
from inventario.signals import movimiento_registrado, publicar_al_confirmar
from inventario.utils.numeros import ZERO, dec, parse_decimal

log = logging.getLogger(__name__)

Mov = MovimientoInventario


def normalizar_tipo_motivo(tipo: Any, motivo: Any) -> tuple[str, str]:
    tipo_norm = str(tipo or "").strip().lower()
    motivo_norm = str(motivo or "").strip().upper()
    if tipo_norm not in Mov.MOTIVOS_POR_TIPO:
        raise DatosInvalidosError(f"Tipo de movimiento inválido: {tipo!r}.")
    if not motivo_norm:
        raise MotivoInvalidoError("Falta motivo del movimiento.")
    if motivo_norm not in Mov.MOTIVOS_POR_TIPO[tipo_norm]:
        raise MotivoInvalidoError(f"El motivo {motivo_norm!r} no corresponde a un movimiento de tipo {tipo_norm!r}.")
    return tipo_norm, motivo_norm


def validar_cantidad(cantidad: Any, campo: str = "cantidad") -> Decimal:
    value = parse_decimal(cantidad)
    if value is None:
        raise DatosInvalidosError(f"{campo} es requerida y debe ser numérica.")
    if value < 0:
        raise DatosInvalidosError(f"{campo} no puede ser negativa.")
    return value


def bloquear_productos(ids: Iterable[Any]) -> dict[int, Producto]:
    """Bloquea los productos en orden ascendente de id (evita deadlocks entre lotes)."""
    try:
        ordered = sorted({int(i) for i in ids})
    except (TypeError, ValueError):
        raise DatosInvalidosError("Id de producto inválido.")
    productos = {
        p.id: p for p in Producto.objects.select_for_update().filter(id__in=ordered).order_by("id")
    }
    for producto_id in ordered:
        if producto_id not in productos:
            raise ProductoNoEncontradoError(f"Producto {producto_id} no encontrado.")
    return productos


def _crear_movimiento(
    producto: Producto,
    *,
    tipo: str,
    motivo: str,
    cantidad: Decimal,
    descripcion: str = "",
    precio: Decimal | None = None,
    referencia_tipo: str = "",
    referencia_id: Any = "",
    usuario=None,
) -> MovimientoInventario:
    movimiento = Mov.objects.create(
        producto=producto,
        tipo=tipo,
        motivo=motivo,
        cantidad=cantidad,
        descripcion=(descripcion or "")[:255],
        precio=precio,
        referencia_tipo=referencia_tipo or "",
        referencia_id="" if referencia_id is None else str(referencia_id),
        creado_por=usuario if getattr(usuario, "is_authenticated", False) else None,
        fecha=timezone.now(),
    )
    publicar_al_confirmar(
        movimiento_registrado,
        Mov,
        movimiento_id=movimiento.id,
        producto_id=producto.id,
        tipo=tipo,
        motivo=motivo,
        cantidad=cantidad,
    )
    return movimiento


def _guardar_stock(producto: Producto, nuevo: Decimal) -> None:
    producto.stock = nuevo
    producto.save(update_fields=["stock", "actualizado_en"])


def aplicar_delta(
    producto: Producto,
    *,
    tipo: str,
    motivo: str,
    cantidad: Any,
    **meta,
) -> MovimientoInventario:
    tipo, motivo = normalizar_tipo_motivo(tipo, motivo)
    cantidad = validar_cantidad(cantidad)
    antes = dec(producto.stock)

    if tipo in (Mov.TIPO_ENTRADA, Mov.TIPO_PRODUCCION):
        despues = antes + cantidad
    elif tipo == Mov.TIPO_SALIDA:
        despues = antes - cantidad
        if despues < ZERO:
            raise StockInsuficienteError(
                f"Stock insuficiente de {producto.nombre}: disponible {antes}, requerido {cantidad}."
            )
    elif tipo == Mov.TIPO_AJUSTE:
        raise ConsistenciaError("Un ajuste sobrescribe el stock; usa fijar_stock_absoluto.")
    else:
        raise DatosInvalidosError(f"Tipo de movimiento inválido: {tipo!r}.")

    _guardar_stock(producto, despues)
    return _crear_movimiento(producto, tipo=tipo, motivo=motivo, cantidad=cantidad, **meta)


def fijar_stock_absoluto(
    producto: Producto,
    *,
    cantidad: Any,
    motivo: str | None = None,
    **meta,
) -> MovimientoInventario:
    cantidad = validar_cantidad(cantidad)
    antes = dec(producto.stock)
    if motivo is None:
        motivo = Mov.MOTIVO_AJUSTE_ENTRADA if cantidad >= antes else Mov.MOTIVO_AJUSTE_SALIDA
    _, motivo = normalizar_tipo_motivo(Mov.TIPO_AJUSTE, motivo)

    _guardar_stock(producto, cantidad)
    if not meta.get("descripcion"):
        meta["descripcion"] = f"Ajuste de stock {antes} -> {cantidad}"
    return _crear_movimiento(producto, tipo=Mov.TIPO_AJUSTE, motivo=motivo, cantidad=cantidad, **meta)


def registrar_traza_produccion(
    producto: Producto,
    *,
    cantidad: Any,
    descripcion_entrada: str = "",
    descripcion_salida: str = "",
    **meta,
) -> tuple[MovimientoInventario, MovimientoInventario]:
    cantidad = validar_cantidad(cantidad)
    entrada = _crear_movimiento(
        producto,
        tipo=Mov.TIPO_ENTRADA,
        motivo=Mov.MOTIVO_ENTRADA_PRODUCCION,
        cantidad=cantidad,
        descripcion=descripcion_entrada,
        **meta,
    )
    salida = _crear_movimiento(
        producto,
        tipo=Mov.TIPO_SALIDA,
        motivo=Mov.MOTIVO_SALIDA_CONSUMO_INTERNO,
        cantidad=cantidad,
        descripcion=descripcion_salida,
        **meta,
    )
    return entrada, salida


def registrar_movimiento(
    *,
    producto_id: Any,
    tipo: Any,
    motivo: Any,
    cantidad: Any,
    precio: Any = None,
    referencia_tipo: str = "",
    referencia_id: Any = "",
    descripcion: str = "",
    usuario=None,
) -> MovimientoInventario:
    tipo, motivo = normalizar_tipo_motivo(tipo, motivo)
    cantidad = validar_cantidad(cantidad)
    precio_dec = None
    if precio is not None and precio != "":
        precio_dec = validar_cantidad(precio, campo="precio")

    meta = {
        "descripcion": descripcion,
        "precio": precio_dec,
        "referencia_tipo": referencia_tipo,
        "referencia_id": referencia_id,
        "usuario": usuario,
    }

    with transaction.atomic():
        producto = bloquear_productos([producto_id])[int(producto_id)]
        stock_anterior = dec(producto.stock)
        if tipo == Mov.TIPO_AJUSTE:
            movimiento = fijar_stock_absoluto(producto, cantidad=cantidad, motivo=motivo, **meta)
        else:
            movimiento = aplicar_delta(producto, tipo=tipo, motivo=motivo, cantidad=cantidad, **meta)

        if motivo == Mov.MOTIVO_ENTRADA_COMPRA and precio_dec and precio_dec > 0:
            Egreso.objects.create(
                fecha=timezone.localdate(),
                monto=precio_dec,
                concepto=f"Compra de {producto.nombre}"[:255],
                categoria=Egreso.CATEGORIA_COMPRAS,
                referencia_tipo=Egreso.REFERENCIA_ENTRADA_INVENTARIO,
                referencia_id=producto.id,
                creado_por=usuario if getattr(usuario, "is_authenticated", False) else None,
            )

        log_event(
            usuario,
            "AJUSTE" if tipo == Mov.TIPO_AJUSTE else "CREATE",
            "inventario.MovimientoInventario",
            movimiento.id,
            {
                "producto_id": producto.id,
                "tipo": tipo,
                "motivo": motivo,
                "cantidad": cantidad,
                "from_stock": stock_anterior,
                "to_stock": producto.stock,
            },
        )

    log.info(
        "Movimiento %s %s de %s sobre producto %s (stock %s -> %s)",
        tipo,
        motivo,
        cantidad,
        producto.id,
        stock_anterior,
        producto.stock,
    )
    return movimiento
