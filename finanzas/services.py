"""Sincronía entre ítems de pedido, kardex e ingresos.

Cada transición de un ítem (pago, reversa, edición, cierre de logística,
entrega) corre en una transacción con el ítem bloqueado; si además mueve
stock, el producto se bloquea después del ítem, siempre en ese orden.

Cantidad cobrable: ``cantidad_vendida`` si es > 0, si no ``cantidad``.
Un ítem pagado tiene exactamente un ``Ingreso`` con referencia
``("order_item", item.id)``; al revertir el pago se elimina.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.audit import log_event
from finanzas.models import Ingreso
from inventario.exceptions import (
    ConsistenciaError,
    DatosInvalidosError,
    ItemPedidoNoEncontradoError,
    StockInsuficienteError,
)
from inventario.models import MovimientoInventario
from inventario.services import aplicar_delta, bloquear_productos, validar_cantidad
from inventario.signals import publicar_al_confirmar, venta_registrada
from inventario.utils.numeros import ZERO, dec, q2
from pedidos.models import Pedido, PedidoItem

log = logging.getLogger(__name__)

Mov = MovimientoInventario

MARCA_CONSIGNACION = "#PANADERIA"

# campo del ítem -> motivo de salida en el cierre de logística
SPLITS_CIERRE = (
    ("cantidad_vendida", Mov.MOTIVO_SALIDA_VENTA, "vendido"),
    ("cantidad_daniada", Mov.MOTIVO_SALIDA_DANIADO, "dañado"),
    ("cantidad_yapa", Mov.MOTIVO_SALIDA_YAPA, "yapa"),
    ("cantidad_reemplazo", Mov.MOTIVO_SALIDA_REEMPLAZO, "reemplazo"),
)
CAMPOS_CANTIDAD = ("cantidad", "precio") + tuple(campo for campo, _, _ in SPLITS_CIERRE)
CAMPOS_FECHA = ("pagado_en", "entregado_en")
CAMPOS_DINERO = {"pagado_en", "precio", "cantidad_vendida", "cantidad"}


def cantidad_cobrable(item: PedidoItem) -> Decimal:
    vendido = dec(item.cantidad_vendida)
    if vendido > 0:
        return vendido
    return dec(item.cantidad)


def es_consignacion(pedido: Pedido) -> bool:
    return bool(pedido.es_consignacion) or MARCA_CONSIGNACION in (pedido.notas or "")


def _bloquear_item(item_id: Any) -> PedidoItem:
    try:
        return (
            PedidoItem.objects.select_for_update()
            .select_related("pedido", "pedido__cliente", "producto")
            .get(pk=int(item_id))
        )
    except (TypeError, ValueError):
        raise DatosInvalidosError("Id de ítem inválido.")
    except PedidoItem.DoesNotExist:
        raise ItemPedidoNoEncontradoError(f"Ítem {item_id} no encontrado.")


def _concepto_venta(item: PedidoItem, cobrable: Decimal) -> str:
    producto = item.producto.nombre if item.producto_id else "Producto"
    cliente = item.pedido.cliente.nombre if item.pedido.cliente_id else "Cliente"
    cantidad = format(cobrable.normalize(), "f")
    return f"Venta {producto} x{cantidad} a {cliente} (Ped #{item.pedido_id}) ${q2(item.precio)}"[:255]


def sincronizar_ingreso_item(item: PedidoItem, usuario=None) -> Ingreso | None:
    """Deja el ingreso del ítem acorde a ``pagado_en``; devuelve el ingreso vigente o None."""
    filtro = {"referencia_tipo": Ingreso.REFERENCIA_ORDER_ITEM, "referencia_id": item.id}
    if not item.pagado_en:
        Ingreso.objects.filter(**filtro).delete()
        return None

    cobrable = cantidad_cobrable(item)
    ingreso, created = Ingreso.objects.update_or_create(
        **filtro,
        defaults={
            "fecha": timezone.localdate(),
            "monto": q2(dec(item.precio) * cobrable),
            "concepto": _concepto_venta(item, cobrable),
            "categoria": Ingreso.CATEGORIA_VENTA,
            "estatus": Ingreso.ESTATUS_PAGADO,
            "contraparte": item.pedido.cliente.nombre[:180] if item.pedido.cliente_id else "",
        },
    )
    if created and getattr(usuario, "is_authenticated", False):
        ingreso.creado_por = usuario
        ingreso.save(update_fields=["creado_por"])
    return ingreso


def recalcular_estatus_pedido(pedido: Pedido) -> str:
    """``pagado`` si todos los ítems están pagados, si no ``pendiente``."""
    pagados = list(pedido.items.values_list("pagado_en", flat=True))
    todos_pagados = bool(pagados) and all(pagados)
    estatus = Pedido.ESTATUS_PAGADO if todos_pagados else Pedido.ESTATUS_PENDIENTE
    if pedido.estatus != estatus:
        pedido.estatus = estatus
        pedido.save(update_fields=["estatus"])
    return estatus


def marcar_item_pagado(item_id: Any, usuario=None) -> tuple[PedidoItem, Ingreso]:
    with transaction.atomic():
        item = _bloquear_item(item_id)
        if item.pagado_en:
            raise ConsistenciaError("Este ítem ya está pagado.")
        item.pagado_en = timezone.now()
        item.save(update_fields=["pagado_en"])
        ingreso = sincronizar_ingreso_item(item, usuario)
        estatus = recalcular_estatus_pedido(item.pedido)
        log_event(
            usuario,
            "PAGO",
            "pedidos.PedidoItem",
            item.id,
            {"monto": ingreso.monto, "cobrable": cantidad_cobrable(item), "estatus_pedido": estatus},
        )
    log.info("Ítem %s pagado: ingreso %s por %s", item.id, ingreso.id, ingreso.monto)
    return item, ingreso


def desmarcar_item_pagado(item_id: Any, usuario=None) -> PedidoItem:
    with transaction.atomic():
        item = _bloquear_item(item_id)
        if not item.pagado_en:
            raise ConsistenciaError("Este ítem no está pagado.")
        item.pagado_en = None
        item.save(update_fields=["pagado_en"])
        sincronizar_ingreso_item(item, usuario)
        estatus = recalcular_estatus_pedido(item.pedido)
        log_event(usuario, "PAGO_REVERTIDO", "pedidos.PedidoItem", item.id, {"estatus_pedido": estatus})
    log.info("Pago del ítem %s revertido", item.id)
    return item


def _parse_fecha_toggle(value: Any, campo: str) -> datetime | None:
    if value is None:
        return None
    if value is True or value == "now":
        return timezone.now()
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parse_datetime(str(value).strip())
        except ValueError:
            parsed = None
        if parsed is None:
            raise DatosInvalidosError(f"{campo} inválido.")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _cambios_validos(datos: dict[str, Any]) -> dict[str, Any]:
    cambios: dict[str, Any] = {}
    for campo in CAMPOS_CANTIDAD:
        if campo not in datos or datos[campo] == "":
            continue
        value = datos[campo]
        cambios[campo] = ZERO if value is None else validar_cantidad(value, campo=campo)
    for campo in CAMPOS_FECHA:
        if campo in datos:
            cambios[campo] = _parse_fecha_toggle(datos[campo], campo)
    return cambios


def _validar_coherencia(cantidad: Decimal, salidas: Decimal) -> None:
    if salidas > cantidad:
        raise DatosInvalidosError("La suma (vendido + dañado + yapa + reemplazo) no puede ser mayor que la cantidad.")


def _rechazar_reducciones(item: PedidoItem, valores: dict[str, Any]) -> None:
    """Los splits del cierre solo crecen: ya salieron del stock."""
    reducidos = [
        campo
        for campo, _, _ in SPLITS_CIERRE
        if campo in valores and valores[campo] < dec(getattr(item, campo))
    ]
    if reducidos:
        raise ConsistenciaError(
            f"No se permite reducir valores del cierre ({', '.join(reducidos)}). Registra un ajuste autorizado."
        )


def actualizar_item_pedido(item_id: Any, datos: dict[str, Any], usuario=None) -> PedidoItem:
    """Edición parcial de un ítem. No mueve stock; re-sincroniza el ingreso si cambia dinero."""
    cambios = _cambios_validos(datos or {})

    with transaction.atomic():
        item = _bloquear_item(item_id)
        if not cambios:
            return item

        _rechazar_reducciones(item, cambios)
        for campo, value in cambios.items():
            setattr(item, campo, value)
        _validar_coherencia(dec(item.cantidad), item.total_salidas)
        item.save(update_fields=list(cambios.keys()))

        if CAMPOS_DINERO & cambios.keys():
            sincronizar_ingreso_item(item, usuario)
        estatus = recalcular_estatus_pedido(item.pedido)
        log_event(usuario, "UPDATE", "pedidos.PedidoItem", item.id, {**cambios, "estatus_pedido": estatus})

    log.info("Ítem %s actualizado: %s", item.id, ", ".join(sorted(cambios)))
    return item


def cerrar_logistica_item(item_id: Any, datos: dict[str, Any], usuario=None) -> dict[str, Any]:
    """Cierre de logística: los incrementos de cada split se registran como salidas.

    El cierre es monótono: un split nunca puede bajar respecto al último cierre.
    Un split ausente conserva su valor anterior.
    """
    datos = datos or {}
    nuevos_raw = {campo: datos.get(campo) for campo, _, _ in SPLITS_CIERRE}
    parsed = {
        campo: validar_cantidad(value, campo=campo)
        for campo, value in nuevos_raw.items()
        if value is not None and value != ""
    }

    with transaction.atomic():
        item = _bloquear_item(item_id)
        nuevos = {campo: parsed.get(campo, dec(getattr(item, campo))) for campo, _, _ in SPLITS_CIERRE}
        _validar_coherencia(dec(item.cantidad), sum(nuevos.values(), ZERO))

        _rechazar_reducciones(item, nuevos)
        deltas = {campo: nuevos[campo] - dec(getattr(item, campo)) for campo in nuevos}

        producto = bloquear_productos([item.producto_id])[item.producto_id]
        total = sum(deltas.values(), ZERO)
        if dec(producto.stock) < total:
            raise StockInsuficienteError(
                f"Stock insuficiente para registrar el cierre: disponible {producto.stock}, requerido {total}."
            )
        movimientos = []
        for campo, motivo, etiqueta in SPLITS_CIERRE:
            if deltas[campo] <= 0:
                continue
            movimientos.append(
                aplicar_delta(
                    producto,
                    tipo=Mov.TIPO_SALIDA,
                    motivo=motivo,
                    cantidad=deltas[campo],
                    descripcion=f"Cierre {etiqueta} (ítem #{item.id})",
                    referencia_tipo=Mov.REFERENCIA_ORDER_ITEM,
                    referencia_id=item.id,
                    usuario=usuario,
                )
            )

        for campo, value in nuevos.items():
            setattr(item, campo, value)
        item.save(update_fields=list(nuevos.keys()))
        if item.pagado_en:
            sincronizar_ingreso_item(item, usuario)

        log_event(
            usuario,
            "CIERRE",
            "pedidos.PedidoItem",
            item.id,
            {"deltas": deltas, "total_salida": total, "stock": producto.stock},
        )
        if movimientos:
            publicar_al_confirmar(
                venta_registrada,
                PedidoItem,
                item_id=item.id,
                pedido_id=item.pedido_id,
                movimiento_ids=[m.id for m in movimientos],
            )

    log.info("Cierre de ítem %s: %s movimientos, salida total %s", item.id, len(movimientos), total)
    return {"item": item, "movimientos": movimientos, "deltas": deltas}


def marcar_item_entregado(item_id: Any, usuario=None) -> dict[str, Any]:
    """Entrega del ítem. En consignación solo se sella la fecha; la salida llega en el cierre."""
    with transaction.atomic():
        item = _bloquear_item(item_id)
        if item.entregado_en:
            raise ConsistenciaError("Este ítem ya fue marcado como entregado.")

        consignacion = es_consignacion(item.pedido)
        movimiento = None
        if not consignacion:
            producto = bloquear_productos([item.producto_id])[item.producto_id]
            movimiento = aplicar_delta(
                producto,
                tipo=Mov.TIPO_SALIDA,
                motivo=Mov.MOTIVO_SALIDA_VENTA,
                cantidad=item.cantidad,
                descripcion=f"Entrega venta normal (ítem #{item.id})",
                referencia_tipo=Mov.REFERENCIA_ORDER_ITEM,
                referencia_id=item.id,
                usuario=usuario,
            )

        item.entregado_en = timezone.now()
        item.save(update_fields=["entregado_en"])

        pedido = item.pedido
        entregados = list(pedido.items.values_list("entregado_en", flat=True))
        if entregados and all(entregados) and pedido.estatus != Pedido.ESTATUS_PAGADO:
            pedido.estatus = Pedido.ESTATUS_ENTREGADO
            pedido.save(update_fields=["estatus"])

        log_event(
            usuario,
            "ENTREGA",
            "pedidos.PedidoItem",
            item.id,
            {"consignacion": consignacion, "movimiento_id": movimiento.id if movimiento else None},
        )
        if movimiento is not None:
            publicar_al_confirmar(
                venta_registrada,
                PedidoItem,
                item_id=item.id,
                pedido_id=item.pedido_id,
                movimiento_ids=[movimiento.id],
            )

    log.info("Ítem %s entregado (consignación=%s)", item.id, consignacion)
    return {"item": item, "movimiento": movimiento, "consignacion": consignacion}
