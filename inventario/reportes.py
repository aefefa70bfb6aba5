from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from django.db.models import Sum
from django.utils import timezone

from inventario.exceptions import ProductoNoEncontradoError
from inventario.models import MovimientoInventario, Producto
from inventario.utils.numeros import ZERO, dec, q2

Mov = MovimientoInventario


def _parse_iso_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def _inicio_dia(d: date) -> datetime:
    return timezone.make_aware(datetime.combine(d, time.min))


def resolver_rango(
    *,
    fecha: Any = None,
    desde: Any = None,
    hasta: Any = None,
) -> tuple[date, date]:
    """Rango inclusivo de días. Sin parámetros válidos, el día de hoy."""
    date_from = _parse_iso_date(desde)
    date_to = _parse_iso_date(hasta)
    if date_from and date_to:
        if date_to < date_from:
            date_to = date_from
        return date_from, date_to

    dia = _parse_iso_date(fecha) or timezone.localdate()
    return dia, dia


def _movimientos_en_rango(desde: date, hasta: date, producto_id: int | None = None):
    qs = Mov.objects.filter(
        fecha__gte=_inicio_dia(desde),
        fecha__lt=_inicio_dia(hasta + timedelta(days=1)),
    )
    if producto_id:
        qs = qs.filter(producto_id=producto_id)
    return qs


def resumen_por_motivo(desde: date, hasta: date, producto_id: int | None = None) -> dict[str, Decimal]:
    rows = (
        _movimientos_en_rango(desde, hasta, producto_id)
        .values("motivo")
        .annotate(total=Sum("cantidad"))
        .order_by("motivo")
    )
    return {row["motivo"]: dec(row["total"]) for row in rows}


def historial(producto_id: int) -> list[MovimientoInventario]:
    if not Producto.objects.filter(pk=producto_id).exists():
        raise ProductoNoEncontradoError(f"Producto {producto_id} no encontrado.")
    return list(Mov.objects.filter(producto_id=producto_id).order_by("fecha", "id"))


def stock_segun_kardex(producto_id: int, stock_inicial: Decimal = ZERO) -> Decimal:
    """Reproduce el stock desde el kardex; cada ajuste reinicia la cuenta."""
    stock = dec(stock_inicial)
    for tipo, cantidad in (
        Mov.objects.filter(producto_id=producto_id).order_by("fecha", "id").values_list("tipo", "cantidad")
    ):
        cantidad = dec(cantidad)
        if tipo == Mov.TIPO_AJUSTE:
            stock = cantidad
        elif tipo == Mov.TIPO_SALIDA:
            stock -= cantidad
        else:
            stock += cantidad
    return stock


def _bucket_vacio() -> dict[str, Decimal]:
    return {motivo: ZERO for motivo, _ in Mov.MOTIVO_CHOICES}


def _merma_pct(merma: Decimal, producido: Decimal) -> Decimal:
    if producido <= 0:
        return ZERO
    return q2(merma * Decimal("100") / producido)


def resumen_logistico(desde: date, hasta: date, producto_id: int | None = None) -> dict[str, Any]:
    """Resumen operativo diario: producido, vendido, merma y merma % por producto."""
    totales = resumen_por_motivo(desde, hasta, producto_id)
    rows = (
        _movimientos_en_rango(desde, hasta, producto_id)
        .values("producto_id", "motivo")
        .annotate(total=Sum("cantidad"))
        .order_by("producto_id", "motivo")
    )

    por_producto: dict[int, dict[str, Decimal]] = {}
    for row in rows:
        bucket = por_producto.setdefault(row["producto_id"], _bucket_vacio())
        bucket[row["motivo"]] = bucket.get(row["motivo"], ZERO) + dec(row["total"])

    productos = {
        p.id: p for p in Producto.objects.filter(id__in=list(por_producto.keys())).only("id", "nombre", "stock")
    }

    items = []
    for pid, r in por_producto.items():
        producto = productos.get(pid)
        producido = r[Mov.MOTIVO_ENTRADA_PRODUCCION]
        merma = r[Mov.MOTIVO_SALIDA_DANIADO] + r[Mov.MOTIVO_SALIDA_CADUCADO]
        items.append(
            {
                "producto_id": pid,
                "nombre": producto.nombre if producto else f"Producto {pid}",
                "stock_actual": dec(producto.stock) if producto else ZERO,
                "producido": producido,
                "comprado": r[Mov.MOTIVO_ENTRADA_COMPRA],
                "vendido": r[Mov.MOTIVO_SALIDA_VENTA],
                "yapas": r[Mov.MOTIVO_SALIDA_YAPA],
                "daniado": r[Mov.MOTIVO_SALIDA_DANIADO],
                "caducado": r[Mov.MOTIVO_SALIDA_CADUCADO],
                "reemplazos": r[Mov.MOTIVO_SALIDA_REEMPLAZO],
                "merma": merma,
                "consumo_interno": r[Mov.MOTIVO_SALIDA_CONSUMO_INTERNO],
                "ajustes_entrada": r[Mov.MOTIVO_AJUSTE_ENTRADA],
                "ajustes_salida": r[Mov.MOTIVO_AJUSTE_SALIDA],
                "merma_pct": _merma_pct(merma, producido),
            }
        )
    items.sort(key=lambda item: item["merma"], reverse=True)

    producido_global = totales.get(Mov.MOTIVO_ENTRADA_PRODUCCION, ZERO)
    merma_global = totales.get(Mov.MOTIVO_SALIDA_DANIADO, ZERO) + totales.get(Mov.MOTIVO_SALIDA_CADUCADO, ZERO)
    return {
        "range": {"from": str(desde), "to": str(hasta)},
        "totales_por_motivo": totales,
        "global": {
            "producido": producido_global,
            "vendido": totales.get(Mov.MOTIVO_SALIDA_VENTA, ZERO),
            "yapas": totales.get(Mov.MOTIVO_SALIDA_YAPA, ZERO),
            "daniado": totales.get(Mov.MOTIVO_SALIDA_DANIADO, ZERO),
            "caducado": totales.get(Mov.MOTIVO_SALIDA_CADUCADO, ZERO),
            "merma": merma_global,
            "merma_pct": _merma_pct(merma_global, producido_global),
        },
        "productos": items,
    }
