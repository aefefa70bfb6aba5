from __future__ import annotations

import logging
from typing import Any

from django.db import transaction

from core.audit import log_event
from inventario.exceptions import DatosInvalidosError, ProductoNoEncontradoError, RecetaCiclicaError
from inventario.models import Producto
from inventario.services import validar_cantidad
from recetas.models import LineaReceta
from recetas.utils.grafo import cargar_adyacencia, crea_ciclo

log = logging.getLogger(__name__)


def _parse_linea(raw: Any, idx: int) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise DatosInvalidosError(f"lineas[{idx}] inválida.")
    try:
        insumo_id = int(raw.get("producto_insumo_id") or raw.get("insumo_id"))
    except (TypeError, ValueError):
        raise DatosInvalidosError(f"lineas[{idx}].producto_insumo_id es requerido.")
    cantidad = validar_cantidad(raw.get("cantidad"), campo=f"lineas[{idx}].cantidad")
    if cantidad <= 0:
        raise DatosInvalidosError(f"lineas[{idx}].cantidad debe ser mayor a cero.")
    tipo_item = str(raw.get("tipo_item") or LineaReceta.ITEM_INSUMO).strip().lower()
    if tipo_item not in dict(LineaReceta.ITEM_CHOICES):
        raise DatosInvalidosError(f"lineas[{idx}].tipo_item inválido: {tipo_item!r}.")
    return {
        "producto_insumo_id": insumo_id,
        "cantidad": cantidad,
        "cantidad_en_gramos": bool(raw.get("cantidad_en_gramos", True)),
        "tipo_item": tipo_item,
    }


def crear_lineas_receta(producto_final_id: int, lineas: list[dict[str, Any]], usuario=None) -> list[LineaReceta]:
    """Alta en bloque de líneas. Ninguna se guarda si alguna cerraría un ciclo."""
    parsed = [_parse_linea(raw, idx) for idx, raw in enumerate(lineas or [])]
    if not parsed:
        raise DatosInvalidosError("Se requiere al menos una línea.")

    with transaction.atomic():
        ids = {producto_final_id} | {p["producto_insumo_id"] for p in parsed}
        existentes = dict(Producto.objects.filter(id__in=ids).values_list("id", "nombre"))
        faltantes = sorted(ids - existentes.keys())
        if faltantes:
            raise ProductoNoEncontradoError(f"Productos no encontrados: {faltantes}.")

        adyacencia = cargar_adyacencia()
        creadas = []
        for data in parsed:
            insumo_id = data["producto_insumo_id"]
            if crea_ciclo(producto_final_id, insumo_id, adyacencia):
                raise RecetaCiclicaError(
                    f"Agregar {existentes[insumo_id]} a la receta de {existentes[producto_final_id]} forma un ciclo."
                )
            creadas.append(LineaReceta.objects.create(producto_final_id=producto_final_id, **data))
            adyacencia[producto_final_id].append(insumo_id)

        log_event(
            usuario,
            "CREATE",
            "recetas.LineaReceta",
            producto_final_id,
            {"lineas": [linea.id for linea in creadas]},
        )

    log.info("Receta %s: %s líneas nuevas", producto_final_id, len(creadas))
    return creadas
