from __future__ import annotations

from collections import defaultdict

from inventario.exceptions import RecetaCiclicaError
from inventario.models import Producto
from recetas.models import LineaReceta

Adyacencia = dict[int, list[int]]


def cargar_adyacencia() -> Adyacencia:
    """producto_final -> [producto_insumo, ...] para todas las recetas."""
    adyacencia: Adyacencia = defaultdict(list)
    for final_id, insumo_id in LineaReceta.objects.order_by("id").values_list("producto_final_id", "producto_insumo_id"):
        adyacencia[final_id].append(insumo_id)
    return adyacencia


def detectar_ciclo(inicio_id: int, adyacencia: Adyacencia | None = None) -> list[int] | None:
    """DFS iterativo con el conjunto de la ruta actual. Devuelve la ruta del ciclo o None."""
    if adyacencia is None:
        adyacencia = cargar_adyacencia()

    terminados: set[int] = set()
    ruta: list[int] = [inicio_id]
    en_ruta: set[int] = {inicio_id}
    pila = [iter(adyacencia.get(inicio_id, ()))]

    while pila:
        siguiente = next(pila[-1], None)
        if siguiente is None:
            pila.pop()
            nodo = ruta.pop()
            en_ruta.discard(nodo)
            terminados.add(nodo)
            continue
        if siguiente in en_ruta:
            return ruta[ruta.index(siguiente):] + [siguiente]
        if siguiente in terminados:
            continue
        ruta.append(siguiente)
        en_ruta.add(siguiente)
        pila.append(iter(adyacencia.get(siguiente, ())))
    return None


def _describir(ciclo: list[int]) -> str:
    nombres = dict(Producto.objects.filter(id__in=set(ciclo)).values_list("id", "nombre"))
    return " > ".join(nombres.get(pid, f"Producto {pid}") for pid in ciclo)


def validar_receta_aciclica(producto_id: int, adyacencia: Adyacencia | None = None) -> None:
    ciclo = detectar_ciclo(producto_id, adyacencia)
    if ciclo:
        raise RecetaCiclicaError(f"La receta forma un ciclo: {_describir(ciclo)}.")


def crea_ciclo(final_id: int, insumo_id: int, adyacencia: Adyacencia | None = None) -> bool:
    """True si agregar la arista final -> insumo cerraría un ciclo."""
    if final_id == insumo_id:
        return True
    if adyacencia is None:
        adyacencia = cargar_adyacencia()
    pendientes = [insumo_id]
    vistos: set[int] = set()
    while pendientes:
        actual = pendientes.pop()
        if actual == final_id:
            return True
        if actual in vistos:
            continue
        vistos.add(actual)
        pendientes.extend(adyacencia.get(actual, ()))
    return False
