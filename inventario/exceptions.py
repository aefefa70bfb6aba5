class InventarioError(Exception):
    """Errores de dominio del motor de inventario."""

    status_code = 400
    default_detail = "Error de inventario."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class DatosInvalidosError(InventarioError):
    """Payload mal formado o cantidad faltante. Se rechaza antes de tomar locks."""

    default_detail = "Datos inválidos."


class MotivoInvalidoError(DatosInvalidosError):
    default_detail = "Motivo de movimiento inválido."


class NoEncontradoError(InventarioError):
    status_code = 404
    default_detail = "Recurso no encontrado."


class ProductoNoEncontradoError(NoEncontradoError):
    default_detail = "Producto no encontrado."


class ItemPedidoNoEncontradoError(NoEncontradoError):
    default_detail = "Ítem de pedido no encontrado."


class StockInsuficienteError(InventarioError):
    status_code = 409
    default_detail = "Stock insuficiente."


class ConsistenciaError(InventarioError):
    status_code = 409
    default_detail = "Operación inconsistente con el estado actual."


class RecetaCiclicaError(ConsistenciaError):
    default_detail = "La receta forma un ciclo."
