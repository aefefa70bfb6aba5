from django.urls import path
from .views import (
    ApiAuthTokenView,
    KardexProductoView,
    MovimientosView,
    PedidoItemCierreView,
    PedidoItemEntregaView,
    PedidoItemPagoView,
    PedidoItemView,
    ProduccionRegistrarView,
    RecetaCosteoView,
    RecetaLineasView,
    ResumenLogisticoView,
)

urlpatterns = [
    path("auth/token/", ApiAuthTokenView.as_view(), name="api_auth_token"),
    path("inventario/movimientos/", MovimientosView.as_view(), name="api_inventario_movimientos"),
    path("inventario/productos/<int:producto_id>/kardex/", KardexProductoView.as_view(), name="api_inventario_kardex"),
    path("inventario/resumen-diario/", ResumenLogisticoView.as_view(), name="api_inventario_resumen_diario"),
    path("recetas/<int:producto_id>/costeo/", RecetaCosteoView.as_view(), name="api_receta_costeo"),
    path("recetas/<int:producto_id>/lineas/", RecetaLineasView.as_view(), name="api_receta_lineas"),
    path("produccion/registrar/", ProduccionRegistrarView.as_view(), name="api_produccion_registrar"),
    path("pedidos/items/<int:item_id>/", PedidoItemView.as_view(), name="api_pedido_item"),
    path("pedidos/items/<int:item_id>/pago/", PedidoItemPagoView.as_view(), name="api_pedido_item_pago"),
    path("pedidos/items/<int:item_id>/cierre/", PedidoItemCierreView.as_view(), name="api_pedido_item_cierre"),
    path("pedidos/items/<int:item_id>/entrega/", PedidoItemEntregaView.as_view(), name="api_pedido_item_entrega"),
]
