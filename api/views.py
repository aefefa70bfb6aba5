import logging
from io import BytesIO

from django.http import HttpResponse
from openpyxl import Workbook
from rest_framework import generics, status
from rest_framework.authtoken.models import Token
from rest_framework.authtoken.serializers import AuthTokenSerializer
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.access import (
    can_manage_inventario,
    can_manage_produccion,
    can_manage_ventas,
    can_view_inventario,
    can_view_recetas,
    primary_role,
)
from finanzas.services import (
    actualizar_item_pedido,
    cerrar_logistica_item,
    desmarcar_item_pagado,
    marcar_item_entregado,
    marcar_item_pagado,
)
from inventario.exceptions import InventarioError
from inventario.models import MovimientoInventario, Producto
from inventario.reportes import historial, resolver_rango, resumen_logistico, stock_segun_kardex
from inventario.services import registrar_movimiento
from produccion.services import registrar_produccion
from recetas.services import crear_lineas_receta
from recetas.utils.costeo import calcular_costeo_receta
from .serializers import (
    CierreLogisticaSerializer,
    CosteoQuerySerializer,
    IngresoSerializer,
    MovimientoCreateSerializer,
    MovimientoInventarioSerializer,
    PedidoItemSerializer,
    PedidoItemUpdateSerializer,
    ProductoSerializer,
    RecetaLineasCreateSerializer,
)

log = logging.getLogger(__name__)


def _forbidden(detail: str) -> Response:
    return Response({"detail": detail}, status=status.HTTP_403_FORBIDDEN)


def _domain_error(exc: InventarioError) -> Response:
    log.warning("Operación rechazada (%s): %s", exc.__class__.__name__, exc.detail)
    return Response({"detail": exc.detail, "code": exc.__class__.__name__}, status=exc.status_code)


def _parse_int(value, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class ApiAuthTokenView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        ser = AuthTokenSerializer(data=request.data, context={"request": request})
        ser.is_valid(raise_exception=True)
        user = ser.validated_data["user"]
        token, _ = Token.objects.get_or_create(user=user)
        return Response(
            {"token": token.key, "user": {"id": user.id, "username": user.username, "rol": primary_role(user)}},
            status=status.HTTP_200_OK,
        )


class MovimientosView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = MovimientoInventarioSerializer
    filterset_fields = ["producto", "tipo", "motivo", "referencia_tipo", "referencia_id"]

    def get_queryset(self):
        return MovimientoInventario.objects.select_related("producto", "creado_por").order_by("-fecha", "-id")

    def get(self, request, *args, **kwargs):
        if not can_view_inventario(request.user):
            return _forbidden("No tienes permisos para consultar movimientos de inventario.")
        return super().get(request, *args, **kwargs)

    def post(self, request):
        if not can_manage_inventario(request.user):
            return _forbidden("No tienes permisos para registrar movimientos de inventario.")

        ser = MovimientoCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            movimiento = registrar_movimiento(usuario=request.user, **ser.validated_data)
        except InventarioError as exc:
            return _domain_error(exc)

        data = MovimientoInventarioSerializer(movimiento).data
        data["stock_actual"] = movimiento.producto.stock
        return Response(data, status=status.HTTP_201_CREATED)


class KardexProductoView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, producto_id: int):
        if not can_view_inventario(request.user):
            return _forbidden("No tienes permisos para consultar el kardex.")
        try:
            movimientos = historial(producto_id)
        except InventarioError as exc:
            return _domain_error(exc)

        producto = Producto.objects.get(pk=producto_id)
        return Response(
            {
                "producto": ProductoSerializer(producto).data,
                "stock_actual": producto.stock,
                "stock_segun_kardex": stock_segun_kardex(producto_id),
                "movimientos": MovimientoInventarioSerializer(movimientos, many=True).data,
            },
            status=status.HTTP_200_OK,
        )


def _export_resumen_xlsx(resumen: dict) -> HttpResponse:
    wb = Workbook()
    ws = wb.active
    ws.title = "Resumen"
    ws.append(
        [
            "Producto",
            "Stock actual",
            "Producido",
            "Comprado",
            "Vendido",
            "Yapas",
            "Dañado",
            "Caducado",
            "Reemplazos",
            "Consumo interno",
            "Merma",
            "Merma %",
        ]
    )
    for row in resumen["productos"]:
        ws.append(
            [
                row["nombre"],
                float(row["stock_actual"]),
                float(row["producido"]),
                float(row["comprado"]),
                float(row["vendido"]),
                float(row["yapas"]),
                float(row["daniado"]),
                float(row["caducado"]),
                float(row["reemplazos"]),
                float(row["consumo_interno"]),
                float(row["merma"]),
                float(row["merma_pct"]),
            ]
        )

    totales = wb.create_sheet("Totales por motivo")
    totales.append(["Motivo", "Cantidad"])
    for motivo, cantidad in resumen["totales_por_motivo"].items():
        totales.append([motivo, float(cantidad)])

    out = BytesIO()
    wb.save(out)
    out.seek(0)
    date_from, date_to = resumen["range"]["from"], resumen["range"]["to"]
    response = HttpResponse(
        out.getvalue(),
        content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
    response["Content-Disposition"] = f'attachment; filename="resumen_logistico_{date_from}_{date_to}.xlsx"'
    return response


class ResumenLogisticoView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not can_view_inventario(request.user):
            return _forbidden("No tienes permisos para consultar el resumen logístico.")

        desde, hasta = resolver_rango(
            fecha=request.GET.get("fecha"),
            desde=request.GET.get("desde"),
            hasta=request.GET.get("hasta"),
        )
        resumen = resumen_logistico(desde, hasta, _parse_int(request.GET.get("producto_id")))
        if (request.GET.get("export") or "").strip().lower() == "xlsx":
            return _export_resumen_xlsx(resumen)
        return Response(resumen, status=status.HTTP_200_OK)


class RecetaCosteoView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, producto_id: int):
        if not can_view_recetas(request.user):
            return _forbidden("No tienes permisos para consultar costeos.")

        ser = CosteoQuerySerializer(data=request.GET)
        ser.is_valid(raise_exception=True)
        params = ser.validated_data
        try:
            resultado = calcular_costeo_receta(
                producto_id,
                cantidad_producida=params["cantidad"],
                extras_pct=params["extras_pct"],
                mano_obra_pct=params["mano_obra_pct"],
            )
        except InventarioError as exc:
            return _domain_error(exc)
        return Response(resultado.as_dict(), status=status.HTTP_200_OK)


class RecetaLineasView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, producto_id: int):
        if not can_manage_produccion(request.user):
            return _forbidden("No tienes permisos para editar recetas.")

        ser = RecetaLineasCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            lineas = crear_lineas_receta(producto_id, ser.validated_data["lineas"], usuario=request.user)
        except InventarioError as exc:
            return _domain_error(exc)
        return Response(
            {"producto_final_id": producto_id, "lineas": [linea.id for linea in lineas]},
            status=status.HTTP_201_CREATED,
        )


class ProduccionRegistrarView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        if not can_manage_produccion(request.user):
            return _forbidden("No tienes permisos para registrar producción.")
        try:
            resumen = registrar_produccion(request.data, usuario=request.user)
        except InventarioError as exc:
            return _domain_error(exc)
        return Response({"detail": "Producción registrada.", "resumen": resumen}, status=status.HTTP_201_CREATED)


class PedidoItemView(APIView):
    permission_classes = [IsAuthenticated]

    def patch(self, request, item_id: int):
        if not can_manage_ventas(request.user):
            return _forbidden("No tienes permisos para editar pedidos.")

        ser = PedidoItemUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        try:
            item = actualizar_item_pedido(item_id, dict(ser.validated_data), usuario=request.user)
        except InventarioError as exc:
            return _domain_error(exc)
        return Response(PedidoItemSerializer(item).data, status=status.HTTP_200_OK)


class PedidoItemPagoView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, item_id: int):
        if not can_manage_ventas(request.user):
            return _forbidden("No tienes permisos para registrar pagos.")
        try:
            item, ingreso = marcar_item_pagado(item_id, usuario=request.user)
        except InventarioError as exc:
            return _domain_error(exc)
        return Response(
            {"item": PedidoItemSerializer(item).data, "ingreso": IngresoSerializer(ingreso).data},
            status=status.HTTP_200_OK,
        )

    def delete(self, request, item_id: int):
        if not can_manage_ventas(request.user):
            return _forbidden("No tienes permisos para revertir pagos.")
        try:
            item = desmarcar_item_pagado(item_id, usuario=request.user)
        except InventarioError as exc:
            return _domain_error(exc)
        return Response({"item": PedidoItemSerializer(item).data}, status=status.HTTP_200_OK)


class PedidoItemCierreView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, item_id: int):
        if not can_manage_ventas(request.user):
            return _forbidden("No tienes permisos para cerrar logística.")

        ser = CierreLogisticaSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            resultado = cerrar_logistica_item(item_id, dict(ser.validated_data), usuario=request.user)
        except InventarioError as exc:
            return _domain_error(exc)
        return Response(
            {
                "item": PedidoItemSerializer(resultado["item"]).data,
                "deltas": resultado["deltas"],
                "movimientos": MovimientoInventarioSerializer(resultado["movimientos"], many=True).data,
            },
            status=status.HTTP_200_OK,
        )


class PedidoItemEntregaView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, item_id: int):
        if not can_manage_ventas(request.user):
            return _forbidden("No tienes permisos para registrar entregas.")
        try:
            resultado = marcar_item_entregado(item_id, usuario=request.user)
        except InventarioError as exc:
            return _domain_error(exc)
        movimiento = resultado["movimiento"]
        return Response(
            {
                "item": PedidoItemSerializer(resultado["item"]).data,
                "consignacion": resultado["consignacion"],
                "movimiento": MovimientoInventarioSerializer(movimiento).data if movimiento else None,
            },
            status=status.HTTP_200_OK,
        )
