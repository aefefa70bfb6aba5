from decimal import Decimal

from rest_framework import serializers

from finanzas.models import Ingreso
from inventario.models import MovimientoInventario, Producto
from pedidos.models import PedidoItem


class ProductoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Producto
        fields = [
            "id",
            "nombre",
            "tipo",
            "unidad",
            "peso_estandar_g",
            "peso_neto",
            "precio",
            "rendimiento_g",
            "stock",
            "activo",
        ]
        read_only_fields = fields


class MovimientoInventarioSerializer(serializers.ModelSerializer):
    producto_nombre = serializers.CharField(source="producto.nombre", read_only=True)
    creado_por = serializers.CharField(source="creado_por.username", read_only=True, default="")

    class Meta:
        model = MovimientoInventario
        fields = [
            "id",
            "fecha",
            "producto",
            "producto_nombre",
            "tipo",
            "motivo",
            "cantidad",
            "descripcion",
            "precio",
            "referencia_tipo",
            "referencia_id",
            "creado_por",
        ]
        read_only_fields = fields


class MovimientoCreateSerializer(serializers.Serializer):
    producto_id = serializers.IntegerField(min_value=1)
    tipo = serializers.CharField(max_length=20)
    # el par tipo/motivo se valida contra el vocabulario cerrado en el servicio
    motivo = serializers.CharField(max_length=30)
    cantidad = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=Decimal("0"))
    precio = serializers.DecimalField(
        max_digits=18,
        decimal_places=6,
        min_value=Decimal("0"),
        required=False,
        allow_null=True,
        default=None,
    )
    referencia_tipo = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    referencia_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    descripcion = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")

    def validate(self, attrs):
        attrs = super().validate(attrs)
        attrs["tipo"] = attrs["tipo"].strip().lower()
        attrs["motivo"] = attrs["motivo"].strip().upper()
        attrs["descripcion"] = (attrs.get("descripcion") or "").strip()
        return attrs


class CosteoQuerySerializer(serializers.Serializer):
    cantidad = serializers.DecimalField(max_digits=18, decimal_places=6, required=False, default=Decimal("0"))
    extras_pct = serializers.DecimalField(max_digits=9, decimal_places=4, required=False, default=Decimal("0"))
    mano_obra_pct = serializers.DecimalField(max_digits=9, decimal_places=4, required=False, default=Decimal("0"))


class LineaRecetaInputSerializer(serializers.Serializer):
    producto_insumo_id = serializers.IntegerField(min_value=1)
    cantidad = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=Decimal("0.000001"))
    cantidad_en_gramos = serializers.BooleanField(required=False, default=True)
    tipo_item = serializers.ChoiceField(choices=["insumo", "material"], required=False, default="insumo")


class RecetaLineasCreateSerializer(serializers.Serializer):
    lineas = LineaRecetaInputSerializer(many=True, allow_empty=False)


class FechaToggleField(serializers.Field):
    """Acepta ``true``/``"now"`` (ahora), ``null`` (limpiar) o una fecha ISO; el servicio la interpreta."""

    def to_internal_value(self, data):
        if data is None or data is True or isinstance(data, str):
            return data
        raise serializers.ValidationError("Valor de fecha inválido.")

    def to_representation(self, value):
        return value


class PedidoItemUpdateSerializer(serializers.Serializer):
    cantidad = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=Decimal("0"), required=False, allow_null=True)
    precio = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False, allow_null=True)
    cantidad_vendida = serializers.DecimalField(
        max_digits=18, decimal_places=6, min_value=Decimal("0"), required=False, allow_null=True
    )
    cantidad_daniada = serializers.DecimalField(
        max_digits=18, decimal_places=6, min_value=Decimal("0"), required=False, allow_null=True
    )
    cantidad_yapa = serializers.DecimalField(
        max_digits=18, decimal_places=6, min_value=Decimal("0"), required=False, allow_null=True
    )
    cantidad_reemplazo = serializers.DecimalField(
        max_digits=18, decimal_places=6, min_value=Decimal("0"), required=False, allow_null=True
    )
    pagado_en = FechaToggleField(required=False, allow_null=True)
    entregado_en = FechaToggleField(required=False, allow_null=True)


class CierreLogisticaSerializer(serializers.Serializer):
    cantidad_vendida = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=Decimal("0"), required=False)
    cantidad_daniada = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=Decimal("0"), required=False)
    cantidad_yapa = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=Decimal("0"), required=False)
    cantidad_reemplazo = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=Decimal("0"), required=False)


class PedidoItemSerializer(serializers.ModelSerializer):
    producto_nombre = serializers.CharField(source="producto.nombre", read_only=True)
    pedido_estatus = serializers.CharField(source="pedido.estatus", read_only=True)

    class Meta:
        model = PedidoItem
        fields = [
            "id",
            "pedido",
            "pedido_estatus",
            "producto",
            "producto_nombre",
            "cantidad",
            "precio",
            "cantidad_vendida",
            "cantidad_daniada",
            "cantidad_yapa",
            "cantidad_reemplazo",
            "entregado_en",
            "pagado_en",
        ]
        read_only_fields = fields


class IngresoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Ingreso
        fields = ["id", "fecha", "monto", "concepto", "categoria", "referencia_tipo", "referencia_id", "estatus"]
        read_only_fields = fields
