from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from inventario.exceptions import ConsistenciaError
from inventario.utils.normalizacion import normalizar_nombre


class Producto(models.Model):
    UNIDAD_PIEZA = "UNIDAD"
    UNIDAD_GRAMO = "GRAMO"
    UNIDAD_CHOICES = [
        (UNIDAD_PIEZA, "Unidad"),
        (UNIDAD_GRAMO, "Gramos"),
    ]

    TIPO_MATERIA_PRIMA = "raw"
    TIPO_INTERMEDIO = "intermediate"
    TIPO_FINAL = "final"
    TIPO_CHOICES = [
        (TIPO_MATERIA_PRIMA, "Materia prima"),
        (TIPO_INTERMEDIO, "Intermedio"),
        (TIPO_FINAL, "Producto final"),
    ]

    nombre = models.CharField(max_length=250)
    nombre_normalizado = models.CharField(max_length=260, db_index=True, editable=False)
    tipo = models.CharField(max_length=20, choices=TIPO_CHOICES, default=TIPO_MATERIA_PRIMA, db_index=True)
    unidad = models.CharField(max_length=10, choices=UNIDAD_CHOICES, default=UNIDAD_GRAMO)
    # gramos de una pieza; se usa para convertir entre gramos y unidades
    peso_estandar_g = models.DecimalField(max_digits=18, decimal_places=6, null=True, blank=True)
    # tamaño del empaque (g o piezas) y precio del empaque
    peso_neto = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    precio = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    # si es > 0 reemplaza la suma de gramos de la receta como rendimiento
    rendimiento_g = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    stock = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    activo = models.BooleanField(default=True)
    creado_en = models.DateTimeField(default=timezone.now)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Producto"
        verbose_name_plural = "Productos"
        ordering = ["nombre"]

    def save(self, *args, **kwargs):
        self.nombre_normalizado = normalizar_nombre(self.nombre)
        super().save(*args, **kwargs)

    @property
    def es_unitario(self) -> bool:
        return self.unidad == self.UNIDAD_PIEZA

    @property
    def es_intermedio(self) -> bool:
        return self.tipo == self.TIPO_INTERMEDIO

    @property
    def unidad_label(self) -> str:
        return "unidad" if self.es_unitario else "gramos"

    def __str__(self) -> str:
        return self.nombre


class MovimientoInventario(models.Model):
    TIPO_ENTRADA = "entrada"
    TIPO_SALIDA = "salida"
    TIPO_PRODUCCION = "produccion"
    TIPO_AJUSTE = "ajuste"
    TIPO_CHOICES = [
        (TIPO_ENTRADA, "Entrada"),
        (TIPO_SALIDA, "Salida"),
        (TIPO_PRODUCCION, "Producción"),
        (TIPO_AJUSTE, "Ajuste"),
    ]

    MOTIVO_ENTRADA_PRODUCCION = "ENTRADA_PRODUCCION"
    MOTIVO_ENTRADA_COMPRA = "ENTRADA_COMPRA"
    MOTIVO_SALIDA_VENTA = "SALIDA_VENTA"
    MOTIVO_SALIDA_YAPA = "SALIDA_YAPA"
    MOTIVO_SALIDA_DANIADO = "SALIDA_DANIADO"
    MOTIVO_SALIDA_CADUCADO = "SALIDA_CADUCADO"
    MOTIVO_SALIDA_CONSUMO_INTERNO = "SALIDA_CONSUMO_INTERNO"
    MOTIVO_SALIDA_REEMPLAZO = "SALIDA_REEMPLAZO"
    MOTIVO_AJUSTE_ENTRADA = "AJUSTE_ENTRADA"
    MOTIVO_AJUSTE_SALIDA = "AJUSTE_SALIDA"
    MOTIVO_CHOICES = [
        (MOTIVO_ENTRADA_PRODUCCION, "Entrada por producción"),
        (MOTIVO_ENTRADA_COMPRA, "Entrada por compra"),
        (MOTIVO_SALIDA_VENTA, "Salida por venta"),
        (MOTIVO_SALIDA_YAPA, "Salida por yapa"),
        (MOTIVO_SALIDA_DANIADO, "Salida por dañado"),
        (MOTIVO_SALIDA_CADUCADO, "Salida por caducado"),
        (MOTIVO_SALIDA_CONSUMO_INTERNO, "Salida por consumo interno"),
        (MOTIVO_SALIDA_REEMPLAZO, "Salida por reemplazo"),
        (MOTIVO_AJUSTE_ENTRADA, "Ajuste de entrada"),
        (MOTIVO_AJUSTE_SALIDA, "Ajuste de salida"),
    ]

    # Vocabulario cerrado: qué motivos acepta cada tipo.
    MOTIVOS_POR_TIPO = {
        TIPO_ENTRADA: frozenset({MOTIVO_ENTRADA_PRODUCCION, MOTIVO_ENTRADA_COMPRA}),
        TIPO_PRODUCCION: frozenset({MOTIVO_ENTRADA_PRODUCCION}),
        TIPO_SALIDA: frozenset(
            {
                MOTIVO_SALIDA_VENTA,
                MOTIVO_SALIDA_YAPA,
                MOTIVO_SALIDA_DANIADO,
                MOTIVO_SALIDA_CADUCADO,
                MOTIVO_SALIDA_CONSUMO_INTERNO,
                MOTIVO_SALIDA_REEMPLAZO,
            }
        ),
        TIPO_AJUSTE: frozenset({MOTIVO_AJUSTE_ENTRADA, MOTIVO_AJUSTE_SALIDA}),
    }

    REFERENCIA_PRODUCCION = "produccion"
    REFERENCIA_ORDER_ITEM = "order_item"

    fecha = models.DateTimeField(default=timezone.now, db_index=True)
    producto = models.ForeignKey(Producto, on_delete=models.PROTECT, related_name="movimientos")
    tipo = models.CharField(max_length=20, choices=TIPO_CHOICES)
    motivo = models.CharField(max_length=30, choices=MOTIVO_CHOICES, db_index=True)
    # siempre en la unidad de stock del producto y siempre >= 0
    cantidad = models.DecimalField(max_digits=18, decimal_places=6)
    descripcion = models.CharField(max_length=255, blank=True, default="")
    precio = models.DecimalField(max_digits=18, decimal_places=6, null=True, blank=True)
    referencia_tipo = models.CharField(max_length=40, blank=True, default="")
    referencia_id = models.CharField(max_length=64, blank=True, default="")
    creado_por = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)

    class Meta:
        verbose_name = "Movimiento de inventario"
        verbose_name_plural = "Movimientos de inventario"
        ordering = ["-fecha", "-id"]
        indexes = [models.Index(fields=["producto", "fecha"], name="mov_producto_fecha_idx")]

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ConsistenciaError("Los movimientos de inventario no se editan; registra un movimiento nuevo.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ConsistenciaError("Los movimientos de inventario no se eliminan; registra un movimiento nuevo.")

    @property
    def signo(self) -> Decimal:
        if self.tipo == self.TIPO_SALIDA:
            return Decimal("-1")
        return Decimal("1")

    def __str__(self) -> str:
        return f"{self.motivo} {self.producto.nombre} {self.cantidad}"
