from django.conf import settings
from django.db import models
from django.utils import timezone


class _MovimientoFinanciero(models.Model):
    ESTATUS_PENDIENTE = "pending"
    ESTATUS_PAGADO = "paid"
    ESTATUS_CHOICES = [
        (ESTATUS_PENDIENTE, "Pendiente"),
        (ESTATUS_PAGADO, "Pagado"),
    ]

    fecha = models.DateField(default=timezone.localdate)
    monto = models.DecimalField(max_digits=12, decimal_places=2)
    concepto = models.CharField(max_length=255)
    categoria = models.CharField(max_length=60)
    referencia_tipo = models.CharField(max_length=40, blank=True, default="")
    referencia_id = models.PositiveBigIntegerField(null=True, blank=True)
    estatus = models.CharField(max_length=10, choices=ESTATUS_CHOICES, default=ESTATUS_PAGADO)
    contraparte = models.CharField(max_length=180, blank=True, default="")
    creado_por = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    creado_en = models.DateTimeField(default=timezone.now)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-fecha", "-id"]

    def __str__(self) -> str:
        return f"{self.fecha} · {self.concepto} · ${self.monto}"


class Ingreso(_MovimientoFinanciero):
    CATEGORIA_VENTA = "Venta"
    REFERENCIA_ORDER_ITEM = "order_item"

    class Meta(_MovimientoFinanciero.Meta):
        verbose_name = "Ingreso"
        verbose_name_plural = "Ingresos"
        constraints = [
            models.UniqueConstraint(fields=["referencia_tipo", "referencia_id"], name="uniq_ingreso_referencia"),
        ]


class Egreso(_MovimientoFinanciero):
    CATEGORIA_COMPRAS = "Compras"
    REFERENCIA_ENTRADA_INVENTARIO = "inventory_entry"

    class Meta(_MovimientoFinanciero.Meta):
        verbose_name = "Egreso"
        verbose_name_plural = "Egresos"
