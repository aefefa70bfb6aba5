from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils import timezone

from inventario.models import Producto
from inventario.utils.normalizacion import normalizar_nombre


class Cliente(models.Model):
    nombre = models.CharField(max_length=180)
    nombre_normalizado = models.CharField(max_length=180, db_index=True, editable=False)
    telefono = models.CharField(max_length=40, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    direccion = models.CharField(max_length=250, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["nombre"]

    def save(self, *args, **kwargs):
        self.nombre_normalizado = normalizar_nombre(self.nombre or "")
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.nombre


class Pedido(models.Model):
    ESTATUS_PENDIENTE = "pendiente"
    ESTATUS_ENTREGADO = "entregado"
    ESTATUS_PAGADO = "pagado"
    ESTATUS_CHOICES = [
        (ESTATUS_PENDIENTE, "Pendiente"),
        (ESTATUS_ENTREGADO, "Entregado"),
        (ESTATUS_PAGADO, "Pagado"),
    ]

    cliente = models.ForeignKey(Cliente, on_delete=models.PROTECT, related_name="pedidos")
    estatus = models.CharField(max_length=20, choices=ESTATUS_CHOICES, default=ESTATUS_PENDIENTE)
    # consignación (panadería): la salida real de stock se registra en el cierre
    es_consignacion = models.BooleanField(default=False)
    notas = models.TextField(blank=True, default="")
    fecha = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-fecha", "-id"]

    def __str__(self) -> str:
        return f"Pedido {self.id} · {self.cliente}"


class PedidoItem(models.Model):
    pedido = models.ForeignKey(Pedido, on_delete=models.CASCADE, related_name="items")
    producto = models.ForeignKey(Producto, on_delete=models.PROTECT, related_name="items_pedido")
    cantidad = models.DecimalField(max_digits=18, decimal_places=6)
    precio = models.DecimalField(max_digits=12, decimal_places=2)
    cantidad_vendida = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    cantidad_daniada = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    cantidad_yapa = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    cantidad_reemplazo = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    entregado_en = models.DateTimeField(null=True, blank=True)
    pagado_en = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Ítem de pedido"
        verbose_name_plural = "Ítems de pedido"
        ordering = ["pedido", "id"]

    @property
    def total_salidas(self) -> Decimal:
        return (
            Decimal(self.cantidad_vendida or 0)
            + Decimal(self.cantidad_daniada or 0)
            + Decimal(self.cantidad_yapa or 0)
            + Decimal(self.cantidad_reemplazo or 0)
        )

    def __str__(self) -> str:
        return f"Ítem {self.id} · {self.producto} x{self.cantidad}"
