from django.db import models
from django.utils import timezone

from inventario.models import Producto


class LineaReceta(models.Model):
    """Producir 1 unidad (o 1 g) de ``producto_final`` consume ``cantidad`` de ``producto_insumo``.

    ``cantidad`` va en gramos si ``cantidad_en_gramos``; si no, en la unidad
    nativa del insumo.
    """

    ITEM_INSUMO = "insumo"
    ITEM_MATERIAL = "material"
    ITEM_CHOICES = [
        (ITEM_INSUMO, "Insumo (costo por gramo)"),
        (ITEM_MATERIAL, "Material (costo por unidad)"),
    ]

    producto_final = models.ForeignKey(Producto, on_delete=models.CASCADE, related_name="lineas_receta")
    producto_insumo = models.ForeignKey(Producto, on_delete=models.PROTECT, related_name="usos_en_recetas")
    cantidad = models.DecimalField(max_digits=18, decimal_places=6)
    cantidad_en_gramos = models.BooleanField(default=True)
    tipo_item = models.CharField(max_length=10, choices=ITEM_CHOICES, default=ITEM_INSUMO)
    creado_en = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Línea de receta"
        verbose_name_plural = "Líneas de receta"
        ordering = ["producto_final", "id"]

    @property
    def es_material(self) -> bool:
        return self.tipo_item == self.ITEM_MATERIAL

    def __str__(self) -> str:
        return f"{self.producto_final.nombre}: {self.producto_insumo.nombre} {self.cantidad}"
