from django.contrib import admin

from .models import Egreso, Ingreso


@admin.register(Ingreso)
class IngresoAdmin(admin.ModelAdmin):
    list_display = ("fecha", "concepto", "categoria", "monto", "estatus", "referencia_tipo", "referencia_id")
    list_filter = ("categoria", "estatus")
    search_fields = ("concepto", "contraparte")
    date_hierarchy = "fecha"


@admin.register(Egreso)
class EgresoAdmin(admin.ModelAdmin):
    list_display = ("fecha", "concepto", "categoria", "monto", "estatus", "referencia_tipo", "referencia_id")
    list_filter = ("categoria", "estatus")
    search_fields = ("concepto", "contraparte")
    date_hierarchy = "fecha"
