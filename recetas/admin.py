from django.contrib import admin

from .models import LineaReceta


@admin.register(LineaReceta)
class LineaRecetaAdmin(admin.ModelAdmin):
    list_display = ("producto_final", "producto_insumo", "cantidad", "cantidad_en_gramos", "tipo_item")
    list_filter = ("tipo_item", "cantidad_en_gramos")
    search_fields = ("producto_final__nombre", "producto_insumo__nombre")
    autocomplete_fields = ("producto_final", "producto_insumo")
