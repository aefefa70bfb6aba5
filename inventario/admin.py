from django.contrib import admin

from .models import MovimientoInventario, Producto


@admin.register(Producto)
class ProductoAdmin(admin.ModelAdmin):
    list_display = ("nombre", "tipo", "unidad", "peso_estandar_g", "precio", "peso_neto", "stock", "activo")
    list_filter = ("tipo", "unidad", "activo")
    search_fields = ("nombre", "nombre_normalizado")
    # el stock solo cambia por movimientos
    readonly_fields = ("stock", "nombre_normalizado", "creado_en", "actualizado_en")


@admin.register(MovimientoInventario)
class MovimientoInventarioAdmin(admin.ModelAdmin):
    list_display = ("fecha", "producto", "tipo", "motivo", "cantidad", "referencia_tipo", "referencia_id", "creado_por")
    list_filter = ("tipo", "motivo")
    search_fields = ("producto__nombre", "descripcion", "referencia_id")
    date_hierarchy = "fecha"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
