from django.contrib import admin

from .models import Cliente, Pedido, PedidoItem


class PedidoItemInline(admin.TabularInline):
    model = PedidoItem
    extra = 0
    autocomplete_fields = ("producto",)
    readonly_fields = ("entregado_en", "pagado_en")


@admin.register(Cliente)
class ClienteAdmin(admin.ModelAdmin):
    list_display = ("nombre", "telefono", "email")
    search_fields = ("nombre", "nombre_normalizado", "telefono", "email")


@admin.register(Pedido)
class PedidoAdmin(admin.ModelAdmin):
    list_display = ("id", "cliente", "fecha", "estatus", "es_consignacion")
    list_filter = ("estatus", "es_consignacion")
    search_fields = ("cliente__nombre", "notas")
    inlines = [PedidoItemInline]
