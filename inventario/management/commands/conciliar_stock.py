from django.core.management.base import BaseCommand
from django.db import transaction

from inventario.models import Producto
from inventario.reportes import stock_segun_kardex
from inventario.services import bloquear_productos, fijar_stock_absoluto
from inventario.utils.numeros import dec


class Command(BaseCommand):
    help = "Compara Producto.stock contra el kardex (reiniciando en cada ajuste) y reporta diferencias."

    def add_arguments(self, parser):
        parser.add_argument("--producto", type=int, help="Concilia solo este producto.")
        parser.add_argument(
            "--apply",
            action="store_true",
            help="Corrige el stock al valor del kardex con un ajuste. Sin esta bandera corre en dry-run.",
        )

    def handle(self, *args, **options):
        qs = Producto.objects.order_by("id")
        if options.get("producto"):
            qs = qs.filter(id=options["producto"])

        diferencias = []
        for producto_id, nombre, stock in qs.values_list("id", "nombre", "stock"):
            esperado = stock_segun_kardex(producto_id)
            if dec(stock) != esperado:
                diferencias.append((producto_id, nombre, dec(stock), esperado))

        self.stdout.write("Conciliación de stock contra kardex")
        self.stdout.write(f"  - productos revisados: {qs.count()}")
        self.stdout.write(f"  - con diferencia: {len(diferencias)}")
        for producto_id, nombre, stock, esperado in diferencias[:50]:
            self.stdout.write(f"    * [{producto_id}] {nombre}: stock {stock} / kardex {esperado}")

        if not diferencias:
            self.stdout.write(self.style.SUCCESS("Sin diferencias."))
            return
        if not options["apply"]:
            self.stdout.write("Dry-run: no se ajustó ningún producto. Usa --apply para confirmar.")
            return

        corregidos = 0
        for producto_id, nombre, _, _ in diferencias:
            with transaction.atomic():
                producto = bloquear_productos([producto_id])[producto_id]
                esperado = stock_segun_kardex(producto_id)
                fijar_stock_absoluto(
                    producto,
                    cantidad=max(esperado, dec(0)),
                    descripcion="Conciliación de stock contra kardex",
                )
                corregidos += 1

        self.stdout.write(self.style.SUCCESS(f"Productos ajustados: {corregidos}"))
