from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Producto",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("nombre", models.CharField(max_length=250)),
                ("nombre_normalizado", models.CharField(db_index=True, editable=False, max_length=260)),
                (
                    "tipo",
                    models.CharField(
                        choices=[("raw", "Materia prima"), ("intermediate", "Intermedio"), ("final", "Producto final")],
                        db_index=True,
                        default="raw",
                        max_length=20,
                    ),
                ),
                (
                    "unidad",
                    models.CharField(choices=[("UNIDAD", "Unidad"), ("GRAMO", "Gramos")], default="GRAMO", max_length=10),
                ),
                ("peso_estandar_g", models.DecimalField(blank=True, decimal_places=6, max_digits=18, null=True)),
                ("peso_neto", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("precio", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("rendimiento_g", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("stock", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("activo", models.BooleanField(default=True)),
                ("creado_en", models.DateTimeField(default=django.utils.timezone.now)),
                ("actualizado_en", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Producto",
                "verbose_name_plural": "Productos",
                "ordering": ["nombre"],
            },
        ),
        migrations.CreateModel(
            name="MovimientoInventario",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("fecha", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "tipo",
                    models.CharField(
                        choices=[
                            ("entrada", "Entrada"),
                            ("salida", "Salida"),
                            ("produccion", "Producción"),
                            ("ajuste", "Ajuste"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "motivo",
                    models.CharField(
                        choices=[
                            ("ENTRADA_PRODUCCION", "Entrada por producción"),
                            ("ENTRADA_COMPRA", "Entrada por compra"),
                            ("SALIDA_VENTA", "Salida por venta"),
                            ("SALIDA_YAPA", "Salida por yapa"),
                            ("SALIDA_DANIADO", "Salida por dañado"),
                            ("SALIDA_CADUCADO", "Salida por caducado"),
                            ("SALIDA_CONSUMO_INTERNO", "Salida por consumo interno"),
                            ("SALIDA_REEMPLAZO", "Salida por reemplazo"),
                            ("AJUSTE_ENTRADA", "Ajuste de entrada"),
                            ("AJUSTE_SALIDA", "Ajuste de salida"),
                        ],
                        db_index=True,
                        max_length=30,
                    ),
                ),
                ("cantidad", models.DecimalField(decimal_places=6, max_digits=18)),
                ("descripcion", models.CharField(blank=True, default="", max_length=255)),
                ("precio", models.DecimalField(blank=True, decimal_places=6, max_digits=18, null=True)),
                ("referencia_tipo", models.CharField(blank=True, default="", max_length=40)),
                ("referencia_id", models.CharField(blank=True, default="", max_length=64)),
                (
                    "creado_por",
                    models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL),
                ),
                (
                    "producto",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movimientos",
                        to="inventario.producto",
                    ),
                ),
            ],
            options={
                "verbose_name": "Movimiento de inventario",
                "verbose_name_plural": "Movimientos de inventario",
                "ordering": ["-fecha", "-id"],
                "indexes": [models.Index(fields=["producto", "fecha"], name="mov_producto_fecha_idx")],
            },
        ),
    ]
