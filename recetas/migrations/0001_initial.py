from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("inventario", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="LineaReceta",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("cantidad", models.DecimalField(decimal_places=6, max_digits=18)),
                ("cantidad_en_gramos", models.BooleanField(default=True)),
                (
                    "tipo_item",
                    models.CharField(
                        choices=[("insumo", "Insumo (costo por gramo)"), ("material", "Material (costo por unidad)")],
                        default="insumo",
                        max_length=10,
                    ),
                ),
                ("creado_en", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "producto_final",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lineas_receta",
                        to="inventario.producto",
                    ),
                ),
                (
                    "producto_insumo",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="usos_en_recetas",
                        to="inventario.producto",
                    ),
                ),
            ],
            options={
                "verbose_name": "Línea de receta",
                "verbose_name_plural": "Líneas de receta",
                "ordering": ["producto_final", "id"],
            },
        ),
    ]
