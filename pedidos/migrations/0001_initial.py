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
            name="Cliente",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("nombre", models.CharField(max_length=180)),
                ("nombre_normalizado", models.CharField(db_index=True, editable=False, max_length=180)),
                ("telefono", models.CharField(blank=True, default="", max_length=40)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("direccion", models.CharField(blank=True, default="", max_length=250)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["nombre"]},
        ),
        migrations.CreateModel(
            name="Pedido",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "estatus",
                    models.CharField(
                        choices=[("pendiente", "Pendiente"), ("entregado", "Entregado"), ("pagado", "Pagado")],
                        default="pendiente",
                        max_length=20,
                    ),
                ),
                ("es_consignacion", models.BooleanField(default=False)),
                ("notas", models.TextField(blank=True, default="")),
                ("fecha", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "cliente",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="pedidos", to="pedidos.cliente"),
                ),
            ],
            options={"ordering": ["-fecha", "-id"]},
        ),
        migrations.CreateModel(
            name="PedidoItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("cantidad", models.DecimalField(decimal_places=6, max_digits=18)),
                ("precio", models.DecimalField(decimal_places=2, max_digits=12)),
                ("cantidad_vendida", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("cantidad_daniada", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("cantidad_yapa", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("cantidad_reemplazo", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("entregado_en", models.DateTimeField(blank=True, null=True)),
                ("pagado_en", models.DateTimeField(blank=True, null=True)),
                (
                    "pedido",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="pedidos.pedido"),
                ),
                (
                    "producto",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items_pedido",
                        to="inventario.producto",
                    ),
                ),
            ],
            options={
                "verbose_name": "Ítem de pedido",
                "verbose_name_plural": "Ítems de pedido",
                "ordering": ["pedido", "id"],
            },
        ),
    ]
