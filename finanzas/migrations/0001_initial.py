from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


def _campos_movimiento_financiero():
    return [
        ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
        ("fecha", models.DateField(default=django.utils.timezone.localdate)),
        ("monto", models.DecimalField(decimal_places=2, max_digits=12)),
        ("concepto", models.CharField(max_length=255)),
        ("categoria", models.CharField(max_length=60)),
        ("referencia_tipo", models.CharField(blank=True, default="", max_length=40)),
        ("referencia_id", models.PositiveBigIntegerField(blank=True, null=True)),
        (
            "estatus",
            models.CharField(choices=[("pending", "Pendiente"), ("paid", "Pagado")], default="paid", max_length=10),
        ),
        ("contraparte", models.CharField(blank=True, default="", max_length=180)),
        ("creado_en", models.DateTimeField(default=django.utils.timezone.now)),
        ("actualizado_en", models.DateTimeField(auto_now=True)),
        (
            "creado_por",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to=settings.AUTH_USER_MODEL,
            ),
        ),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Ingreso",
            fields=_campos_movimiento_financiero(),
            options={
                "verbose_name": "Ingreso",
                "verbose_name_plural": "Ingresos",
                "ordering": ["-fecha", "-id"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="Egreso",
            fields=_campos_movimiento_financiero(),
            options={
                "verbose_name": "Egreso",
                "verbose_name_plural": "Egresos",
                "ordering": ["-fecha", "-id"],
                "abstract": False,
            },
        ),
        migrations.AddConstraint(
            model_name="ingreso",
            constraint=models.UniqueConstraint(fields=("referencia_tipo", "referencia_id"), name="uniq_ingreso_referencia"),
        ),
    ]
