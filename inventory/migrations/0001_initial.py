import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("core", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("company", models.CharField(blank=True, default="", max_length=255)),
                ("active_principle", models.CharField(blank=True, default="", max_length=255)),
                (
                    "unit",
                    models.CharField(
                        choices=[
                            ("L", "Liters"),
                            ("mL", "Milliliters"),
                            ("kg", "Kilograms"),
                            ("g", "Grams"),
                            ("un", "Units"),
                        ],
                        default="L",
                        max_length=8,
                    ),
                ),
                ("description", models.TextField(blank=True, default="")),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "farm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="core.farm",
                    ),
                ),
            ],
            options={
                "unique_together": {("farm", "name")},
                "indexes": [models.Index(fields=["farm", "is_active"], name="product_farm_active_idx")],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "movement_type",
                    models.CharField(choices=[("entry", "Entry"), ("exit", "Exit")], max_length=8),
                ),
                ("quantity", models.DecimalField(decimal_places=2, max_digits=14)),
                ("unit_price", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("reference_id", models.UUIDField(blank=True, null=True)),
                (
                    "reference_type",
                    models.CharField(
                        blank=True,
                        choices=[("entry", "Entry"), ("application", "Application")],
                        max_length=16,
                        null=True,
                    ),
                ),
                ("movement_date", models.DateField()),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "farm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_movements",
                        to="core.farm",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["product", "movement_type"], name="stockmove_product_type_idx"),
                    models.Index(fields=["farm", "movement_date"], name="stockmove_farm_date_idx"),
                    models.Index(fields=["reference_id", "reference_type"], name="stockmove_reference_idx"),
                ],
            },
        ),
    ]
