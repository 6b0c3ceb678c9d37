import uuid

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("farms", "0001_initial"),
        ("inventory", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Machinery",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                (
                    "type",
                    models.CharField(
                        choices=[("sprayer", "Sprayer"), ("drone", "Drone"), ("aircraft", "Aircraft")],
                        default="sprayer",
                        max_length=16,
                    ),
                ),
                (
                    "tank_capacity_liters",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="machineries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "machineries",
                "indexes": [models.Index(fields=["user"], name="machinery_user_idx")],
            },
        ),
        migrations.CreateModel(
            name="Application",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("application_date", models.DateField()),
                (
                    "status",
                    models.CharField(
                        choices=[("PLANNED", "Planned"), ("DONE", "Done"), ("CANCELED", "Canceled")],
                        default="PLANNED",
                        max_length=16,
                    ),
                ),
                ("is_partial", models.BooleanField(default=False)),
                ("partial_area", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "field",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="applications",
                        to="farms.field",
                    ),
                ),
                (
                    "field_crop",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="applications",
                        to="farms.fieldcrop",
                    ),
                ),
                (
                    "harvest_year",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="applications",
                        to="farms.harvestyear",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["field", "application_date"], name="application_field_date_idx"),
                    models.Index(fields=["harvest_year", "status"], name="application_year_status_idx"),
                    models.Index(fields=["status"], name="application_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ApplicationProduct",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("dosage", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "dosage_unit",
                    models.CharField(
                        choices=[("L/ha", "L/ha"), ("mL/ha", "mL/ha"), ("kg/ha", "kg/ha")],
                        default="L/ha",
                        max_length=8,
                    ),
                ),
                ("quantity_used", models.DecimalField(decimal_places=2, max_digits=14)),
                ("cost", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "application",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="line_items",
                        to="applications.application",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="application_lines",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=["application", "product"], name="uniq_application_product"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PracticalRecipe",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("capacity_used_percent", models.PositiveSmallIntegerField(default=100)),
                ("application_rate_liters_per_hectare", models.DecimalField(decimal_places=2, max_digits=10)),
                (
                    "calculation_mode",
                    models.CharField(
                        choices=[("liters", "Liters to area"), ("area", "Area to liters")],
                        default="liters",
                        max_length=8,
                    ),
                ),
                ("liters_of_solution", models.DecimalField(decimal_places=2, max_digits=12)),
                ("area_hectares", models.DecimalField(decimal_places=2, max_digits=12)),
                ("multiplier", models.DecimalField(decimal_places=2, default=1, max_digits=8)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "application",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="recipes",
                        to="applications.application",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "machinery",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="recipes",
                        to="applications.machinery",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["application", "created_at"], name="recipe_application_idx")],
            },
        ),
        migrations.CreateModel(
            name="PracticalRecipeProduct",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("dosage", models.DecimalField(decimal_places=2, max_digits=12)),
                ("quantity_in_recipe", models.DecimalField(decimal_places=2, max_digits=14)),
                ("remaining_quantity", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "practical_recipe",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="applications.practicalrecipe",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="recipe_lines",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=["practical_recipe", "product"], name="uniq_recipe_product"),
                ],
            },
        ),
    ]
