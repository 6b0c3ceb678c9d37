import uuid

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from applications import calculations
from farms.models import Field, FieldCrop, HarvestYear
from inventory.models import Product


class Machinery(models.Model):
    class Type(models.TextChoices):
        SPRAYER = "sprayer", "Sprayer"
        DRONE = "drone", "Drone"
        AIRCRAFT = "aircraft", "Aircraft"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Null owner marks the shared fleet, visible to every user.
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, null=True, blank=True, related_name="machineries")
    name = models.CharField(max_length=255)
    type = models.CharField(max_length=16, choices=Type, default=Type.SPRAYER)
    tank_capacity_liters = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "machineries"
        indexes = [
            models.Index(fields=["user"], name="machinery_user_idx"),
        ]

    def __str__(self):
        return self.name


class Application(models.Model):
    class Status(models.TextChoices):
        PLANNED = "PLANNED", "Planned"
        DONE = "DONE", "Done"
        CANCELED = "CANCELED", "Canceled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    field = models.ForeignKey(Field, on_delete=models.PROTECT, related_name="applications")
    harvest_year = models.ForeignKey(HarvestYear, on_delete=models.PROTECT, related_name="applications")
    field_crop = models.ForeignKey(FieldCrop, on_delete=models.SET_NULL, null=True, blank=True, related_name="applications")
    application_date = models.DateField()
    status = models.CharField(max_length=16, choices=Status, default=Status.PLANNED)
    is_partial = models.BooleanField(default=False)
    partial_area = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    completed_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["field", "application_date"], name="application_field_date_idx"),
            models.Index(fields=["harvest_year", "status"], name="application_year_status_idx"),
            models.Index(fields=["status"], name="application_status_idx"),
        ]

    def __str__(self):
        return self.name

    @property
    def effective_area(self):
        """Partial area when the application covers part of the field, else the whole field."""
        return calculations.effective_area(self.field.area_hectares, self.is_partial, self.partial_area)


class ApplicationProduct(models.Model):
    class DosageUnit(models.TextChoices):
        LITERS_PER_HECTARE = "L/ha", "L/ha"
        MILLILITERS_PER_HECTARE = "mL/ha", "mL/ha"
        KILOGRAMS_PER_HECTARE = "kg/ha", "kg/ha"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    application = models.ForeignKey(Application, on_delete=models.CASCADE, related_name="line_items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="application_lines")
    dosage = models.DecimalField(max_digits=12, decimal_places=2)
    dosage_unit = models.CharField(max_length=8, choices=DosageUnit, default=DosageUnit.LITERS_PER_HECTARE)
    quantity_used = models.DecimalField(max_digits=14, decimal_places=2)
    cost = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["application", "product"], name="uniq_application_product"),
        ]


class PracticalRecipe(models.Model):
    class CalculationMode(models.TextChoices):
        LITERS = "liters", "Liters to area"
        AREA = "area", "Area to liters"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    application = models.ForeignKey(Application, on_delete=models.CASCADE, related_name="recipes")
    machinery = models.ForeignKey(Machinery, on_delete=models.SET_NULL, null=True, blank=True, related_name="recipes")
    capacity_used_percent = models.PositiveSmallIntegerField(default=100)
    application_rate_liters_per_hectare = models.DecimalField(max_digits=10, decimal_places=2)
    calculation_mode = models.CharField(max_length=8, choices=CalculationMode, default=CalculationMode.LITERS)
    liters_of_solution = models.DecimalField(max_digits=12, decimal_places=2)
    area_hectares = models.DecimalField(max_digits=12, decimal_places=2)
    multiplier = models.DecimalField(max_digits=8, decimal_places=2, default=1)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["application", "created_at"], name="recipe_application_idx"),
        ]


class PracticalRecipeProduct(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    practical_recipe = models.ForeignKey(PracticalRecipe, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="recipe_lines")
    dosage = models.DecimalField(max_digits=12, decimal_places=2)
    quantity_in_recipe = models.DecimalField(max_digits=14, decimal_places=2)
    remaining_quantity = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["practical_recipe", "product"], name="uniq_recipe_product"),
        ]
