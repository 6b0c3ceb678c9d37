import uuid

from django.conf import settings
from django.db import models

from core.models import Farm


class Product(models.Model):
    class Unit(models.TextChoices):
        LITERS = "L", "Liters"
        MILLILITERS = "mL", "Milliliters"
        KILOGRAMS = "kg", "Kilograms"
        GRAMS = "g", "Grams"
        UNITS = "un", "Units"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    farm = models.ForeignKey(Farm, on_delete=models.PROTECT, related_name="products")
    name = models.CharField(max_length=255)
    company = models.CharField(max_length=255, blank=True, default="")
    active_principle = models.CharField(max_length=255, blank=True, default="")
    unit = models.CharField(max_length=8, choices=Unit, default=Unit.LITERS)
    description = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("farm", "name")
        indexes = [
            models.Index(fields=["farm", "is_active"], name="product_farm_active_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.unit})"


class StockMovement(models.Model):
    """Append-only stock ledger row; quantities are stored positive and signed by type."""

    class MovementType(models.TextChoices):
        ENTRY = "entry", "Entry"
        EXIT = "exit", "Exit"

    class ReferenceType(models.TextChoices):
        ENTRY = "entry", "Entry"
        APPLICATION = "application", "Application"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    farm = models.ForeignKey(Farm, on_delete=models.PROTECT, related_name="stock_movements")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="movements")
    movement_type = models.CharField(max_length=8, choices=MovementType)
    quantity = models.DecimalField(max_digits=14, decimal_places=2)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    reference_id = models.UUIDField(null=True, blank=True)
    reference_type = models.CharField(max_length=16, choices=ReferenceType, null=True, blank=True)
    movement_date = models.DateField()
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["product", "movement_type"], name="stockmove_product_type_idx"),
            models.Index(fields=["farm", "movement_date"], name="stockmove_farm_date_idx"),
            models.Index(fields=["reference_id", "reference_type"], name="stockmove_reference_idx"),
        ]
