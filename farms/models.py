import uuid

from django.db import models

from core.models import Farm


class HarvestYear(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    farm = models.ForeignKey(Farm, on_delete=models.PROTECT, related_name="harvest_years")
    name = models.CharField(max_length=64)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("farm", "name")
        indexes = [
            models.Index(fields=["farm", "is_active"], name="harvestyear_farm_active_idx"),
        ]

    def __str__(self):
        return self.name


class Field(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    farm = models.ForeignKey(Farm, on_delete=models.PROTECT, related_name="fields")
    name = models.CharField(max_length=255)
    area_hectares = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("farm", "name")
        indexes = [
            models.Index(fields=["farm", "is_active"], name="field_farm_active_idx"),
        ]

    def __str__(self):
        return self.name


class FieldCrop(models.Model):
    """The culture planned for a field in a given harvest year."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    field = models.ForeignKey(Field, on_delete=models.CASCADE, related_name="crops")
    harvest_year = models.ForeignKey(HarvestYear, on_delete=models.PROTECT, related_name="field_crops")
    culture = models.CharField(max_length=128)
    cycle = models.CharField(max_length=64, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["field", "harvest_year"], name="fieldcrop_field_year_idx"),
        ]

    def __str__(self):
        return f"{self.culture} ({self.cycle})" if self.cycle else self.culture
