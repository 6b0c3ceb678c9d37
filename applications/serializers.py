from django.db.models import Q
from rest_framework import serializers

from applications.models import Application, ApplicationProduct, Machinery, PracticalRecipe, PracticalRecipeProduct
from farms.models import Field, FieldCrop, HarvestYear
from inventory.models import Product


def _request_user(serializer):
    request = serializer.context.get("request")
    return getattr(request, "user", None)


class FarmScopedPrimaryKeyField(serializers.PrimaryKeyRelatedField):
    """Primary key field limited to rows of the caller's farm."""

    def __init__(self, *args, farm_lookup="farm_id", **kwargs):
        self.farm_lookup = farm_lookup
        super().__init__(*args, **kwargs)

    def get_queryset(self):
        queryset = super().get_queryset()
        user = _request_user(self)
        if user is None or user.is_superuser:
            return queryset
        return queryset.filter(**{self.farm_lookup: getattr(user, "farm_id", None)})


class MachinerySerializer(serializers.ModelSerializer):
    is_shared = serializers.SerializerMethodField()

    class Meta:
        model = Machinery
        fields = ["id", "user", "name", "type", "tank_capacity_liters", "is_shared", "created_at", "updated_at"]
        read_only_fields = ["id", "user", "created_at", "updated_at"]

    def get_is_shared(self, obj):
        return obj.user_id is None

    def validate_tank_capacity_liters(self, value):
        if value <= 0:
            raise serializers.ValidationError("Tank capacity must be greater than zero.")
        return value


class MachineryPrimaryKeyField(serializers.PrimaryKeyRelatedField):
    def get_queryset(self):
        user = _request_user(self)
        queryset = Machinery.objects.all()
        if user is None or user.is_superuser:
            return queryset
        return queryset.filter(Q(user=user) | Q(user__isnull=True))


class ApplicationProductSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_unit = serializers.CharField(source="product.unit", read_only=True)

    class Meta:
        model = ApplicationProduct
        fields = ["id", "product", "product_name", "product_unit", "dosage", "dosage_unit", "quantity_used", "cost"]
        read_only_fields = fields


class LineItemInputSerializer(serializers.Serializer):
    product = FarmScopedPrimaryKeyField(queryset=Product.objects.all())
    dosage = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)
    dosage_unit = serializers.ChoiceField(choices=ApplicationProduct.DosageUnit.choices, required=False)
    quantity_used = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    cost = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)

    def validate(self, attrs):
        if attrs.get("dosage") is None and attrs.get("quantity_used") is None:
            raise serializers.ValidationError("Provide a dosage or a quantity.")
        return attrs


class ApplicationSerializer(serializers.ModelSerializer):
    field = FarmScopedPrimaryKeyField(queryset=Field.objects.all())
    harvest_year = FarmScopedPrimaryKeyField(queryset=HarvestYear.objects.all())
    field_crop = FarmScopedPrimaryKeyField(
        queryset=FieldCrop.objects.all(), farm_lookup="field__farm_id", required=False, allow_null=True
    )
    # Accepts legacy spellings; the service layer normalizes.
    status = serializers.CharField(required=False)
    line_items = LineItemInputSerializer(many=True, write_only=True, required=False)
    products = ApplicationProductSerializer(source="line_items", many=True, read_only=True)
    field_name = serializers.CharField(source="field.name", read_only=True)
    harvest_year_name = serializers.CharField(source="harvest_year.name", read_only=True)
    effective_area = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Application
        fields = [
            "id",
            "name",
            "field",
            "field_name",
            "harvest_year",
            "harvest_year_name",
            "field_crop",
            "application_date",
            "status",
            "is_partial",
            "partial_area",
            "effective_area",
            "notes",
            "line_items",
            "products",
            "completed_at",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "completed_at", "created_by", "created_at", "updated_at"]

    def validate_line_items(self, value):
        product_ids = [item["product"].id for item in value]
        if len(product_ids) != len(set(product_ids)):
            raise serializers.ValidationError("Each product can appear only once per application.")
        return value

    def validate(self, attrs):
        field = attrs.get("field", getattr(self.instance, "field", None))
        field_crop = attrs.get("field_crop")
        if field_crop is not None and field is not None and field_crop.field_id != field.id:
            raise serializers.ValidationError({"field_crop": "Field crop must belong to the selected field."})
        return attrs


class PracticalRecipeProductSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_unit = serializers.CharField(source="product.unit", read_only=True)

    class Meta:
        model = PracticalRecipeProduct
        fields = ["id", "product", "product_name", "product_unit", "dosage", "quantity_in_recipe", "remaining_quantity"]
        read_only_fields = fields


class PracticalRecipeSerializer(serializers.ModelSerializer):
    machinery = MachineryPrimaryKeyField(required=False, allow_null=True)
    machinery_name = serializers.CharField(source="machinery.name", read_only=True)
    product_ids = serializers.ListField(child=serializers.UUIDField(), write_only=True, required=False)
    items = PracticalRecipeProductSerializer(many=True, read_only=True)
    liters_of_solution = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    area_hectares = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    multiplier = serializers.DecimalField(max_digits=8, decimal_places=2, required=False)

    class Meta:
        model = PracticalRecipe
        fields = [
            "id",
            "application",
            "machinery",
            "machinery_name",
            "capacity_used_percent",
            "application_rate_liters_per_hectare",
            "calculation_mode",
            "liters_of_solution",
            "area_hectares",
            "multiplier",
            "notes",
            "product_ids",
            "items",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "application", "capacity_used_percent", "created_by", "created_at", "updated_at"]

    def validate(self, attrs):
        machinery_sent = "machinery" in attrs
        if (self.instance is None or machinery_sent) and attrs.get("machinery") is None:
            raise serializers.ValidationError({"machinery": "Select the machinery for the recipe."})
        return attrs


class RecipePreviewSerializer(serializers.Serializer):
    machinery = MachineryPrimaryKeyField(required=False, allow_null=True)
    calculation_mode = serializers.ChoiceField(
        choices=PracticalRecipe.CalculationMode.choices, default=PracticalRecipe.CalculationMode.LITERS
    )
    application_rate_liters_per_hectare = serializers.DecimalField(max_digits=10, decimal_places=2)
    liters_of_solution = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    area_hectares = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    multiplier = serializers.DecimalField(max_digits=8, decimal_places=2, default=1)
    product_ids = serializers.ListField(child=serializers.UUIDField(), required=False)


class RecipeLineResultSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    product_name = serializers.CharField()
    unit = serializers.CharField()
    dosage = serializers.DecimalField(max_digits=12, decimal_places=2)
    dosage_unit = serializers.CharField()
    total_quantity = serializers.DecimalField(max_digits=14, decimal_places=2)
    previously_allocated = serializers.DecimalField(max_digits=14, decimal_places=2)
    quantity_in_recipe = serializers.DecimalField(max_digits=14, decimal_places=2)
    remaining_quantity = serializers.DecimalField(max_digits=14, decimal_places=2)


class RecipeCalculationSerializer(serializers.Serializer):
    calculation_mode = serializers.CharField()
    application_rate_liters_per_hectare = serializers.DecimalField(max_digits=10, decimal_places=2)
    liters_of_solution = serializers.DecimalField(max_digits=12, decimal_places=2)
    area_hectares = serializers.DecimalField(max_digits=12, decimal_places=2)
    multiplier = serializers.DecimalField(max_digits=8, decimal_places=2)
    area_in_recipe = serializers.DecimalField(max_digits=14, decimal_places=2)
    recommended_tank_loads = serializers.DecimalField(max_digits=12, decimal_places=2)
    remaining_area = serializers.DecimalField(max_digits=12, decimal_places=2)
    tank_overflow = serializers.BooleanField()
    items = RecipeLineResultSerializer(many=True)
    warnings = serializers.ListField(child=serializers.CharField())


class LoadingProductSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    product_name = serializers.CharField()
    unit = serializers.CharField()
    dosage = serializers.DecimalField(max_digits=12, decimal_places=2)
    dosage_unit = serializers.CharField()
    quantity_used = serializers.DecimalField(max_digits=14, decimal_places=2)


class LoadingSummarySerializer(serializers.Serializer):
    application_id = serializers.UUIDField(source="application.id")
    application_name = serializers.CharField(source="application.name")
    total_tank_loads = serializers.DecimalField(max_digits=12, decimal_places=2)
    remaining_area = serializers.DecimalField(max_digits=12, decimal_places=2)
    products = LoadingProductSerializer(many=True)
    recipes = PracticalRecipeSerializer(many=True)
