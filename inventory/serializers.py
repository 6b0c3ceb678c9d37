from rest_framework import serializers

from common.utils import round2
from inventory.models import Product, StockMovement


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = [
            "id",
            "farm",
            "name",
            "company",
            "active_principle",
            "unit",
            "description",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "farm", "created_at", "updated_at"]

    def validate_name(self, value):
        request = self.context.get("request")
        farm_id = getattr(getattr(request, "user", None), "farm_id", None)
        if farm_id is None:
            return value

        duplicate = Product.objects.filter(farm_id=farm_id, name__iexact=value.strip())
        if self.instance is not None:
            duplicate = duplicate.exclude(id=self.instance.id)
        if duplicate.exists():
            raise serializers.ValidationError("A product with this name already exists in your farm.")
        return value.strip()


class StockMovementSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_unit = serializers.CharField(source="product.unit", read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            "id",
            "farm",
            "product",
            "product_name",
            "product_unit",
            "movement_type",
            "quantity",
            "unit_price",
            "reference_id",
            "reference_type",
            "movement_date",
            "notes",
            "created_by",
            "created_at",
        ]
        read_only_fields = fields


class StockEntrySerializer(serializers.ModelSerializer):
    """Purchases recorded as ``entry`` movements."""

    product_name = serializers.CharField(source="product.name", read_only=True)
    total_value = serializers.SerializerMethodField()

    class Meta:
        model = StockMovement
        fields = [
            "id",
            "product",
            "product_name",
            "movement_type",
            "quantity",
            "unit_price",
            "total_value",
            "reference_type",
            "movement_date",
            "notes",
            "created_at",
        ]
        read_only_fields = ["id", "movement_type", "reference_type", "created_at"]
        extra_kwargs = {"unit_price": {"required": True, "allow_null": False}}

    def get_total_value(self, obj):
        return str(round2(obj.quantity * (obj.unit_price or 0)))

    def validate_product(self, value):
        request = self.context.get("request")
        user = getattr(request, "user", None)
        if user is not None and not user.is_superuser and value.farm_id != getattr(user, "farm_id", None):
            raise serializers.ValidationError("Product must belong to your farm.")
        return value

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError("Quantity must be greater than zero.")
        return value

    def validate_unit_price(self, value):
        if value < 0:
            raise serializers.ValidationError("Unit price cannot be negative.")
        return value


class StockBalanceRowSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    product_name = serializers.CharField()
    unit = serializers.CharField()
    company = serializers.CharField()
    total_entries = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_exits = serializers.DecimalField(max_digits=14, decimal_places=2)
    balance = serializers.DecimalField(max_digits=14, decimal_places=2)
    average_price = serializers.DecimalField(max_digits=14, decimal_places=2)
    reserved = serializers.DecimalField(max_digits=14, decimal_places=2)
    predicted_quantity = serializers.DecimalField(max_digits=14, decimal_places=2)
