from rest_framework import serializers

from farms.models import Field, FieldCrop, HarvestYear


def _request_farm_id(serializer):
    request = serializer.context.get("request")
    return getattr(getattr(request, "user", None), "farm_id", None)


class HarvestYearSerializer(serializers.ModelSerializer):
    class Meta:
        model = HarvestYear
        fields = ["id", "farm", "name", "start_date", "end_date", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "farm", "created_at", "updated_at"]

    def validate(self, attrs):
        start_date = attrs.get("start_date", getattr(self.instance, "start_date", None))
        end_date = attrs.get("end_date", getattr(self.instance, "end_date", None))
        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError({"end_date": "End date cannot be before start date."})
        return attrs


class FieldSerializer(serializers.ModelSerializer):
    class Meta:
        model = Field
        fields = ["id", "farm", "name", "area_hectares", "description", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "farm", "created_at", "updated_at"]

    def validate_area_hectares(self, value):
        if value <= 0:
            raise serializers.ValidationError("Area must be greater than zero.")
        return value


class FieldCropSerializer(serializers.ModelSerializer):
    field_name = serializers.CharField(source="field.name", read_only=True)
    harvest_year_name = serializers.CharField(source="harvest_year.name", read_only=True)

    class Meta:
        model = FieldCrop
        fields = [
            "id",
            "field",
            "field_name",
            "harvest_year",
            "harvest_year_name",
            "culture",
            "cycle",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate(self, attrs):
        farm_id = _request_farm_id(self)
        field = attrs.get("field", getattr(self.instance, "field", None))
        harvest_year = attrs.get("harvest_year", getattr(self.instance, "harvest_year", None))
        if farm_id and field and field.farm_id != farm_id:
            raise serializers.ValidationError({"field": "Field must belong to your farm."})
        if farm_id and harvest_year and harvest_year.farm_id != farm_id:
            raise serializers.ValidationError({"harvest_year": "Harvest year must belong to your farm."})
        return attrs
