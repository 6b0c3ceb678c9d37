from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated

from common.mixins import RECORDS_PERMISSION_MAP, FarmScopedMutationMixin
from common.permissions import RoleCapabilityPermission
from core.views import scoped_queryset_for_user
from farms.models import Field, FieldCrop, HarvestYear
from farms.serializers import FieldCropSerializer, FieldSerializer, HarvestYearSerializer


class HarvestYearViewSet(FarmScopedMutationMixin, viewsets.ModelViewSet):
    queryset = HarvestYear.objects.all()
    serializer_class = HarvestYearSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = RECORDS_PERMISSION_MAP
    audit_entity = "harvest_year"

    def get_queryset(self):
        qs = scoped_queryset_for_user(super().get_queryset(), self.request.user)
        is_active = self.request.query_params.get("is_active")
        if is_active is not None:
            qs = qs.filter(is_active=is_active.lower() in {"1", "true", "yes"})
        return qs.order_by("-start_date", "name")


class FieldViewSet(FarmScopedMutationMixin, viewsets.ModelViewSet):
    queryset = Field.objects.all()
    serializer_class = FieldSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = RECORDS_PERMISSION_MAP
    audit_entity = "field"

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user).order_by("name")


class FieldCropViewSet(FarmScopedMutationMixin, viewsets.ModelViewSet):
    queryset = FieldCrop.objects.select_related("field", "harvest_year")
    serializer_class = FieldCropSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = RECORDS_PERMISSION_MAP
    audit_entity = "field_crop"
    farm_field = None

    def get_queryset(self):
        qs = scoped_queryset_for_user(super().get_queryset(), self.request.user, farm_lookup="field__farm_id")
        field_id = self.request.query_params.get("field")
        harvest_year_id = self.request.query_params.get("harvest_year")
        if field_id:
            qs = qs.filter(field_id=field_id)
        if harvest_year_id:
            qs = qs.filter(harvest_year_id=harvest_year_id)
        return qs.order_by("field__name", "culture")
