import csv

from django.http import HttpResponse
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import create_audit_log_from_request
from common.mixins import RECORDS_PERMISSION_MAP, FarmScopedMutationMixin
from common.permissions import RoleCapabilityPermission
from core.views import scoped_queryset_for_user
from inventory.models import Product, StockMovement
from inventory.serializers import (
    ProductSerializer,
    StockBalanceRowSerializer,
    StockEntrySerializer,
    StockMovementSerializer,
)
from inventory.services import ENTRY_FILTER, compute_stock_balances, record_stock_entry


class ProductViewSet(FarmScopedMutationMixin, viewsets.ModelViewSet):
    queryset = Product.objects.all()
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = RECORDS_PERMISSION_MAP
    audit_entity = "product"

    def get_queryset(self):
        qs = scoped_queryset_for_user(super().get_queryset(), self.request.user)
        search = self.request.query_params.get("search")
        if search:
            qs = qs.filter(name__icontains=search)
        return qs.order_by("name")


class StockEntryViewSet(viewsets.ModelViewSet):
    """Purchases into stock. Exits written by applications are not editable here."""

    queryset = StockMovement.objects.select_related("product")
    serializer_class = StockEntrySerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "farm.view",
        "retrieve": "farm.view",
        "create": "stock.adjust",
        "update": "stock.adjust",
        "partial_update": "stock.adjust",
        "destroy": "stock.adjust",
    }

    def get_queryset(self):
        qs = scoped_queryset_for_user(super().get_queryset(), self.request.user)
        qs = qs.filter(ENTRY_FILTER).exclude(reference_type=StockMovement.ReferenceType.APPLICATION)
        product_id = self.request.query_params.get("product")
        if product_id:
            qs = qs.filter(product_id=product_id)
        return qs.order_by("-movement_date", "-created_at")

    def _audit(self, *, action, movement, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity="stock_movement",
            entity_id=movement.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            farm=movement.farm,
        )

    def perform_create(self, serializer):
        if not getattr(self.request.user, "farm_id", None) and not self.request.user.is_superuser:
            raise ValidationError("Authenticated user must belong to a farm to record stock entries.")

        data = serializer.validated_data
        movement = record_stock_entry(
            product=data["product"],
            quantity=data["quantity"],
            unit_price=data["unit_price"],
            movement_date=data.get("movement_date"),
            notes=data.get("notes", ""),
            user=self.request.user,
        )
        serializer.instance = movement
        self._audit(action="stock_entry.create", movement=movement, after_snapshot=serializer.data)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        if "product" in serializer.validated_data and serializer.validated_data["product"].id != serializer.instance.product_id:
            raise ValidationError({"product": "The product of a stock entry cannot be changed."})
        movement = serializer.save()
        self._audit(
            action="stock_entry.update",
            movement=movement,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(movement).data,
        )

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        farm = instance.farm
        movement_id = instance.id
        instance.delete()
        create_audit_log_from_request(
            self.request,
            action="stock_entry.delete",
            entity="stock_movement",
            entity_id=movement_id,
            before_snapshot=before_snapshot,
            farm=farm,
        )


class StockMovementViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StockMovement.objects.select_related("product")
    serializer_class = StockMovementSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "farm.view", "retrieve": "farm.view"}

    def get_queryset(self):
        qs = scoped_queryset_for_user(super().get_queryset(), self.request.user)
        product_id = self.request.query_params.get("product")
        reference_id = self.request.query_params.get("reference_id")
        if product_id:
            qs = qs.filter(product_id=product_id)
        if reference_id:
            qs = qs.filter(reference_id=reference_id)
        return qs.order_by("-movement_date", "-created_at")


def _balance_farm_id(request):
    farm_id = getattr(request.user, "farm_id", None)
    if request.user.is_superuser and request.query_params.get("farm"):
        farm_id = request.query_params.get("farm")
    if not farm_id:
        raise ValidationError("Authenticated user must belong to a farm.")
    return farm_id


class StockBalanceView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "farm.view"}

    def get(self, request):
        report = compute_stock_balances(_balance_farm_id(request))
        return Response(
            {
                "generated_at": report["generated_at"],
                "results": StockBalanceRowSerializer(report["rows"], many=True).data,
            },
            status=status.HTTP_200_OK,
        )


class StockBalanceExportView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "farm.view"}

    def get(self, request):
        report = compute_stock_balances(_balance_farm_id(request))
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="stock-balances.csv"'

        writer = csv.writer(response)
        writer.writerow(
            ["product", "unit", "company", "entries", "exits", "balance", "average_price", "reserved", "predicted_quantity"]
        )
        for row in report["rows"]:
            writer.writerow(
                [
                    row["product_name"],
                    row["unit"],
                    row["company"],
                    row["total_entries"],
                    row["total_exits"],
                    row["balance"],
                    row["average_price"],
                    row["reserved"],
                    row["predicted_quantity"],
                ]
            )
        return response
