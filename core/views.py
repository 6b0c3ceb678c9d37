import csv
import logging

from django.http import HttpResponse
from django.db import connections
from django.utils.dateparse import parse_datetime
from rest_framework import generics, status, viewsets
from rest_framework.decorators import api_view, permission_classes
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from rest_framework_simplejwt.views import TokenObtainPairView

from core.models import AuditLog, Farm
from core.serializers import (
    AuditLogSerializer,
    EmailOrUsernameTokenObtainPairSerializer,
    FarmSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)


def scoped_queryset_for_user(queryset, user, farm_lookup="farm_id"):
    if not user.is_authenticated:
        return queryset.none()

    if user.is_superuser:
        return queryset

    if getattr(user, "farm_id", None):
        return queryset.filter(**{farm_lookup: user.farm_id})

    return queryset.none()


class EmailOrUsernameTokenObtainPairView(TokenObtainPairView):
    serializer_class = EmailOrUsernameTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class MeView(generics.RetrieveAPIView):
    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated]

    def get_object(self):
        return self.request.user


class FarmViewSet(viewsets.ModelViewSet):
    queryset = Farm.objects.all()
    serializer_class = FarmSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "farm.view",
        "retrieve": "farm.view",
        "create": "farm.manage",
        "update": "farm.manage",
        "partial_update": "farm.manage",
        "destroy": "farm.manage",
    }

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user, farm_lookup="id").order_by("name")

    def perform_create(self, serializer):
        farm = serializer.save()
        user = self.request.user
        if not user.farm_id:
            user.farm = farm
            user.save(update_fields=["farm"])
        create_audit_log_from_request(
            self.request,
            action="farm.create",
            entity="farm",
            entity_id=farm.id,
            after_snapshot=self.get_serializer(farm).data,
            farm=farm,
        )

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        farm = serializer.save()
        create_audit_log_from_request(
            self.request,
            action="farm.update",
            entity="farm",
            entity_id=farm.id,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(farm).data,
            farm=farm,
        )


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.select_related("actor", "farm")
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "audit.view", "retrieve": "audit.view", "export": "audit.view"}

    def get_queryset(self):
        qs = self.queryset.order_by("-created_at")
        user = self.request.user

        if not user.is_superuser and getattr(user, "farm_id", None):
            qs = qs.filter(farm_id=user.farm_id)
        elif not user.is_superuser:
            qs = qs.none()

        start_date = self.request.query_params.get("start_date")
        end_date = self.request.query_params.get("end_date")
        actor_id = self.request.query_params.get("actor_id")
        action = self.request.query_params.get("action")
        entity = self.request.query_params.get("entity")
        entity_id = self.request.query_params.get("entity_id")

        if start_date:
            dt = parse_datetime(start_date)
            if dt:
                qs = qs.filter(created_at__gte=dt)
        if end_date:
            dt = parse_datetime(end_date)
            if dt:
                qs = qs.filter(created_at__lte=dt)
        if actor_id:
            qs = qs.filter(actor_id=actor_id)
        if action:
            qs = qs.filter(action=action)
        if entity:
            qs = qs.filter(entity=entity)
        if entity_id:
            qs = qs.filter(entity_id=entity_id)

        return qs

    @action(detail=False, methods=["get"], url_path="export")
    def export(self, request):
        logs = self.get_queryset()
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="audit-logs.csv"'

        writer = csv.writer(response)
        writer.writerow(["id", "created_at", "actor", "farm", "action", "entity", "entity_id", "request_id"])
        for log in logs:
            writer.writerow(
                [
                    log.id,
                    log.created_at.isoformat(),
                    getattr(log.actor, "username", ""),
                    getattr(log.farm, "name", ""),
                    log.action,
                    log.entity,
                    log.entity_id,
                    log.request_id,
                ]
            )
        return response


@api_view(["GET"])
@permission_classes([AllowAny])
def healthz(request):
    return Response({"status": "ok", "request_id": getattr(request, "request_id", None)})


@api_view(["GET"])
@permission_classes([AllowAny])
def readyz(request):
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except Exception as exc:
        logger.exception("readiness_check_failed")
        return Response(
            {"status": "error", "request_id": getattr(request, "request_id", None), "detail": str(exc)},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return Response({"status": "ready", "request_id": getattr(request, "request_id", None)})
