import logging

from django.db.models import Prefetch, Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from applications.models import Application, ApplicationProduct, Machinery, PracticalRecipe
from applications import recipes as recipe_service
from applications.serializers import (
    ApplicationSerializer,
    LoadingSummarySerializer,
    MachinerySerializer,
    PracticalRecipeSerializer,
    RecipeCalculationSerializer,
    RecipePreviewSerializer,
)
from applications.services import (
    STATUS_ALIASES,
    complete_application,
    create_application,
    delete_application,
    normalize_status,
    update_application,
)
from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from core.views import scoped_queryset_for_user

logger = logging.getLogger(__name__)


def _status_filter(value):
    canonical = normalize_status(value)
    spellings = {alias for alias, status_value in STATUS_ALIASES.items() if status_value == canonical}
    condition = Q()
    for spelling in spellings | {canonical.value}:
        condition |= Q(status__iexact=spelling)
    return condition


class ApplicationViewSet(viewsets.ModelViewSet):
    queryset = Application.objects.select_related("field", "harvest_year", "field_crop").prefetch_related(
        Prefetch("line_items", queryset=ApplicationProduct.objects.select_related("product").order_by("created_at"))
    )
    serializer_class = ApplicationSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "farm.view",
        "retrieve": "farm.view",
        "create": "application.create",
        "update": "application.update",
        "partial_update": "application.update",
        "destroy": "application.delete",
        "complete": "application.complete",
        "loading": "farm.view",
        "recipes": "farm.view",
        "create_recipe": "recipe.create",
        "preview_recipe": "farm.view",
    }

    def get_queryset(self):
        qs = scoped_queryset_for_user(super().get_queryset(), self.request.user, farm_lookup="field__farm_id")
        status_param = self.request.query_params.get("status")
        harvest_year_id = self.request.query_params.get("harvest_year")
        field_id = self.request.query_params.get("field")
        if status_param:
            qs = qs.filter(_status_filter(status_param))
        if harvest_year_id:
            qs = qs.filter(harvest_year_id=harvest_year_id)
        if field_id:
            qs = qs.filter(field_id=field_id)
        return qs.order_by("-application_date", "-created_at")

    def _audit(self, *, action, application, before_snapshot=None, after_snapshot=None, entity="application", entity_id=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity=entity,
            entity_id=entity_id or application.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            farm=application.field.farm,
        )

    def perform_create(self, serializer):
        data = dict(serializer.validated_data)
        line_items = data.pop("line_items", [])
        application = create_application(data=data, line_items=line_items, user=self.request.user)
        serializer.instance = application
        self._audit(action="application.create", application=application, after_snapshot=serializer.data)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        data = dict(serializer.validated_data)
        line_items = data.pop("line_items", None)
        application = update_application(serializer.instance, data=data, line_items=line_items, user=self.request.user)
        application = self.get_queryset().get(id=application.id)
        serializer.instance = application
        self._audit(
            action="application.update",
            application=application,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(application).data,
        )

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        application_id = instance.id
        farm = instance.field.farm
        delete_application(instance)
        create_audit_log_from_request(
            self.request,
            action="application.delete",
            entity="application",
            entity_id=application_id,
            before_snapshot=before_snapshot,
            farm=farm,
        )

    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):
        application = self.get_object()
        before_snapshot = self.get_serializer(application).data
        complete_application(application, user=request.user)
        application = self.get_queryset().get(id=application.id)
        payload = self.get_serializer(application).data
        self._audit(action="application.complete", application=application, before_snapshot=before_snapshot, after_snapshot=payload)
        return Response(payload, status=status.HTTP_200_OK)

    @action(detail=True, methods=["get"], url_path="loading")
    def loading(self, request, pk=None):
        application = self.get_object()
        summary = recipe_service.loading_summary(application)
        return Response(LoadingSummarySerializer(summary, context=self.get_serializer_context()).data)

    @action(detail=True, methods=["get"], url_path="recipes")
    def recipes(self, request, pk=None):
        application = self.get_object()
        recipes = application.recipes.select_related("machinery").prefetch_related("items__product").order_by("-created_at")
        return Response(PracticalRecipeSerializer(recipes, many=True, context=self.get_serializer_context()).data)

    @recipes.mapping.post
    def create_recipe(self, request, pk=None):
        application = self.get_object()
        serializer = PracticalRecipeSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        recipe = recipe_service.create_recipe(application, data=serializer.validated_data, user=request.user)
        payload = PracticalRecipeSerializer(recipe, context=self.get_serializer_context()).data
        self._audit(
            action="recipe.create",
            application=application,
            entity="practical_recipe",
            entity_id=recipe.id,
            after_snapshot=payload,
        )
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="recipes/preview")
    def preview_recipe(self, request, pk=None):
        application = self.get_object()
        serializer = RecipePreviewSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = recipe_service.calculate_recipe(
            application,
            machinery=data.get("machinery"),
            calculation_mode=data["calculation_mode"],
            application_rate=data["application_rate_liters_per_hectare"],
            liters_of_solution=data.get("liters_of_solution"),
            area_hectares=data.get("area_hectares"),
            multiplier=data["multiplier"],
            product_ids=data.get("product_ids"),
        )
        return Response(RecipeCalculationSerializer(result).data)


class PracticalRecipeViewSet(viewsets.ModelViewSet):
    """Recipes are created through ``/applications/{id}/recipes/``."""

    http_method_names = ["get", "put", "patch", "delete", "head", "options"]
    queryset = PracticalRecipe.objects.select_related("application__field__farm", "machinery").prefetch_related("items__product")
    serializer_class = PracticalRecipeSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "farm.view",
        "retrieve": "farm.view",
        "update": "recipe.update",
        "partial_update": "recipe.update",
        "destroy": "recipe.delete",
    }

    def get_queryset(self):
        qs = scoped_queryset_for_user(super().get_queryset(), self.request.user, farm_lookup="application__field__farm_id")
        application_id = self.request.query_params.get("application")
        if application_id:
            qs = qs.filter(application_id=application_id)
        return qs.order_by("-created_at")

    def _audit(self, *, action, recipe_id, farm, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity="practical_recipe",
            entity_id=recipe_id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            farm=farm,
        )

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        recipe = recipe_service.update_recipe(serializer.instance, data=dict(serializer.validated_data), user=self.request.user)
        recipe = self.get_queryset().get(id=recipe.id)
        serializer.instance = recipe
        self._audit(
            action="recipe.update",
            recipe_id=recipe.id,
            farm=recipe.application.field.farm,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(recipe).data,
        )

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        recipe_id = instance.id
        farm = instance.application.field.farm
        recipe_service.delete_recipe(instance)
        self._audit(action="recipe.delete", recipe_id=recipe_id, farm=farm, before_snapshot=before_snapshot)


class MachineryViewSet(viewsets.ModelViewSet):
    queryset = Machinery.objects.all()
    serializer_class = MachinerySerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "farm.view",
        "retrieve": "farm.view",
        "create": "machinery.manage",
        "update": "machinery.manage",
        "partial_update": "machinery.manage",
        "destroy": "machinery.manage",
    }

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if not user.is_superuser:
            qs = qs.filter(Q(user=user) | Q(user__isnull=True))
        machinery_type = self.request.query_params.get("type")
        if machinery_type:
            qs = qs.filter(type=machinery_type)
        return qs.order_by("name")

    def _ensure_owner(self, machinery):
        if self.request.user.is_superuser:
            return
        if machinery.user_id != self.request.user.id:
            logger.warning(
                "shared_machinery_change_denied machinery=%s user=%s",
                machinery.id,
                getattr(self.request.user, "username", "anonymous"),
            )
            raise PermissionDenied("Shared machinery can only be changed by an administrator.")

    def perform_create(self, serializer):
        machinery = serializer.save(user=self.request.user)
        create_audit_log_from_request(
            self.request,
            action="machinery.create",
            entity="machinery",
            entity_id=machinery.id,
            after_snapshot=self.get_serializer(machinery).data,
        )

    def perform_update(self, serializer):
        self._ensure_owner(serializer.instance)
        before_snapshot = self.get_serializer(serializer.instance).data
        machinery = serializer.save()
        create_audit_log_from_request(
            self.request,
            action="machinery.update",
            entity="machinery",
            entity_id=machinery.id,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(machinery).data,
        )

    def perform_destroy(self, instance):
        self._ensure_owner(instance)
        before_snapshot = self.get_serializer(instance).data
        machinery_id = instance.id
        instance.delete()
        create_audit_log_from_request(
            self.request,
            action="machinery.delete",
            entity="machinery",
            entity_id=machinery_id,
            before_snapshot=before_snapshot,
        )
