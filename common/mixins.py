from django.db.models import ProtectedError
from rest_framework.exceptions import ValidationError

from common.audit import create_audit_log_from_request

RECORDS_PERMISSION_MAP = {
    "list": "farm.view",
    "retrieve": "farm.view",
    "create": "records.manage",
    "update": "records.manage",
    "partial_update": "records.manage",
    "destroy": "records.manage",
}


class FarmScopedMutationMixin:
    """Stamps new rows with the caller's farm and audits every write.

    Views set ``audit_entity``; ``farm_field`` names the farm relation on the
    model (``None`` for models scoped through a parent).
    """

    audit_entity = None
    farm_field = "farm"

    def _farm_for(self, instance):
        if self.farm_field is None:
            return getattr(self.request.user, "farm", None)
        return getattr(instance, self.farm_field, None)

    def _audit(self, *, action, instance, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity=self.audit_entity,
            entity_id=instance.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            farm=self._farm_for(instance),
        )

    def perform_create(self, serializer):
        user = self.request.user
        if not getattr(user, "farm_id", None):
            raise ValidationError("Authenticated user must belong to a farm to create records.")

        if self.farm_field is None:
            instance = serializer.save()
        else:
            instance = serializer.save(**{f"{self.farm_field}_id": user.farm_id})
        self._audit(action=f"{self.audit_entity}.create", instance=instance, after_snapshot=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        instance = serializer.save()
        self._audit(
            action=f"{self.audit_entity}.update",
            instance=instance,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(instance).data,
        )

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        farm = self._farm_for(instance)
        try:
            instance.delete()
        except ProtectedError as exc:
            raise ValidationError(f"This {self.audit_entity} is still referenced by other records.") from exc
        create_audit_log_from_request(
            self.request,
            action=f"{self.audit_entity}.delete",
            entity=self.audit_entity,
            entity_id=before_snapshot.get("id"),
            before_snapshot=before_snapshot,
            farm=farm,
        )
