import json
import logging

from django.core.serializers.json import DjangoJSONEncoder

from core.models import AuditLog

logger = logging.getLogger(__name__)


def get_request_id(request):
    return getattr(request, "request_id", None) or request.headers.get("X-Request-ID")


def snapshot(value):
    """Round-trip through JSON so Decimals, UUIDs and dates store as plain values."""
    if value is None:
        return None
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def _request_actor(request):
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        return user
    return None


def create_audit_log(
    *,
    actor=None,
    farm=None,
    action,
    entity,
    entity_id=None,
    before_snapshot=None,
    after_snapshot=None,
    request_id=None,
):
    # Rows without an explicit farm (machinery) land in the actor's farm.
    if farm is None and actor is not None:
        farm = getattr(actor, "farm", None)

    log = AuditLog.objects.create(
        actor=actor,
        farm=farm,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before_snapshot=snapshot(before_snapshot),
        after_snapshot=snapshot(after_snapshot),
        request_id=request_id,
    )
    logger.debug(
        "audit_recorded action=%s entity=%s",
        action,
        entity,
        extra={"request_id": request_id, "farm_id": str(farm.id) if farm is not None else None},
    )
    return log


def create_audit_log_from_request(
    request,
    *,
    action,
    entity,
    entity_id=None,
    before_snapshot=None,
    after_snapshot=None,
    farm=None,
):
    return create_audit_log(
        actor=_request_actor(request),
        farm=farm,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before_snapshot=before_snapshot,
        after_snapshot=after_snapshot,
        request_id=get_request_id(request),
    )
