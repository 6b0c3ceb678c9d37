import logging

from django.utils import timezone
from rest_framework.exceptions import ValidationError

from applications import calculations
from applications.models import Application, ApplicationProduct, PracticalRecipeProduct
from common.db import atomic_write
from common.utils import ZERO, round2, to_decimal
from inventory.services import ensure_stock_available, estimate_line_cost, lock_products, record_application_exits

logger = logging.getLogger(__name__)

STATUS_ALIASES = {
    "planned": Application.Status.PLANNED,
    "completed": Application.Status.DONE,
    "done": Application.Status.DONE,
    "cancelled": Application.Status.CANCELED,
    "canceled": Application.Status.CANCELED,
}

ALLOWED_TRANSITIONS = {
    Application.Status.PLANNED: {Application.Status.PLANNED, Application.Status.DONE, Application.Status.CANCELED},
    Application.Status.DONE: {Application.Status.DONE},
    Application.Status.CANCELED: {Application.Status.CANCELED},
}

# Columns an update may touch; anything else in the payload is ignored.
APPLICATION_UPDATE_FIELDS = (
    "name",
    "harvest_year",
    "field",
    "field_crop",
    "application_date",
    "status",
    "notes",
    "is_partial",
    "partial_area",
)


def normalize_status(value):
    """Map any accepted spelling (``planned``, ``completed``, ``DONE``...) to the stored form."""
    status = STATUS_ALIASES.get(str(value or "").strip().lower())
    if status is None:
        raise ValidationError({"status": f"Unknown application status: {value!r}."})
    return status


def ensure_transition_allowed(current, new):
    if new not in ALLOWED_TRANSITIONS[current]:
        raise ValidationError(
            {"status": f"Cannot change status from {current.label.lower()} to {new.label.lower()}."}
        )


def validate_partial_area(field, is_partial, partial_area):
    if not is_partial:
        return
    partial_area = to_decimal(partial_area)
    if partial_area <= ZERO:
        raise ValidationError({"partial_area": "Partial area is required for a partial application."})
    if partial_area > to_decimal(field.area_hectares):
        raise ValidationError(
            {"partial_area": f"Partial area cannot exceed the field area ({round2(field.area_hectares)} ha)."}
        )


def build_line_items(items, area):
    """Turn validated line-item payloads into unsaved ``ApplicationProduct`` rows.

    A missing quantity is derived from the dosage and vice versa; a missing
    cost is estimated from the average entry price.
    """
    lines = []
    for item in items:
        dosage = item.get("dosage")
        quantity_used = item.get("quantity_used")
        if dosage is None and quantity_used is None:
            raise ValidationError({"line_items": f"Dosage or quantity is required for {item['product'].name}."})
        if quantity_used is None:
            quantity_used = calculations.quantity_from_dosage(dosage, area)
        if dosage is None:
            if to_decimal(area) <= ZERO:
                raise ValidationError({"line_items": "Dosage is required when the application area is zero."})
            dosage = calculations.dosage_from_quantity(quantity_used, area)

        cost = item.get("cost")
        if cost is None:
            cost = estimate_line_cost(item["product"].id, quantity_used)

        lines.append(
            ApplicationProduct(
                product=item["product"],
                dosage=round2(dosage),
                dosage_unit=item.get("dosage_unit") or ApplicationProduct.DosageUnit.LITERS_PER_HECTARE,
                quantity_used=round2(quantity_used),
                cost=round2(cost),
            )
        )
    return lines


def _current_line_payloads(application):
    return [
        {"product": line.product, "dosage": line.dosage, "dosage_unit": line.dosage_unit}
        for line in application.line_items.select_related("product").order_by("created_at")
    ]


def _requirements(lines):
    return [(line.product, line.quantity_used) for line in lines]


def _check_stock_for_completion(lines, exclude_application_id=None):
    lock_products(line.product_id for line in lines)
    ensure_stock_available(_requirements(lines), exclude_application_id=exclude_application_id)


def create_application(*, data, line_items, user=None):
    if not line_items:
        raise ValidationError({"line_items": "At least one product is required."})

    status = normalize_status(data.get("status") or Application.Status.PLANNED)
    field = data["field"]
    is_partial = bool(data.get("is_partial", False))
    partial_area = data.get("partial_area") if is_partial else None
    validate_partial_area(field, is_partial, partial_area)

    area = calculations.effective_area(field.area_hectares, is_partial, partial_area)
    lines = build_line_items(line_items, area)
    completing = status == Application.Status.DONE

    with atomic_write("Create application"):
        if completing:
            _check_stock_for_completion(lines)

        application = Application.objects.create(
            name=data["name"],
            field=field,
            harvest_year=data["harvest_year"],
            field_crop=data.get("field_crop"),
            application_date=data["application_date"],
            status=status,
            is_partial=is_partial,
            partial_area=partial_area,
            notes=data.get("notes") or "",
            completed_at=timezone.now() if completing else None,
            created_by=user if user is not None and user.is_authenticated else None,
        )
        for line in lines:
            line.application = application
        ApplicationProduct.objects.bulk_create(lines)

        if completing:
            record_application_exits(application, lines, user)

    logger.info(
        "application_created status=%s line_items=%s",
        application.status,
        len(lines),
        extra={"application_id": str(application.id), "farm_id": str(field.farm_id)},
    )
    return application


def update_application(application, *, data, line_items=None, user=None):
    current_status = normalize_status(application.status)
    new_status = normalize_status(data["status"]) if data.get("status") else current_status
    ensure_transition_allowed(current_status, new_status)
    changing_to_done = current_status == Application.Status.PLANNED and new_status == Application.Status.DONE

    updates = {key: value for key, value in data.items() if key in APPLICATION_UPDATE_FIELDS}
    updates["status"] = new_status

    field = updates.get("field", application.field)
    is_partial = updates.get("is_partial", application.is_partial)
    partial_area = updates.get("partial_area", application.partial_area) if is_partial else None
    validate_partial_area(field, is_partial, partial_area)
    updates["partial_area"] = partial_area

    # An empty list means "keep the current line items".
    replacing = bool(line_items)
    if replacing and current_status == Application.Status.DONE:
        raise ValidationError({"line_items": "Products of a completed application cannot be changed."})
    area = calculations.effective_area(field.area_hectares, is_partial, partial_area)
    area_changed = area != application.effective_area
    if area_changed and current_status == Application.Status.DONE:
        raise ValidationError({"partial_area": "The area of a completed application cannot be changed."})

    if replacing:
        new_lines = build_line_items(line_items, area)
    elif area_changed:
        # Quantities follow the area; dosages stay.
        new_lines = build_line_items(_current_line_payloads(application), area)
    else:
        new_lines = []
    rebuilding = replacing or area_changed

    with atomic_write("Update application", application_id=str(application.id)):
        existing_lines = list(application.line_items.select_related("product"))
        deducted_lines = new_lines if rebuilding else existing_lines
        if changing_to_done:
            _check_stock_for_completion(deducted_lines, exclude_application_id=application.id)

        for key, value in updates.items():
            setattr(application, key, value)
        if changing_to_done:
            application.completed_at = timezone.now()
        application.save()

        if rebuilding:
            application.line_items.all().delete()
            for line in new_lines:
                line.application = application
            ApplicationProduct.objects.bulk_create(new_lines)

        if changing_to_done:
            record_application_exits(application, deducted_lines, user)

    logger.info(
        "application_updated status=%s completed=%s rebuilt_line_items=%s",
        application.status,
        changing_to_done,
        rebuilding,
        extra={"application_id": str(application.id), "farm_id": str(field.farm_id)},
    )
    return application


def complete_application(application, *, user=None):
    return update_application(application, data={"status": Application.Status.DONE}, user=user)


def delete_application(application):
    """Remove recipes, line items and the application itself; ledger movements stay."""
    application_id = application.id
    farm_id = application.field.farm_id
    with atomic_write("Delete application", application_id=str(application_id)):
        PracticalRecipeProduct.objects.filter(practical_recipe__application_id=application_id).delete()
        application.recipes.all().delete()
        application.line_items.all().delete()
        application.delete()

    logger.info("application_deleted", extra={"application_id": str(application_id), "farm_id": str(farm_id)})
