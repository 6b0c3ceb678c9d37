import logging
from collections import OrderedDict

from django.apps import apps
from django.conf import settings
from django.db.models import Q, Sum
from django.utils import timezone

from common.exceptions import InsufficientStockError
from common.utils import ZERO, format2, round2, to_decimal
from inventory.models import Product, StockMovement

logger = logging.getLogger(__name__)

# Two historical spellings exist on disk for each direction.
ENTRY_TYPES = ("entry", "in")
EXIT_TYPES = ("exit", "out")

PLANNED_STATUSES = ("planned",)


def _any_iexact(field, values):
    condition = Q()
    for value in values:
        condition |= Q(**{f"{field}__iexact": value})
    return condition


ENTRY_FILTER = _any_iexact("movement_type", ENTRY_TYPES)
EXIT_FILTER = _any_iexact("movement_type", EXIT_TYPES)


def normalize_movement_type(value):
    kind = str(value or "").strip().lower()
    if kind in ENTRY_TYPES:
        return StockMovement.MovementType.ENTRY
    if kind in EXIT_TYPES:
        return StockMovement.MovementType.EXIT
    raise ValueError(f"Unknown movement type: {value!r}")


def _ledger_totals(product_ids):
    rows = (
        StockMovement.objects.filter(product_id__in=list(product_ids))
        .values("product_id")
        .annotate(
            entries=Sum("quantity", filter=ENTRY_FILTER),
            exits=Sum("quantity", filter=EXIT_FILTER),
        )
    )
    return {row["product_id"]: (row["entries"] or ZERO, row["exits"] or ZERO) for row in rows}


def get_ledger_balances(product_ids):
    """Reduce the ledger to ``{product_id: entries - exits}``.

    Products without movements map to zero. Storage errors propagate.
    """
    product_ids = list(product_ids)
    totals = _ledger_totals(product_ids)
    balances = {}
    for product_id in product_ids:
        entries, exits = totals.get(product_id, (ZERO, ZERO))
        balances[product_id] = to_decimal(entries) - to_decimal(exits)
    return balances


def get_stock_balance(product_id):
    return get_ledger_balances([product_id])[product_id]


def get_reserved_quantities(product_ids, exclude_application_id=None):
    """Sum ``quantity_used`` of planned applications per product.

    Canceled applications release their reservation and completed ones are
    already reflected by exit movements, so neither is counted.
    """
    application_product_model = apps.get_model("applications", "ApplicationProduct")
    product_ids = list(product_ids)
    qs = application_product_model.objects.filter(product_id__in=product_ids).filter(
        _any_iexact("application__status", PLANNED_STATUSES)
    )
    if exclude_application_id:
        qs = qs.exclude(application_id=exclude_application_id)

    reserved = {product_id: ZERO for product_id in product_ids}
    for row in qs.values("product_id").annotate(total=Sum("quantity_used")):
        reserved[row["product_id"]] = to_decimal(row["total"])
    return reserved


def get_available_to_promise(product_ids, exclude_application_id=None):
    product_ids = list(product_ids)
    balances = get_ledger_balances(product_ids)
    reserved = get_reserved_quantities(product_ids, exclude_application_id=exclude_application_id)
    return {product_id: balances[product_id] - reserved[product_id] for product_id in product_ids}


def aggregate_requirements(requirements):
    """Collapse ``(product, quantity)`` pairs into one required total per product, in input order."""
    totals = OrderedDict()
    for product, quantity in requirements:
        current = totals.get(product.id, (product, ZERO))
        totals[product.id] = (product, current[1] + to_decimal(quantity))
    return totals


def ensure_stock_available(requirements, *, exclude_application_id=None):
    """Raise ``InsufficientStockError`` listing every product that cannot cover its requirement."""
    totals = aggregate_requirements(requirements)
    if not totals:
        return

    available = get_available_to_promise(totals.keys(), exclude_application_id=exclude_application_id)
    shortages = []
    for product_id, (product, required) in totals.items():
        product_available = available[product_id]
        if product_available < required:
            shortages.append(
                {
                    "product_id": str(product_id),
                    "product_name": product.name,
                    "unit": product.unit,
                    "available": format2(product_available),
                    "required": format2(required),
                    "message": (
                        f"{product.name} ({product.unit}): "
                        f"Available: {format2(product_available)}, Required: {format2(required)}"
                    ),
                }
            )

    if shortages:
        logger.warning(
            "insufficient_stock shortages=%s",
            len(shortages),
            extra={"application_id": str(exclude_application_id) if exclude_application_id else None},
        )
        raise InsufficientStockError(shortages)


def lock_products(product_ids):
    """Row-lock the given products in id order; must run inside ``transaction.atomic``."""
    if not getattr(settings, "AGRO_LOCK_PRODUCTS_ON_COMPLETION", True):
        return []
    return list(Product.objects.select_for_update().filter(id__in=list(product_ids)).order_by("id"))


def get_average_entry_prices(product_ids):
    """Weighted average unit price of entry movements per product (zero without entries)."""
    product_ids = list(product_ids)
    rows = (
        StockMovement.objects.filter(product_id__in=product_ids)
        .filter(ENTRY_FILTER)
        .values("product_id", "quantity", "unit_price")
    )
    totals = {product_id: [ZERO, ZERO] for product_id in product_ids}
    for row in rows:
        quantity = to_decimal(row["quantity"])
        totals[row["product_id"]][0] += quantity * to_decimal(row["unit_price"])
        totals[row["product_id"]][1] += quantity

    prices = {}
    for product_id, (total_value, total_quantity) in totals.items():
        prices[product_id] = total_value / total_quantity if total_quantity > 0 else ZERO
    return prices


def get_average_entry_price(product_id):
    return get_average_entry_prices([product_id])[product_id]


def estimate_line_cost(product_id, quantity_used):
    return round2(to_decimal(quantity_used) * get_average_entry_price(product_id))


def compute_stock_balances(farm_id):
    products = list(Product.objects.filter(farm_id=farm_id).order_by("name"))
    product_ids = [product.id for product in products]
    totals = _ledger_totals(product_ids)
    reserved = get_reserved_quantities(product_ids)
    prices = get_average_entry_prices(product_ids)

    rows = []
    for product in products:
        entries, exits = totals.get(product.id, (ZERO, ZERO))
        balance = to_decimal(entries) - to_decimal(exits)
        rows.append(
            {
                "product_id": product.id,
                "product_name": product.name,
                "unit": product.unit,
                "company": product.company,
                "total_entries": round2(entries),
                "total_exits": round2(exits),
                "balance": round2(balance),
                "average_price": round2(prices[product.id]),
                "reserved": round2(reserved[product.id]),
                "predicted_quantity": round2(balance - reserved[product.id]),
            }
        )

    return {"generated_at": timezone.now(), "rows": rows}


def record_stock_entry(*, product, quantity, unit_price, movement_date=None, notes="", user=None):
    quantity = round2(quantity)
    if quantity <= 0:
        raise ValueError("Entry quantity must be greater than zero.")

    movement = StockMovement.objects.create(
        farm_id=product.farm_id,
        product=product,
        movement_type=StockMovement.MovementType.ENTRY,
        quantity=quantity,
        unit_price=round2(unit_price),
        reference_type=StockMovement.ReferenceType.ENTRY,
        movement_date=movement_date or timezone.localdate(),
        notes=notes or "",
        created_by=user if user is not None and user.is_authenticated else None,
    )
    logger.info(
        "stock_entry_recorded quantity=%s",
        movement.quantity,
        extra={"product_id": str(product.id), "farm_id": str(product.farm_id)},
    )
    return movement


def record_application_exits(application, line_items, user=None):
    """Append one exit movement per line item, referencing the application."""
    movement_date = application.application_date or timezone.localdate()
    created_by = user if user is not None and user.is_authenticated else None
    movements = [
        StockMovement(
            farm_id=application.field.farm_id,
            product_id=item.product_id,
            movement_type=StockMovement.MovementType.EXIT,
            quantity=round2(item.quantity_used),
            reference_id=application.id,
            reference_type=StockMovement.ReferenceType.APPLICATION,
            movement_date=movement_date,
            notes=f"Application: {application.name}",
            created_by=created_by,
        )
        for item in line_items
    ]
    StockMovement.objects.bulk_create(movements)
    logger.info(
        "application_exits_recorded count=%s",
        len(movements),
        extra={"application_id": str(application.id)},
    )
    return movements
