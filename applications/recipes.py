import logging
from decimal import Decimal

from django.conf import settings
from django.db.models import Sum
from rest_framework.exceptions import ValidationError

from applications import calculations
from applications.models import Application, PracticalRecipe, PracticalRecipeProduct
from applications.services import normalize_status
from common.db import atomic_write
from common.utils import ZERO, format2, round2, to_decimal

logger = logging.getLogger(__name__)

MIN_MULTIPLIER = Decimal("0.01")


def resolve_tank_load(*, calculation_mode, application_rate, liters_of_solution=None, area_hectares=None):
    """Return ``(liters, area)`` for one tank-load.

    In ``liters`` mode the liters of solution drive the area covered; in
    ``area`` mode the area drives the liters needed.
    """
    rate = to_decimal(application_rate)
    if rate <= ZERO:
        raise ValidationError({"application_rate_liters_per_hectare": "Application rate must be greater than zero."})

    if calculation_mode == PracticalRecipe.CalculationMode.LITERS:
        liters = round2(to_decimal(liters_of_solution))
        if liters <= ZERO:
            raise ValidationError({"liters_of_solution": "Liters of solution must be greater than zero."})
        return liters, calculations.area_from_liters(liters, rate)

    if calculation_mode == PracticalRecipe.CalculationMode.AREA:
        area = round2(to_decimal(area_hectares))
        if area <= ZERO:
            raise ValidationError({"area_hectares": "Area must be greater than zero."})
        return calculations.liters_from_area(area, rate), area

    raise ValidationError({"calculation_mode": f"Unknown calculation mode: {calculation_mode!r}."})


def tank_overflow_message(machinery, liters):
    if machinery is None:
        return None
    capacity = to_decimal(machinery.tank_capacity_liters)
    if liters > capacity:
        return (
            f"Liters of solution ({format2(liters)} L) exceed the tank capacity of "
            f"{machinery.name} ({format2(capacity)} L)."
        )
    return None


def check_tank_capacity(machinery, liters):
    message = tank_overflow_message(machinery, liters)
    if message:
        raise ValidationError({"liters_of_solution": message})


def committed_quantities(application, exclude_recipe_id=None):
    """Quantity already allocated per product by the application's recipes."""
    qs = PracticalRecipeProduct.objects.filter(practical_recipe__application=application)
    if exclude_recipe_id:
        qs = qs.exclude(practical_recipe_id=exclude_recipe_id)
    return {
        row["product_id"]: to_decimal(row["total"])
        for row in qs.values("product_id").annotate(total=Sum("quantity_in_recipe"))
    }


def used_area(application, exclude_recipe_id=None):
    qs = application.recipes.all()
    if exclude_recipe_id:
        qs = qs.exclude(id=exclude_recipe_id)
    return sum(
        (to_decimal(recipe.area_hectares) * to_decimal(recipe.multiplier) for recipe in qs),
        ZERO,
    )


def remaining_area(application, exclude_recipe_id=None):
    return round2(max(ZERO, application.effective_area - used_area(application, exclude_recipe_id)))


def calculate_recipe(
    application,
    *,
    machinery=None,
    calculation_mode=PracticalRecipe.CalculationMode.LITERS,
    application_rate,
    liters_of_solution=None,
    area_hectares=None,
    multiplier=1,
    product_ids=None,
    exclude_recipe_id=None,
):
    """Compute a recipe without writing it.

    Negative remaining quantities and tank overflow are reported as warnings;
    ``create_recipe`` turns the overflow into a hard failure.
    """
    liters, area = resolve_tank_load(
        calculation_mode=calculation_mode,
        application_rate=application_rate,
        liters_of_solution=liters_of_solution,
        area_hectares=area_hectares,
    )
    multiplier = round2(multiplier)
    if multiplier < MIN_MULTIPLIER:
        raise ValidationError({"multiplier": f"Multiplier must be at least {MIN_MULTIPLIER}."})

    line_items = list(application.line_items.select_related("product").order_by("created_at"))
    available_ids = {line.product_id for line in line_items}
    selected_ids = available_ids if product_ids is None else set(product_ids)
    unknown = selected_ids - available_ids
    if unknown:
        raise ValidationError({"product_ids": "Recipe products must be products of the application."})

    committed = committed_quantities(application, exclude_recipe_id=exclude_recipe_id)
    warnings = []
    items = []
    for line in line_items:
        if line.product_id not in selected_ids:
            continue
        dosage = to_decimal(line.dosage)
        quantity_in_recipe = round2(dosage * area * multiplier)
        prior = committed.get(line.product_id, ZERO)
        remaining = round2(to_decimal(line.quantity_used) - prior - quantity_in_recipe)
        if remaining < ZERO:
            warnings.append(
                f"{line.product.name}: recipes exceed the planned quantity by {format2(-remaining)} {line.product.unit}."
            )
        items.append(
            {
                "product": line.product,
                "product_id": line.product_id,
                "product_name": line.product.name,
                "unit": line.product.unit,
                "dosage": round2(dosage),
                "dosage_unit": line.dosage_unit,
                "total_quantity": round2(line.quantity_used),
                "previously_allocated": round2(prior),
                "quantity_in_recipe": quantity_in_recipe,
                "remaining_quantity": remaining,
            }
        )

    overflow = tank_overflow_message(machinery, liters)
    if overflow:
        warnings.insert(0, overflow)

    return {
        "machinery": machinery,
        "calculation_mode": calculation_mode,
        "application_rate_liters_per_hectare": round2(application_rate),
        "liters_of_solution": liters,
        "area_hectares": area,
        "multiplier": multiplier,
        "area_in_recipe": round2(area * multiplier),
        "recommended_tank_loads": calculations.recommended_tank_loads(application.effective_area, area),
        "remaining_area": remaining_area(application, exclude_recipe_id=exclude_recipe_id),
        "tank_overflow": overflow is not None,
        "items": items,
        "warnings": warnings,
    }


def _ensure_recipes_allowed(application):
    if normalize_status(application.status) == Application.Status.CANCELED:
        raise ValidationError({"application": "Recipes cannot be added to a canceled application."})


def _validated_calculation(application, data, *, product_ids, exclude_recipe_id=None):
    if data.get("machinery") is None:
        raise ValidationError({"machinery": "Select the machinery for the recipe."})
    if not product_ids:
        raise ValidationError({"product_ids": "Select at least one product for the recipe."})

    result = calculate_recipe(
        application,
        machinery=data.get("machinery"),
        calculation_mode=data.get("calculation_mode", PracticalRecipe.CalculationMode.LITERS),
        application_rate=data.get("application_rate_liters_per_hectare"),
        liters_of_solution=data.get("liters_of_solution"),
        area_hectares=data.get("area_hectares"),
        multiplier=data.get("multiplier", 1),
        product_ids=product_ids,
        exclude_recipe_id=exclude_recipe_id,
    )
    check_tank_capacity(data.get("machinery"), result["liters_of_solution"])
    return result


def _recipe_items(recipe, result):
    return [
        PracticalRecipeProduct(
            practical_recipe=recipe,
            product=item["product"],
            dosage=item["dosage"],
            quantity_in_recipe=item["quantity_in_recipe"],
            remaining_quantity=item["remaining_quantity"],
        )
        for item in result["items"]
    ]


def create_recipe(application, *, data, user=None):
    _ensure_recipes_allowed(application)
    result = _validated_calculation(application, data, product_ids=data.get("product_ids"))

    with atomic_write("Create recipe", application_id=str(application.id)):
        recipe = PracticalRecipe.objects.create(
            application=application,
            machinery=data.get("machinery"),
            capacity_used_percent=getattr(settings, "AGRO_DEFAULT_CAPACITY_USED_PERCENT", 100),
            application_rate_liters_per_hectare=result["application_rate_liters_per_hectare"],
            calculation_mode=result["calculation_mode"],
            liters_of_solution=result["liters_of_solution"],
            area_hectares=result["area_hectares"],
            multiplier=result["multiplier"],
            notes=data.get("notes") or "",
            created_by=user if user is not None and user.is_authenticated else None,
        )
        PracticalRecipeProduct.objects.bulk_create(_recipe_items(recipe, result))

    logger.info(
        "recipe_created items=%s warnings=%s",
        len(result["items"]),
        len(result["warnings"]),
        extra={"application_id": str(application.id), "recipe_id": str(recipe.id)},
    )
    return recipe


def update_recipe(recipe, *, data, user=None):
    application = recipe.application
    _ensure_recipes_allowed(application)
    merged = {
        "machinery": recipe.machinery,
        "calculation_mode": recipe.calculation_mode,
        "application_rate_liters_per_hectare": recipe.application_rate_liters_per_hectare,
        "liters_of_solution": recipe.liters_of_solution,
        "area_hectares": recipe.area_hectares,
        "multiplier": recipe.multiplier,
        "notes": recipe.notes,
    }
    merged.update(data)
    product_ids = data.get("product_ids")
    if product_ids is None:
        product_ids = list(recipe.items.values_list("product_id", flat=True))

    result = _validated_calculation(application, merged, product_ids=product_ids, exclude_recipe_id=recipe.id)

    with atomic_write("Update recipe", recipe_id=str(recipe.id)):
        recipe.machinery = merged["machinery"]
        recipe.calculation_mode = result["calculation_mode"]
        recipe.application_rate_liters_per_hectare = result["application_rate_liters_per_hectare"]
        recipe.liters_of_solution = result["liters_of_solution"]
        recipe.area_hectares = result["area_hectares"]
        recipe.multiplier = result["multiplier"]
        recipe.notes = merged.get("notes") or ""
        recipe.save()
        recipe.items.all().delete()
        PracticalRecipeProduct.objects.bulk_create(_recipe_items(recipe, result))

    logger.info(
        "recipe_updated items=%s",
        len(result["items"]),
        extra={"application_id": str(application.id), "recipe_id": str(recipe.id)},
    )
    return recipe


def delete_recipe(recipe):
    recipe_id = recipe.id
    with atomic_write("Delete recipe", recipe_id=str(recipe_id)):
        recipe.items.all().delete()
        recipe.delete()
    logger.info("recipe_deleted", extra={"application_id": str(recipe.application_id), "recipe_id": str(recipe_id)})


def loading_summary(application):
    """Tank-loads and products to load for the field crew."""
    recipes = list(
        application.recipes.select_related("machinery").prefetch_related("items__product").order_by("-created_at")
    )
    line_items = application.line_items.select_related("product").order_by("created_at")
    return {
        "application": application,
        "total_tank_loads": round2(sum((to_decimal(recipe.multiplier) for recipe in recipes), ZERO)),
        "remaining_area": remaining_area(application),
        "products": [
            {
                "product_id": line.product_id,
                "product_name": line.product.name,
                "unit": line.product.unit,
                "dosage": round2(line.dosage),
                "dosage_unit": line.dosage_unit,
                "quantity_used": round2(line.quantity_used),
            }
            for line in line_items
        ],
        "recipes": recipes,
    }
