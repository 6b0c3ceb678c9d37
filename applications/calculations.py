"""Dosage, quantity and area arithmetic shared by applications and recipes.

Every result is rounded half up to two decimal places.
"""

from common.utils import ZERO, round2, to_decimal


def effective_area(field_area, is_partial=False, partial_area=None):
    partial_area = to_decimal(partial_area)
    if is_partial and partial_area > ZERO:
        return partial_area
    return to_decimal(field_area)


def quantity_from_dosage(dosage, area):
    return round2(to_decimal(dosage) * to_decimal(area))


def dosage_from_quantity(quantity, area):
    area = to_decimal(area)
    if area <= ZERO:
        raise ValueError("Area must be greater than zero to derive a dosage.")
    return round2(to_decimal(quantity) / area)


def liters_from_area(area, rate):
    return round2(to_decimal(area) * to_decimal(rate))


def area_from_liters(liters, rate):
    rate = to_decimal(rate)
    if rate <= ZERO:
        raise ValueError("Application rate must be greater than zero.")
    return round2(to_decimal(liters) / rate)


def recommended_tank_loads(total_area, area_per_load):
    area_per_load = to_decimal(area_per_load)
    if area_per_load <= ZERO:
        return ZERO
    return round2(to_decimal(total_area) / area_per_load)
