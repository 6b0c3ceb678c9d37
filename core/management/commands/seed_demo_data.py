from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from applications.models import Application, Machinery
from applications.recipes import create_recipe
from applications.services import create_application
from core.models import Farm
from farms.models import Field, FieldCrop, HarvestYear
from inventory.models import Product, StockMovement
from inventory.services import record_stock_entry


class Command(BaseCommand):
    help = "Seed demo farm, stock and application data for local development."

    def handle(self, *args, **options):
        User = get_user_model()

        farm, _ = Farm.objects.get_or_create(
            name="Fazenda Demo",
            defaults={"city": "Rio Verde", "state": "GO", "timezone": "America/Sao_Paulo", "is_active": True},
        )

        owner_user, owner_created = User.objects.get_or_create(
            username="owner",
            defaults={
                "email": "owner@example.com",
                "role": User.Role.OWNER,
                "farm": farm,
                "is_staff": True,
                "is_superuser": True,
                "is_active": True,
            },
        )
        if owner_created:
            owner_user.set_password("owner1234")
            owner_user.save(update_fields=["password"])

        manager_user, manager_created = User.objects.get_or_create(
            username="manager",
            defaults={
                "email": "manager@example.com",
                "role": User.Role.MANAGER,
                "farm": farm,
                "is_active": True,
            },
        )
        if manager_created:
            manager_user.set_password("manager1234")
            manager_user.save(update_fields=["password"])

        operator_user, operator_created = User.objects.get_or_create(
            username="operator",
            defaults={
                "email": "operator@example.com",
                "role": User.Role.OPERATOR,
                "farm": farm,
                "is_active": True,
            },
        )
        if operator_created:
            operator_user.set_password("operator1234")
            operator_user.save(update_fields=["password"])

        harvest_year, _ = HarvestYear.objects.get_or_create(
            farm=farm,
            name="2025/2026",
            defaults={"start_date": date(2025, 9, 1), "end_date": date(2026, 8, 31), "is_active": True},
        )
        field, _ = Field.objects.get_or_create(
            farm=farm,
            name="Talhao 01",
            defaults={"area_hectares": Decimal("120.00"), "is_active": True},
        )
        field_crop, _ = FieldCrop.objects.get_or_create(
            field=field,
            harvest_year=harvest_year,
            culture="Soja",
            defaults={"cycle": "Precoce"},
        )

        herbicide, _ = Product.objects.get_or_create(
            farm=farm,
            name="Glifosato 480",
            defaults={"company": "AgroQuimica", "active_principle": "Glyphosate", "unit": Product.Unit.LITERS},
        )
        fungicide, _ = Product.objects.get_or_create(
            farm=farm,
            name="Azoxistrobina 250",
            defaults={"company": "AgroQuimica", "active_principle": "Azoxystrobin", "unit": Product.Unit.LITERS},
        )

        for product, quantity, unit_price in [
            (herbicide, Decimal("600"), Decimal("32.50")),
            (fungicide, Decimal("150"), Decimal("118.00")),
        ]:
            if not StockMovement.objects.filter(product=product, notes="Seed purchase").exists():
                record_stock_entry(
                    product=product,
                    quantity=quantity,
                    unit_price=unit_price,
                    movement_date=date(2025, 9, 15),
                    notes="Seed purchase",
                    user=owner_user,
                )

        sprayer, _ = Machinery.objects.get_or_create(
            user=None,
            name="Pulverizador Jacto 2000",
            defaults={"type": Machinery.Type.SPRAYER, "tank_capacity_liters": Decimal("2000")},
        )

        application = Application.objects.filter(field=field, name="Dessecacao pre-plantio").first()
        if application is None:
            application = create_application(
                data={
                    "name": "Dessecacao pre-plantio",
                    "field": field,
                    "harvest_year": harvest_year,
                    "field_crop": field_crop,
                    "application_date": date(2025, 10, 5),
                    "status": Application.Status.PLANNED,
                },
                line_items=[
                    {"product": herbicide, "dosage": Decimal("2.50")},
                    {"product": fungicide, "dosage": Decimal("0.40")},
                ],
                user=manager_user,
            )
            create_recipe(
                application,
                data={
                    "machinery": sprayer,
                    "calculation_mode": "liters",
                    "application_rate_liters_per_hectare": Decimal("100"),
                    "liters_of_solution": Decimal("2000"),
                    "multiplier": Decimal("1"),
                    "product_ids": [herbicide.id, fungicide.id],
                },
                user=operator_user,
            )

        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully."))
        self.stdout.write("Credentials: owner/owner1234, manager/manager1234, operator/operator1234")
        self.stdout.write(f"Farm: {farm.name} | Field: {field.name} | Planned application: {application.id}")
