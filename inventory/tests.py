from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from applications.models import Application, ApplicationProduct
from common.exceptions import InsufficientStockError
from core.models import Farm
from farms.models import Field, HarvestYear
from inventory.models import Product, StockMovement
from inventory.services import (
    compute_stock_balances,
    ensure_stock_available,
    get_available_to_promise,
    get_average_entry_price,
    get_ledger_balances,
    get_reserved_quantities,
    get_stock_balance,
    normalize_movement_type,
    record_stock_entry,
)


class StockFixtureMixin:
    def create_farm_fixture(self):
        self.user_model = get_user_model()
        self.farm = Farm.objects.create(name="Fazenda Boa Vista")
        self.owner = self.user_model.objects.create_user(
            username="stock-owner",
            password="pass1234",
            farm=self.farm,
            role="owner",
        )
        self.field = Field.objects.create(farm=self.farm, name="Talhao 1", area_hectares=Decimal("100.00"))
        self.harvest_year = HarvestYear.objects.create(farm=self.farm, name="2025/2026")
        self.product = Product.objects.create(farm=self.farm, name="Glifosato", unit="L")

    def move(self, product, movement_type, quantity, unit_price=None):
        return StockMovement.objects.create(
            farm=product.farm,
            product=product,
            movement_type=movement_type,
            quantity=Decimal(quantity),
            unit_price=Decimal(unit_price) if unit_price is not None else None,
            movement_date=date(2025, 10, 1),
        )

    def planned_application(self, product, quantity, status="PLANNED", name="Planned"):
        application = Application.objects.create(
            name=name,
            field=self.field,
            harvest_year=self.harvest_year,
            application_date=date(2025, 11, 1),
            status=status,
        )
        ApplicationProduct.objects.create(
            application=application,
            product=product,
            dosage=Decimal("1.00"),
            quantity_used=Decimal(quantity),
        )
        return application


class StockLedgerTests(StockFixtureMixin, TestCase):
    def setUp(self):
        self.create_farm_fixture()

    def test_balance_is_entries_minus_exits(self):
        self.move(self.product, "entry", "100.00", "10.00")
        self.move(self.product, "exit", "20.00")

        self.assertEqual(get_stock_balance(self.product.id), Decimal("80.00"))

    def test_legacy_in_out_spellings_are_honored(self):
        self.move(self.product, "IN", "50.00", "10.00")
        self.move(self.product, "entry", "25.00", "10.00")
        self.move(self.product, "OUT", "5.00")
        self.move(self.product, "Exit", "10.00")

        self.assertEqual(get_stock_balance(self.product.id), Decimal("60.00"))

    def test_product_without_movements_has_zero_balance(self):
        other = Product.objects.create(farm=self.farm, name="Atrazina", unit="kg")
        self.move(self.product, "entry", "10.00", "1.00")

        balances = get_ledger_balances([self.product.id, other.id])

        self.assertEqual(balances[self.product.id], Decimal("10.00"))
        self.assertEqual(balances[other.id], Decimal("0"))

    def test_normalize_movement_type(self):
        self.assertEqual(normalize_movement_type("IN"), StockMovement.MovementType.ENTRY)
        self.assertEqual(normalize_movement_type(" out "), StockMovement.MovementType.EXIT)
        with self.assertRaises(ValueError):
            normalize_movement_type("transfer")

    def test_average_entry_price_is_weighted_by_quantity(self):
        self.move(self.product, "entry", "10.00", "20.00")
        self.move(self.product, "IN", "30.00", "40.00")
        self.move(self.product, "exit", "5.00")

        self.assertEqual(get_average_entry_price(self.product.id), Decimal("35"))

    def test_record_stock_entry_rejects_non_positive_quantity(self):
        with self.assertRaises(ValueError):
            record_stock_entry(product=self.product, quantity="0", unit_price="1.00")
        self.assertFalse(StockMovement.objects.exists())


class ReservationTests(StockFixtureMixin, TestCase):
    def setUp(self):
        self.create_farm_fixture()
        self.move(self.product, "entry", "100.00", "10.00")
        self.move(self.product, "exit", "20.00")

    def test_planned_applications_reserve_stock(self):
        self.planned_application(self.product, "30.00")

        available = get_available_to_promise([self.product.id])

        self.assertEqual(available[self.product.id], Decimal("50.00"))

    def test_cancelled_and_completed_applications_do_not_reserve(self):
        self.planned_application(self.product, "30.00", status="CANCELED", name="Canceled")
        self.planned_application(self.product, "15.00", status="DONE", name="Done")

        reserved = get_reserved_quantities([self.product.id])

        self.assertEqual(reserved[self.product.id], Decimal("0"))

    def test_legacy_lowercase_planned_status_still_reserves(self):
        self.planned_application(self.product, "12.50", status="planned")

        self.assertEqual(get_reserved_quantities([self.product.id])[self.product.id], Decimal("12.50"))

    def test_application_under_evaluation_is_excluded(self):
        mine = self.planned_application(self.product, "30.00", name="Mine")
        self.planned_application(self.product, "10.00", name="Other")

        available = get_available_to_promise([self.product.id], exclude_application_id=mine.id)

        self.assertEqual(available[self.product.id], Decimal("70.00"))


class AvailabilityValidatorTests(StockFixtureMixin, TestCase):
    def setUp(self):
        self.create_farm_fixture()
        self.move(self.product, "entry", "100.00", "10.00")
        self.move(self.product, "exit", "20.00")
        self.planned_application(self.product, "30.00")

    def test_shortage_message_lists_available_and_required(self):
        with self.assertRaises(InsufficientStockError) as ctx:
            ensure_stock_available([(self.product, Decimal("60"))])

        shortage = ctx.exception.shortages[0]
        self.assertEqual(shortage["available"], "50.00")
        self.assertEqual(shortage["required"], "60.00")
        self.assertIn("Available: 50.00, Required: 60.00", str(ctx.exception.detail))
        self.assertIn("Glifosato (L)", shortage["message"])

    def test_requirement_within_available_passes(self):
        ensure_stock_available([(self.product, Decimal("40"))])

    def test_every_short_product_is_reported(self):
        other = Product.objects.create(farm=self.farm, name="Atrazina", unit="kg")

        with self.assertRaises(InsufficientStockError) as ctx:
            ensure_stock_available([(self.product, Decimal("60")), (other, Decimal("1"))])

        self.assertEqual([s["product_name"] for s in ctx.exception.shortages], ["Glifosato", "Atrazina"])

    def test_repeated_product_requirements_are_summed(self):
        with self.assertRaises(InsufficientStockError) as ctx:
            ensure_stock_available([(self.product, Decimal("30")), (self.product, Decimal("30"))])

        self.assertEqual(ctx.exception.shortages[0]["required"], "60.00")


class StockBalanceReportTests(StockFixtureMixin, TestCase):
    def setUp(self):
        self.create_farm_fixture()
        self.client = APIClient()
        self.move(self.product, "entry", "100.00", "10.00")
        self.move(self.product, "exit", "20.00")
        self.planned_application(self.product, "30.00")
        Product.objects.create(farm=self.farm, name="Atrazina", unit="kg")

    def test_report_includes_reserved_and_predicted_quantities(self):
        report = compute_stock_balances(self.farm.id)

        rows = {row["product_name"]: row for row in report["rows"]}
        self.assertEqual([row["product_name"] for row in report["rows"]], ["Atrazina", "Glifosato"])
        self.assertEqual(rows["Glifosato"]["balance"], Decimal("80.00"))
        self.assertEqual(rows["Glifosato"]["reserved"], Decimal("30.00"))
        self.assertEqual(rows["Glifosato"]["predicted_quantity"], Decimal("50.00"))
        self.assertEqual(rows["Glifosato"]["average_price"], Decimal("10.00"))
        self.assertEqual(rows["Atrazina"]["balance"], Decimal("0.00"))

    def test_balance_endpoint_is_scoped_to_user_farm(self):
        other_farm = Farm.objects.create(name="Outra")
        Product.objects.create(farm=other_farm, name="Fora", unit="L")
        self.client.force_authenticate(user=self.owner)

        response = self.client.get("/api/v1/stock/balances/")

        self.assertEqual(response.status_code, 200)
        names = [row["product_name"] for row in response.json()["results"]]
        self.assertEqual(names, ["Atrazina", "Glifosato"])

    def test_balance_export_returns_csv(self):
        self.client.force_authenticate(user=self.owner)

        response = self.client.get("/api/v1/stock/balances/export/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertIn("Glifosato", response.content.decode())


class StockEntryApiTests(StockFixtureMixin, TestCase):
    def setUp(self):
        self.create_farm_fixture()
        self.client = APIClient()
        self.operator = self.user_model.objects.create_user(
            username="stock-operator",
            password="pass1234",
            farm=self.farm,
            role="operator",
        )

    def test_owner_records_entry(self):
        self.client.force_authenticate(user=self.owner)

        response = self.client.post(
            "/api/v1/stock/entries/",
            {"product": str(self.product.id), "quantity": "40.00", "unit_price": "12.50", "notes": "NF 123"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        movement = StockMovement.objects.get(id=response.json()["id"])
        self.assertEqual(movement.movement_type, "entry")
        self.assertEqual(movement.reference_type, "entry")
        self.assertEqual(movement.farm_id, self.farm.id)
        self.assertEqual(response.json()["total_value"], "500.00")

    def test_operator_cannot_adjust_stock_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.operator)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.post(
                "/api/v1/stock/entries/",
                {"product": str(self.product.id), "quantity": "40.00", "unit_price": "12.50"},
                format="json",
            )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_entry_for_other_farm_product_is_rejected(self):
        other_farm = Farm.objects.create(name="Outra")
        foreign = Product.objects.create(farm=other_farm, name="Fora", unit="L")
        self.client.force_authenticate(user=self.owner)

        response = self.client.post(
            "/api/v1/stock/entries/",
            {"product": str(foreign.id), "quantity": "1.00", "unit_price": "1.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("product", response.json()["errors"])

    def test_application_exits_are_not_listed_as_entries(self):
        self.move(self.product, "entry", "10.00", "1.00")
        StockMovement.objects.create(
            farm=self.farm,
            product=self.product,
            movement_type="exit",
            quantity=Decimal("2.00"),
            reference_type="application",
            movement_date=date(2025, 10, 2),
        )
        self.client.force_authenticate(user=self.owner)

        response = self.client.get("/api/v1/stock/entries/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)


class ProductApiTests(StockFixtureMixin, TestCase):
    def setUp(self):
        self.create_farm_fixture()
        self.client = APIClient()
        self.other_farm = Farm.objects.create(name="Outra")
        self.other_product = Product.objects.create(farm=self.other_farm, name="Fora", unit="L")

    def test_products_are_scoped_to_user_farm(self):
        self.client.force_authenticate(user=self.owner)

        response = self.client.get("/api/v1/products/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        ids = {item["id"] for item in payload["results"]}
        self.assertIn(str(self.product.id), ids)
        self.assertNotIn(str(self.other_product.id), ids)

    def test_create_product_ignores_injected_farm(self):
        self.client.force_authenticate(user=self.owner)

        response = self.client.post(
            "/api/v1/products/",
            {"farm": str(self.other_farm.id), "name": "Novo", "unit": "kg"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Product.objects.get(id=response.json()["id"]).farm_id, self.farm.id)

    def test_duplicate_product_name_is_rejected(self):
        self.client.force_authenticate(user=self.owner)

        response = self.client.post("/api/v1/products/", {"name": "glifosato", "unit": "L"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"], {"name": ["A product with this name already exists in your farm."]})
