from datetime import date
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from applications import calculations
from applications.models import Application, ApplicationProduct, Machinery, PracticalRecipe, PracticalRecipeProduct
from applications.recipes import calculate_recipe, create_recipe, update_recipe
from applications.services import normalize_status, update_application
from core.models import AuditLog, Farm
from farms.models import Field, HarvestYear
from inventory.models import Product, StockMovement


class ApplicationFixtureMixin:
    def create_fixture(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.farm = Farm.objects.create(name="Fazenda Santa Rita")
        self.owner = self.user_model.objects.create_user(
            username="app-owner",
            password="pass1234",
            farm=self.farm,
            role="owner",
        )
        self.operator = self.user_model.objects.create_user(
            username="app-operator",
            password="pass1234",
            farm=self.farm,
            role="operator",
        )
        self.viewer = self.user_model.objects.create_user(
            username="app-viewer",
            password="pass1234",
            farm=self.farm,
            role="viewer",
        )
        self.field = Field.objects.create(farm=self.farm, name="Talhao Norte", area_hectares=Decimal("100.00"))
        self.harvest_year = HarvestYear.objects.create(farm=self.farm, name="2025/2026")
        self.product = Product.objects.create(farm=self.farm, name="Glifosato", unit="L")

        # Ledger balance 80 L, 30 L reserved by another planned application.
        self.add_movement(self.product, "entry", "100.00", unit_price="10.00")
        self.add_movement(self.product, "exit", "20.00")
        self.reserving = self.create_planned(self.product, "30.00", name="Dessecacao")

    def add_movement(self, product, movement_type, quantity, unit_price=None):
        return StockMovement.objects.create(
            farm=product.farm,
            product=product,
            movement_type=movement_type,
            quantity=Decimal(quantity),
            unit_price=Decimal(unit_price) if unit_price else None,
            movement_date=date(2025, 10, 1),
        )

    def create_planned(self, product, quantity, name="Planned", dosage="1.00"):
        application = Application.objects.create(
            name=name,
            field=self.field,
            harvest_year=self.harvest_year,
            application_date=date(2025, 11, 1),
            status=Application.Status.PLANNED,
        )
        ApplicationProduct.objects.create(
            application=application,
            product=product,
            dosage=Decimal(dosage),
            quantity_used=Decimal(quantity),
        )
        return application

    def application_payload(self, quantity, status="completed", **overrides):
        payload = {
            "name": "Fungicida",
            "field": str(self.field.id),
            "harvest_year": str(self.harvest_year.id),
            "application_date": "2025-11-10",
            "status": status,
            "line_items": [{"product": str(self.product.id), "quantity_used": quantity}],
        }
        payload.update(overrides)
        return payload

    def row_counts(self):
        return (
            Application.objects.count(),
            ApplicationProduct.objects.count(),
            StockMovement.objects.count(),
        )


class ApplicationCreateTests(ApplicationFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixture()
        self.client.force_authenticate(user=self.owner)

    def test_completed_application_beyond_available_fails_and_writes_nothing(self):
        before = self.row_counts()

        response = self.client.post("/api/v1/applications/", self.application_payload("60.00"), format="json")

        self.assertEqual(response.status_code, 409)
        payload = response.json()
        self.assertEqual(payload["code"], "insufficient_stock")
        self.assertIn("Glifosato (L): Available: 50.00, Required: 60.00", payload["message"])
        self.assertEqual(payload["errors"]["shortages"][0]["available"], "50.00")
        self.assertEqual(self.row_counts(), before)

    def test_completed_application_within_available_writes_exit_movements(self):
        response = self.client.post("/api/v1/applications/", self.application_payload("40.00"), format="json")

        self.assertEqual(response.status_code, 201)
        application = Application.objects.get(id=response.json()["id"])
        self.assertEqual(application.status, Application.Status.DONE)
        self.assertIsNotNone(application.completed_at)
        exits = StockMovement.objects.filter(reference_id=application.id)
        self.assertEqual(exits.count(), 1)
        movement = exits.get()
        self.assertEqual(movement.movement_type, "exit")
        self.assertEqual(movement.reference_type, "application")
        self.assertEqual(movement.quantity, Decimal("40.00"))

    def test_planned_application_never_writes_movements(self):
        before_movements = StockMovement.objects.count()

        response = self.client.post(
            "/api/v1/applications/",
            self.application_payload("5000.00", status="planned"),
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["status"], "PLANNED")
        self.assertEqual(StockMovement.objects.count(), before_movements)

    def test_dosage_only_line_item_derives_quantity_from_partial_area_and_cost(self):
        payload = self.application_payload(None, status="planned", is_partial=True, partial_area="40.00")
        payload["line_items"] = [{"product": str(self.product.id), "dosage": "2.00", "dosage_unit": "L/ha"}]

        response = self.client.post("/api/v1/applications/", payload, format="json")

        self.assertEqual(response.status_code, 201)
        line = ApplicationProduct.objects.get(application_id=response.json()["id"])
        self.assertEqual(line.quantity_used, Decimal("80.00"))
        self.assertEqual(line.cost, Decimal("800.00"))
        self.assertEqual(response.json()["effective_area"], "40.00")

    def test_quantity_only_line_item_derives_dosage(self):
        response = self.client.post(
            "/api/v1/applications/",
            self.application_payload("25.00", status="planned"),
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        line = ApplicationProduct.objects.get(application_id=response.json()["id"])
        self.assertEqual(line.dosage, Decimal("0.25"))

    def test_partial_area_larger_than_field_is_rejected(self):
        before = self.row_counts()

        response = self.client.post(
            "/api/v1/applications/",
            self.application_payload("10.00", status="planned", is_partial=True, partial_area="150.00"),
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("partial_area", response.json()["errors"])
        self.assertEqual(self.row_counts(), before)

    def test_application_without_products_is_rejected(self):
        response = self.client.post(
            "/api/v1/applications/",
            self.application_payload("10.00", status="planned", line_items=[]),
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("line_items", response.json()["errors"])

    def test_duplicate_products_are_rejected(self):
        payload = self.application_payload("10.00", status="planned")
        payload["line_items"] = payload["line_items"] * 2

        response = self.client.post("/api/v1/applications/", payload, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("line_items", response.json()["errors"])

    def test_unknown_status_is_rejected(self):
        response = self.client.post(
            "/api/v1/applications/",
            self.application_payload("10.00", status="archived"),
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("status", response.json()["errors"])

    def test_exit_write_failure_rolls_back_everything(self):
        before = self.row_counts()

        with patch("applications.services.record_application_exits", side_effect=DatabaseError("ledger unavailable")):
            response = self.client.post("/api/v1/applications/", self.application_payload("40.00"), format="json")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["code"], "persistence_error")
        self.assertIn("ledger unavailable", response.json()["message"])
        self.assertEqual(self.row_counts(), before)

    def test_create_is_audited(self):
        response = self.client.post(
            "/api/v1/applications/",
            self.application_payload("10.00", status="planned"),
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        log = AuditLog.objects.get(action="application.create")
        self.assertEqual(str(log.entity_id), response.json()["id"])
        self.assertEqual(log.farm_id, self.farm.id)
        self.assertEqual(log.actor_id, self.owner.id)


class ApplicationUpdateTests(ApplicationFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixture()
        self.client.force_authenticate(user=self.owner)
        self.application = self.create_planned(self.product, "50.00", name="Inseticida", dosage="0.50")

    def test_completing_excludes_own_reservation(self):
        # Available to others is 80 - 30 - 50 = 0, but this application's own 50 L must not count.
        response = self.client.patch(
            f"/api/v1/applications/{self.application.id}/",
            {"status": "completed"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "DONE")
        exits = StockMovement.objects.filter(reference_id=self.application.id, reference_type="application")
        self.assertEqual(exits.count(), 1)
        self.assertEqual(exits.get().quantity, Decimal("50.00"))

    def test_completion_writes_one_exit_per_line_item(self):
        other = Product.objects.create(farm=self.farm, name="Oleo mineral", unit="L")
        self.add_movement(other, "entry", "20.00", unit_price="5.00")
        ApplicationProduct.objects.create(
            application=self.application,
            product=other,
            dosage=Decimal("0.10"),
            quantity_used=Decimal("10.00"),
        )

        response = self.client.post(f"/api/v1/applications/{self.application.id}/complete/", format="json")

        self.assertEqual(response.status_code, 200)
        exits = StockMovement.objects.filter(reference_id=self.application.id)
        self.assertEqual(exits.count(), 2)
        self.assertEqual(set(exits.values_list("product_id", flat=True)), {self.product.id, other.id})
        self.assertTrue(all(movement.movement_type == "exit" for movement in exits))

    def test_completion_with_replacement_items_beyond_stock_changes_nothing(self):
        response = self.client.patch(
            f"/api/v1/applications/{self.application.id}/",
            {"status": "done", "line_items": [{"product": str(self.product.id), "quantity_used": "70.00"}]},
            format="json",
        )

        self.assertEqual(response.status_code, 409)
        self.application.refresh_from_db()
        self.assertEqual(self.application.status, Application.Status.PLANNED)
        self.assertEqual(
            list(self.application.line_items.values_list("quantity_used", flat=True)),
            [Decimal("50.00")],
        )
        self.assertFalse(StockMovement.objects.filter(reference_id=self.application.id).exists())

    def test_exit_write_failure_keeps_application_planned_and_items_intact(self):
        with patch("applications.services.record_application_exits", side_effect=DatabaseError("disk full")):
            response = self.client.patch(
                f"/api/v1/applications/{self.application.id}/",
                {"status": "completed", "line_items": [{"product": str(self.product.id), "quantity_used": "45.00"}]},
                format="json",
            )

        self.assertEqual(response.status_code, 503)
        self.application.refresh_from_db()
        self.assertEqual(self.application.status, Application.Status.PLANNED)
        self.assertIsNone(self.application.completed_at)
        self.assertEqual(
            list(self.application.line_items.values_list("quantity_used", flat=True)),
            [Decimal("50.00")],
        )

    def test_replacement_line_items_are_swapped_wholesale(self):
        other = Product.objects.create(farm=self.farm, name="Oleo mineral", unit="L")

        response = self.client.patch(
            f"/api/v1/applications/{self.application.id}/",
            {"line_items": [{"product": str(other.id), "dosage": "0.30"}]},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        lines = list(self.application.line_items.all())
        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].product_id, other.id)
        self.assertEqual(lines[0].quantity_used, Decimal("30.00"))

    def test_empty_line_item_list_keeps_existing_items(self):
        response = self.client.patch(
            f"/api/v1/applications/{self.application.id}/",
            {"notes": "Vento fraco", "line_items": []},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.application.line_items.count(), 1)
        self.application.refresh_from_db()
        self.assertEqual(self.application.notes, "Vento fraco")

    def test_update_only_touches_allowed_columns(self):
        stranger = self.user_model.objects.create_user(username="stranger", password="pass1234")

        update_application(
            self.application,
            data={"name": "Renomeada", "created_by": stranger, "completed_at": "2020-01-01T00:00:00Z"},
        )

        self.application.refresh_from_db()
        self.assertEqual(self.application.name, "Renomeada")
        self.assertIsNone(self.application.created_by_id)
        self.assertIsNone(self.application.completed_at)

    def test_completed_application_cannot_return_to_planned(self):
        self.client.post(f"/api/v1/applications/{self.application.id}/complete/", format="json")

        response = self.client.patch(
            f"/api/v1/applications/{self.application.id}/",
            {"status": "planned"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("status", response.json()["errors"])

    def test_cancelled_application_cannot_be_completed(self):
        self.client.patch(f"/api/v1/applications/{self.application.id}/", {"status": "cancelled"}, format="json")

        response = self.client.post(f"/api/v1/applications/{self.application.id}/complete/", format="json")

        self.assertEqual(response.status_code, 400)
        self.application.refresh_from_db()
        self.assertEqual(self.application.status, Application.Status.CANCELED)
        self.assertFalse(StockMovement.objects.filter(reference_id=self.application.id).exists())

    def test_cancelling_releases_reservation(self):
        self.client.patch(f"/api/v1/applications/{self.reserving.id}/", {"status": "CANCELED"}, format="json")

        response = self.client.post(
            "/api/v1/applications/",
            self.application_payload("30.00"),
            format="json",
        )

        # 80 - 50 reserved by the remaining planned application leaves exactly 30.
        self.assertEqual(response.status_code, 201)

    def test_products_of_completed_application_cannot_change(self):
        self.client.post(f"/api/v1/applications/{self.application.id}/complete/", format="json")

        response = self.client.patch(
            f"/api/v1/applications/{self.application.id}/",
            {"line_items": [{"product": str(self.product.id), "quantity_used": "1.00"}]},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("line_items", response.json()["errors"])

    def test_partial_area_change_rescales_line_quantities(self):
        update_application(self.application, data={"is_partial": True, "partial_area": Decimal("40.00")})

        line = self.application.line_items.get()
        self.assertEqual(line.dosage, Decimal("0.50"))
        self.assertEqual(line.quantity_used, Decimal("20.00"))

        response = self.client.post(f"/api/v1/applications/{self.application.id}/complete/", format="json")

        self.assertEqual(response.status_code, 200)
        exit_movement = StockMovement.objects.get(reference_id=self.application.id)
        self.assertEqual(exit_movement.quantity, Decimal("20.00"))

    def test_area_change_through_api_updates_reservation(self):
        response = self.client.patch(
            f"/api/v1/applications/{self.application.id}/",
            {"is_partial": True, "partial_area": "10.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["products"][0]["quantity_used"], "5.00")
        # 80 in stock, 30 + 5 reserved.
        created = self.client.post("/api/v1/applications/", self.application_payload("45.00"), format="json")
        self.assertEqual(created.status_code, 201)

    def test_area_of_completed_application_cannot_change(self):
        self.client.post(f"/api/v1/applications/{self.application.id}/complete/", format="json")

        response = self.client.patch(
            f"/api/v1/applications/{self.application.id}/",
            {"is_partial": True, "partial_area": "10.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("partial_area", response.json()["errors"])
        self.assertEqual(self.application.line_items.get().quantity_used, Decimal("50.00"))


class ApplicationDeleteAndAccessTests(ApplicationFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixture()
        self.application = self.create_planned(self.product, "10.00", name="Herbicida")

    def test_delete_removes_items_and_recipes_but_keeps_ledger(self):
        self.client.force_authenticate(user=self.owner)
        machinery = Machinery.objects.create(user=self.owner, name="Uniport", tank_capacity_liters=Decimal("2000"))
        create_recipe(
            self.application,
            data={
                "machinery": machinery,
                "calculation_mode": "area",
                "application_rate_liters_per_hectare": Decimal("10"),
                "area_hectares": Decimal("5"),
                "multiplier": Decimal("1"),
                "product_ids": [self.product.id],
            },
        )
        movements_before = StockMovement.objects.count()

        response = self.client.delete(f"/api/v1/applications/{self.application.id}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(Application.objects.filter(id=self.application.id).exists())
        self.assertFalse(ApplicationProduct.objects.filter(application_id=self.application.id).exists())
        self.assertFalse(PracticalRecipe.objects.exists())
        self.assertFalse(PracticalRecipeProduct.objects.exists())
        self.assertEqual(StockMovement.objects.count(), movements_before)

    def test_operator_can_create_and_complete_but_not_edit_or_delete(self):
        self.client.force_authenticate(user=self.operator)

        created = self.client.post(
            "/api/v1/applications/",
            self.application_payload("5.00", status="planned"),
            format="json",
        )
        completed = self.client.post(f"/api/v1/applications/{created.json()['id']}/complete/", format="json")
        edited = self.client.patch(f"/api/v1/applications/{self.application.id}/", {"notes": "x"}, format="json")
        deleted = self.client.delete(f"/api/v1/applications/{self.application.id}/")

        self.assertEqual(created.status_code, 201)
        self.assertEqual(completed.status_code, 200)
        self.assertEqual(edited.status_code, 403)
        self.assertEqual(deleted.status_code, 403)

    def test_viewer_can_list_but_not_create(self):
        self.client.force_authenticate(user=self.viewer)

        listed = self.client.get("/api/v1/applications/")
        with self.assertLogs("security.authorization", level="WARNING"):
            created = self.client.post(
                "/api/v1/applications/",
                self.application_payload("5.00", status="planned"),
                format="json",
            )

        self.assertEqual(listed.status_code, 200)
        self.assertEqual(created.status_code, 403)

    def test_other_farm_applications_are_invisible(self):
        other_farm = Farm.objects.create(name="Vizinha")
        other_user = self.user_model.objects.create_user(
            username="neighbor",
            password="pass1234",
            farm=other_farm,
            role="owner",
        )
        self.client.force_authenticate(user=other_user)

        response = self.client.get(f"/api/v1/applications/{self.application.id}/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_status_filter_accepts_aliases(self):
        Application.objects.filter(id=self.reserving.id).update(status="planned")
        self.client.force_authenticate(user=self.owner)

        response = self.client.get("/api/v1/applications/?status=planned")

        ids = {row["id"] for row in response.json()["results"]}
        self.assertEqual(ids, {str(self.application.id), str(self.reserving.id)})


class StatusAndArithmeticTests(TestCase):
    def test_status_aliases_normalize_to_stored_form(self):
        cases = {
            "planned": "PLANNED",
            "PLANNED": "PLANNED",
            "completed": "DONE",
            "done": "DONE",
            "DONE": "DONE",
            "cancelled": "CANCELED",
            "canceled": "CANCELED",
            "CANCELED": "CANCELED",
        }
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                self.assertEqual(normalize_status(raw), expected)

    def test_unknown_status_raises_validation_error(self):
        with self.assertRaises(ValidationError):
            normalize_status("paused")

    def test_dosage_quantity_round_trip(self):
        for area in ["1", "12.5", "37.33", "100", "250.75"]:
            for dosage in ["0.01", "0.35", "1.5", "2", "3.33"]:
                with self.subTest(area=area, dosage=dosage):
                    quantity = calculations.quantity_from_dosage(dosage, area)
                    self.assertEqual(calculations.dosage_from_quantity(quantity, area), Decimal(dosage).quantize(Decimal("0.01")))

    def test_rounding_is_half_up(self):
        self.assertEqual(calculations.quantity_from_dosage("0.125", "1"), Decimal("0.13"))
        self.assertEqual(calculations.area_from_liters("100", "3"), Decimal("33.33"))

    def test_effective_area_prefers_positive_partial_area(self):
        self.assertEqual(calculations.effective_area("100", True, "40"), Decimal("40"))
        self.assertEqual(calculations.effective_area("100", True, "0"), Decimal("100"))
        self.assertEqual(calculations.effective_area("100", False, "40"), Decimal("100"))


class RecipeCalculatorTests(ApplicationFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixture()
        self.client.force_authenticate(user=self.owner)
        # 2 L/ha over 100 ha.
        self.application = self.create_planned(self.product, "200.00", name="Fungicida", dosage="2.00")
        self.machinery = Machinery.objects.create(user=self.owner, name="Jacto 600", tank_capacity_liters=Decimal("600"))

    def recipe_payload(self, **overrides):
        payload = {
            "machinery": str(self.machinery.id),
            "calculation_mode": "area",
            "application_rate_liters_per_hectare": "10.00",
            "area_hectares": "40.00",
            "multiplier": "1",
            "product_ids": [str(self.product.id)],
        }
        payload.update(overrides)
        return payload

    def post_recipe(self, **overrides):
        return self.client.post(
            f"/api/v1/applications/{self.application.id}/recipes/",
            self.recipe_payload(**overrides),
            format="json",
        )

    def test_successive_recipes_consume_planned_quantity(self):
        first = self.post_recipe()
        second = self.post_recipe()
        third = self.post_recipe()

        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.json()["items"][0]["quantity_in_recipe"], "80.00")
        self.assertEqual(first.json()["items"][0]["remaining_quantity"], "120.00")
        self.assertEqual(second.json()["items"][0]["remaining_quantity"], "40.00")
        # Over-allocation is flagged with a negative remainder, not blocked.
        self.assertEqual(third.status_code, 201)
        self.assertEqual(third.json()["items"][0]["remaining_quantity"], "-40.00")
        self.assertEqual(first.json()["liters_of_solution"], "400.00")
        self.assertEqual(first.json()["capacity_used_percent"], 100)

    def test_liters_mode_derives_area(self):
        response = self.post_recipe(calculation_mode="liters", liters_of_solution="400.00", area_hectares=None)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["area_hectares"], "40.00")
        self.assertEqual(response.json()["items"][0]["quantity_in_recipe"], "80.00")

    def test_multiplier_scales_allocation(self):
        response = self.post_recipe(multiplier="2.5")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["items"][0]["quantity_in_recipe"], "200.00")
        self.assertEqual(response.json()["items"][0]["remaining_quantity"], "0.00")

    def test_tank_overflow_is_rejected_before_any_write(self):
        response = self.post_recipe(area_hectares="70.00")

        self.assertEqual(response.status_code, 400)
        self.assertIn("liters_of_solution", response.json()["errors"])
        self.assertFalse(PracticalRecipe.objects.exists())

    def test_recipe_requires_a_product(self):
        response = self.post_recipe(product_ids=[])

        self.assertEqual(response.status_code, 400)
        self.assertIn("product_ids", response.json()["errors"])
        self.assertFalse(PracticalRecipe.objects.exists())

    def test_recipe_requires_machinery(self):
        response = self.post_recipe(machinery=None)

        self.assertEqual(response.status_code, 400)
        self.assertIn("machinery", response.json()["errors"])

    def test_recipe_products_must_belong_to_application(self):
        other = Product.objects.create(farm=self.farm, name="Oleo mineral", unit="L")

        response = self.post_recipe(product_ids=[str(other.id)])

        self.assertEqual(response.status_code, 400)
        self.assertIn("product_ids", response.json()["errors"])

    def test_multiplier_below_minimum_is_rejected(self):
        response = self.post_recipe(multiplier="0")

        self.assertEqual(response.status_code, 400)
        self.assertIn("multiplier", response.json()["errors"])

    def test_editing_a_recipe_does_not_subtract_its_own_allocation(self):
        self.post_recipe()
        second = self.post_recipe()
        recipe = PracticalRecipe.objects.get(id=second.json()["id"])

        response = self.client.patch(f"/api/v1/recipes/{recipe.id}/", {"notes": "Refeita"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["items"][0]["remaining_quantity"], "40.00")
        self.assertEqual(PracticalRecipeProduct.objects.filter(practical_recipe=recipe).count(), 1)

    def test_editing_multiplier_recomputes_against_siblings_only(self):
        first = self.post_recipe()
        self.post_recipe()
        recipe = PracticalRecipe.objects.get(id=first.json()["id"])

        updated = update_recipe(recipe, data={"multiplier": Decimal("0.5")})

        item = updated.items.get()
        self.assertEqual(item.quantity_in_recipe, Decimal("40.00"))
        self.assertEqual(item.remaining_quantity, Decimal("80.00"))

    def test_recipe_item_write_failure_leaves_no_recipe(self):
        with patch.object(PracticalRecipeProduct.objects, "bulk_create", side_effect=DatabaseError("timeout")):
            response = self.post_recipe()

        self.assertEqual(response.status_code, 503)
        self.assertFalse(PracticalRecipe.objects.exists())

    def test_preview_reports_tank_loads_and_warnings_without_writing(self):
        self.post_recipe(multiplier="2")

        response = self.client.post(
            f"/api/v1/applications/{self.application.id}/recipes/preview/",
            self.recipe_payload(area_hectares="70.00", multiplier="1"),
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["tank_overflow"])
        self.assertEqual(payload["liters_of_solution"], "700.00")
        self.assertEqual(payload["recommended_tank_loads"], "1.43")
        self.assertEqual(payload["remaining_area"], "20.00")
        self.assertEqual(payload["items"][0]["previously_allocated"], "160.00")
        self.assertEqual(payload["items"][0]["remaining_quantity"], "-100.00")
        self.assertEqual(len(payload["warnings"]), 2)
        self.assertEqual(PracticalRecipe.objects.count(), 1)

    def test_calculate_without_selection_uses_every_line_item(self):
        result = calculate_recipe(
            self.application,
            calculation_mode="area",
            application_rate=Decimal("10"),
            area_hectares=Decimal("25"),
        )

        self.assertEqual(len(result["items"]), 1)
        self.assertEqual(result["items"][0]["quantity_in_recipe"], Decimal("50.00"))
        self.assertEqual(result["recommended_tank_loads"], Decimal("4.00"))
        self.assertFalse(result["tank_overflow"])

    def test_loading_summary_totals_tank_loads(self):
        self.post_recipe(multiplier="1.5")
        self.post_recipe(multiplier="1")

        response = self.client.get(f"/api/v1/applications/{self.application.id}/loading/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["total_tank_loads"], "2.50")
        self.assertEqual(payload["remaining_area"], "0.00")
        self.assertEqual(payload["products"][0]["quantity_used"], "200.00")
        self.assertEqual(len(payload["recipes"]), 2)

    def test_operator_cannot_delete_recipe(self):
        created = self.post_recipe()
        self.client.force_authenticate(user=self.operator)

        response = self.client.delete(f"/api/v1/recipes/{created.json()['id']}/")

        self.assertEqual(response.status_code, 403)

    def test_owner_deletes_recipe_with_items(self):
        created = self.post_recipe()

        response = self.client.delete(f"/api/v1/recipes/{created.json()['id']}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(PracticalRecipe.objects.exists())
        self.assertFalse(PracticalRecipeProduct.objects.exists())

    def test_clearing_machinery_on_update_is_rejected(self):
        created = self.post_recipe()

        response = self.client.patch(
            f"/api/v1/recipes/{created.json()['id']}/",
            {"machinery": None, "area_hectares": "500.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("machinery", response.json()["errors"])
        recipe = PracticalRecipe.objects.get(id=created.json()["id"])
        self.assertEqual(recipe.liters_of_solution, Decimal("400.00"))
        self.assertEqual(recipe.machinery_id, self.machinery.id)

    def test_recipe_whose_machinery_was_removed_cannot_be_rewritten(self):
        created = self.post_recipe()
        PracticalRecipe.objects.filter(id=created.json()["id"]).update(machinery=None)

        response = self.client.patch(
            f"/api/v1/recipes/{created.json()['id']}/",
            {"area_hectares": "500.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("machinery", response.json()["errors"])
        self.assertEqual(PracticalRecipe.objects.get(id=created.json()["id"]).area_hectares, Decimal("40.00"))

    def test_update_still_enforces_tank_capacity(self):
        created = self.post_recipe()

        response = self.client.patch(
            f"/api/v1/recipes/{created.json()['id']}/",
            {"area_hectares": "70.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("liters_of_solution", response.json()["errors"])

    def test_recipes_of_cancelled_application_cannot_be_edited(self):
        created = self.post_recipe()
        Application.objects.filter(id=self.application.id).update(status=Application.Status.CANCELED)

        response = self.client.patch(
            f"/api/v1/recipes/{created.json()['id']}/",
            {"notes": "Refeita"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("application", response.json()["errors"])


class MachineryTests(ApplicationFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixture()
        self.shared = Machinery.objects.create(user=None, name="Aviao agricola", type="aircraft", tank_capacity_liters=Decimal("1500"))
        self.other_user = self.user_model.objects.create_user(username="other-operator", password="pass1234", farm=self.farm)
        self.private = Machinery.objects.create(user=self.other_user, name="Drone particular", type="drone", tank_capacity_liters=Decimal("40"))

    def test_user_sees_own_and_shared_machinery(self):
        mine = Machinery.objects.create(user=self.operator, name="Jacto", tank_capacity_liters=Decimal("600"))
        self.client.force_authenticate(user=self.operator)

        response = self.client.get("/api/v1/machineries/")

        ids = {row["id"] for row in response.json()["results"]}
        self.assertEqual(ids, {str(mine.id), str(self.shared.id)})

    def test_created_machinery_is_owned_by_requester(self):
        self.client.force_authenticate(user=self.operator)

        response = self.client.post(
            "/api/v1/machineries/",
            {"name": "DJI Agras", "type": "drone", "tank_capacity_liters": "40.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Machinery.objects.get(id=response.json()["id"]).user_id, self.operator.id)
        self.assertFalse(response.json()["is_shared"])
        log = AuditLog.objects.get(action="machinery.create")
        self.assertEqual(log.farm_id, self.farm.id)
        self.assertEqual(log.after_snapshot["tank_capacity_liters"], "40.00")

    def test_shared_machinery_cannot_be_changed_by_regular_user(self):
        self.client.force_authenticate(user=self.operator)

        response = self.client.patch(f"/api/v1/machineries/{self.shared.id}/", {"name": "Renamed"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.shared.refresh_from_db()
        self.assertEqual(self.shared.name, "Aviao agricola")

    def test_zero_tank_capacity_is_rejected(self):
        self.client.force_authenticate(user=self.operator)

        response = self.client.post(
            "/api/v1/machineries/",
            {"name": "Vazio", "type": "sprayer", "tank_capacity_liters": "0"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
