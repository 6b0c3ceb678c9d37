from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from applications.models import Application
from core.models import AuditLog, Farm
from farms.models import Field, FieldCrop, HarvestYear


class FarmRecordsTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.farm_a = Farm.objects.create(name="Fazenda A")
        self.farm_b = Farm.objects.create(name="Fazenda B")
        self.manager_a = self.user_model.objects.create_user(
            username="farm-manager-a",
            password="pass1234",
            farm=self.farm_a,
            role="manager",
        )

        self.field_a = Field.objects.create(farm=self.farm_a, name="Talhao A1", area_hectares=Decimal("80.00"))
        self.field_b = Field.objects.create(farm=self.farm_b, name="Talhao B1", area_hectares=Decimal("55.00"))
        self.year_a = HarvestYear.objects.create(farm=self.farm_a, name="2025/2026", is_active=True)
        self.year_b = HarvestYear.objects.create(farm=self.farm_b, name="2025/2026")

    def test_user_only_sees_own_farm_fields(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.get("/api/v1/fields/")

        self.assertEqual(response.status_code, 200)
        ids = {item["id"] for item in response.json()["results"]}
        self.assertEqual(ids, {str(self.field_a.id)})

    def test_other_farm_field_is_not_found(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.get(f"/api/v1/fields/{self.field_b.id}/")

        self.assertEqual(response.status_code, 404)

    def test_create_field_ignores_injected_farm(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.post(
            "/api/v1/fields/",
            {"farm": str(self.farm_b.id), "name": "Talhao Novo", "area_hectares": "12.30"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        created = Field.objects.get(id=response.json()["id"])
        self.assertEqual(created.farm_id, self.farm_a.id)
        self.assertTrue(AuditLog.objects.filter(action="field.create", entity_id=created.id, farm=self.farm_a).exists())

    def test_field_area_must_be_positive(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.post("/api/v1/fields/", {"name": "Sem area", "area_hectares": "0"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("area_hectares", response.json()["errors"])

    def test_user_without_farm_cannot_create_records(self):
        drifter = self.user_model.objects.create_user(username="drifter", password="pass1234", role="manager")
        self.client.force_authenticate(user=drifter)

        response = self.client.post("/api/v1/fields/", {"name": "Orfao", "area_hectares": "10"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertFalse(Field.objects.filter(name="Orfao").exists())

    def test_harvest_year_dates_are_validated(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.post(
            "/api/v1/harvest-years/",
            {"name": "2026/2027", "start_date": "2026-09-01", "end_date": "2026-08-01"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("end_date", response.json()["errors"])

    def test_harvest_years_filter_by_active_flag(self):
        HarvestYear.objects.create(farm=self.farm_a, name="2024/2025", is_active=False)
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.get("/api/v1/harvest-years/?is_active=true")

        names = [item["name"] for item in response.json()["results"]]
        self.assertEqual(names, ["2025/2026"])

    def test_field_crop_rejects_other_farm_field(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.post(
            "/api/v1/field-crops/",
            {"field": str(self.field_b.id), "harvest_year": str(self.year_a.id), "culture": "Soja"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("field", response.json()["errors"])
        self.assertFalse(FieldCrop.objects.exists())

    def test_field_crop_create_and_filter_by_field(self):
        self.client.force_authenticate(user=self.manager_a)

        created = self.client.post(
            "/api/v1/field-crops/",
            {"field": str(self.field_a.id), "harvest_year": str(self.year_a.id), "culture": "Soja", "cycle": "Precoce"},
            format="json",
        )
        listed = self.client.get(f"/api/v1/field-crops/?field={self.field_a.id}")

        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["field_name"], "Talhao A1")
        self.assertEqual([item["id"] for item in listed.json()["results"]], [created.json()["id"]])

    def test_viewer_cannot_create_field_and_denial_is_logged(self):
        viewer = self.user_model.objects.create_user(
            username="farm-viewer",
            password="pass1234",
            farm=self.farm_a,
            role="viewer",
        )
        self.client.force_authenticate(user=viewer)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.post("/api/v1/fields/", {"name": "Bloqueado", "area_hectares": "5"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("records.manage" in message for message in cm.output))

    def test_field_with_applications_cannot_be_deleted(self):
        Application.objects.create(
            name="Dessecacao",
            field=self.field_a,
            harvest_year=self.year_a,
            application_date=date(2025, 10, 20),
        )
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.delete(f"/api/v1/fields/{self.field_a.id}/")

        self.assertEqual(response.status_code, 400)
        self.assertIn("still referenced", response.json()["errors"][0])
        self.assertTrue(Field.objects.filter(id=self.field_a.id).exists())

    def test_unused_field_delete_is_audited(self):
        spare = Field.objects.create(farm=self.farm_a, name="Reserva", area_hectares=Decimal("3.00"))
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.delete(f"/api/v1/fields/{spare.id}/")

        self.assertEqual(response.status_code, 204)
        self.assertTrue(AuditLog.objects.filter(action="field.delete", entity_id=spare.id).exists())
