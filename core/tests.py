import json
import logging
import uuid
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIClient

from applications.models import Application, PracticalRecipe
from common.logging import JsonFormatter
from core.models import AuditLog, Farm
from inventory.models import StockMovement


class FarmScopedCoreTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.farm_a = Farm.objects.create(name="Fazenda A")
        self.farm_b = Farm.objects.create(name="Fazenda B")

        self.owner_a = self.user_model.objects.create_user(
            username="core-owner-a",
            password="pass1234",
            farm=self.farm_a,
            role="owner",
        )

    def test_user_only_lists_own_farm(self):
        self.client.force_authenticate(user=self.owner_a)

        response = self.client.get("/api/v1/farms/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        ids = {item["id"] for item in payload["results"]}
        self.assertEqual(ids, {str(self.farm_a.id)})

    def test_superuser_lists_every_farm(self):
        superuser = self.user_model.objects.create_superuser(username="root", password="pass1234")
        self.client.force_authenticate(user=superuser)

        response = self.client.get("/api/v1/farms/")

        ids = {item["id"] for item in response.json()["results"]}
        self.assertEqual(ids, {str(self.farm_a.id), str(self.farm_b.id)})

    def test_owner_without_farm_is_attached_to_created_farm(self):
        newcomer = self.user_model.objects.create_user(username="newcomer", password="pass1234", role="owner")
        self.client.force_authenticate(user=newcomer)

        response = self.client.post("/api/v1/farms/", {"name": "Fazenda Nova", "state": "GO"}, format="json")

        self.assertEqual(response.status_code, 201)
        newcomer.refresh_from_db()
        self.assertEqual(str(newcomer.farm_id), response.json()["id"])

    def test_me_returns_role_and_farm(self):
        self.client.force_authenticate(user=self.owner_a)

        response = self.client.get("/api/v1/me/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["role"], "owner")
        self.assertEqual(response.json()["farm_name"], "Fazenda A")


class RolePermissionCoreTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.farm = Farm.objects.create(name="Fazenda Papeis")
        self.viewer = self.user_model.objects.create_user(
            username="viewer-core",
            password="pass1234",
            farm=self.farm,
            role="viewer",
        )
        self.owner = self.user_model.objects.create_user(
            username="owner-core",
            password="pass1234",
            farm=self.farm,
            role="owner",
        )

    def test_viewer_cannot_edit_farm_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.viewer)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.patch(f"/api/v1/farms/{self.farm.id}/", {"name": "Renomeada"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_owner_can_edit_farm(self):
        self.client.force_authenticate(user=self.owner)

        response = self.client.patch(f"/api/v1/farms/{self.farm.id}/", {"city": "Rio Verde"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.farm.refresh_from_db()
        self.assertEqual(self.farm.city, "Rio Verde")

    def test_anonymous_request_gets_error_envelope(self):
        response = self.client.get("/api/v1/farms/")

        self.assertEqual(response.status_code, 401)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["code", "errors", "message", "status"])
        self.assertEqual(payload["code"], "not_authenticated")
        self.assertEqual(payload["status"], 401)


class AuditLogTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.farm = Farm.objects.create(name="Fazenda Auditada")
        self.admin = self.user_model.objects.create_user(
            username="audit-admin",
            password="pass1234",
            farm=self.farm,
            role="admin",
        )

    def test_field_create_writes_audit_log_with_request_id(self):
        self.client.force_authenticate(user=self.admin)
        res = self.client.post(
            "/api/v1/fields/",
            {"name": "Talhao 7", "area_hectares": "42.50"},
            format="json",
            HTTP_X_REQUEST_ID="req-123",
        )

        self.assertEqual(res.status_code, 201)
        self.assertEqual(res["X-Request-ID"], "req-123")
        self.assertTrue(AuditLog.objects.filter(action="field.create", entity="field", request_id="req-123").exists())

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.create(action="test.action", entity="test", farm=self.farm, actor=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)

    def test_audit_log_filters_and_export(self):
        other_farm = Farm.objects.create(name="Outra")
        AuditLog.objects.create(action="field.create", entity="field", farm=self.farm, actor=self.admin)
        AuditLog.objects.create(action="product.create", entity="product", farm=self.farm, actor=self.admin)
        AuditLog.objects.create(action="field.create", entity="field", farm=other_farm)
        self.client.force_authenticate(user=self.admin)

        listed = self.client.get("/api/v1/admin/audit-logs/?entity=field")
        exported = self.client.get("/api/v1/admin/audit-logs/export/")

        self.assertEqual(listed.json()["count"], 1)
        self.assertEqual(exported.status_code, 200)
        self.assertEqual(exported["Content-Type"], "text/csv")
        lines = exported.content.decode().strip().splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[0].startswith("id,created_at,actor,farm"))

    def test_manager_cannot_read_audit_logs(self):
        manager = self.user_model.objects.create_user(
            username="audit-manager",
            password="pass1234",
            farm=self.farm,
            role="manager",
        )
        self.client.force_authenticate(user=manager)

        response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)


class AuthenticationTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.farm = Farm.objects.create(name="Fazenda Login")
        self.user = get_user_model().objects.create_user(
            username="login-user",
            email="Login@Example.com",
            password="pass1234",
            farm=self.farm,
            role="manager",
        )

    def test_email_is_stored_lowercase(self):
        self.assertEqual(self.user.email, "login@example.com")

    def test_token_accepts_email_in_place_of_username(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "LOGIN@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.json())
        self.assertIn("refresh", response.json())

    def test_token_rejects_wrong_password(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "login-user", "password": "wrong"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "authentication_failed")


class HealthcheckTests(TestCase):
    def test_healthz_is_public(self):
        response = APIClient().get("/api/v1/healthz/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_readyz_checks_database(self):
        response = APIClient().get("/api/v1/readyz/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ready")


class SeedDemoDataCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        call_command("seed_demo_data", stdout=StringIO())
        call_command("seed_demo_data", stdout=StringIO())

        self.assertEqual(Farm.objects.filter(name="Fazenda Demo").count(), 1)
        self.assertEqual(Application.objects.count(), 1)
        self.assertEqual(PracticalRecipe.objects.count(), 1)
        self.assertEqual(StockMovement.objects.count(), 2)


class JsonLoggingTests(TestCase):
    def test_formatter_renders_domain_extras(self):
        record = logging.LogRecord("applications.services", logging.INFO, __file__, 1, "application_created", None, None)
        record.application_id = uuid.UUID("00000000-0000-0000-0000-0000000000aa")
        record.farm_id = "farm-1"
        record.branch_id = "ignored"

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "application_created")
        self.assertEqual(payload["application_id"], "00000000-0000-0000-0000-0000000000aa")
        self.assertEqual(payload["farm_id"], "farm-1")
        self.assertNotIn("branch_id", payload)

    def test_access_log_carries_farm_of_authenticated_user(self):
        farm = Farm.objects.create(name="Fazenda Logada")
        user = get_user_model().objects.create_user(username="logged", password="pass1234", farm=farm, role="viewer")
        client = APIClient()
        client.force_authenticate(user=user)

        with self.assertLogs("api.request", level="INFO") as cm:
            client.get("/api/v1/farms/", HTTP_X_REQUEST_ID="req-farm")

        record = cm.records[-1]
        self.assertEqual(record.request_id, "req-farm")
        self.assertEqual(record.farm_id, str(farm.id))
        self.assertEqual(record.status_code, 200)
