from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from core.models import AuditLog, Company


class CompanyScopedCoreTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.company_a = Company.objects.create(slug="company-a", name="Company A")
        self.company_b = Company.objects.create(slug="company-b", name="Company B")

        self.staff_a = self.user_model.objects.create_user(
            username="core-staff-a",
            password="pass1234",
            company=self.company_a,
        )
        self.superuser = self.user_model.objects.create_superuser(
            username="core-root",
            password="pass1234",
            email="root@example.com",
        )

    def test_staff_only_sees_own_company(self):
        self.client.force_authenticate(user=self.staff_a)

        response = self.client.get("/api/v1/companies/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        ids = {item["id"] for item in payload["results"]}
        self.assertIn(str(self.company_a.id), ids)
        self.assertNotIn(str(self.company_b.id), ids)

    def test_superuser_can_list_every_company(self):
        self.client.force_authenticate(user=self.superuser)

        response = self.client.get("/api/v1/companies/")

        self.assertEqual(response.status_code, 200)
        ids = {item["id"] for item in response.json()["results"]}
        self.assertEqual(ids, {str(self.company_a.id), str(self.company_b.id)})

    def test_user_without_company_sees_nothing(self):
        drifter = self.user_model.objects.create_user(username="core-drifter", password="pass1234")
        self.client.force_authenticate(user=drifter)

        response = self.client.get("/api/v1/companies/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["results"], [])


class RolePermissionCoreTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.company = Company.objects.create(slug="role-perm", name="Role Perm")
        self.staff = self.user_model.objects.create_user(
            username="staff-core",
            password="pass1234",
            company=self.company,
            role="staff",
        )
        self.admin = self.user_model.objects.create_user(
            username="admin-core",
            password="pass1234",
            company=self.company,
            role="admin",
        )

    def test_staff_cannot_read_audit_logs_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.staff)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_admin_can_read_audit_logs(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 200)


class AuditLogTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.company = Company.objects.create(slug="audit", name="Audit")
        self.other_company = Company.objects.create(slug="audit-other", name="Audit Other")
        self.admin = self.user_model.objects.create_user(
            username="audit-admin",
            password="pass1234",
            company=self.company,
            role="admin",
        )

    def test_warehouse_create_writes_audit_log(self):
        self.client.force_authenticate(user=self.admin)
        res = self.client.post(
            "/api/v1/admin/warehouses/",
            {"name": "Audit Godown", "is_active": True},
            format="json",
            HTTP_X_REQUEST_ID="req-123",
        )

        self.assertEqual(res.status_code, 201)
        self.assertEqual(res["X-Request-ID"], "req-123")
        log = AuditLog.objects.get(action="warehouse.create", entity="warehouse", request_id="req-123")
        self.assertEqual(log.company_id, self.company.id)
        self.assertEqual(log.after_snapshot["name"], "Audit Godown")

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.create(action="test.action", entity="test", company=self.company, actor=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)

    def test_audit_logs_are_company_scoped_and_filterable(self):
        AuditLog.objects.create(action="goods_inward.create", entity="goods_inward", company=self.company)
        AuditLog.objects.create(action="label_batch.create", entity="label_batch", company=self.company)
        AuditLog.objects.create(action="goods_inward.create", entity="goods_inward", company=self.other_company)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/", {"entity": "goods_inward"})

        self.assertEqual(response.status_code, 200)
        results = response.json()["results"]
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0]["company"], str(self.company.id))


class TokenAndHealthTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.company = Company.objects.create(slug="token", name="Token Co")
        self.user = get_user_model().objects.create_user(
            username="token-user",
            email="Token.User@Example.com",
            password="pass1234",
            company=self.company,
            role="admin",
        )

    def test_email_is_stored_lowercase(self):
        self.user.refresh_from_db()
        self.assertEqual(self.user.email, "token.user@example.com")

    def test_token_accepts_email_and_carries_company_claims(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "TOKEN.USER@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        token = AccessToken(response.json()["access"])
        self.assertEqual(token["role"], "admin")
        self.assertEqual(token["company_id"], str(self.company.id))

    def test_bad_credentials_use_error_envelope(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "token-user", "password": "wrong"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "authentication_failed")

    def test_health_endpoints(self):
        healthz = self.client.get("/api/v1/healthz/", HTTP_X_REQUEST_ID="health-1")
        readyz = self.client.get("/api/v1/readyz/")

        self.assertEqual(healthz.status_code, 200)
        self.assertEqual(healthz.json(), {"status": "ok", "request_id": "health-1"})
        self.assertEqual(readyz.status_code, 200)
        self.assertEqual(readyz.json()["status"], "ready")
