from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import AuditLog, Company
from inventory.models import Partner, Product, Warehouse
from ledger import intake, store
from ledger.models import StockUnit


class CompanyScopedInventoryTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.company_a = Company.objects.create(slug="inv-a", name="Company A")
        self.company_b = Company.objects.create(slug="inv-b", name="Company B")

        self.admin_a = self.user_model.objects.create_user(
            username="admin-a",
            password="pass1234",
            company=self.company_a,
            role="admin",
        )
        self.staff_a = self.user_model.objects.create_user(
            username="staff-a",
            password="pass1234",
            company=self.company_a,
            role="staff",
        )

        self.product_a = Product.objects.create(company=self.company_a, product_code="A-001", name="A Product")
        self.product_b = Product.objects.create(company=self.company_b, product_code="B-001", name="B Product")
        self.warehouse_a = Warehouse.objects.create(company=self.company_a, name="A Godown")

    def test_user_cannot_read_other_company_products(self):
        self.client.force_authenticate(user=self.staff_a)

        response = self.client.get("/api/v1/products/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        ids = {item["id"] for item in payload["results"]}
        self.assertIn(str(self.product_a.id), ids)
        self.assertNotIn(str(self.product_b.id), ids)

    def test_admin_create_product_ignores_injected_company(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.post(
            "/api/v1/admin/products/",
            {
                "company": str(self.company_b.id),
                "product_code": "A-NEW",
                "name": "Created Product",
                "measuring_unit": "metre",
                "stock_type": "roll",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        created = Product.objects.get(id=response.json()["id"])
        self.assertEqual(created.company_id, self.company_a.id)
        self.assertTrue(AuditLog.objects.filter(action="product.create", entity_id=created.id).exists())

    def test_admin_create_product_duplicate_code_returns_validation_error(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.post(
            "/api/v1/admin/products/",
            {"product_code": self.product_a.product_code, "name": "Duplicate Code"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertEqual(payload["errors"], {"product_code": ["A product with this code already exists in your company."]})

    def test_product_code_may_repeat_across_companies(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.post(
            "/api/v1/admin/products/",
            {"product_code": self.product_b.product_code, "name": "Same code elsewhere"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)

    def test_admin_create_warehouse_ignores_injected_company(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.post(
            "/api/v1/admin/warehouses/",
            {"company": str(self.company_b.id), "name": "Injected Godown", "is_active": True},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        created = Warehouse.objects.get(id=response.json()["id"])
        self.assertEqual(created.company_id, self.company_a.id)

    def test_admin_cannot_read_other_company_product_detail(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.get(f"/api/v1/admin/products/{self.product_b.id}/")

        self.assertEqual(response.status_code, 404)

    def test_staff_cannot_manage_records(self):
        self.client.force_authenticate(user=self.staff_a)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.post(
                "/api/v1/admin/partners/",
                {"name": "Staff Partner", "partner_type": "customer"},
                format="json",
            )

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Partner.objects.exists())


class SoftDeleteTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.company = Company.objects.create(slug="soft", name="Soft Delete")
        self.admin = get_user_model().objects.create_user(
            username="soft-admin",
            password="pass1234",
            company=self.company,
            role="admin",
        )
        self.product = Product.objects.create(
            company=self.company,
            product_code="ROLL-1",
            name="Denim",
            stock_type=Product.StockType.ROLL,
        )
        self.warehouse = Warehouse.objects.create(company=self.company, name="Soft Godown")
        intake.receive(
            self.warehouse.id,
            [{"quantity": "30"}, {"quantity": "45.5"}],
            company_id=self.company.id,
            product_id=self.product.id,
        )

    def test_deleting_product_keeps_its_stock_units(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/admin/products/{self.product.id}/")

        self.assertEqual(response.status_code, 204)
        self.product.refresh_from_db()
        self.assertIsNotNone(self.product.deleted_at)
        self.assertFalse(self.product.is_active)
        self.assertEqual(StockUnit.objects.filter(product=self.product).count(), 2)
        self.assertEqual(
            sorted(StockUnit.objects.values_list("remaining_quantity", flat=True)),
            [Decimal("30.00"), Decimal("45.50")],
        )

        response = self.client.get("/api/v1/products/")
        self.assertNotIn(str(self.product.id), {item["id"] for item in response.json()["results"]})

    def test_deleted_warehouse_rejects_new_receipts_but_keeps_units(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/admin/warehouses/{self.warehouse.id}/")

        self.assertEqual(response.status_code, 204)
        self.assertEqual(StockUnit.objects.filter(warehouse=self.warehouse).count(), 2)
        response = self.client.get(f"/api/v1/warehouses/{self.warehouse.id}/stock-units/")
        self.assertEqual(response.status_code, 404)

    def test_stock_type_is_locked_once_units_exist(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            f"/api/v1/admin/products/{self.product.id}/",
            {"stock_type": "piece"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("stock_type", response.json()["errors"])
        self.assertEqual(store.list_eligible(self.warehouse.id).count(), 2)
