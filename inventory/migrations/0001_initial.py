import uuid

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("product_code", models.CharField(max_length=64)),
                ("name", models.CharField(max_length=255)),
                (
                    "measuring_unit",
                    models.CharField(
                        choices=[("metre", "Metre"), ("yard", "Yard"), ("kilogram", "Kilogram"), ("unit", "Unit")],
                        default="unit",
                        max_length=16,
                    ),
                ),
                (
                    "stock_type",
                    models.CharField(
                        choices=[("roll", "Roll"), ("batch", "Batch"), ("piece", "Piece")],
                        default="piece",
                        max_length=16,
                    ),
                ),
                ("hsn_code", models.CharField(blank=True, default="", max_length=32)),
                ("material", models.CharField(blank=True, default="", max_length=64)),
                ("color", models.CharField(blank=True, default="", max_length=64)),
                ("gsm", models.PositiveIntegerField(blank=True, null=True)),
                ("selling_price_per_unit", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.company")),
            ],
            options={
                "unique_together": {("company", "product_code")},
                "indexes": [
                    models.Index(fields=["company", "is_active"], name="product_company_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Warehouse",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.company")),
            ],
            options={
                "unique_together": {("company", "name")},
                "indexes": [
                    models.Index(fields=["company", "is_active"], name="warehouse_company_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Partner",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                (
                    "partner_type",
                    models.CharField(
                        choices=[("customer", "Customer"), ("vendor", "Vendor"), ("supplier", "Supplier"), ("agent", "Agent")],
                        max_length=16,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.company")),
            ],
            options={
                "indexes": [models.Index(fields=["company", "partner_type"], name="partner_company_type_idx")],
            },
        ),
    ]
