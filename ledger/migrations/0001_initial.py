import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("inventory", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SequenceCounter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=160, unique=True)),
                ("last_value", models.PositiveBigIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="GoodsInward",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sequence_number", models.PositiveIntegerField()),
                (
                    "inward_type",
                    models.CharField(
                        choices=[
                            ("purchase_order", "Purchase order"),
                            ("job_work", "Job work"),
                            ("sales_return", "Sales return"),
                            ("transfer", "Transfer"),
                            ("other", "Other"),
                        ],
                        default="other",
                        max_length=32,
                    ),
                ),
                ("source_ref", models.CharField(blank=True, default="", max_length=128)),
                ("inward_date", models.DateField()),
                ("notes", models.TextField(blank=True, default="")),
                ("is_cancelled", models.BooleanField(default=False)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.company")),
                (
                    "warehouse",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="goods_inwards",
                        to="inventory.warehouse",
                    ),
                ),
                (
                    "partner",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="goods_inwards",
                        to="inventory.partner",
                    ),
                ),
                (
                    "from_warehouse",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfers_out_received",
                        to="inventory.warehouse",
                    ),
                ),
                (
                    "cancelled_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="cancelled_goods_inwards",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("warehouse", "sequence_number"), name="uniq_goods_inward_warehouse_seq"),
                ],
                "indexes": [
                    models.Index(fields=["warehouse", "inward_date"], name="inward_warehouse_date_idx"),
                    models.Index(fields=["partner"], name="inward_partner_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockUnit",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sequence_number", models.PositiveIntegerField()),
                ("initial_quantity", models.DecimalField(decimal_places=2, max_digits=12)),
                ("remaining_quantity", models.DecimalField(decimal_places=2, max_digits=12)),
                ("quality_grade", models.CharField(blank=True, default="", max_length=32)),
                ("supplier_number", models.CharField(blank=True, default="", max_length=64)),
                ("warehouse_location", models.CharField(blank=True, default="", max_length=128)),
                ("manufacturing_date", models.DateField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("qr_generated_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.company")),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_units",
                        to="inventory.product",
                    ),
                ),
                (
                    "warehouse",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_units",
                        to="inventory.warehouse",
                    ),
                ),
                (
                    "created_from_inward",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_units",
                        to="ledger.goodsinward",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("product", "warehouse", "sequence_number"),
                        name="uniq_stock_unit_product_warehouse_seq",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("initial_quantity__gt", 0)),
                        name="stock_unit_initial_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("remaining_quantity__gte", 0)),
                        name="stock_unit_remaining_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("remaining_quantity__lte", models.F("initial_quantity"))),
                        name="stock_unit_remaining_within_initial",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["warehouse", "product", "created_at"], name="unit_wh_product_created_idx"),
                    models.Index(fields=["warehouse", "qr_generated_at"], name="unit_wh_qr_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="GoodsOutward",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sequence_number", models.PositiveIntegerField()),
                (
                    "outward_type",
                    models.CharField(
                        choices=[
                            ("sales_order", "Sales order"),
                            ("job_work", "Job work"),
                            ("purchase_return", "Purchase return"),
                            ("transfer", "Transfer"),
                            ("other", "Other"),
                        ],
                        default="other",
                        max_length=32,
                    ),
                ),
                ("source_ref", models.CharField(blank=True, default="", max_length=128)),
                ("outward_date", models.DateField()),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.company")),
                (
                    "warehouse",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="goods_outwards",
                        to="inventory.warehouse",
                    ),
                ),
                (
                    "partner",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="goods_outwards",
                        to="inventory.partner",
                    ),
                ),
                (
                    "to_warehouse",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfers_in_dispatched",
                        to="inventory.warehouse",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("warehouse", "sequence_number"), name="uniq_goods_outward_warehouse_seq"),
                ],
                "indexes": [
                    models.Index(fields=["warehouse", "outward_date"], name="outward_warehouse_date_idx"),
                    models.Index(fields=["partner"], name="outward_partner_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="GoodsOutwardItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("line_number", models.PositiveIntegerField()),
                ("quantity_dispatched", models.DecimalField(decimal_places=2, max_digits=12)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "outward",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items",
                        to="ledger.goodsoutward",
                    ),
                ),
                (
                    "stock_unit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="outward_items",
                        to="ledger.stockunit",
                    ),
                ),
                ("warehouse", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="inventory.warehouse")),
            ],
            options={
                "ordering": ["line_number"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity_dispatched__gt", 0)),
                        name="outward_item_quantity_positive",
                    ),
                    models.UniqueConstraint(fields=("outward", "line_number"), name="uniq_outward_item_line"),
                ],
                "indexes": [
                    models.Index(fields=["stock_unit", "created_at"], name="outward_item_unit_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LabelBatch",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sequence_number", models.PositiveIntegerField()),
                ("batch_name", models.CharField(max_length=255)),
                ("fields_selected", models.JSONField(default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.company")),
                (
                    "warehouse",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="label_batches",
                        to="inventory.warehouse",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("warehouse", "sequence_number"), name="uniq_label_batch_warehouse_seq"),
                ],
                "indexes": [models.Index(fields=["warehouse", "created_at"], name="label_batch_wh_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="LabelBatchItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("position", models.PositiveIntegerField()),
                (
                    "batch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="ledger.labelbatch",
                    ),
                ),
                (
                    "stock_unit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="label_batch_items",
                        to="ledger.stockunit",
                    ),
                ),
            ],
            options={
                "ordering": ["position"],
                "constraints": [
                    models.UniqueConstraint(fields=("batch", "position"), name="uniq_label_batch_item_position"),
                    models.UniqueConstraint(fields=("batch", "stock_unit"), name="uniq_label_batch_item_unit"),
                ],
            },
        ),
    ]
