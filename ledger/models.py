import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from core.models import Company
from inventory.models import Partner, Product, Warehouse

QUANTITY_FIELD_KWARGS = {"max_digits": 12, "decimal_places": 2}


class StockUnitStatus(models.TextChoices):
    FULL = "full", "Full"
    PARTIAL = "partial", "Partial"
    DEPLETED = "depleted", "Depleted"


ELIGIBLE_STATUSES = (StockUnitStatus.FULL, StockUnitStatus.PARTIAL)

STATUS_CONDITIONS = {
    StockUnitStatus.FULL: Q(remaining_quantity=F("initial_quantity")),
    StockUnitStatus.PARTIAL: Q(remaining_quantity__gt=0) & Q(remaining_quantity__lt=F("initial_quantity")),
    StockUnitStatus.DEPLETED: Q(remaining_quantity=0),
}


def status_for(initial_quantity, remaining_quantity):
    if remaining_quantity <= 0:
        return StockUnitStatus.DEPLETED
    if remaining_quantity >= initial_quantity:
        return StockUnitStatus.FULL
    return StockUnitStatus.PARTIAL


class SequenceCounter(models.Model):
    """Last number handed out for one numbering scope (e.g. ``stock_unit:<product>:<warehouse>``)."""

    key = models.CharField(max_length=160, unique=True)
    last_value = models.PositiveBigIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)


class GoodsInward(models.Model):
    class InwardType(models.TextChoices):
        PURCHASE_ORDER = "purchase_order", "Purchase order"
        JOB_WORK = "job_work", "Job work"
        SALES_RETURN = "sales_return", "Sales return"
        TRANSFER = "transfer", "Transfer"
        OTHER = "other", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT)
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="goods_inwards")
    sequence_number = models.PositiveIntegerField()
    inward_type = models.CharField(max_length=32, choices=InwardType.choices, default=InwardType.OTHER)
    source_ref = models.CharField(max_length=128, blank=True, default="")
    partner = models.ForeignKey(Partner, on_delete=models.PROTECT, null=True, blank=True, related_name="goods_inwards")
    from_warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transfers_out_received",
    )
    inward_date = models.DateField()
    notes = models.TextField(blank=True, default="")
    is_cancelled = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default="")
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cancelled_goods_inwards",
    )
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["warehouse", "sequence_number"], name="uniq_goods_inward_warehouse_seq"),
        ]
        indexes = [
            models.Index(fields=["warehouse", "inward_date"], name="inward_warehouse_date_idx"),
            models.Index(fields=["partner"], name="inward_partner_idx"),
        ]


class StockUnitQuerySet(models.QuerySet):
    def with_status(self, statuses):
        condition = Q(pk__in=[])
        for status in statuses:
            condition |= STATUS_CONDITIONS[StockUnitStatus(status)]
        return self.filter(condition)

    def eligible(self):
        return self.with_status(ELIGIBLE_STATUSES)


class StockUnit(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="stock_units")
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="stock_units")
    sequence_number = models.PositiveIntegerField()
    initial_quantity = models.DecimalField(**QUANTITY_FIELD_KWARGS)
    remaining_quantity = models.DecimalField(**QUANTITY_FIELD_KWARGS)
    created_from_inward = models.ForeignKey(
        GoodsInward,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="stock_units",
    )
    quality_grade = models.CharField(max_length=32, blank=True, default="")
    supplier_number = models.CharField(max_length=64, blank=True, default="")
    warehouse_location = models.CharField(max_length=128, blank=True, default="")
    manufacturing_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    qr_generated_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = StockUnitQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["product", "warehouse", "sequence_number"],
                name="uniq_stock_unit_product_warehouse_seq",
            ),
            models.CheckConstraint(condition=Q(initial_quantity__gt=0), name="stock_unit_initial_positive"),
            models.CheckConstraint(condition=Q(remaining_quantity__gte=0), name="stock_unit_remaining_non_negative"),
            models.CheckConstraint(
                condition=Q(remaining_quantity__lte=F("initial_quantity")),
                name="stock_unit_remaining_within_initial",
            ),
        ]
        indexes = [
            models.Index(fields=["warehouse", "product", "created_at"], name="unit_wh_product_created_idx"),
            models.Index(fields=["warehouse", "qr_generated_at"], name="unit_wh_qr_idx"),
        ]

    def __str__(self):
        return f"{self.product_id}#{self.sequence_number}"

    @property
    def status(self):
        return status_for(self.initial_quantity, self.remaining_quantity)

    @property
    def dispatched_quantity(self):
        return Decimal(self.initial_quantity) - Decimal(self.remaining_quantity)


class GoodsOutward(models.Model):
    class OutwardType(models.TextChoices):
        SALES_ORDER = "sales_order", "Sales order"
        JOB_WORK = "job_work", "Job work"
        PURCHASE_RETURN = "purchase_return", "Purchase return"
        TRANSFER = "transfer", "Transfer"
        OTHER = "other", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT)
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="goods_outwards")
    sequence_number = models.PositiveIntegerField()
    outward_type = models.CharField(max_length=32, choices=OutwardType.choices, default=OutwardType.OTHER)
    source_ref = models.CharField(max_length=128, blank=True, default="")
    partner = models.ForeignKey(Partner, on_delete=models.PROTECT, null=True, blank=True, related_name="goods_outwards")
    to_warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transfers_in_dispatched",
    )
    outward_date = models.DateField()
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["warehouse", "sequence_number"], name="uniq_goods_outward_warehouse_seq"),
        ]
        indexes = [
            models.Index(fields=["warehouse", "outward_date"], name="outward_warehouse_date_idx"),
            models.Index(fields=["partner"], name="outward_partner_idx"),
        ]


class GoodsOutwardItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    outward = models.ForeignKey(GoodsOutward, on_delete=models.PROTECT, related_name="items")
    stock_unit = models.ForeignKey(StockUnit, on_delete=models.PROTECT, related_name="outward_items")
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT)
    line_number = models.PositiveIntegerField()
    quantity_dispatched = models.DecimalField(**QUANTITY_FIELD_KWARGS)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["line_number"]
        constraints = [
            models.CheckConstraint(condition=Q(quantity_dispatched__gt=0), name="outward_item_quantity_positive"),
            models.UniqueConstraint(fields=["outward", "line_number"], name="uniq_outward_item_line"),
        ]
        indexes = [
            models.Index(fields=["stock_unit", "created_at"], name="outward_item_unit_created_idx"),
        ]


class LabelBatch(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT)
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="label_batches")
    sequence_number = models.PositiveIntegerField()
    batch_name = models.CharField(max_length=255)
    fields_selected = models.JSONField(default=list)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["warehouse", "sequence_number"], name="uniq_label_batch_warehouse_seq"),
        ]
        indexes = [models.Index(fields=["warehouse", "created_at"], name="label_batch_wh_created_idx")]


class LabelBatchItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    batch = models.ForeignKey(LabelBatch, on_delete=models.CASCADE, related_name="items")
    stock_unit = models.ForeignKey(StockUnit, on_delete=models.PROTECT, related_name="label_batch_items")
    position = models.PositiveIntegerField()

    class Meta:
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(fields=["batch", "position"], name="uniq_label_batch_item_position"),
            models.UniqueConstraint(fields=["batch", "stock_unit"], name="uniq_label_batch_item_unit"),
        ]
