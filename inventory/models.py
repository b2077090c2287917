import uuid

from django.db import models

from core.models import Company


class ActiveQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(deleted_at__isnull=True)


class Product(models.Model):
    class MeasuringUnit(models.TextChoices):
        METRE = "metre", "Metre"
        YARD = "yard", "Yard"
        KILOGRAM = "kilogram", "Kilogram"
        UNIT = "unit", "Unit"

    class StockType(models.TextChoices):
        ROLL = "roll", "Roll"
        BATCH = "batch", "Batch"
        PIECE = "piece", "Piece"

    # Stock types counted in whole numbers; rolls are measured continuously.
    WHOLE_NUMBER_STOCK_TYPES = {StockType.BATCH, StockType.PIECE}

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT)
    product_code = models.CharField(max_length=64)
    name = models.CharField(max_length=255)
    measuring_unit = models.CharField(max_length=16, choices=MeasuringUnit.choices, default=MeasuringUnit.UNIT)
    stock_type = models.CharField(max_length=16, choices=StockType.choices, default=StockType.PIECE)
    hsn_code = models.CharField(max_length=32, blank=True, default="")
    material = models.CharField(max_length=64, blank=True, default="")
    color = models.CharField(max_length=64, blank=True, default="")
    gsm = models.PositiveIntegerField(null=True, blank=True)
    selling_price_per_unit = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        unique_together = ("company", "product_code")
        indexes = [
            models.Index(fields=["company", "is_active"], name="product_company_active_idx"),
        ]

    def __str__(self):
        return f"{self.product_code} {self.name}"

    @property
    def requires_whole_quantities(self):
        return self.stock_type in self.WHOLE_NUMBER_STOCK_TYPES


class Warehouse(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT)
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        unique_together = ("company", "name")
        indexes = [
            models.Index(fields=["company", "is_active"], name="warehouse_company_active_idx"),
        ]

    def __str__(self):
        return self.name


class Partner(models.Model):
    class PartnerType(models.TextChoices):
        CUSTOMER = "customer", "Customer"
        VENDOR = "vendor", "Vendor"
        SUPPLIER = "supplier", "Supplier"
        AGENT = "agent", "Agent"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.PROTECT)
    name = models.CharField(max_length=255)
    partner_type = models.CharField(max_length=16, choices=PartnerType.choices)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=["company", "partner_type"], name="partner_company_type_idx")]

    def __str__(self):
        return self.name
