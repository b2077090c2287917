"""Stock unit store: creation, lookup and the single quantity-mutation primitive.

``decrement`` is the only code path that lowers ``remaining_quantity``. It is a
conditional UPDATE so two writers racing on a stale read can never drive a
unit below zero.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from common.utils import parse_uuid, to_quantity
from inventory.models import Product, Warehouse
from ledger.exceptions import InsufficientQuantity, InvalidQuantity, NotFound
from ledger.models import ELIGIBLE_STATUSES, SequenceCounter, StockUnit, StockUnitStatus

logger = logging.getLogger(__name__)

MAX_QUANTITY = Decimal("9999999999.99")

UNIT_ATTRIBUTE_FIELDS = (
    "quality_grade",
    "supplier_number",
    "warehouse_location",
    "manufacturing_date",
    "notes",
)


def next_sequence(key):
    """Hand out the next number for ``key`` while holding the counter row lock."""
    with transaction.atomic():
        counter, _ = SequenceCounter.objects.select_for_update().get_or_create(key=key)
        SequenceCounter.objects.filter(pk=counter.pk).update(last_value=F("last_value") + 1)
        counter.refresh_from_db(fields=["last_value"])
    return counter.last_value


def clean_quantity(value, *, whole_number=False, stock_unit_id=None):
    try:
        raw = Decimal(repr(value) if isinstance(value, float) else value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantity(f"'{value}' is not a valid quantity.", quantity=value, stock_unit_id=stock_unit_id)

    if not raw.is_finite() or raw <= 0:
        raise InvalidQuantity(quantity=value, stock_unit_id=stock_unit_id)
    if raw > MAX_QUANTITY:
        raise InvalidQuantity(f"Quantity cannot exceed {MAX_QUANTITY}.", quantity=value, stock_unit_id=stock_unit_id)

    # Rounding would record a different amount than the caller asked for.
    quantity = to_quantity(raw)
    if quantity != raw:
        raise InvalidQuantity("Quantity supports at most two decimal places.", quantity=value, stock_unit_id=stock_unit_id)
    if whole_number and quantity != quantity.to_integral_value():
        raise InvalidQuantity("This stock type is counted in whole numbers.", quantity=value, stock_unit_id=stock_unit_id)
    return quantity


def resolve_warehouse(warehouse_id, *, company_id=None):
    queryset = Warehouse.objects.alive()
    if company_id is not None:
        queryset = queryset.filter(company_id=company_id)
    warehouse_uuid = parse_uuid(warehouse_id)
    warehouse = queryset.filter(id=warehouse_uuid).first() if warehouse_uuid else None
    if warehouse is None:
        raise NotFound("warehouse", [warehouse_id])
    return warehouse


def resolve_product(product_id, *, company_id):
    product_uuid = parse_uuid(product_id)
    product = Product.objects.alive().filter(id=product_uuid, company_id=company_id).first() if product_uuid else None
    if product is None:
        raise NotFound("product", [product_id])
    return product


def _unit_attributes(attrs):
    attrs = attrs or {}
    return {field: attrs[field] for field in UNIT_ATTRIBUTE_FIELDS if attrs.get(field) is not None}


def create(product_id, warehouse_id, initial_quantity, inward_id=None, attrs=None, *, company_id):
    """Record a new stock unit with ``remaining_quantity == initial_quantity``."""
    warehouse = resolve_warehouse(warehouse_id, company_id=company_id)
    product = resolve_product(product_id, company_id=company_id)
    quantity = clean_quantity(initial_quantity, whole_number=product.requires_whole_quantities)

    with transaction.atomic():
        sequence_number = next_sequence(f"stock_unit:{product.id}:{warehouse.id}")
        unit = StockUnit.objects.create(
            company_id=company_id,
            product=product,
            warehouse=warehouse,
            sequence_number=sequence_number,
            initial_quantity=quantity,
            remaining_quantity=quantity,
            created_from_inward_id=inward_id,
            **_unit_attributes(attrs),
        )
    logger.debug(
        "stock_unit_created",
        extra={"warehouse_id": str(warehouse.id), "event_id": str(unit.id)},
    )
    return unit


def get(id, *, warehouse_id=None):
    unit_id = parse_uuid(id)
    queryset = StockUnit.objects.select_related("product", "warehouse")
    if warehouse_id is not None:
        queryset = queryset.filter(warehouse_id=warehouse_id)
    unit = queryset.filter(pk=unit_id).first() if unit_id else None
    if unit is None:
        raise NotFound("stock_unit", [id])
    return unit


def list_eligible(
    warehouse_id,
    *,
    product_id=None,
    statuses=None,
    include_depleted=False,
    qr_generated=None,
    inward_id=None,
):
    """Units in one warehouse, newest first.

    Depleted units are only returned when ``include_depleted`` is set or
    ``statuses`` names them explicitly.
    """
    wanted = {StockUnitStatus(status) for status in statuses} if statuses else set(ELIGIBLE_STATUSES)
    if include_depleted:
        wanted.add(StockUnitStatus.DEPLETED)

    queryset = StockUnit.objects.filter(warehouse_id=warehouse_id).with_status(sorted(wanted))
    if product_id is not None:
        queryset = queryset.filter(product_id=product_id)
    if qr_generated is not None:
        queryset = queryset.filter(qr_generated_at__isnull=not qr_generated)
    if inward_id is not None:
        queryset = queryset.filter(created_from_inward_id=inward_id)
    return queryset.select_related("product").order_by("-created_at", "-sequence_number")


def decrement(id, amount, *, warehouse_id):
    """Lower a unit's remaining quantity by ``amount`` or raise without writing."""
    unit_id = parse_uuid(id)
    if unit_id is None:
        raise NotFound("stock_unit", [id])
    amount = clean_quantity(amount, stock_unit_id=unit_id)

    with transaction.atomic():
        updated = StockUnit.objects.filter(
            pk=unit_id,
            warehouse_id=warehouse_id,
            remaining_quantity__gte=amount,
        ).update(
            remaining_quantity=F("remaining_quantity") - amount,
            updated_at=timezone.now(),
        )
        if not updated:
            current = StockUnit.objects.filter(pk=unit_id, warehouse_id=warehouse_id).values_list("remaining_quantity", flat=True).first()
            if current is None:
                raise NotFound("stock_unit", [unit_id])
            raise InsufficientQuantity(unit_id, amount, current)
        return StockUnit.objects.get(pk=unit_id)
