"""Inward intake: record goods arriving at a warehouse as fresh stock units.

A receipt is all-or-nothing. Every unit spec is checked before the inward
event or any of its units is written.
"""

import logging

from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from common.utils import parse_uuid
from inventory.models import Partner
from ledger import store
from ledger.exceptions import AlreadyCancelled, EmptyEvent, LedgerError, NotFound, raise_line_failures
from ledger.models import GoodsInward

logger = logging.getLogger(__name__)


def resolve_partner(partner_id, *, company_id):
    if partner_id is None:
        return None
    partner_uuid = parse_uuid(partner_id)
    partner = Partner.objects.filter(id=partner_uuid, company_id=company_id).first() if partner_uuid else None
    if partner is None:
        raise NotFound("partner", [partner_id])
    return partner


def _validate_unit_specs(unit_specs, *, company_id, default_product_id):
    products = {}
    cleaned = []
    failures = []
    for index, spec in enumerate(unit_specs):
        product_id = spec.get("product_id") or default_product_id
        try:
            key = str(product_id)
            if key not in products:
                products[key] = store.resolve_product(product_id, company_id=company_id)
            product = products[key]
            quantity = store.clean_quantity(spec.get("quantity"), whole_number=product.requires_whole_quantities)
        except LedgerError as exc:
            failures.append((index, exc))
            continue
        cleaned.append((product, quantity, spec.get("attrs") or {}))
    return cleaned, failures


def receive(
    warehouse_id,
    unit_specs,
    *,
    company_id,
    product_id=None,
    source_ref="",
    inward_type=GoodsInward.InwardType.OTHER,
    partner_id=None,
    from_warehouse_id=None,
    inward_date=None,
    notes="",
    user=None,
):
    """Record one goods-inward event and a fresh stock unit per spec.

    Every spec is validated before anything is written. A failing spec
    rejects the whole receipt.
    """
    warehouse = store.resolve_warehouse(warehouse_id, company_id=company_id)
    if not unit_specs:
        raise EmptyEvent("A goods inward needs at least one stock unit.")
    if inward_type not in GoodsInward.InwardType.values:
        raise ValueError(f"Unknown inward type: {inward_type!r}")

    partner = resolve_partner(partner_id, company_id=company_id)
    from_warehouse = None
    if from_warehouse_id is not None:
        from_warehouse = store.resolve_warehouse(from_warehouse_id, company_id=company_id)

    cleaned, failures = _validate_unit_specs(unit_specs, company_id=company_id, default_product_id=product_id)
    raise_line_failures(failures, len(unit_specs))

    with transaction.atomic():
        inward = GoodsInward.objects.create(
            company_id=company_id,
            warehouse=warehouse,
            sequence_number=store.next_sequence(f"goods_inward:{warehouse.id}"),
            inward_type=inward_type,
            source_ref=source_ref or "",
            partner=partner,
            from_warehouse=from_warehouse,
            inward_date=inward_date or timezone.localdate(),
            notes=notes or "",
            created_by=user if user is not None and user.is_authenticated else None,
        )
        for product, quantity, attrs in cleaned:
            store.create(
                product.id,
                warehouse.id,
                quantity,
                inward_id=inward.id,
                attrs=attrs,
                company_id=company_id,
            )

    logger.info(
        "goods_inward_committed",
        extra={
            "company_id": str(company_id),
            "warehouse_id": str(warehouse.id),
            "event_id": str(inward.id),
            "line_count": len(cleaned),
        },
    )
    return inward


def cancel_inward(inward_id, *, warehouse_id, reason, user=None):
    """Flag an inward as cancelled. Stock units it created keep their quantities."""
    inward_uuid = parse_uuid(inward_id)
    with transaction.atomic():
        inward = (
            GoodsInward.objects.select_for_update().filter(pk=inward_uuid, warehouse_id=warehouse_id).first()
            if inward_uuid
            else None
        )
        if inward is None:
            raise NotFound("goods_inward", [inward_id])
        if inward.is_cancelled:
            raise AlreadyCancelled(f"Goods inward #{inward.sequence_number} is already cancelled.")

        inward.is_cancelled = True
        inward.cancelled_at = timezone.now()
        inward.cancellation_reason = reason or ""
        inward.cancelled_by = user if user is not None and user.is_authenticated else None
        inward.save(update_fields=["is_cancelled", "cancelled_at", "cancellation_reason", "cancelled_by", "updated_at"])

    logger.info(
        "goods_inward_cancelled",
        extra={"warehouse_id": str(warehouse_id), "event_id": str(inward.id)},
    )
    return inward


def list_inwards(warehouse_id, *, partner_id=None, date_from=None, date_to=None):
    queryset = GoodsInward.objects.filter(warehouse_id=warehouse_id)
    if partner_id is not None:
        queryset = queryset.filter(partner_id=partner_id)
    if date_from is not None:
        queryset = queryset.filter(inward_date__gte=date_from)
    if date_to is not None:
        queryset = queryset.filter(inward_date__lte=date_to)
    return (
        queryset.select_related("partner", "from_warehouse")
        .annotate(unit_count=Count("stock_units"))
        .order_by("-inward_date", "-sequence_number")
    )
