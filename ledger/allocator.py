"""Outward allocator: dispatch quantities from one or more stock units atomically.

An allocation is all-or-nothing. Referenced units are locked in id order,
every line is checked against the locked values, and only then are the
conditional decrements issued.
"""

import logging
from collections import defaultdict
from decimal import Decimal

from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from common.utils import parse_uuid
from ledger import store
from ledger.exceptions import (
    EmptyEvent,
    InsufficientQuantity,
    InvalidQuantity,
    LedgerError,
    NotFound,
    PartialBatchFailure,
    raise_line_failures,
)
from ledger.intake import resolve_partner
from ledger.models import GoodsOutward, GoodsOutwardItem, StockUnit

logger = logging.getLogger(__name__)


def _failure_codes(exc):
    if isinstance(exc, PartialBatchFailure):
        return [error.code for _, error in exc.failures]
    return [exc.code]


def _lock_units(warehouse_id, lines):
    unit_ids = {parse_uuid(line.get("stock_unit_id")) for line in lines} - {None}
    queryset = (
        StockUnit.objects.select_for_update(of=("self",))
        .select_related("product")
        .filter(pk__in=unit_ids, warehouse_id=warehouse_id)
        .order_by("id")
    )
    return {unit.id: unit for unit in queryset}


def _validate_lines(lines, locked_units):
    claimed = defaultdict(Decimal)
    cleaned = []
    failures = []
    for index, line in enumerate(lines):
        raw_id = line.get("stock_unit_id")
        unit = locked_units.get(parse_uuid(raw_id))
        if unit is None:
            failures.append((index, NotFound("stock_unit", [raw_id])))
            continue
        try:
            quantity = store.clean_quantity(
                line.get("quantity"),
                whole_number=unit.product.requires_whole_quantities,
                stock_unit_id=unit.id,
            )
        except InvalidQuantity as exc:
            failures.append((index, exc))
            continue

        # Several lines may draw from the same unit; the running total must fit.
        if quantity > unit.remaining_quantity - claimed[unit.id]:
            error = InsufficientQuantity(unit.id, quantity, unit.remaining_quantity, already_claimed=claimed[unit.id])
            failures.append((index, error))
            continue
        claimed[unit.id] += quantity
        cleaned.append((unit, quantity))
    return cleaned, failures


def allocate(
    warehouse_id,
    lines,
    *,
    company_id,
    outward_type=GoodsOutward.OutwardType.OTHER,
    source_ref="",
    partner_id=None,
    to_warehouse_id=None,
    outward_date=None,
    notes="",
    user=None,
):
    warehouse = store.resolve_warehouse(warehouse_id, company_id=company_id)
    if not lines:
        raise EmptyEvent("A goods outward needs at least one line.")
    if outward_type not in GoodsOutward.OutwardType.values:
        raise ValueError(f"Unknown outward type: {outward_type!r}")

    partner = resolve_partner(partner_id, company_id=company_id)
    to_warehouse = None
    if to_warehouse_id is not None:
        to_warehouse = store.resolve_warehouse(to_warehouse_id, company_id=company_id)

    try:
        with transaction.atomic():
            locked_units = _lock_units(warehouse.id, lines)
            cleaned, failures = _validate_lines(lines, locked_units)
            raise_line_failures(failures, len(lines))

            outward = GoodsOutward.objects.create(
                company_id=company_id,
                warehouse=warehouse,
                sequence_number=store.next_sequence(f"goods_outward:{warehouse.id}"),
                outward_type=outward_type,
                source_ref=source_ref or "",
                partner=partner,
                to_warehouse=to_warehouse,
                outward_date=outward_date or timezone.localdate(),
                notes=notes or "",
                created_by=user if user is not None and user.is_authenticated else None,
            )
            for line_number, (unit, quantity) in enumerate(cleaned, start=1):
                store.decrement(unit.id, quantity, warehouse_id=warehouse.id)
                GoodsOutwardItem.objects.create(
                    outward=outward,
                    stock_unit=unit,
                    warehouse=warehouse,
                    line_number=line_number,
                    quantity_dispatched=quantity,
                )
    except LedgerError as exc:
        logger.warning(
            "goods_outward_rejected",
            extra={
                "company_id": str(company_id),
                "warehouse_id": str(warehouse.id),
                "line_count": len(lines),
                "failure_codes": _failure_codes(exc),
            },
        )
        raise

    logger.info(
        "goods_outward_committed",
        extra={
            "company_id": str(company_id),
            "warehouse_id": str(warehouse.id),
            "event_id": str(outward.id),
            "line_count": len(cleaned),
        },
    )
    return outward


def list_outwards(warehouse_id, *, partner_id=None, date_from=None, date_to=None):
    queryset = GoodsOutward.objects.filter(warehouse_id=warehouse_id)
    if partner_id is not None:
        queryset = queryset.filter(partner_id=partner_id)
    if date_from is not None:
        queryset = queryset.filter(outward_date__gte=date_from)
    if date_to is not None:
        queryset = queryset.filter(outward_date__lte=date_to)
    return (
        queryset.select_related("partner", "to_warehouse")
        .annotate(line_count=Count("items"), total_quantity=Sum("items__quantity_dispatched"))
        .order_by("-outward_date", "-sequence_number")
    )


def dispatched_total(stock_unit_id):
    total = GoodsOutwardItem.objects.filter(stock_unit_id=stock_unit_id).aggregate(total=Sum("quantity_dispatched"))["total"]
    return total if total is not None else Decimal("0.00")
