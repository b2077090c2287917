"""Warehouse transfers: a goods outward and its matching goods inward as one event.

Each dispatched line becomes a new stock unit in the destination warehouse
carrying the dispatched quantity and the source unit's attributes. Either
both halves commit or neither does.
"""

import logging

from django.db import transaction

from ledger import allocator, intake, store
from ledger.exceptions import InvalidTransfer
from ledger.models import GoodsInward, GoodsOutward

logger = logging.getLogger(__name__)

# Location is per warehouse, so it is not carried to the destination.
CARRIED_ATTRIBUTES = ("quality_grade", "supplier_number", "manufacturing_date", "notes")


def _carried_attributes(unit):
    return {field: getattr(unit, field) for field in CARRIED_ATTRIBUTES if getattr(unit, field) not in (None, "")}


def transfer(
    from_warehouse_id,
    to_warehouse_id,
    lines,
    *,
    company_id,
    source_ref="",
    transfer_date=None,
    notes="",
    user=None,
):
    """Move quantities from units in one warehouse into new units in another.

    Returns ``(outward, inward)``. Line failures surface exactly as they do
    for ``allocator.allocate``.
    """
    source = store.resolve_warehouse(from_warehouse_id, company_id=company_id)
    destination = store.resolve_warehouse(to_warehouse_id, company_id=company_id)
    if source.id == destination.id:
        raise InvalidTransfer("A warehouse cannot transfer stock to itself.")

    with transaction.atomic():
        outward = allocator.allocate(
            source.id,
            lines,
            company_id=company_id,
            outward_type=GoodsOutward.OutwardType.TRANSFER,
            source_ref=source_ref,
            to_warehouse_id=destination.id,
            outward_date=transfer_date,
            notes=notes,
            user=user,
        )
        unit_specs = [
            {
                "product_id": item.stock_unit.product_id,
                "quantity": item.quantity_dispatched,
                "attrs": _carried_attributes(item.stock_unit),
            }
            for item in outward.items.select_related("stock_unit").order_by("line_number")
        ]
        inward = intake.receive(
            destination.id,
            unit_specs,
            company_id=company_id,
            source_ref=source_ref or f"GO-{outward.sequence_number}",
            inward_type=GoodsInward.InwardType.TRANSFER,
            from_warehouse_id=source.id,
            inward_date=outward.outward_date,
            notes=notes,
            user=user,
        )

    logger.info(
        "goods_transfer_committed",
        extra={
            "company_id": str(company_id),
            "warehouse_id": str(source.id),
            "event_id": str(outward.id),
            "line_count": len(unit_specs),
        },
    )
    return outward, inward
