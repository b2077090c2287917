from django.db.models import DecimalField, OuterRef, Subquery, Sum

from common.utils import to_quantity
from ledger import store
from ledger.models import GoodsOutwardItem, StockUnit

EVENT_CREATED = "created"
EVENT_DISPATCHED = "dispatched"
EVENT_LABELLED = "labelled"

# Same-instant events: creation sorts before anything that follows it.
_EVENT_RANK = {EVENT_CREATED: 0, EVENT_LABELLED: 1, EVENT_DISPATCHED: 2}


def stock_unit_activity(stock_unit_id, *, warehouse_id):
    """Timeline of one stock unit, newest first."""
    unit = store.get(stock_unit_id, warehouse_id=warehouse_id)
    inward = unit.created_from_inward
    events = [
        {
            "event": EVENT_CREATED,
            "at": unit.created_at,
            "quantity": unit.initial_quantity,
            "inward_id": inward.id if inward else None,
            "inward_sequence_number": inward.sequence_number if inward else None,
            "inward_type": inward.inward_type if inward else None,
        }
    ]

    for item in unit.outward_items.select_related("outward"):
        events.append(
            {
                "event": EVENT_DISPATCHED,
                "at": item.created_at,
                "quantity": item.quantity_dispatched,
                "outward_id": item.outward_id,
                "outward_sequence_number": item.outward.sequence_number,
                "outward_type": item.outward.outward_type,
                "partner_id": item.outward.partner_id,
            }
        )

    for item in unit.label_batch_items.select_related("batch"):
        events.append(
            {
                "event": EVENT_LABELLED,
                "at": item.batch.created_at,
                "batch_id": item.batch_id,
                "batch_sequence_number": item.batch.sequence_number,
                "batch_name": item.batch.batch_name,
            }
        )

    events.sort(key=lambda event: (event["at"], _EVENT_RANK[event["event"]]), reverse=True)
    return events


def find_quantity_drift(warehouse_id=None):
    """Units whose consumed quantity disagrees with their committed outward lines."""
    dispatched = (
        GoodsOutwardItem.objects.filter(stock_unit=OuterRef("pk"))
        .values("stock_unit")
        .annotate(total=Sum("quantity_dispatched"))
        .values("total")
    )
    queryset = StockUnit.objects.annotate(
        dispatched_sum=Subquery(dispatched, output_field=DecimalField(max_digits=14, decimal_places=2))
    ).order_by("warehouse_id", "product_id", "sequence_number")
    if warehouse_id is not None:
        queryset = queryset.filter(warehouse_id=warehouse_id)

    drift = []
    for unit in queryset.iterator():
        consumed = unit.initial_quantity - unit.remaining_quantity
        dispatched_quantity = to_quantity(unit.dispatched_sum or 0)
        if consumed != dispatched_quantity:
            drift.append(
                {
                    "stock_unit_id": unit.id,
                    "warehouse_id": unit.warehouse_id,
                    "product_id": unit.product_id,
                    "sequence_number": unit.sequence_number,
                    "consumed": consumed,
                    "dispatched": dispatched_quantity,
                }
            )
    return drift
