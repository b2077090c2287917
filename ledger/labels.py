"""Label batches: named groups of stock units sent to one label print run.

Batches never touch quantities. Creating one stamps ``qr_generated_at`` on
units that were never labelled before.
"""

import logging
from collections import Counter

from django.db import transaction
from django.db.models import Count, Prefetch
from django.utils import timezone

from common.utils import parse_uuid
from ledger import store
from ledger.exceptions import InvalidLabelBatch, NotFound
from ledger.models import LabelBatch, LabelBatchItem, StockUnit

logger = logging.getLogger(__name__)

# Field id -> (source object, attribute) used when building label payloads.
TEMPLATE_FIELDS = {
    "product_name": ("product", "name"),
    "product_number": ("product", "product_code"),
    "hsn_code": ("product", "hsn_code"),
    "material": ("product", "material"),
    "color": ("product", "color"),
    "gsm": ("product", "gsm"),
    "selling_price_per_unit": ("product", "selling_price_per_unit"),
    "unit_number": ("unit", "sequence_number"),
    "manufacturing_date": ("unit", "manufacturing_date"),
    "initial_quantity": ("unit", "initial_quantity"),
    "quality_grade": ("unit", "quality_grade"),
    "warehouse_location": ("unit", "warehouse_location"),
}

DEFAULT_TEMPLATE_FIELDS = [
    "product_name",
    "product_number",
    "material",
    "color",
    "gsm",
    "unit_number",
    "manufacturing_date",
    "quality_grade",
    "warehouse_location",
]


def clean_template_fields(template_fields):
    if not template_fields:
        return list(DEFAULT_TEMPLATE_FIELDS)
    if isinstance(template_fields, str):
        raise InvalidLabelBatch("Template fields must be a list of field names.")

    unknown = [field for field in template_fields if field not in TEMPLATE_FIELDS]
    if unknown:
        raise InvalidLabelBatch(f"Unknown template fields: {', '.join(map(str, unknown))}.")
    return list(dict.fromkeys(template_fields))


def _ordered_unique_ids(stock_unit_ids):
    ordered = []
    malformed = []
    for raw_id in stock_unit_ids or []:
        unit_id = parse_uuid(raw_id)
        if unit_id is None:
            malformed.append(raw_id)
        elif unit_id not in ordered:
            ordered.append(unit_id)
    return ordered, malformed


def create_batch(warehouse_id, name, stock_unit_ids, template_fields=None, *, company_id, user=None):
    """Group stock units for one label print run.

    Repeated ids keep their first position. Units of any status may be
    labelled. ``qr_generated_at`` is stamped only on units that never had it.
    """
    warehouse = store.resolve_warehouse(warehouse_id, company_id=company_id)
    name = (name or "").strip()
    if not name:
        raise InvalidLabelBatch("A label batch needs a name.")

    unit_ids, malformed = _ordered_unique_ids(stock_unit_ids)
    if not unit_ids and not malformed:
        raise InvalidLabelBatch("A label batch needs at least one stock unit.")
    fields_selected = clean_template_fields(template_fields)

    found = set(StockUnit.objects.filter(warehouse_id=warehouse.id, pk__in=unit_ids).values_list("id", flat=True))
    missing = malformed + [unit_id for unit_id in unit_ids if unit_id not in found]
    if missing:
        raise NotFound("stock_unit", missing)

    now = timezone.now()
    with transaction.atomic():
        batch = LabelBatch.objects.create(
            company_id=company_id,
            warehouse=warehouse,
            sequence_number=store.next_sequence(f"label_batch:{warehouse.id}"),
            batch_name=name,
            fields_selected=fields_selected,
            created_by=user if user is not None and user.is_authenticated else None,
        )
        LabelBatchItem.objects.bulk_create(
            [LabelBatchItem(batch=batch, stock_unit_id=unit_id, position=position) for position, unit_id in enumerate(unit_ids)]
        )
        stamped = StockUnit.objects.filter(pk__in=unit_ids, qr_generated_at__isnull=True).update(
            qr_generated_at=now,
            updated_at=now,
        )

    logger.info(
        "label_batch_committed",
        extra={
            "company_id": str(company_id),
            "warehouse_id": str(warehouse.id),
            "event_id": str(batch.id),
            "line_count": len(unit_ids),
        },
    )
    logger.debug("label_batch_stamped units=%s", stamped)
    return batch


def list_batches(warehouse_id, *, product_id=None):
    queryset = LabelBatch.objects.filter(warehouse_id=warehouse_id)
    if product_id is not None:
        queryset = queryset.filter(
            id__in=LabelBatchItem.objects.filter(stock_unit__product_id=product_id).values("batch_id")
        )
    return (
        queryset.annotate(item_count=Count("items"))
        .prefetch_related(Prefetch("items", queryset=LabelBatchItem.objects.select_related("stock_unit__product")))
        .order_by("-created_at", "-sequence_number")
    )


def product_counts(batch):
    """Units per product in ``batch`` as ``[{product_id, product_name, unit_count}]``."""
    counts = Counter()
    names = {}
    for item in batch.items.all():
        product = item.stock_unit.product
        counts[product.id] += 1
        names[product.id] = product.name
    return [
        {"product_id": product_id, "product_name": names[product_id], "unit_count": count}
        for product_id, count in counts.most_common()
    ]


def batch_stock_unit_ids(batch):
    return list(batch.items.order_by("position").values_list("stock_unit_id", flat=True))


def label_payloads(batch):
    """Values of the batch's selected fields for each unit, in label order."""
    items = batch.items.select_related("stock_unit__product").order_by("position")
    payloads = []
    for item in items:
        sources = {"unit": item.stock_unit, "product": item.stock_unit.product}
        values = {}
        for field in batch.fields_selected:
            source, attribute = TEMPLATE_FIELDS[field]
            values[field] = getattr(sources[source], attribute)
        payloads.append({"stock_unit_id": item.stock_unit_id, "position": item.position, "fields": values})
    return payloads
