import datetime
import decimal
import uuid

QUANTITY_QUANT = decimal.Decimal("0.01")


def to_json_compatible(value):
    if isinstance(value, dict):
        return {key: to_json_compatible(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_json_compatible(item) for item in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime, datetime.time)):
        return value.isoformat()
    return value


def to_quantity(value):
    """Coerce user input to a two-place Decimal; raises decimal.InvalidOperation on junk."""
    if isinstance(value, float):
        value = repr(value)
    return decimal.Decimal(value).quantize(QUANTITY_QUANT, rounding=decimal.ROUND_HALF_UP)


def parse_uuid(value):
    if not value:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None
