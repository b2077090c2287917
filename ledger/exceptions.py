"""Domain errors raised by the stock-unit ledger.

Every error is raised before (or instead of) committing a mutation; the HTTP
layer renders them through ``common.exceptions.custom_exception_handler``.
"""

from common.utils import to_json_compatible


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400
    default_message = "The ledger rejected the request."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def detail(self):
        return None

    def as_dict(self):
        payload = {"code": self.code, "message": self.message}
        extra = self.detail()
        if extra:
            payload.update(to_json_compatible(extra))
        return payload


class InvalidQuantity(LedgerError):
    code = "invalid_quantity"
    default_message = "Quantity must be greater than zero."

    def __init__(self, message=None, *, quantity=None, stock_unit_id=None):
        self.quantity = quantity
        self.stock_unit_id = stock_unit_id
        super().__init__(message)

    def detail(self):
        payload = {}
        if self.quantity is not None:
            payload["quantity"] = self.quantity
        if self.stock_unit_id is not None:
            payload["stock_unit_id"] = self.stock_unit_id
        return payload


class EmptyEvent(InvalidQuantity):
    code = "empty_event"
    default_message = "At least one line is required."


class InsufficientQuantity(LedgerError):
    code = "insufficient_quantity"
    status_code = 409

    def __init__(self, stock_unit_id, requested, remaining, *, already_claimed=None):
        self.stock_unit_id = stock_unit_id
        self.requested = requested
        self.remaining = remaining
        self.already_claimed = already_claimed
        message = f"Stock unit {stock_unit_id} has {remaining} remaining; {requested} was requested."
        if already_claimed:
            message = (
                f"Stock unit {stock_unit_id} has {remaining} remaining and earlier lines claim {already_claimed}; "
                f"{requested} more was requested."
            )
        super().__init__(message)

    def detail(self):
        payload = {
            "stock_unit_id": self.stock_unit_id,
            "requested": self.requested,
            "remaining": self.remaining,
        }
        if self.already_claimed:
            payload["already_claimed"] = self.already_claimed
        return payload


class NotFound(LedgerError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity, ids):
        if not isinstance(ids, (list, tuple, set)):
            ids = [ids]
        self.entity = entity
        self.ids = [str(value) for value in ids]
        super().__init__(f"{entity} not found: {', '.join(self.ids)}.")

    def detail(self):
        return {"entity": self.entity, "ids": self.ids}


class InvalidLabelBatch(LedgerError):
    code = "invalid_label_batch"


class InvalidTransfer(LedgerError):
    code = "invalid_transfer"
    default_message = "A transfer needs two different warehouses."


class AlreadyCancelled(LedgerError):
    code = "already_cancelled"
    status_code = 409
    default_message = "This record is already cancelled."


class PartialBatchFailure(LedgerError):
    """One or more lines failed validation; nothing was committed.

    ``failures`` is a list of ``(line_index, LedgerError)`` pairs in line order.
    """

    code = "partial_batch_failure"
    status_code = 422

    def __init__(self, failures):
        self.failures = list(failures)
        super().__init__(f"{len(self.failures)} line(s) failed validation; nothing was committed.")

    def detail(self):
        return {"failures": self.line_errors()}

    def line_errors(self):
        return [{"line": index, **error.as_dict()} for index, error in self.failures]


def raise_line_failures(failures, line_count):
    """Raise the collected failures, if any.

    A single-line request surfaces its own error; multi-line requests get the
    aggregated ``PartialBatchFailure``.
    """
    if not failures:
        return
    if line_count == 1 and len(failures) == 1:
        raise failures[0][1]
    raise PartialBatchFailure(failures)
