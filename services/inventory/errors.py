from __future__ import annotations


class InventoryError(Exception):
    """Base class for stock-integrity and lookup failures.

    Carries the HTTP status the API layer answers with; the message is
    meant to be shown to the user as-is.
    """

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InsufficientStock(InventoryError):
    status_code = 409

    def __init__(self, part_code: str, current_qty: int, requested_qty: int):
        super().__init__(f"Insufficient stock for {part_code} (current: {current_qty}, requested: {requested_qty})")
        self.current_qty = current_qty
        self.requested_qty = requested_qty


class InsufficientAvailableStock(InventoryError):
    status_code = 409

    def __init__(self, part_code: str, available_qty: int, requested_qty: int):
        super().__init__(f"Insufficient available stock for {part_code} (available: {available_qty}, requested: {requested_qty})")
        self.available_qty = available_qty
        self.requested_qty = requested_qty


class InvalidQuantity(InventoryError):
    status_code = 400


class RollbackUnsupported(InventoryError):
    status_code = 409


class NotFound(InventoryError):
    status_code = 404
    entity = "Record"

    def __init__(self, entity_id: str):
        super().__init__(f"{self.entity} not found: {entity_id}")
        self.entity_id = entity_id


class PartNotFound(NotFound):
    entity = "Part"


class TransactionNotFound(NotFound):
    entity = "Transaction"


class MrpResultNotFound(NotFound):
    entity = "MRP result"


class PurchaseOrderNotFound(NotFound):
    entity = "Purchase order"


class OrderNotReceivable(InventoryError):
    status_code = 409


class MissingSupplier(InventoryError):
    status_code = 400
