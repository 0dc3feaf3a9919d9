"""Inventory ledger.

Every change to a part's physical quantity goes through here as one
StockTransaction plus the matching InventoryRecord update, committed as a
single unit of work. The part row is locked first so that movements of the
same part are applied one after another; the per-part ``sequence`` defines
which entry is the latest.

InventoryRecord.current_qty is the projection of the chain: it always equals
the after_qty of the part's highest-sequence entry. Editing or deleting an
entry re-derives before/after for every later entry of the same part.
"""
from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.models.catalog import Part
from app.db.models.common import utcnow
from app.db.models.inventory import InventoryRecord, StockTransaction, TransactionType
from app.events.bus import publish
from services.inventory.errors import (
    InsufficientStock,
    InvalidQuantity,
    PartNotFound,
    RollbackUnsupported,
    TransactionNotFound,
)

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


@dataclass
class TransactionResult:
    transaction: StockTransaction
    inventory: InventoryRecord

    @property
    def available_qty(self) -> int:
        return available_qty(self.inventory.current_qty, self.inventory.reserved_qty)


def _base36(n: int) -> str:
    out = ""
    while n:
        n, rem = divmod(n, 36)
        out = _BASE36[rem] + out
    return out or "0"


def generate_transaction_code(transaction_type: TransactionType) -> str:
    prefix = TransactionType(transaction_type).value[:2]
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"{prefix}{stamp}{suffix}"


def available_qty(current_qty: int, reserved_qty: int) -> int:
    return max(0, current_qty - reserved_qty)


def movement_delta(transaction_type: TransactionType, quantity: int) -> int:
    """Signed change a movement applies to current_qty."""
    if transaction_type is TransactionType.INBOUND:
        return quantity
    if transaction_type is TransactionType.OUTBOUND:
        return -quantity
    if transaction_type is TransactionType.ADJUSTMENT:
        return quantity
    if transaction_type is TransactionType.TRANSFER:
        # Location routing is not tracked here; the part total does not move
        return 0
    raise ValueError(f"Unknown transaction type: {transaction_type!r}")


def _validate_quantity(transaction_type: TransactionType, quantity: int) -> None:
    if transaction_type is TransactionType.ADJUSTMENT:
        return
    if quantity <= 0:
        raise InvalidQuantity(f"{transaction_type.value} quantity must be positive (got {quantity})")


def lock_part(db: Session, part_id: str) -> Part:
    part = db.query(Part).filter(Part.id == part_id).with_for_update().first()
    if not part:
        raise PartNotFound(part_id)
    return part


def get_or_create_record(db: Session, part: Part) -> InventoryRecord:
    record = (db.query(InventoryRecord)
              .filter(InventoryRecord.part_id == part.id)
              .with_for_update()
              .first())
    if not record:
        logger.info("No inventory record for %s, creating an empty one", part.part_code)
        record = InventoryRecord(part_id=part.id, current_qty=0, reserved_qty=0, last_sequence=0)
        db.add(record)
        db.flush()
    return record


def _stamp_movement_dates(record: InventoryRecord, transaction_type: TransactionType, when: datetime) -> None:
    if transaction_type is TransactionType.INBOUND:
        record.last_inbound_date = when
    elif transaction_type is TransactionType.OUTBOUND:
        record.last_outbound_date = when


def _refresh_movement_dates(db: Session, record: InventoryRecord, *, exclude_id: str | None = None) -> None:
    for transaction_type, attr in (
        (TransactionType.INBOUND, "last_inbound_date"),
        (TransactionType.OUTBOUND, "last_outbound_date"),
    ):
        q = db.query(func.max(StockTransaction.transaction_date)).filter(
            StockTransaction.part_id == record.part_id,
            StockTransaction.transaction_type == transaction_type,
        )
        if exclude_id:
            q = q.filter(StockTransaction.id != exclude_id)
        setattr(record, attr, q.scalar())


def _post(
    db: Session,
    *,
    part: Part,
    record: InventoryRecord,
    transaction_type: TransactionType,
    quantity: int,
    reference_type: str | None,
    reference_id: str | None,
    reason: str | None,
    notes: str | None,
    performed_by: str | None,
    unit_price: Decimal | None,
) -> StockTransaction:
    _validate_quantity(transaction_type, quantity)

    before = record.current_qty
    if transaction_type is TransactionType.OUTBOUND and before < quantity:
        logger.warning("Rejected outbound of %s x %s: only %s on hand", quantity, part.part_code, before)
        raise InsufficientStock(part.part_code, before, quantity)
    after = before + movement_delta(transaction_type, quantity)
    if after < 0:
        logger.warning("Rejected adjustment of %s on %s: stock would become %s", quantity, part.part_code, after)
        raise InsufficientStock(part.part_code, before, -quantity)

    now = utcnow()
    record.last_sequence = (record.last_sequence or 0) + 1
    txn = StockTransaction(
        transaction_code=generate_transaction_code(transaction_type),
        part_id=part.id,
        sequence=record.last_sequence,
        transaction_type=transaction_type,
        quantity=quantity,
        before_qty=before,
        after_qty=after,
        reference_type=reference_type,
        reference_id=reference_id,
        unit_price=unit_price,
        total_amount=(Decimal(str(unit_price)) * abs(quantity)) if unit_price is not None else None,
        reason=reason,
        notes=notes,
        performed_by=performed_by,
        transaction_date=now,
    )
    db.add(txn)

    record.current_qty = after
    _stamp_movement_dates(record, transaction_type, now)

    publish(db, "inventory.changed", entity=("part", part.id), payload={
        "transaction_code": txn.transaction_code,
        "part_id": part.id,
        "part_code": part.part_code,
        "transaction_type": transaction_type.value,
        "quantity": quantity,
        "before_qty": before,
        "after_qty": after,
        "reference_type": reference_type,
        "reference_id": reference_id,
        "performed_by": performed_by,
    })
    logger.info("%s %s %s x %s: %s -> %s", txn.transaction_code, transaction_type.value, quantity, part.part_code, before, after)
    return txn


def apply_transaction(
    db: Session,
    *,
    part_id: str,
    transaction_type: TransactionType | str,
    quantity: int,
    reference_type: str | None = None,
    reference_id: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    performed_by: str | None = None,
    unit_price: Decimal | None = None,
    commit: bool = True,
) -> TransactionResult:
    """Record one stock movement and update the part's inventory record.

    With ``commit=False`` the caller owns the unit of work (e.g. receiving a
    purchase order posts several movements and commits once).
    """
    transaction_type = TransactionType(transaction_type)
    try:
        part = lock_part(db, part_id)
        record = get_or_create_record(db, part)
        txn = _post(
            db,
            part=part,
            record=record,
            transaction_type=transaction_type,
            quantity=quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            reason=reason,
            notes=notes,
            performed_by=performed_by,
            unit_price=unit_price,
        )
        if commit:
            db.commit()
            db.refresh(txn)
            db.refresh(record)
        else:
            db.flush()
    except Exception:
        if commit:
            db.rollback()
        raise
    return TransactionResult(transaction=txn, inventory=record)


def adjust_inventory(
    db: Session,
    *,
    part_id: str,
    new_quantity: int,
    reason: str,
    notes: str | None = None,
    performed_by: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    commit: bool = True,
) -> TransactionResult:
    """Set a part's stock to ``new_quantity`` by posting the difference as an ADJUSTMENT."""
    if new_quantity < 0:
        raise InvalidQuantity(f"Adjusted quantity cannot be negative (got {new_quantity})")
    try:
        part = lock_part(db, part_id)
        record = get_or_create_record(db, part)
        txn = _post(
            db,
            part=part,
            record=record,
            transaction_type=TransactionType.ADJUSTMENT,
            quantity=new_quantity - record.current_qty,
            reference_type=reference_type,
            reference_id=reference_id,
            reason=reason,
            notes=notes,
            performed_by=performed_by,
            unit_price=None,
        )
        if commit:
            db.commit()
            db.refresh(txn)
            db.refresh(record)
        else:
            db.flush()
    except Exception:
        if commit:
            db.rollback()
        raise
    return TransactionResult(transaction=txn, inventory=record)


def _restate_chain(db: Session, part: Part, *, after_sequence: int, opening_qty: int) -> int:
    """Re-derive before/after of every entry later than ``after_sequence``.

    Returns the closing quantity, which becomes the record's current_qty.
    """
    running = opening_qty
    later = (db.query(StockTransaction)
             .filter(StockTransaction.part_id == part.id, StockTransaction.sequence > after_sequence)
             .order_by(StockTransaction.sequence.asc())
             .all())
    for entry in later:
        after = running + movement_delta(entry.transaction_type, entry.quantity)
        if (entry.transaction_type is TransactionType.OUTBOUND and running < entry.quantity) or after < 0:
            raise RollbackUnsupported(
                f"Cannot restate ledger of {part.part_code}: later entry {entry.transaction_code} "
                f"would move stock from {running} to {after}"
            )
        entry.before_qty = running
        entry.after_qty = after
        running = after
    return running


def get_transaction(db: Session, transaction_id: str) -> StockTransaction:
    txn = db.query(StockTransaction).filter(StockTransaction.id == transaction_id).first()
    if not txn:
        raise TransactionNotFound(transaction_id)
    return txn


def delete_transaction(db: Session, transaction_id: str, *, performed_by: str | None = None) -> InventoryRecord:
    """Remove a ledger entry as if it had never been posted."""
    try:
        txn = get_transaction(db, transaction_id)
        part = lock_part(db, txn.part_id)
        record = get_or_create_record(db, part)

        closing = _restate_chain(db, part, after_sequence=txn.sequence, opening_qty=txn.before_qty)
        _refresh_movement_dates(db, record, exclude_id=txn.id)
        record.current_qty = closing

        publish(db, "inventory.transaction.deleted", entity=("part", part.id), payload={
            "transaction_code": txn.transaction_code,
            "part_id": part.id,
            "part_code": part.part_code,
            "transaction_type": txn.transaction_type.value,
            "quantity": txn.quantity,
            "current_qty": closing,
            "performed_by": performed_by,
        })
        logger.info("Deleted %s on %s; stock now %s", txn.transaction_code, part.part_code, closing)
        db.delete(txn)
        db.commit()
        db.refresh(record)
    except Exception:
        db.rollback()
        raise
    return record


def update_transaction(
    db: Session,
    transaction_id: str,
    *,
    transaction_type: TransactionType | str | None = None,
    quantity: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
    performed_by: str | None = None,
) -> TransactionResult:
    """Edit an entry in place; it keeps its position in the part's chain."""
    try:
        txn = get_transaction(db, transaction_id)
        part = lock_part(db, txn.part_id)
        record = get_or_create_record(db, part)

        new_type = TransactionType(transaction_type) if transaction_type is not None else txn.transaction_type
        new_qty = quantity if quantity is not None else txn.quantity
        _validate_quantity(new_type, new_qty)

        before = txn.before_qty
        if new_type is TransactionType.OUTBOUND and before < new_qty:
            raise InsufficientStock(part.part_code, before, new_qty)
        after = before + movement_delta(new_type, new_qty)
        if after < 0:
            raise InsufficientStock(part.part_code, before, -new_qty)

        closing = _restate_chain(db, part, after_sequence=txn.sequence, opening_qty=after)

        txn.transaction_type = new_type
        txn.quantity = new_qty
        txn.after_qty = after
        if txn.unit_price is not None:
            txn.total_amount = Decimal(str(txn.unit_price)) * abs(new_qty)
        if reason is not None:
            txn.reason = reason
        if notes is not None:
            txn.notes = notes
        if performed_by is not None:
            txn.performed_by = performed_by

        record.current_qty = closing
        db.flush()
        _refresh_movement_dates(db, record)

        publish(db, "inventory.transaction.updated", entity=("part", part.id), payload={
            "transaction_code": txn.transaction_code,
            "part_id": part.id,
            "part_code": part.part_code,
            "transaction_type": new_type.value,
            "quantity": new_qty,
            "before_qty": before,
            "after_qty": after,
            "current_qty": closing,
            "performed_by": performed_by,
        })
        logger.info("Updated %s on %s; stock now %s", txn.transaction_code, part.part_code, closing)
        db.commit()
        db.refresh(txn)
        db.refresh(record)
    except Exception:
        db.rollback()
        raise
    return TransactionResult(transaction=txn, inventory=record)


def verify_chain(db: Session, part_id: str) -> bool:
    """True when the part's entries link up and the record matches the latest one."""
    entries = (db.query(StockTransaction)
               .filter(StockTransaction.part_id == part_id)
               .order_by(StockTransaction.sequence.asc())
               .all())
    record = db.query(InventoryRecord).filter(InventoryRecord.part_id == part_id).first()
    expected_before = 0
    for entry in entries:
        if entry.before_qty != expected_before:
            return False
        if entry.after_qty != entry.before_qty + movement_delta(entry.transaction_type, entry.quantity):
            return False
        expected_before = entry.after_qty
    current = record.current_qty if record else 0
    return current == expected_before


def get_transaction_history(
    db: Session,
    *,
    part_id: str | None = None,
    transaction_type: TransactionType | str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[StockTransaction]:
    q = db.query(StockTransaction)
    if part_id:
        q = q.filter(StockTransaction.part_id == part_id)
    if transaction_type:
        q = q.filter(StockTransaction.transaction_type == TransactionType(transaction_type))
    if start:
        q = q.filter(StockTransaction.transaction_date >= start)
    if end:
        q = q.filter(StockTransaction.transaction_date <= end)
    return (q.order_by(StockTransaction.transaction_date.desc(), StockTransaction.sequence.desc())
            .limit(limit)
            .all())


def get_inventory_status(db: Session, part_id: str | None = None) -> list[dict]:
    q = db.query(InventoryRecord, Part).join(Part, Part.id == InventoryRecord.part_id)
    if part_id:
        q = q.filter(InventoryRecord.part_id == part_id)
    rows = q.order_by(Part.part_code.asc()).all()
    return [{
        "part_id": part.id,
        "part_code": part.part_code,
        "part_name": part.part_name,
        "unit": part.unit,
        "current_qty": rec.current_qty,
        "reserved_qty": rec.reserved_qty,
        "available_qty": available_qty(rec.current_qty, rec.reserved_qty),
        "safety_stock": part.safety_stock,
        "is_low_stock": rec.current_qty <= part.safety_stock,
        "last_inbound_date": rec.last_inbound_date,
        "last_outbound_date": rec.last_outbound_date,
    } for rec, part in rows]


def get_low_stock_alerts(db: Session) -> list[dict]:
    rows = (db.query(InventoryRecord, Part)
            .join(Part, Part.id == InventoryRecord.part_id)
            .filter(Part.is_active == True)  # noqa: E712
            .filter(InventoryRecord.current_qty <= Part.safety_stock)
            .order_by(Part.part_code.asc())
            .all())
    return [{
        "part_id": part.id,
        "part_code": part.part_code,
        "part_name": part.part_name,
        "current_qty": rec.current_qty,
        "safety_stock": part.safety_stock,
        "shortage": part.safety_stock - rec.current_qty,
        "supplier": part.supplier.name if part.supplier else None,
    } for rec, part in rows]
