from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.events.bus import publish
from services.inventory.errors import InsufficientAvailableStock, InvalidQuantity
from services.inventory.ledger import available_qty, get_or_create_record, lock_part

logger = logging.getLogger(__name__)


@dataclass
class ReservationResult:
    part_id: str
    current_qty: int
    reserved_qty: int
    available_qty: int


def reserve_inventory(
    db: Session,
    *,
    part_id: str,
    quantity: int,
    reference_type: str,
    reference_id: str,
    commit: bool = True,
) -> ReservationResult:
    """Earmark stock for a document. Writes no ledger entry; only reserved_qty moves."""
    if quantity <= 0:
        raise InvalidQuantity(f"Reserved quantity must be positive (got {quantity})")
    try:
        part = lock_part(db, part_id)
        record = get_or_create_record(db, part)
        available = available_qty(record.current_qty, record.reserved_qty)
        if quantity > available:
            logger.warning("Rejected reservation of %s x %s for %s %s: %s available",
                           quantity, part.part_code, reference_type, reference_id, available)
            raise InsufficientAvailableStock(part.part_code, available, quantity)

        record.reserved_qty += quantity
        publish(db, "inventory.reserved", entity=("part", part.id), payload={
            "part_id": part.id,
            "part_code": part.part_code,
            "quantity": quantity,
            "reserved_qty": record.reserved_qty,
            "reference_type": reference_type,
            "reference_id": reference_id,
        })
        if commit:
            db.commit()
            db.refresh(record)
        else:
            db.flush()
    except Exception:
        if commit:
            db.rollback()
        raise
    logger.info("Reserved %s x %s for %s %s", quantity, part.part_code, reference_type, reference_id)
    return ReservationResult(
        part_id=part.id,
        current_qty=record.current_qty,
        reserved_qty=record.reserved_qty,
        available_qty=available_qty(record.current_qty, record.reserved_qty),
    )


def release_reservation(db: Session, *, part_id: str, quantity: int, commit: bool = True) -> ReservationResult:
    if quantity <= 0:
        raise InvalidQuantity(f"Released quantity must be positive (got {quantity})")
    try:
        part = lock_part(db, part_id)
        record = get_or_create_record(db, part)
        released = min(quantity, record.reserved_qty)
        record.reserved_qty = max(0, record.reserved_qty - quantity)
        publish(db, "inventory.released", entity=("part", part.id), payload={
            "part_id": part.id,
            "part_code": part.part_code,
            "quantity": released,
            "reserved_qty": record.reserved_qty,
        })
        if commit:
            db.commit()
            db.refresh(record)
        else:
            db.flush()
    except Exception:
        if commit:
            db.rollback()
        raise
    return ReservationResult(
        part_id=part.id,
        current_qty=record.current_qty,
        reserved_qty=record.reserved_qty,
        available_qty=available_qty(record.current_qty, record.reserved_qty),
    )
