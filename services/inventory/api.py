from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.db.models.inventory import StockTransaction, TransactionType
from app.db.session import get_db
from services.inventory.ledger import (
    TransactionResult,
    adjust_inventory,
    apply_transaction,
    delete_transaction,
    get_inventory_status,
    get_low_stock_alerts,
    get_transaction,
    get_transaction_history,
    update_transaction,
    verify_chain,
)
from services.inventory.reservation import ReservationResult, release_reservation, reserve_inventory

router = APIRouter(prefix="/inventory", tags=["inventory"])


# ---- Schemas ----
class TransactionIn(BaseModel):
    part_id: str
    transaction_type: TransactionType
    quantity: int
    reference_type: str | None = Field(default=None, max_length=32)
    reference_id: str | None = Field(default=None, max_length=64)
    reason: str | None = Field(default=None, max_length=256)
    notes: str | None = None
    performed_by: str | None = Field(default=None, max_length=128)


class TransactionUpdateIn(BaseModel):
    transaction_type: TransactionType | None = None
    quantity: int | None = None
    reason: str | None = Field(default=None, max_length=256)
    notes: str | None = None
    performed_by: str | None = Field(default=None, max_length=128)


class AdjustIn(BaseModel):
    part_id: str
    new_quantity: int = Field(..., ge=0)
    reason: str = Field(..., max_length=256)
    notes: str | None = None
    performed_by: str | None = Field(default=None, max_length=128)


class ReserveIn(BaseModel):
    part_id: str
    quantity: int = Field(..., gt=0)
    reference_type: str = Field(..., max_length=32)
    reference_id: str = Field(..., max_length=64)


class ReleaseIn(BaseModel):
    part_id: str
    quantity: int = Field(..., gt=0)


def _txn_out(t: StockTransaction) -> dict:
    return {
        "id": t.id,
        "transaction_code": t.transaction_code,
        "part_id": t.part_id,
        "sequence": t.sequence,
        "transaction_type": t.transaction_type.value,
        "quantity": t.quantity,
        "before_qty": t.before_qty,
        "after_qty": t.after_qty,
        "reference_type": t.reference_type,
        "reference_id": t.reference_id,
        "reason": t.reason,
        "notes": t.notes,
        "performed_by": t.performed_by,
        "transaction_date": t.transaction_date,
    }


def _result_out(r: TransactionResult) -> dict:
    return {
        "transaction": _txn_out(r.transaction),
        "inventory": {
            "current_qty": r.inventory.current_qty,
            "reserved_qty": r.inventory.reserved_qty,
            "available_qty": r.available_qty,
        },
    }


def _reservation_out(r: ReservationResult) -> dict:
    return {
        "success": True,
        "part_id": r.part_id,
        "current_qty": r.current_qty,
        "reserved_qty": r.reserved_qty,
        "available_qty": r.available_qty,
    }


# ---- Stock records ----
@router.get("/records")
def list_records(part_id: Optional[str] = None, db: Session = Depends(get_db)):
    return get_inventory_status(db, part_id)


@router.get("/low-stock")
def low_stock(db: Session = Depends(get_db)):
    return get_low_stock_alerts(db)


@router.get("/parts/{part_id}/chain")
def check_chain(part_id: str, db: Session = Depends(get_db)):
    return {"part_id": part_id, "consistent": verify_chain(db, part_id)}


# ---- Ledger ----
@router.get("/transactions")
def list_transactions(
    part_id: Optional[str] = None,
    transaction_type: Optional[TransactionType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    rows = get_transaction_history(db, part_id=part_id, transaction_type=transaction_type, start=start, end=end, limit=limit)
    return [_txn_out(t) for t in rows]


@router.get("/transactions/{transaction_id}")
def read_transaction(transaction_id: str, db: Session = Depends(get_db)):
    return _txn_out(get_transaction(db, transaction_id))


@router.post("/transactions")
def create_transaction(payload: TransactionIn, db: Session = Depends(get_db)):
    result = apply_transaction(
        db,
        part_id=payload.part_id,
        transaction_type=payload.transaction_type,
        quantity=payload.quantity,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
        reason=payload.reason,
        notes=payload.notes,
        performed_by=payload.performed_by,
    )
    return _result_out(result)


@router.put("/transactions/{transaction_id}")
def edit_transaction(transaction_id: str, payload: TransactionUpdateIn, db: Session = Depends(get_db)):
    result = update_transaction(
        db,
        transaction_id,
        transaction_type=payload.transaction_type,
        quantity=payload.quantity,
        reason=payload.reason,
        notes=payload.notes,
        performed_by=payload.performed_by,
    )
    return _result_out(result)


@router.delete("/transactions/{transaction_id}")
def remove_transaction(transaction_id: str, performed_by: Optional[str] = None, db: Session = Depends(get_db)):
    record = delete_transaction(db, transaction_id, performed_by=performed_by)
    return {"success": True, "part_id": record.part_id, "current_qty": record.current_qty}


@router.post("/adjust")
def adjust(payload: AdjustIn, db: Session = Depends(get_db)):
    result = adjust_inventory(
        db,
        part_id=payload.part_id,
        new_quantity=payload.new_quantity,
        reason=payload.reason,
        notes=payload.notes,
        performed_by=payload.performed_by,
    )
    return _result_out(result)


# ---- Reservations ----
@router.post("/reserve")
def reserve(payload: ReserveIn, db: Session = Depends(get_db)):
    result = reserve_inventory(
        db,
        part_id=payload.part_id,
        quantity=payload.quantity,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
    )
    return _reservation_out(result)


@router.post("/release")
def release(payload: ReleaseIn, db: Session = Depends(get_db)):
    return _reservation_out(release_reservation(db, part_id=payload.part_id, quantity=payload.quantity))
