from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.db.models.mrp import MrpResult, MrpResultStatus, MrpRun, Urgency
from app.db.session import get_db
from services.mrp.engine import calculate_mrp, current_urgency, get_mrp_results, update_mrp_result_status

router = APIRouter(prefix="/mrp", tags=["mrp"])


class CalculateIn(BaseModel):
    part_ids: list[str] | None = None
    sales_order_ids: list[str] | None = None
    clear_existing: bool = True


class StatusIn(BaseModel):
    status: MrpResultStatus


def _result_out(r: MrpResult) -> dict:
    return {
        "id": r.id,
        "run_id": r.run_id,
        "part_id": r.part_id,
        "part_code": r.part.part_code if r.part else None,
        "sales_order_id": r.sales_order_id,
        "sales_order_code": r.sales_order.order_code if r.sales_order else None,
        "gross_requirement": r.gross_requirement,
        "current_stock": r.current_stock,
        "reserved_qty": r.reserved_qty,
        "incoming_qty": r.incoming_qty,
        "safety_stock": r.safety_stock,
        "net_requirement": r.net_requirement,
        "suggested_order_qty": r.suggested_order_qty,
        "suggested_order_date": r.suggested_order_date,
        "due_date": r.due_date,
        "urgency": r.urgency.value,
        "status": r.status.value,
        "calculation_date": r.calculation_date,
    }


@router.post("/calculate")
def run_calculation(payload: CalculateIn | None = None, db: Session = Depends(get_db)):
    payload = payload or CalculateIn()
    outcome = calculate_mrp(
        db,
        part_ids=payload.part_ids,
        sales_order_ids=payload.sales_order_ids,
        clear_existing=payload.clear_existing,
    )
    return {
        "run_id": outcome.run_id,
        "count": len(outcome.results),
        "summary": outcome.summary.as_dict(),
        "results": [_result_out(r) for r in outcome.results],
    }


@router.get("/results")
def list_results(
    status: Optional[MrpResultStatus] = None,
    urgency: Optional[Urgency] = None,
    part_id: Optional[str] = None,
    sales_order_id: Optional[str] = None,
    only_needs_order: bool = False,
    db: Session = Depends(get_db),
):
    rows = get_mrp_results(
        db,
        status=status,
        urgency=urgency,
        part_id=part_id,
        sales_order_id=sales_order_id,
        only_needs_order=only_needs_order,
    )
    out = []
    for r in rows:
        item = _result_out(r)
        item["current_urgency"] = current_urgency(r).value
        out.append(item)
    return out


@router.patch("/results/{result_id}")
def set_result_status(result_id: str, payload: StatusIn, db: Session = Depends(get_db)):
    return _result_out(update_mrp_result_status(db, result_id, payload.status))


@router.get("/runs")
def list_runs(db: Session = Depends(get_db), limit: int = 50):
    rows = db.query(MrpRun).order_by(MrpRun.created_at.desc()).limit(limit).all()
    return [{
        "id": r.id,
        "status": r.status,
        "params": r.params or {},
        "summary": r.summary or {},
        "error": r.error,
        "created_at": r.created_at,
        "finished_at": r.finished_at,
    } for r in rows]
