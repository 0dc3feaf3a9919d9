"""MRP run orchestration.

A run walks COLLECTING -> AGGREGATING -> NETTING -> CLASSIFYING ->
PERSISTING -> DONE over one scope snapshot. Results for the scope are
replaced wholesale in a single commit; a failed run rolls back and leaves
the previous results untouched.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models.catalog import Part
from app.db.models.common import utcnow
from app.db.models.inventory import InventoryRecord
from app.db.models.mrp import MrpResult, MrpResultStatus, MrpRun, Urgency
from app.events.bus import publish
from services.inventory.errors import MrpResultNotFound
from services.mrp.aggregation import Demand, MrpScope, aggregate_requirements, get_active_parts
from services.mrp.netting import NetResult, StockPosition, ZERO, net_and_suggest, round_quantity
from services.mrp.scheduling import Schedule, classify, days_until, urgency_for_days
from services.purchasing.service import incoming_quantities

logger = logging.getLogger(__name__)


class MrpStage(str, enum.Enum):
    COLLECTING = "COLLECTING"
    AGGREGATING = "AGGREGATING"
    NETTING = "NETTING"
    CLASSIFYING = "CLASSIFYING"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class PlannedLine:
    part: Part
    demand: Demand
    position: StockPosition
    netted: NetResult
    schedule: Schedule | None = None


@dataclass
class MrpSummary:
    total_results: int = 0
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    total_suggested_qty: int = 0
    parts_needing_order: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class MrpRunOutcome:
    run_id: str
    results: list[MrpResult]
    summary: MrpSummary


def summarize(results: Iterable[MrpResult]) -> MrpSummary:
    summary = MrpSummary()
    needing_order: set[str] = set()
    counters = {
        Urgency.CRITICAL: "critical_count",
        Urgency.HIGH: "high_count",
        Urgency.MEDIUM: "medium_count",
        Urgency.LOW: "low_count",
    }
    for r in results:
        summary.total_results += 1
        attr = counters[r.urgency]
        setattr(summary, attr, getattr(summary, attr) + 1)
        summary.total_suggested_qty += r.suggested_order_qty
        if r.suggested_order_qty > 0:
            needing_order.add(r.part_id)
    summary.parts_needing_order = len(needing_order)
    return summary


def load_stock_positions(db: Session, parts: dict[str, Part]) -> dict[str, StockPosition]:
    records = {
        r.part_id: r
        for r in db.query(InventoryRecord).filter(InventoryRecord.part_id.in_(list(parts))).all()
    }
    incoming = incoming_quantities(db, list(parts))
    positions: dict[str, StockPosition] = {}
    for part_id, part in parts.items():
        rec = records.get(part_id)
        positions[part_id] = StockPosition(
            current_stock=rec.current_qty if rec else 0,
            reserved_qty=rec.reserved_qty if rec else 0,
            incoming_qty=incoming.get(part_id, 0),
            safety_stock=part.safety_stock or 0,
            min_order_qty=part.min_order_qty or 0,
        )
    return positions


def _allocation_order(demand: Demand) -> tuple:
    # Earliest due date draws on stock first; undated demand goes last
    return (demand.due_date is None, demand.due_date or date.max, demand.sales_order_code)


def net_demands(
    parts: dict[str, Part],
    positions: dict[str, StockPosition],
    demands: dict[tuple[str, str], Demand],
) -> list[PlannedLine]:
    by_part: dict[str, list[Demand]] = {}
    for (part_id, _), demand in demands.items():
        if part_id in parts:
            by_part.setdefault(part_id, []).append(demand)

    lines: list[PlannedLine] = []
    for part_id in sorted(by_part, key=lambda pid: parts[pid].part_code):
        position = positions[part_id]
        allocated = ZERO
        for demand in sorted(by_part[part_id], key=_allocation_order):
            netted = net_and_suggest(position, demand.requirement, allocated=allocated)
            allocated += netted.consumed_stock
            lines.append(PlannedLine(part=parts[part_id], demand=demand, position=position, netted=netted))
    return lines


def _allocation_pool(
    db: Session,
    scope: MrpScope,
    demands: dict[tuple[str, str], Demand],
) -> dict[tuple[str, str], Demand]:
    """Every active order's demand on the parts the scope touches.

    Orders outside the scope still draw on the same stock, so a run for one
    sales order nets against what earlier-due orders have already consumed.
    Only the scope's own pairs are persisted.
    """
    if scope.sales_order_ids is None or not demands:
        return demands
    touched = tuple(sorted({part_id for part_id, _ in demands}))
    return aggregate_requirements(db, MrpScope(part_ids=touched))


def _clear_scope(db: Session, scope: MrpScope) -> int:
    q = db.query(MrpResult)
    if scope.part_ids is not None:
        q = q.filter(MrpResult.part_id.in_(scope.part_ids))
    if scope.sales_order_ids is not None:
        q = q.filter(MrpResult.sales_order_id.in_(scope.sales_order_ids))
    return q.delete(synchronize_session=False)


def _to_result(line: PlannedLine, run_id: str, now: datetime) -> MrpResult:
    return MrpResult(
        run_id=run_id,
        part_id=line.part.id,
        sales_order_id=line.demand.sales_order_id,
        calculation_date=now,
        gross_requirement=round_quantity(line.demand.requirement),
        current_stock=line.position.current_stock,
        reserved_qty=line.position.reserved_qty,
        incoming_qty=line.position.incoming_qty,
        safety_stock=line.position.safety_stock,
        net_requirement=round_quantity(line.netted.net_requirement),
        suggested_order_qty=line.netted.suggested_order_qty,
        suggested_order_date=line.schedule.suggested_order_date,
        due_date=line.demand.due_date,
        urgency=line.schedule.urgency,
        status=MrpResultStatus.PENDING,
    )


def _record_failed_run(db: Session, params: dict, stage: MrpStage, error: Exception) -> None:
    try:
        db.add(MrpRun(
            status=MrpStage.FAILED.value,
            params=params,
            summary={"failed_stage": stage.value},
            error=str(error)[:512],
            finished_at=utcnow(),
        ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not record failed MRP run")


def calculate_mrp(
    db: Session,
    *,
    part_ids: Iterable[str] | None = None,
    sales_order_ids: Iterable[str] | None = None,
    clear_existing: bool = True,
    now: datetime | None = None,
) -> MrpRunOutcome:
    """Run MRP for the given parts and/or sales orders (everything when both are None)."""
    now = now or utcnow()
    scope = MrpScope.of(part_ids, sales_order_ids)
    params = {
        "part_ids": list(scope.part_ids) if scope.part_ids is not None else None,
        "sales_order_ids": list(scope.sales_order_ids) if scope.sales_order_ids is not None else None,
        "clear_existing": clear_existing,
    }

    stage = MrpStage.COLLECTING
    try:
        logger.debug("MRP %s: %s", stage.value, params)
        parts = {p.id: p for p in get_active_parts(db, scope.part_ids)}

        stage = MrpStage.AGGREGATING
        logger.debug("MRP %s over %s active parts", stage.value, len(parts))
        demands = aggregate_requirements(db, scope)
        pool = _allocation_pool(db, scope, demands)

        stage = MrpStage.NETTING
        logger.debug("MRP %s %s demand pairs (%s competing)", stage.value, len(demands), len(pool))
        demanded = {part_id: parts[part_id] for part_id, _ in pool if part_id in parts}
        positions = load_stock_positions(db, demanded)
        lines = [
            line for line in net_demands(demanded, positions, pool)
            if (line.part.id, line.demand.sales_order_id) in demands
        ]

        stage = MrpStage.CLASSIFYING
        logger.debug("MRP %s %s lines", stage.value, len(lines))
        for line in lines:
            line.schedule = classify(
                line.demand.due_date,
                line.part.lead_time_days,
                suggested_qty=line.netted.suggested_order_qty,
                now=now,
            )

        stage = MrpStage.PERSISTING
        run = MrpRun(status=MrpStage.DONE.value, params=params, summary={})
        db.add(run)
        db.flush()
        if clear_existing:
            removed = _clear_scope(db, scope)
            logger.debug("MRP %s removed %s previous results", stage.value, removed)
        results = [_to_result(line, run.id, now) for line in lines]
        db.add_all(results)

        summary = summarize(results)
        run.summary = summary.as_dict()
        run.finished_at = utcnow()
        publish(db, "mrp.run.completed", entity=("mrp_run", run.id), payload={"run_id": run.id, "params": params, **summary.as_dict()})
        db.commit()
        stage = MrpStage.DONE
    except Exception as e:
        db.rollback()
        logger.exception("MRP run failed during %s", stage.value)
        _record_failed_run(db, params, stage, e)
        raise

    logger.info(
        "MRP run %s: %s results, %s parts need ordering (%s units); critical=%s high=%s medium=%s low=%s",
        run.id, summary.total_results, summary.parts_needing_order, summary.total_suggested_qty,
        summary.critical_count, summary.high_count, summary.medium_count, summary.low_count,
    )
    return MrpRunOutcome(run_id=run.id, results=results, summary=summary)


def get_mrp_results(
    db: Session,
    *,
    status: MrpResultStatus | str | None = None,
    urgency: Urgency | str | None = None,
    part_id: str | None = None,
    sales_order_id: str | None = None,
    only_needs_order: bool = False,
) -> list[MrpResult]:
    q = db.query(MrpResult)
    if status:
        q = q.filter(MrpResult.status == MrpResultStatus(status))
    if urgency:
        q = q.filter(MrpResult.urgency == Urgency(urgency))
    if part_id:
        q = q.filter(MrpResult.part_id == part_id)
    if sales_order_id:
        q = q.filter(MrpResult.sales_order_id == sales_order_id)
    if only_needs_order:
        q = q.filter(MrpResult.suggested_order_qty > 0)
    return q.order_by(
        MrpResult.suggested_order_date.is_(None),
        MrpResult.suggested_order_date.asc(),
        MrpResult.suggested_order_qty.desc(),
    ).all()


def current_urgency(result: MrpResult, now: datetime | None = None) -> Urgency:
    """Urgency re-evaluated against today rather than the run's clock."""
    if result.due_date is None:
        return Urgency.LOW
    return urgency_for_days(days_until(result.due_date, now or utcnow()))


def update_mrp_result_status(db: Session, result_id: str, status: MrpResultStatus | str) -> MrpResult:
    row = db.query(MrpResult).filter(MrpResult.id == result_id).first()
    if not row:
        raise MrpResultNotFound(result_id)
    row.status = MrpResultStatus(status)
    db.commit()
    db.refresh(row)
    return row
