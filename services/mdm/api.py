from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.events.bus import publish
from app.db.models.catalog import BomItem, Part, Product, Supplier

router = APIRouter(prefix="/master", tags=["master"])


# ---- Schemas ----
class SupplierIn(BaseModel):
    supplier_code: str = Field(..., max_length=32)
    name: str = Field(..., max_length=256)
    lead_time_days: int | None = Field(default=None, ge=0)


class PartIn(BaseModel):
    part_code: str = Field(..., max_length=64)
    part_name: str = Field(..., max_length=256)
    unit: str = Field(default="EA", max_length=16)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    safety_stock: int = Field(default=0, ge=0)
    reorder_point: int = Field(default=0, ge=0)
    min_order_qty: int = Field(default=1, ge=0)
    lead_time_days: int = Field(default=7, ge=0)
    supplier_code: str | None = Field(default=None, max_length=32)
    notes: str | None = None


class ProductIn(BaseModel):
    product_code: str = Field(..., max_length=64)
    product_name: str = Field(..., max_length=256)
    unit: str = Field(default="EA", max_length=16)


class BomItemIn(BaseModel):
    product_code: str = Field(..., max_length=64)
    part_code: str = Field(..., max_length=64)
    quantity_per_unit: Decimal = Field(..., gt=0)
    loss_rate: Decimal = Field(default=Decimal("0"), ge=0, lt=1)


def _part_out(r: Part) -> dict:
    return {
        "id": r.id,
        "part_code": r.part_code,
        "part_name": r.part_name,
        "unit": r.unit,
        "unit_price": float(r.unit_price or 0),
        "safety_stock": r.safety_stock,
        "reorder_point": r.reorder_point,
        "min_order_qty": r.min_order_qty,
        "lead_time_days": r.lead_time_days,
        "supplier_id": r.supplier_id,
        "is_active": r.is_active,
    }


# ---- Suppliers ----
@router.get("/suppliers")
def list_suppliers(db: Session = Depends(get_db)):
    rows = db.query(Supplier).order_by(Supplier.supplier_code.asc()).all()
    return [{"id": r.id, "supplier_code": r.supplier_code, "name": r.name, "lead_time_days": r.lead_time_days} for r in rows]


@router.post("/suppliers")
def create_supplier(payload: SupplierIn, db: Session = Depends(get_db)):
    if db.query(Supplier).filter(Supplier.supplier_code == payload.supplier_code).first():
        raise HTTPException(409, "Supplier code already exists")
    row = Supplier(supplier_code=payload.supplier_code, name=payload.name, lead_time_days=payload.lead_time_days, meta={})
    db.add(row)
    db.flush()
    publish(db, "master.supplier.created", entity=("supplier", row.id), payload={"id": row.id, "supplier_code": row.supplier_code})
    db.commit()
    db.refresh(row)
    return {"id": row.id, "supplier_code": row.supplier_code, "name": row.name, "lead_time_days": row.lead_time_days}


# ---- Parts ----
@router.get("/parts")
def list_parts(db: Session = Depends(get_db), include_inactive: bool = False):
    q = db.query(Part)
    if not include_inactive:
        q = q.filter(Part.is_active.is_(True))
    return [_part_out(r) for r in q.order_by(Part.part_code.asc()).all()]


@router.post("/parts")
def create_part(payload: PartIn, db: Session = Depends(get_db)):
    if db.query(Part).filter(Part.part_code == payload.part_code).first():
        raise HTTPException(409, "Part code already exists")

    supplier_id = None
    if payload.supplier_code:
        s = db.query(Supplier).filter(Supplier.supplier_code == payload.supplier_code).first()
        if not s:
            raise HTTPException(409, "Unknown supplier_code")
        supplier_id = s.id

    row = Part(
        part_code=payload.part_code,
        part_name=payload.part_name,
        unit=payload.unit,
        unit_price=payload.unit_price,
        safety_stock=payload.safety_stock,
        reorder_point=payload.reorder_point,
        min_order_qty=payload.min_order_qty,
        lead_time_days=payload.lead_time_days,
        supplier_id=supplier_id,
        notes=payload.notes,
    )
    db.add(row)
    db.flush()
    publish(db, "master.part.created", entity=("part", row.id), payload={"id": row.id, "part_code": row.part_code})
    db.commit()
    db.refresh(row)
    return _part_out(row)


# ---- Products ----
@router.get("/products")
def list_products(db: Session = Depends(get_db)):
    rows = db.query(Product).order_by(Product.product_code.asc()).all()
    return [{"id": r.id, "product_code": r.product_code, "product_name": r.product_name, "unit": r.unit} for r in rows]


@router.post("/products")
def create_product(payload: ProductIn, db: Session = Depends(get_db)):
    if db.query(Product).filter(Product.product_code == payload.product_code).first():
        raise HTTPException(409, "Product code already exists")
    row = Product(product_code=payload.product_code, product_name=payload.product_name, unit=payload.unit)
    db.add(row)
    db.commit()
    db.refresh(row)
    return {"id": row.id, "product_code": row.product_code, "product_name": row.product_name, "unit": row.unit}


# ---- BOM ----
@router.get("/products/{product_id}/bom")
def list_bom(product_id: str, db: Session = Depends(get_db)):
    rows = db.query(BomItem).filter(BomItem.product_id == product_id).all()
    return [{
        "id": r.id,
        "part_id": r.part_id,
        "part_code": r.part.part_code,
        "quantity_per_unit": float(r.quantity_per_unit),
        "loss_rate": float(r.loss_rate),
        "is_active": r.is_active,
    } for r in rows]


@router.post("/bom")
def create_bom_item(payload: BomItemIn, db: Session = Depends(get_db)):
    product = db.query(Product).filter(Product.product_code == payload.product_code).first()
    if not product:
        raise HTTPException(409, "Unknown product_code")
    part = db.query(Part).filter(Part.part_code == payload.part_code).first()
    if not part:
        raise HTTPException(409, "Unknown part_code")
    if db.query(BomItem).filter(BomItem.product_id == product.id, BomItem.part_id == part.id).first():
        raise HTTPException(409, "BOM line already exists")

    row = BomItem(
        product_id=product.id,
        part_id=part.id,
        quantity_per_unit=payload.quantity_per_unit,
        loss_rate=payload.loss_rate,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return {"id": row.id, "product_id": row.product_id, "part_id": row.part_id}
